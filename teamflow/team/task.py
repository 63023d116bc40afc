"""Task entity: one unit of work owned by one agent."""

import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..enums import FeedbackStatus, TaskStatus

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
_TITLE_WORDS = 3


@dataclass
class Feedback:
    content: str
    status: FeedbackStatus = FeedbackStatus.PENDING
    timestamp: float = field(default_factory=time.time)


@dataclass(eq=False)
class Task:
    """A unit of work. ``dependencies`` may be given as Task objects or ids."""

    description: str
    expected_output: str
    agent: Any
    title: str = ""
    dependencies: List[Any] = field(default_factory=list)
    is_deliverable: bool = False
    external_validation_required: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    status: TaskStatus = TaskStatus.TODO
    result: Any = None
    error: Optional[str] = None
    blocked_reason: Optional[str] = None
    feedback_history: List[Feedback] = field(default_factory=list)
    interpolated_description: str = ""

    def __post_init__(self):
        self.dependencies = [
            d.id if isinstance(d, Task) else str(d) for d in self.dependencies
        ]
        if not self.title:
            self.title = derive_title(self.description)

    def missing_fields(self) -> List[str]:
        missing = []
        if not (self.description or "").strip():
            missing.append("description")
        if not (self.expected_output or "").strip():
            missing.append("expected_output")
        if self.agent is None:
            missing.append("agent")
        return missing

    def interpolate(self, inputs: Optional[Mapping[str, Any]]) -> str:
        self.interpolated_description = interpolate_description(self.description, inputs)
        return self.interpolated_description

    # ── Feedback ─────────────────────────────────────────────

    def add_feedback(self, content: str) -> Feedback:
        fb = Feedback(content=content)
        self.feedback_history.append(fb)
        return fb

    def pending_feedback(self) -> List[Feedback]:
        return [f for f in self.feedback_history if f.status == FeedbackStatus.PENDING]

    def mark_feedback_processed(self) -> int:
        pending = self.pending_feedback()
        for fb in pending:
            fb.status = FeedbackStatus.PROCESSED
        return len(pending)

    def reset(self) -> None:
        self.status = TaskStatus.TODO
        self.result = None
        self.error = None
        self.blocked_reason = None
        self.feedback_history = []
        self.interpolated_description = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.interpolated_description or self.description,
            "expected_output": self.expected_output,
            "agent": getattr(self.agent, "name", None),
            "dependencies": list(self.dependencies),
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "blocked_reason": self.blocked_reason,
            "is_deliverable": self.is_deliverable,
            "external_validation_required": self.external_validation_required,
            "feedback_history": [
                {"content": f.content, "status": f.status.value, "timestamp": f.timestamp}
                for f in self.feedback_history
            ],
        }


def derive_title(description: str) -> str:
    words = (description or "").split()
    if not words:
        return "Untitled task"
    title = " ".join(words[:_TITLE_WORDS])
    return title + "..." if len(words) > _TITLE_WORDS else title


def interpolate_description(description: str, inputs: Optional[Mapping[str, Any]]) -> str:
    """Fill ``{key}`` placeholders from ``inputs``; unknown keys stay as written."""
    if not inputs:
        return description

    def replace(m: "re.Match") -> str:
        key = m.group(1)
        return str(inputs[key]) if key in inputs else m.group(0)

    return _PLACEHOLDER_RE.sub(replace, description)
