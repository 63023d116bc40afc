"""Agent entity."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..enums import AgentStatus
from ..llm import LLMConfig
from .tools import Tool

DEFAULT_MAX_ITERATIONS = 10


@dataclass(eq=False)
class Agent:
    """An LLM-backed worker.

    The agent only describes who it is and how to call its model. It holds no
    workflow state beyond its own status; the loop running it reports every
    change through the team's StatusManager. ``llm`` overrides the team's
    provider for this agent.
    """

    name: str
    role: str
    goal: str = ""
    background: str = ""
    llm_config: LLMConfig = field(default_factory=LLMConfig)
    tools: List[Tool] = field(default_factory=list)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    force_final_answer: bool = True
    system_message: Optional[str] = None
    llm: Any = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: AgentStatus = AgentStatus.INITIAL

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.tools]

    def reset(self) -> None:
        self.status = AgentStatus.INITIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "goal": self.goal,
            "model": self.llm_config.model,
            "tools": self.tool_names,
            "max_iterations": self.max_iterations,
            "status": self.status.value,
        }
