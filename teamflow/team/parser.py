"""Turn raw LLM text into a structured agent step."""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..enums import AgentStatus

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)
_STRING_FIELD = r'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"'
_OBJECT_FIELD = r'"{key}"\s*:\s*(\{{.*?\}})'
_BOOL_FIELD = r'"{key}"\s*:\s*(true|false)'

SELF_QUESTION_ACTION = "self_question"


@dataclass
class AgentStep:
    """One parsed LLM reply in the thought/action/observation protocol."""

    thought: Optional[str] = None
    action: Optional[str] = None
    action_input: Any = None
    observation: Optional[str] = None
    is_final_answer_ready: Optional[bool] = None
    final_answer: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentStep":
        return cls(
            thought=data.get("thought"),
            action=data.get("action"),
            action_input=data.get("actionInput"),
            observation=data.get("observation"),
            is_final_answer_ready=data.get("isFinalAnswerReady"),
            final_answer=data.get("finalAnswer"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "thought": self.thought,
            "action": self.action,
            "actionInput": self.action_input,
            "observation": self.observation,
            "isFinalAnswerReady": self.is_final_answer_ready,
            "finalAnswer": self.final_answer,
        }
        return {k: v for k, v in out.items() if v is not None}

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()


def parse_llm_output(text: Optional[str]) -> Optional[AgentStep]:
    """Best-effort parse: strict JSON first, then field-by-field extraction.

    Returns None when nothing in the text looks like the expected protocol.
    """
    if not text or not text.strip():
        return None
    body = text.strip()

    m = _FENCE_RE.search(body)
    if m:
        body = m.group(1).strip()

    data = _loads_object(body)
    if data is None:
        start, end = body.find("{"), body.rfind("}")
        if start >= 0 and end > start:
            data = _loads_object(body[start:end + 1])
    if data is None:
        data = _extract_fields(body)
    if not data:
        return None
    return AgentStep.from_dict(data)


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _extract_fields(text: str) -> Dict[str, Any]:
    """Regex fallback for almost-JSON (unescaped newlines, trailing commas)."""
    found: Dict[str, Any] = {}
    for key in ("thought", "action", "observation", "finalAnswer"):
        m = re.search(_STRING_FIELD.format(key=key), text, re.DOTALL)
        if m:
            found[key] = _unescape(m.group(1))
    m = re.search(_OBJECT_FIELD.format(key="actionInput"), text, re.DOTALL)
    if m:
        found["actionInput"] = _loads_object(m.group(1)) or m.group(1)
    m = re.search(_BOOL_FIELD.format(key="isFinalAnswerReady"), text)
    if m:
        found["isFinalAnswerReady"] = m.group(1) == "true"
    return found


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except (json.JSONDecodeError, ValueError):
        return value


def classify_step(step: Optional[AgentStep]) -> AgentStatus:
    """Map a parsed reply to the agent status that handles it."""
    if step is None:
        return AgentStatus.ISSUES_PARSING_LLM_OUTPUT
    if step.final_answer is not None:
        return AgentStatus.FINAL_ANSWER
    if step.action == SELF_QUESTION_ACTION:
        return AgentStatus.THOUGHT if step.thought else AgentStatus.SELF_QUESTION
    if step.action:
        return AgentStatus.EXECUTING_ACTION
    if step.observation is not None:
        return AgentStatus.OBSERVATION
    if step.thought:
        return AgentStatus.THOUGHT
    return AgentStatus.WEIRD_LLM_OUTPUT
