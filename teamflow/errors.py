"""Structured error types for teamflow.

Every error a caller can see carries the id of the entity it concerns and,
where one exists, the status the entity was in before the failure.
"""

from typing import Any, Optional


class TeamflowError(Exception):
    """Base error for all teamflow operations."""
    pass


class InvalidTransitionError(TeamflowError):
    """Raised when a status change is not in the entity's transition table."""

    def __init__(self, entity: str, entity_id: str, current_status: Any,
                 target_status: Any):
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Invalid {entity} transition for {entity_id}: "
            f"{_status_name(current_status)} -> {_status_name(target_status)}"
        )


class TaskNotFoundError(TeamflowError):
    """Raised when an operation names a task the team does not own."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskValidationError(TeamflowError):
    """Raised when a HITL operation is attempted from the wrong task status."""

    def __init__(self, task_id: str, status: Any, message: str):
        self.task_id = task_id
        self.status = status
        super().__init__(f"Task {task_id} ({_status_name(status)}): {message}")


class ToolError(TeamflowError):
    """Error raised during tool execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name} error: {message}")


class LLMInvocationError(TeamflowError):
    """Uniform wrapper for provider failures."""

    def __init__(self, model: str, message: str, code: Optional[str] = None):
        self.model = model
        self.code = code
        prefix = f"[{code}] " if code else ""
        super().__init__(f"{prefix}LLM call failed (model={model}): {message}")


class WorkflowError(TeamflowError):
    """Raised by ``Team.start``/``Team.resume`` when the run cannot progress.

    ``result`` holds the final ``WorkflowResult`` when one could be computed.
    """

    def __init__(self, entity_id: str, status: Any, message: str, result=None):
        self.entity_id = entity_id
        self.status = status
        self.result = result
        super().__init__(
            f"Workflow {entity_id} failed ({_status_name(status)}): {message}"
        )


class ConfigError(TeamflowError):
    """Raised for malformed config or team definition files."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


def _status_name(status: Any) -> str:
    return getattr(status, "value", status) if status is not None else "-"
