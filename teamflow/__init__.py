"""teamflow: multi-agent LLM workflows with a validated state machine core."""

__version__ = "0.3.0"

from .config import TeamflowConfig
from .costs import calculate_task_cost, calculate_total_workflow_cost, format_cost, parse_cost
from .enums import AgentStatus, TaskStatus, WorkflowStatus
from .errors import (
    ConfigError,
    InvalidTransitionError,
    LLMInvocationError,
    TaskNotFoundError,
    TaskValidationError,
    TeamflowError,
    ToolError,
    WorkflowError,
)
from .llm import LiteLLMProvider, LLMConfig, LLMProvider, LLMResponse
from .team import Agent, BlockTaskTool, Task, Team, Tool, WorkflowResult, tool

__all__ = [
    "Agent",
    "AgentStatus",
    "BlockTaskTool",
    "ConfigError",
    "InvalidTransitionError",
    "LiteLLMProvider",
    "LLMConfig",
    "LLMInvocationError",
    "LLMProvider",
    "LLMResponse",
    "Task",
    "TaskNotFoundError",
    "TaskStatus",
    "TaskValidationError",
    "Team",
    "TeamflowConfig",
    "TeamflowError",
    "Tool",
    "ToolError",
    "WorkflowError",
    "WorkflowResult",
    "WorkflowStatus",
    "__version__",
    "calculate_task_cost",
    "calculate_total_workflow_cost",
    "format_cost",
    "parse_cost",
    "tool",
]
