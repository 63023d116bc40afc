from .stats import (
    LLMUsageStats,
    ModelUsage,
    TaskStats,
    WorkflowStats,
    calculate_task_stats,
    calculate_workflow_stats,
    summarize_agent_entries,
)
from .status import MonotonicClock, StatusChange, StatusManager
from .transitions import TRANSITION_TABLES, allowed_targets, is_valid_transition
from .workflow_log import LogEntry, WorkflowLog

__all__ = [
    "LLMUsageStats",
    "LogEntry",
    "ModelUsage",
    "MonotonicClock",
    "StatusChange",
    "StatusManager",
    "TaskStats",
    "TRANSITION_TABLES",
    "WorkflowLog",
    "WorkflowStats",
    "allowed_targets",
    "calculate_task_stats",
    "calculate_workflow_stats",
    "is_valid_transition",
    "summarize_agent_entries",
]
