"""Agents, tasks and the team that runs them."""

from .agent import Agent
from .loop import AgenticLoop, LoopOutcome
from .manager import TeamManager, WorkflowResult
from .task import Feedback, Task
from .team import Team
from .tools import BlockTaskRequest, BlockTaskTool, Tool, tool

__all__ = [
    "Agent",
    "AgenticLoop",
    "BlockTaskRequest",
    "BlockTaskTool",
    "Feedback",
    "LoopOutcome",
    "Task",
    "Team",
    "TeamManager",
    "Tool",
    "WorkflowResult",
    "tool",
]
