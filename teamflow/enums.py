"""Closed status sets for every entity the workflow tracks."""

from enum import Enum


class Entity(Enum):
    AGENT = "agent"
    TASK = "task"
    WORKFLOW = "workflow"
    STREAM = "stream"


class TaskStatus(Enum):
    TODO = "TODO"
    DOING = "DOING"
    BLOCKED = "BLOCKED"
    REVISE = "REVISE"
    AWAITING_VALIDATION = "AWAITING_VALIDATION"
    VALIDATED = "VALIDATED"
    DONE = "DONE"
    ERROR = "ERROR"


class AgentStatus(Enum):
    INITIAL = "INITIAL"
    ITERATION_START = "ITERATION_START"
    THINKING = "THINKING"
    THINKING_END = "THINKING_END"
    THINKING_ERROR = "THINKING_ERROR"
    THOUGHT = "THOUGHT"
    SELF_QUESTION = "SELF_QUESTION"
    OBSERVATION = "OBSERVATION"
    EXECUTING_ACTION = "EXECUTING_ACTION"
    USING_TOOL = "USING_TOOL"
    USING_TOOL_END = "USING_TOOL_END"
    USING_TOOL_ERROR = "USING_TOOL_ERROR"
    TOOL_DOES_NOT_EXIST = "TOOL_DOES_NOT_EXIST"
    FINAL_ANSWER = "FINAL_ANSWER"
    WEIRD_LLM_OUTPUT = "WEIRD_LLM_OUTPUT"
    ISSUES_PARSING_LLM_OUTPUT = "ISSUES_PARSING_LLM_OUTPUT"
    ITERATION_END = "ITERATION_END"
    MAX_ITERATIONS_ERROR = "MAX_ITERATIONS_ERROR"
    DECIDED_TO_BLOCK_TASK = "DECIDED_TO_BLOCK_TASK"
    AGENTIC_LOOP_ERROR = "AGENTIC_LOOP_ERROR"
    TASK_COMPLETED = "TASK_COMPLETED"


class WorkflowStatus(Enum):
    INITIAL = "INITIAL"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    BLOCKED = "BLOCKED"
    ERRORED = "ERRORED"


class StreamState(Enum):
    START = "START"
    TOKEN = "TOKEN"
    END = "END"
    ERROR = "ERROR"


class LogType(Enum):
    AGENT_STATUS_UPDATE = "AgentStatusUpdate"
    TASK_STATUS_UPDATE = "TaskStatusUpdate"
    WORKFLOW_STATUS_UPDATE = "WorkflowStatusUpdate"


class FeedbackStatus(Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"


class MetricDomain(Enum):
    SYSTEM = "SYSTEM"
    AGENT = "AGENT"
    TASK = "TASK"
    WORKFLOW = "WORKFLOW"
    TEAM = "TEAM"
    LLM = "LLM"


class MetricType(Enum):
    PERFORMANCE = "PERFORMANCE"
    LATENCY = "LATENCY"
    THROUGHPUT = "THROUGHPUT"
    RESOURCE = "RESOURCE"
    STATE_TRANSITION = "STATE_TRANSITION"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    USAGE = "USAGE"


# Tasks that satisfy a dependency.
COMPLETED_TASK_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.VALIDATED})

# Tasks that can never run again in this workflow.
TERMINAL_TASK_STATUSES = frozenset({
    TaskStatus.DONE,
    TaskStatus.VALIDATED,
    TaskStatus.BLOCKED,
    TaskStatus.ERROR,
})

TERMINAL_WORKFLOW_STATUSES = frozenset({
    WorkflowStatus.FINISHED,
    WorkflowStatus.BLOCKED,
    WorkflowStatus.ERRORED,
})
