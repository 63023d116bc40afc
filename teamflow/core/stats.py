"""Statistics derived by scanning the workflow log."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from ..costs import (
    DEFAULT_CURRENCY,
    DEFAULT_PRECISION,
    CostDetails,
    calculate_total_workflow_cost,
)
from ..enums import AgentStatus, LogType, TaskStatus, WorkflowStatus
from .workflow_log import LogEntry, WorkflowLog

_WORKFLOW_END_STATUSES = (WorkflowStatus.FINISHED, WorkflowStatus.BLOCKED,
                          WorkflowStatus.ERRORED)


@dataclass
class LLMUsageStats:
    input_tokens: int = 0
    output_tokens: int = 0
    calls_count: int = 0
    calls_error_count: int = 0
    parsing_errors: int = 0
    total_latency: float = 0.0

    @property
    def average_latency(self) -> float:
        if not self.calls_count:
            return 0.0
        return self.total_latency / self.calls_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "calls_count": self.calls_count,
            "calls_error_count": self.calls_error_count,
            "parsing_errors": self.parsing_errors,
            "total_latency": round(self.total_latency, 4),
            "average_latency": round(self.average_latency, 4),
        }


@dataclass
class ModelUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    calls_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "calls_count": self.calls_count,
        }


@dataclass
class TaskStats:
    task_id: str
    start_time: Optional[float]
    end_time: Optional[float]
    duration: float
    llm_usage_stats: LLMUsageStats
    iteration_count: int
    model_usage: Dict[str, ModelUsage]
    cost_details: CostDetails

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "llm_usage_stats": self.llm_usage_stats.to_dict(),
            "iteration_count": self.iteration_count,
            "model_usage": {m: u.to_dict() for m, u in self.model_usage.items()},
            "cost_details": self.cost_details.to_dict(),
        }


@dataclass
class WorkflowStats:
    team_name: str
    start_time: Optional[float]
    end_time: Optional[float]
    duration: float
    llm_usage_stats: LLMUsageStats
    iteration_count: int
    cost_details: CostDetails
    task_count: int
    agent_count: int
    model_usage: Dict[str, ModelUsage] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_name": self.team_name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "llm_usage_stats": self.llm_usage_stats.to_dict(),
            "iteration_count": self.iteration_count,
            "cost_details": self.cost_details.to_dict(),
            "task_count": self.task_count,
            "agent_count": self.agent_count,
            "model_usage": {m: u.to_dict() for m, u in self.model_usage.items()},
        }


def summarize_agent_entries(
    entries: Iterable[LogEntry],
) -> Tuple[LLMUsageStats, Dict[str, ModelUsage], int]:
    """Fold agent status entries into usage totals.

    THINKING_END carries ``llm_usage``/``latency``/``model`` metadata and
    counts as a call; THINKING_ERROR is a failed call; ISSUES_PARSING_LLM_OUTPUT
    a parsing error; each ITERATION_END one iteration.
    """
    usage = LLMUsageStats()
    per_model: Dict[str, ModelUsage] = {}
    iterations = 0

    for entry in entries:
        if entry.log_type != LogType.AGENT_STATUS_UPDATE:
            continue
        status = entry.agent_status
        if status == AgentStatus.THINKING_END:
            tokens = entry.metadata.get("llm_usage") or {}
            inp = int(tokens.get("input_tokens", 0))
            out = int(tokens.get("output_tokens", 0))
            usage.input_tokens += inp
            usage.output_tokens += out
            usage.calls_count += 1
            usage.total_latency += float(entry.metadata.get("latency", 0.0))
            model = entry.metadata.get("model")
            if model:
                bucket = per_model.setdefault(model, ModelUsage())
                bucket.input_tokens += inp
                bucket.output_tokens += out
                bucket.calls_count += 1
        elif status == AgentStatus.THINKING_ERROR:
            usage.calls_error_count += 1
        elif status == AgentStatus.ISSUES_PARSING_LLM_OUTPUT:
            usage.parsing_errors += 1
        elif status == AgentStatus.ITERATION_END:
            iterations += 1

    return usage, per_model, iterations


def calculate_task_stats(
    task_id: str,
    log: WorkflowLog,
    pricing_table=None,
    precision: int = DEFAULT_PRECISION,
    currency: str = DEFAULT_CURRENCY,
    now: Optional[float] = None,
) -> TaskStats:
    """Stats for the task's latest attempt.

    An attempt starts at a DOING entry written by the scheduler; the loop's
    own REVISE -> DOING hops (``mid_attempt``) stay inside it.
    """
    starts = [e for e in log.filter(log_type=LogType.TASK_STATUS_UPDATE, task_id=task_id,
                                    task_status=TaskStatus.DOING)
              if not e.metadata.get("mid_attempt")]
    start = starts[-1].timestamp if starts else None

    end = None
    if start is not None:
        for entry in log.filter(log_type=LogType.TASK_STATUS_UPDATE, task_id=task_id,
                                since=start):
            if entry.task_status not in (TaskStatus.DOING, TaskStatus.REVISE):
                end = entry.timestamp
                break

    window = log.filter(log_type=LogType.AGENT_STATUS_UPDATE, task_id=task_id,
                        since=start) if start is not None else []
    usage, per_model, iterations = summarize_agent_entries(window)

    finish = end if end is not None else (now if now is not None else time.time())
    return TaskStats(
        task_id=task_id,
        start_time=start,
        end_time=end,
        duration=round(finish - start, 3) if start is not None else 0.0,
        llm_usage_stats=usage,
        iteration_count=iterations,
        model_usage=per_model,
        cost_details=calculate_total_workflow_cost(per_model, pricing_table,
                                                   precision, currency),
    )


def calculate_workflow_stats(
    log: WorkflowLog,
    team_name: str,
    task_count: int,
    agent_count: int,
    pricing_table=None,
    precision: int = DEFAULT_PRECISION,
    currency: str = DEFAULT_CURRENCY,
    now: Optional[float] = None,
) -> WorkflowStats:
    """Whole-run stats from the first RUNNING entry to completion (or now)."""
    runs = log.filter(log_type=LogType.WORKFLOW_STATUS_UPDATE,
                      workflow_status=WorkflowStatus.RUNNING)
    start = runs[0].timestamp if runs else None

    end = None
    if start is not None:
        for entry in log.filter(log_type=LogType.WORKFLOW_STATUS_UPDATE, since=start):
            if entry.workflow_status in _WORKFLOW_END_STATUSES:
                end = entry.timestamp
                break

    usage, per_model, iterations = summarize_agent_entries(log)
    finish = end if end is not None else (now if now is not None else time.time())
    return WorkflowStats(
        team_name=team_name,
        start_time=start,
        end_time=end,
        duration=round(finish - start, 3) if start is not None else 0.0,
        llm_usage_stats=usage,
        iteration_count=iterations,
        cost_details=calculate_total_workflow_cost(per_model, pricing_table,
                                                   precision, currency),
        task_count=task_count,
        agent_count=agent_count,
        model_usage=per_model,
    )
