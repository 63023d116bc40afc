"""Tests for log-derived task and workflow statistics."""

from conftest import make_agent, make_task
from teamflow.core.stats import (
    calculate_task_stats,
    calculate_workflow_stats,
    summarize_agent_entries,
)
from teamflow.core.workflow_log import WorkflowLog
from teamflow.costs import UNAVAILABLE
from teamflow.enums import AgentStatus, LogType, TaskStatus, WorkflowStatus


def _think_end(log, ts, task, agent, model="gpt-4o", inp=1_000_000, out=0, latency=0.5):
    log.record(LogType.AGENT_STATUS_UPDATE, "", ts, task=task, agent=agent,
               agent_status=AgentStatus.THINKING_END,
               metadata={"llm_usage": {"input_tokens": inp, "output_tokens": out},
                         "latency": latency, "model": model})


def _agent(log, ts, task, agent, status):
    log.record(LogType.AGENT_STATUS_UPDATE, "", ts, task=task, agent=agent,
               agent_status=status)


def _task(log, ts, task, status, **metadata):
    log.record(LogType.TASK_STATUS_UPDATE, "", ts, task=task, task_status=status,
               metadata=metadata)


def _workflow(log, ts, status):
    log.record(LogType.WORKFLOW_STATUS_UPDATE, "", ts, workflow_status=status)


class TestSummarize:

    def test_counts(self):
        agent = make_agent()
        task = make_task(agent)
        log = WorkflowLog()
        _think_end(log, 1, task, agent, inp=10, out=5, latency=1.0)
        _agent(log, 2, task, agent, AgentStatus.ISSUES_PARSING_LLM_OUTPUT)
        _agent(log, 3, task, agent, AgentStatus.ITERATION_END)
        _think_end(log, 4, task, agent, inp=20, out=5, latency=3.0)
        _agent(log, 5, task, agent, AgentStatus.THINKING_ERROR)
        usage, per_model, iterations = summarize_agent_entries(log)
        assert (usage.input_tokens, usage.output_tokens) == (30, 10)
        assert usage.calls_count == 2
        assert usage.calls_error_count == 1
        assert usage.parsing_errors == 1
        assert usage.average_latency == 2.0
        assert iterations == 1
        assert per_model["gpt-4o"].calls_count == 2


class TestTaskStats:

    def test_window_is_latest_attempt(self):
        agent = make_agent()
        task = make_task(agent)
        log = WorkflowLog()
        _task(log, 1, task, TaskStatus.DOING)
        _think_end(log, 2, task, agent)
        _task(log, 3, task, TaskStatus.AWAITING_VALIDATION)
        _task(log, 4, task, TaskStatus.REVISE)
        _task(log, 5, task, TaskStatus.DOING)
        _think_end(log, 6, task, agent, inp=2_000_000)
        _agent(log, 7, task, agent, AgentStatus.ITERATION_END)
        _task(log, 9, task, TaskStatus.AWAITING_VALIDATION)

        stats = calculate_task_stats(task.id, log)
        assert stats.start_time == 5
        assert stats.end_time == 9
        assert stats.duration == 4
        assert stats.llm_usage_stats.input_tokens == 2_000_000
        assert stats.iteration_count == 1
        assert stats.cost_details.total_cost == 10.0

    def test_feedback_inside_attempt_keeps_window(self):
        agent = make_agent()
        task = make_task(agent)
        log = WorkflowLog()
        _task(log, 1, task, TaskStatus.DOING)
        _think_end(log, 2, task, agent)
        _task(log, 3, task, TaskStatus.REVISE)
        _task(log, 4, task, TaskStatus.DOING, mid_attempt=True)
        _think_end(log, 5, task, agent)
        _task(log, 6, task, TaskStatus.DONE)

        stats = calculate_task_stats(task.id, log)
        assert stats.start_time == 1
        assert stats.end_time == 6
        assert stats.llm_usage_stats.calls_count == 2

    def test_running_task_uses_now(self):
        agent = make_agent()
        task = make_task(agent)
        log = WorkflowLog()
        _task(log, 10, task, TaskStatus.DOING)
        stats = calculate_task_stats(task.id, log, now=12.5)
        assert stats.end_time is None
        assert stats.duration == 2.5

    def test_never_started(self):
        stats = calculate_task_stats("missing", WorkflowLog())
        assert stats.start_time is None
        assert stats.duration == 0.0
        assert stats.llm_usage_stats.calls_count == 0


class TestWorkflowStats:

    def test_whole_run(self):
        a1, a2 = make_agent("One"), make_agent("Two")
        t1, t2 = make_task(a1), make_task(a2)
        log = WorkflowLog()
        _workflow(log, 100, WorkflowStatus.RUNNING)
        _think_end(log, 101, t1, a1, model="gpt-4o-mini", inp=1_000_000)
        _think_end(log, 102, t2, a2, model="gpt-4o", inp=1_000_000)
        _workflow(log, 110, WorkflowStatus.FINISHED)

        stats = calculate_workflow_stats(log, "crew", task_count=2, agent_count=2)
        assert stats.duration == 10
        assert stats.cost_details.total_cost == 5.15
        assert set(stats.model_usage) == {"gpt-4o-mini", "gpt-4o"}
        assert stats.to_dict()["team_name"] == "crew"

    def test_unknown_model_cost_unavailable(self):
        agent = make_agent()
        task = make_task(agent)
        log = WorkflowLog()
        _workflow(log, 1, WorkflowStatus.RUNNING)
        _think_end(log, 2, task, agent, model="homegrown-llm")
        stats = calculate_workflow_stats(log, "crew", 1, 1, now=3)
        assert stats.cost_details.total_cost == UNAVAILABLE
        assert stats.end_time is None
        assert stats.duration == 2
