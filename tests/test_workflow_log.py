"""Tests for WorkflowLog."""

import pytest

from conftest import make_agent, make_task
from teamflow.core.workflow_log import LogEntry, WorkflowLog
from teamflow.enums import AgentStatus, LogType, TaskStatus, WorkflowStatus


class TestWorkflowLog:

    def test_timestamps_forced_increasing(self):
        log = WorkflowLog()
        first = log.append(LogEntry(10.0, LogType.WORKFLOW_STATUS_UPDATE, "a"))
        second = log.append(LogEntry(10.0, LogType.WORKFLOW_STATUS_UPDATE, "b"))
        third = log.append(LogEntry(5.0, LogType.WORKFLOW_STATUS_UPDATE, "c"))
        assert first.timestamp < second.timestamp < third.timestamp

    def test_record_snapshots_live_objects(self):
        agent = make_agent()
        task = make_task(agent, title="Write")
        log = WorkflowLog()
        entry = log.record(LogType.TASK_STATUS_UPDATE, "started", 1.0, task=task,
                           agent=agent, task_status=TaskStatus.DOING)
        task.status = TaskStatus.DONE
        task.title = "Renamed"
        assert entry.task_status == TaskStatus.DOING
        assert entry.task_title == "Write"
        assert entry.agent_name == agent.name
        assert entry.agent_status == AgentStatus.INITIAL

    def test_entries_are_immutable(self):
        log = WorkflowLog()
        entry = log.record(LogType.WORKFLOW_STATUS_UPDATE, "go", 1.0,
                           workflow_status=WorkflowStatus.RUNNING)
        with pytest.raises(AttributeError):
            entry.description = "changed"
        assert isinstance(log.entries, tuple)

    def test_filter_and_last(self):
        agent = make_agent()
        t1, t2 = make_task(agent), make_task(agent)
        log = WorkflowLog()
        log.record(LogType.TASK_STATUS_UPDATE, "", 1.0, task=t1, task_status=TaskStatus.DOING)
        log.record(LogType.TASK_STATUS_UPDATE, "", 2.0, task=t2, task_status=TaskStatus.DOING)
        log.record(LogType.TASK_STATUS_UPDATE, "", 3.0, task=t1, task_status=TaskStatus.DONE)
        assert len(log.filter(task_id=t1.id)) == 2
        assert log.last(task_id=t1.id).task_status == TaskStatus.DONE
        assert [e.task_id for e in log.filter(since=2.0)] == [t2.id, t1.id]
        assert log.last(task_status=TaskStatus.ERROR) is None

    def test_subscribe_and_failing_listener(self):
        log = WorkflowLog()
        seen = []

        def broken(entry):
            raise RuntimeError("listener bug")

        log.subscribe(broken)
        unsubscribe = log.subscribe(seen.append)
        log.record(LogType.WORKFLOW_STATUS_UPDATE, "a", 1.0)
        unsubscribe()
        log.record(LogType.WORKFLOW_STATUS_UPDATE, "b", 2.0)
        assert [e.description for e in seen] == ["a"]
        assert len(log) == 2

    def test_clear(self):
        log = WorkflowLog()
        log.record(LogType.WORKFLOW_STATUS_UPDATE, "a", 1.0)
        log.clear()
        assert len(log) == 0
        assert list(log) == []

    def test_to_dict(self):
        log = WorkflowLog()
        entry = log.record(LogType.WORKFLOW_STATUS_UPDATE, "a", 1.0,
                           workflow_status=WorkflowStatus.FINISHED, metadata={"k": 1})
        data = entry.to_dict()
        assert data["log_type"] == "WorkflowStatusUpdate"
        assert data["workflow_status"] == "FINISHED"
        assert data["metadata"] == {"k": 1}
