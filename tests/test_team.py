"""End-to-end tests for Team / TeamManager scheduling and HITL."""

import asyncio

import pytest
import pytest_asyncio

from conftest import ScriptedProvider, final, make_agent, make_task
from teamflow.enums import LogType, MetricType, TaskStatus, WorkflowStatus
from teamflow.errors import (
    ConfigError,
    TaskNotFoundError,
    TaskValidationError,
    WorkflowError,
)
from teamflow.llm import LLMProvider
from teamflow.metrics import InMemoryMetricsSink
from teamflow.team import BlockTaskTool, Team


def _block(reason):
    return {"thought": "cannot do this", "action": "block_task",
            "actionInput": {"reason": reason}}


def _task_statuses(team, task):
    return [e.task_status for e in team.workflow_log.filter(
        log_type=LogType.TASK_STATUS_UPDATE, task_id=task.id)]


@pytest_asyncio.fixture
async def make_team():
    created = []

    def factory(agents, tasks, provider=None, name="crew", **kwargs):
        team = Team(name, agents=agents, tasks=tasks,
                    provider=provider or ScriptedProvider(), **kwargs)
        created.append(team)
        return team

    yield factory
    for team in created:
        await team.metrics.stop(final_flush=False)


class TestLinearWorkflow:
    """A -> B with inputs."""

    @pytest.mark.asyncio
    async def test_runs_in_dependency_order(self, make_team):
        adder, writer = make_agent("Adder"), make_agent("Writer")
        task_a = make_task(adder, "Add {a} and {b}", expected_output="A number")
        task_b = make_task(writer, "Explain the result", dependencies=[task_a])
        provider = ScriptedProvider([final("8"), final("The sum is 8")])
        team = make_team([adder, writer], [task_a, task_b], provider)

        result = await team.start({"a": 5, "b": 3})

        assert result.status == WorkflowStatus.FINISHED
        assert result.result == "The sum is 8"
        assert result.stats.task_count == 2
        assert result.stats.agent_count == 2
        assert task_a.interpolated_description == "Add 5 and 3"
        assert "Add 5 and 3" in provider.calls[0][1]["content"]
        assert "8" in provider.calls[1][1]["content"]

        a_done = team.workflow_log.last(task_id=task_a.id, task_status=TaskStatus.DONE)
        b_start = team.workflow_log.filter(task_id=task_b.id,
                                           task_status=TaskStatus.DOING)[0]
        assert b_start.timestamp > a_done.timestamp

    @pytest.mark.asyncio
    async def test_constructor_inputs_are_defaults(self, make_team):
        agent = make_agent()
        task = make_task(agent, "Write about {topic} for {audience}")
        team = make_team([agent], [task], ScriptedProvider([final("ok")]),
                         inputs={"topic": "tides", "audience": "kids"})
        await team.start({"audience": "adults"})
        assert task.interpolated_description == "Write about tides for adults"

    @pytest.mark.asyncio
    async def test_stats_and_log(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        team = make_team([agent], [task], ScriptedProvider([final("ok")]))
        result = await team.start()

        stats = result.stats
        assert stats.llm_usage_stats.calls_count == 1
        assert stats.llm_usage_stats.input_tokens == 100
        assert stats.llm_usage_stats.output_tokens == 20
        assert stats.iteration_count == 1
        assert stats.cost_details.available
        assert stats.end_time >= stats.start_time

        task_stats = team.get_task_stats(task.id)
        assert task_stats.iteration_count == 1
        assert task_stats.model_usage["gpt-4o-mini"].calls_count == 1

        workflow_entries = team.workflow_log.filter(log_type=LogType.WORKFLOW_STATUS_UPDATE)
        assert [e.workflow_status for e in workflow_entries] == [
            WorkflowStatus.RUNNING, WorkflowStatus.FINISHED]
        timestamps = [e.timestamp for e in team.logs]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == len(timestamps)

    @pytest.mark.asyncio
    async def test_multiple_deliverables(self, make_team):
        a1, a2 = make_agent("One"), make_agent("Two")
        t1 = make_task(a1, "First part", id="first", is_deliverable=True)
        t2 = make_task(a2, "Second part", id="second", is_deliverable=True)
        team = make_team([a1, a2], [t1, t2])
        a1.llm = ScriptedProvider([final("p1")])
        a2.llm = ScriptedProvider([final("p2")])
        result = await team.start()
        assert result.result == {"first": "p1", "second": "p2"}

    @pytest.mark.asyncio
    async def test_independent_tasks_run_concurrently(self, make_team):
        first_in, second_in = asyncio.Event(), asyncio.Event()

        class Rendezvous(LLMProvider):
            def __init__(self, mine, other, answer):
                self.mine, self.other, self.answer = mine, other, answer

            async def invoke(self, messages, config):
                self.mine.set()
                await asyncio.wait_for(self.other.wait(), timeout=2)
                return await ScriptedProvider([final(self.answer)]).invoke(messages, config)

        a1 = make_agent("One", llm=Rendezvous(first_in, second_in, "x"))
        a2 = make_agent("Two", llm=Rendezvous(second_in, first_in, "y"))
        team = make_team([a1, a2], [make_task(a1, "Left"), make_task(a2, "Right")])
        result = await team.start()
        assert result.status == WorkflowStatus.FINISHED

    @pytest.mark.asyncio
    async def test_restart_resets_state(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        team = make_team([agent], [task], ScriptedProvider([final("one"), final("two")]))
        first = await team.start()
        second = await team.start()
        assert (first.result, second.result) == ("one", "two")
        assert len(team.workflow_log.filter(log_type=LogType.WORKFLOW_STATUS_UPDATE)) == 2


class TestHumanInTheLoop:

    @pytest.mark.asyncio
    async def test_feedback_cycle(self, make_team):
        agent = make_agent()
        task = make_task(agent, external_validation_required=True)
        provider = ScriptedProvider([final("draft 1"), final("draft 2")])
        team = make_team([agent], [task], provider)

        paused = await team.start()
        assert paused.status == WorkflowStatus.RUNNING
        assert task.status == TaskStatus.AWAITING_VALIDATION

        team.provide_feedback(task.id, "add more detail")
        assert task.status == TaskStatus.REVISE
        paused = await team.resume()
        assert task.status == TaskStatus.AWAITING_VALIDATION
        assert task.result == "draft 2"
        assert "add more detail" in provider.calls[1][-1]["content"]

        team.validate_task(task.id)
        result = await team.resume()

        assert result.status == WorkflowStatus.FINISHED
        assert result.result == "draft 2"
        assert _task_statuses(team, task) == [
            TaskStatus.DOING, TaskStatus.AWAITING_VALIDATION, TaskStatus.REVISE,
            TaskStatus.DOING, TaskStatus.AWAITING_VALIDATION, TaskStatus.VALIDATED,
        ]

    @pytest.mark.asyncio
    async def test_validated_task_unblocks_dependents(self, make_team):
        agent = make_agent()
        first = make_task(agent, "Draft", external_validation_required=True)
        second = make_task(agent, "Publish", dependencies=[first])
        team = make_team([agent], [first, second],
                         ScriptedProvider([final("draft"), final("published")]))
        await team.start()
        assert second.status == TaskStatus.TODO
        team.validate_task(first.id)
        result = await team.resume()
        assert result.result == "published"

    @pytest.mark.asyncio
    async def test_feedback_while_running(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        holder = {}

        def interrupt(messages):
            holder["team"].provide_feedback(task.id, "use metric units")
            return {"thought": "converting"}

        team = make_team([agent], [task], ScriptedProvider([interrupt, final("5 km")]))
        holder["team"] = team
        result = await team.start()
        assert result.result == "5 km"
        assert _task_statuses(team, task) == [
            TaskStatus.DOING, TaskStatus.REVISE, TaskStatus.DOING, TaskStatus.DONE]

    @pytest.mark.asyncio
    async def test_feedback_while_running_keeps_earlier_usage(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        holder = {}

        def interrupt(messages):
            holder["team"].provide_feedback(task.id, "cite sources")
            return {"thought": "still reading"}

        provider = ScriptedProvider([{"thought": "reading"}, interrupt, final("cited")])
        team = make_team([agent], [task], provider)
        holder["team"] = team
        await team.start()

        assert len(provider.calls) == 3
        done = team.workflow_log.last(task_id=task.id, task_status=TaskStatus.DONE)
        assert done.metadata["llm_usage_stats"]["calls_count"] == 3
        assert done.metadata["llm_usage_stats"]["input_tokens"] == 300
        stats = team.get_task_stats(task.id)
        assert stats.llm_usage_stats.calls_count == 3

    @pytest.mark.asyncio
    async def test_feedback_during_final_call_reruns_task(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        holder = {}

        def interrupt(messages):
            holder["team"].provide_feedback(task.id, "too long")
            return final("long answer")

        provider = ScriptedProvider([interrupt, final("short answer")])
        team = make_team([agent], [task], provider)
        holder["team"] = team
        result = await team.start()
        assert result.result == "short answer"
        assert '"long answer"' in provider.calls[1][2]["content"]
        assert not task.pending_feedback()

    @pytest.mark.asyncio
    async def test_hitl_errors(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        team = make_team([agent], [task], ScriptedProvider([final("ok")]))
        with pytest.raises(TaskNotFoundError):
            team.provide_feedback("nope", "x")
        with pytest.raises(TaskNotFoundError):
            team.validate_task("nope")
        with pytest.raises(TaskValidationError):
            team.provide_feedback(task.id, "not started yet")
        with pytest.raises(TaskValidationError):
            team.validate_task(task.id)
        await team.start()
        with pytest.raises(TaskValidationError):
            team.provide_feedback(task.id, "too late")
        with pytest.raises(WorkflowError):
            await team.resume()


class TestBlockingAndErrors:

    @pytest.mark.asyncio
    async def test_agent_block_blocks_workflow(self, make_team):
        agent = make_agent(tools=[BlockTaskTool()])
        task = make_task(agent)
        dependent = make_task(agent, "Follow up", dependencies=[task])
        team = make_team([agent], [task, dependent],
                         ScriptedProvider([_block("no credentials")]))
        result = await team.start()
        assert result.status == WorkflowStatus.BLOCKED
        assert result.result is None
        assert task.status == TaskStatus.BLOCKED
        assert task.blocked_reason == "no credentials"
        assert dependent.status == TaskStatus.BLOCKED
        entry = team.workflow_log.last(task_id=task.id, task_status=TaskStatus.BLOCKED)
        assert entry.metadata["is_agent_decision"] is True
        assert entry.metadata["blocked_by"] == agent.name

    @pytest.mark.asyncio
    async def test_block_outside_deliverables_still_finishes(self, make_team):
        side_agent = make_agent("Side", tools=[BlockTaskTool()],
                                llm=ScriptedProvider([_block("skip")]))
        main_agent = make_agent("Main", llm=ScriptedProvider([final("main result")]))
        side = make_task(side_agent, "Optional extra")
        main = make_task(main_agent, "Core work", is_deliverable=True)
        team = make_team([side_agent, main_agent], [side, main])
        result = await team.start()
        assert result.status == WorkflowStatus.FINISHED
        assert result.result == "main result"
        assert side.status == TaskStatus.BLOCKED

    @pytest.mark.asyncio
    async def test_any_block_blocks_workflow_without_deliverables(self, make_team):
        blocker = make_agent("Blocker", tools=[BlockTaskTool()],
                             llm=ScriptedProvider([_block("no access")]))
        finisher = make_agent("Finisher", llm=ScriptedProvider([final("done")]))
        first = make_task(blocker, "Fetch the data")
        second = make_task(finisher, "Write the intro")
        team = make_team([blocker, finisher], [first, second])
        result = await team.start()
        assert first.status == TaskStatus.BLOCKED
        assert second.status == TaskStatus.DONE
        assert result.status == WorkflowStatus.BLOCKED

    @pytest.mark.asyncio
    async def test_any_error_fails_workflow_without_deliverables(self, make_team):
        failing = make_agent("Failing",
                             llm=ScriptedProvider([RuntimeError("provider down")]))
        finisher = make_agent("Finisher", llm=ScriptedProvider([final("done")]))
        first = make_task(failing, "Fetch the data")
        second = make_task(finisher, "Write the intro")
        team = make_team([failing, finisher], [first, second])
        with pytest.raises(WorkflowError):
            await team.start()
        assert first.status == TaskStatus.ERROR
        assert second.status == TaskStatus.DONE
        assert team.workflow_status == WorkflowStatus.ERRORED

    @pytest.mark.asyncio
    async def test_llm_failure_errors_workflow(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        dependent = make_task(agent, "Next", dependencies=[task])
        team = make_team([agent], [task, dependent],
                         ScriptedProvider([RuntimeError("provider down")]))
        with pytest.raises(WorkflowError) as exc:
            await team.start()
        assert team.workflow_status == WorkflowStatus.ERRORED
        assert task.status == TaskStatus.ERROR
        assert dependent.status == TaskStatus.BLOCKED
        assert exc.value.result.status == WorkflowStatus.ERRORED
        assert exc.value.result.stats.llm_usage_stats.calls_error_count == 1

    @pytest.mark.asyncio
    async def test_crash_resets_agent_and_errors_task(self, make_team):
        class Broken(LLMProvider):
            async def invoke(self, messages, config):
                return None

        agent = make_agent()
        task = make_task(agent)
        team = make_team([agent], [task], Broken())
        with pytest.raises(WorkflowError):
            await team.start()
        assert task.status == TaskStatus.ERROR
        assert "AttributeError" in task.error
        assert agent.status.value == "INITIAL"

    @pytest.mark.asyncio
    async def test_missing_fields_error_task(self, make_team):
        agent = make_agent()
        task = make_task(agent, expected_output="")
        team = make_team([agent], [task])
        with pytest.raises(WorkflowError, match="expected_output"):
            await team.start()
        assert task.status == TaskStatus.ERROR

    @pytest.mark.asyncio
    async def test_cycle_errors_before_running(self, make_team):
        agent = make_agent()
        t1 = make_task(agent, "One", id="t1", dependencies=["t2"])
        t2 = make_task(agent, "Two", id="t2", dependencies=["t1"])
        provider = ScriptedProvider()
        team = make_team([agent], [t1, t2], provider)
        with pytest.raises(WorkflowError, match="cycle"):
            await team.start()
        assert team.workflow_status == WorkflowStatus.ERRORED
        assert provider.calls == []

    def test_task_agent_must_be_on_team(self):
        member, outsider = make_agent("Member"), make_agent("Outsider")
        with pytest.raises(ConfigError):
            Team("crew", agents=[member], tasks=[make_task(outsider)])


class TestObservation:

    @pytest.mark.asyncio
    async def test_subscribe_receives_state(self, make_team):
        agent = make_agent()
        task = make_task(agent)
        team = make_team([agent], [task], ScriptedProvider([final("ok")]))
        states = []
        unsubscribe = team.subscribe(states.append)
        await team.start()
        unsubscribe()
        assert states[0]["workflow_status"] == "RUNNING"
        assert states[-1]["workflow_status"] == "FINISHED"
        assert states[-1]["tasks"][0]["status"] == "DONE"

    @pytest.mark.asyncio
    async def test_cleanup_flushes_metrics(self):
        sink = InMemoryMetricsSink()
        agent = make_agent()
        team = Team("crew", agents=[agent], tasks=[make_task(agent)],
                    provider=ScriptedProvider([final("ok")]), metrics_sink=sink)
        await team.start()
        await team.cleanup()
        assert any(e.type == MetricType.STATE_TRANSITION for e in sink.events)
        assert len(team.workflow_log) == 0
        assert not team.metrics.running
