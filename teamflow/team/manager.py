"""TeamManager: drives a team's tasks to completion.

Scheduling follows the coordinator pattern: dispatch every ready task,
wait for any of them to finish (or for a HITL call to wake us), record the
outcome, dispatch again. Agent loops run as concurrent asyncio tasks on one
event loop, at most ``max_parallel`` at a time and one per agent.

When nothing is running and nothing can start, the run concludes:

- an ERROR task the deliverables depend on -> ERRORED (``WorkflowError``);
- a BLOCKED task the deliverables depend on -> BLOCKED;
- tasks waiting on a human (AWAITING_VALIDATION/REVISE) -> still RUNNING,
  returned to the caller until ``resume()``;
- otherwise -> FINISHED. Failures outside the deliverables' dependency
  closure do not prevent this.

With no task marked deliverable, every task counts.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.stats import (
    TaskStats,
    WorkflowStats,
    calculate_task_stats,
    calculate_workflow_stats,
)
from ..core.status import StatusChange
from ..enums import (
    COMPLETED_TASK_STATUSES,
    Entity,
    LogType,
    MetricDomain,
    MetricType,
    TaskStatus,
    WorkflowStatus,
)
from ..errors import TaskValidationError, WorkflowError
from ..logger import get_logger, workflow_logger
from .board import TaskBoard
from .loop import AgenticLoop, LoopOutcome

_log = get_logger(__name__)

_WAITING_ON_HUMAN = frozenset({TaskStatus.AWAITING_VALIDATION, TaskStatus.REVISE})


@dataclass
class WorkflowResult:
    status: WorkflowStatus
    result: Any
    stats: WorkflowStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "result": self.result,
            "stats": self.stats.to_dict(),
        }


class TeamManager:
    def __init__(
        self,
        name: str,
        agents: List,
        tasks: List,
        provider,
        status_manager,
        workflow_log,
        metrics=None,
        max_parallel: int = 4,
        pricing_table=None,
        currency: str = "USD",
        precision: int = 4,
    ):
        self.name = name
        self.agents = list(agents)
        self.board = TaskBoard()
        self.board.add_tasks(tasks)
        self.status_manager = status_manager
        self.workflow_log = workflow_log
        self.metrics = metrics
        self.max_parallel = max(1, max_parallel)
        self.pricing_table = pricing_table
        self.currency = currency
        self.precision = precision

        self.workflow_id = f"{name}-{uuid.uuid4().hex[:8]}"
        self._log = workflow_logger(_log, self.workflow_id, team=name)
        self.workflow_status = WorkflowStatus.INITIAL
        self.inputs: Dict[str, Any] = {}
        self.loop = AgenticLoop(status_manager, provider, metrics)

        self._running: Dict[str, asyncio.Task] = {}
        self._scheduler_active = False
        self._wake: Optional[asyncio.Event] = None
        self._remove_listener = status_manager.add_listener(self._on_status_change)

    # ── Public API ────────────────────────────────────────────

    async def start(self, inputs: Optional[Dict[str, Any]] = None) -> "WorkflowResult":
        """Run the workflow from scratch."""
        if self._scheduler_active:
            raise WorkflowError(self.workflow_id, self.workflow_status,
                                "workflow is already running")
        self._reset()
        self.inputs = dict(inputs or {})
        for task in self.board.get_all_tasks():
            task.interpolate(self.inputs)

        self._set_workflow(WorkflowStatus.RUNNING, "Workflow started", inputs=self.inputs)
        self._metric(MetricDomain.TEAM, MetricType.USAGE, len(self.board),
                     metric="task_count")

        problems = self.board.validate_graph()
        if problems:
            message = "; ".join(problems)
            self._set_workflow(WorkflowStatus.ERRORED, "Invalid task graph", error=message)
            raise WorkflowError(self.workflow_id, WorkflowStatus.RUNNING, message,
                                result=self.build_result())
        return await self._run()

    async def resume(self) -> "WorkflowResult":
        """Continue a run that returned while tasks waited on a human."""
        if self.workflow_status != WorkflowStatus.RUNNING:
            raise WorkflowError(self.workflow_id, self.workflow_status,
                                "only a RUNNING workflow can be resumed")
        if self._scheduler_active:
            raise WorkflowError(self.workflow_id, self.workflow_status,
                                "workflow is already being driven")
        return await self._run()

    def provide_feedback(self, task_id: str, content: str) -> None:
        task = self.board.require_task(task_id)
        if not self.status_manager.can_transition(Entity.TASK, task.status, TaskStatus.REVISE):
            raise TaskValidationError(
                task_id, task.status,
                "feedback is only accepted while the task is AWAITING_VALIDATION or DOING")
        self._set_task(task, TaskStatus.REVISE, "Feedback received", feedback=content)
        task.add_feedback(content)
        self._wake_scheduler()

    def validate_task(self, task_id: str) -> None:
        task = self.board.require_task(task_id)
        if not self.status_manager.can_transition(Entity.TASK, task.status,
                                                  TaskStatus.VALIDATED):
            raise TaskValidationError(
                task_id, task.status,
                "only a task AWAITING_VALIDATION can be validated")
        self._set_task(task, TaskStatus.VALIDATED, "Task validated", result=task.result)
        self._metric(MetricDomain.TASK, MetricType.SUCCESS, 1, task_id=task.id)
        self._wake_scheduler()

    def get_workflow_stats(self) -> WorkflowStats:
        return calculate_workflow_stats(
            self.workflow_log,
            team_name=self.name,
            task_count=len(self.board),
            agent_count=len(self.agents),
            pricing_table=self.pricing_table,
            precision=self.precision,
            currency=self.currency,
        )

    def get_task_stats(self, task_id: str) -> TaskStats:
        self.board.require_task(task_id)
        return calculate_task_stats(task_id, self.workflow_log, self.pricing_table,
                                    self.precision, self.currency)

    def build_result(self) -> WorkflowResult:
        result = None
        if self.workflow_status == WorkflowStatus.FINISHED:
            result = self._final_result()
        return WorkflowResult(self.workflow_status, result, self.get_workflow_stats())

    async def cancel_running(self) -> None:
        """Abandon in-flight agent loops."""
        pending = list(self._running.values())
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._running.clear()

    def close(self) -> None:
        self._remove_listener()

    # ── Scheduling loop ───────────────────────────────────────

    async def _run(self) -> WorkflowResult:
        self._scheduler_active = True
        self._wake = asyncio.Event()
        try:
            while True:
                self._dispatch_ready_tasks()
                if not self._running:
                    break
                waiter = asyncio.ensure_future(self._wake.wait())
                try:
                    await asyncio.wait(
                        set(self._running.values()) | {waiter},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    waiter.cancel()
                self._wake.clear()
        finally:
            self._scheduler_active = False
            self._wake = None
        return self._conclude()

    def _dispatch_ready_tasks(self) -> None:
        slots = self.max_parallel - len(self._running)
        if slots <= 0:
            return
        busy_agents = {getattr(self.board.get_task(tid).agent, "id", None)
                       for tid in self._running}
        for task in self.board.get_ready(set(self._running), busy_agents)[:slots]:
            if self._begin_task(task):
                self._running[task.id] = asyncio.ensure_future(self._run_task(task))

    def _begin_task(self, task) -> bool:
        revising = task.status == TaskStatus.REVISE
        self._set_task(task, TaskStatus.DOING,
                       "Task revision started" if revising else "Task started")
        missing = task.missing_fields()
        if missing:
            self._fail_task(task, f"missing required fields: {', '.join(missing)}")
            return False
        return True

    async def _run_task(self, task) -> None:
        try:
            context = self.board.get_context_for_task(task)
            outcome = await self.loop.run(task.agent, task, context)
            self._on_outcome(task, outcome)
        except Exception as e:
            self._log.exception("Task %s (%s) crashed", task.id, task.title)
            task.agent.reset()
            self._fail_task(task, f"{type(e).__name__}: {e}")
        finally:
            self._running.pop(task.id, None)

    def _wake_scheduler(self) -> None:
        if self._wake is not None:
            self._wake.set()

    # ── Outcome handling ──────────────────────────────────────

    def _on_outcome(self, task, outcome: LoopOutcome) -> None:
        if task.status == TaskStatus.REVISE:
            # Feedback landed during the final LLM call; rerun with it.
            if outcome.completed:
                task.result = outcome.result
            self._log.info("Task %s received feedback before finishing; requeued", task.id)
            return
        if outcome.blocked_reason is not None:
            self._block_task(task, outcome.blocked_reason)
        elif outcome.completed:
            self._complete_task(task, outcome)
        else:
            self._fail_task(task, outcome.error or "agent stopped without a result")

    def _complete_task(self, task, outcome: LoopOutcome) -> None:
        task.result = outcome.result
        task.mark_feedback_processed()
        stats = self.get_task_stats(task.id)
        target = (TaskStatus.AWAITING_VALIDATION if task.external_validation_required
                  else TaskStatus.DONE)
        description = ("Task awaiting validation" if target == TaskStatus.AWAITING_VALIDATION
                       else "Task completed")
        self._set_task(
            task, target, description,
            result=outcome.result,
            iterations=outcome.iterations,
            forced_final_answer=outcome.forced,
            duration=stats.duration,
            llm_usage_stats=stats.llm_usage_stats.to_dict(),
            cost_details=stats.cost_details.to_dict(),
        )
        self._metric(MetricDomain.TASK, MetricType.SUCCESS, 1, task_id=task.id)
        self._metric(MetricDomain.TASK, MetricType.LATENCY, stats.duration, task_id=task.id)

    def _block_task(self, task, reason: str) -> None:
        task.blocked_reason = reason
        self._set_task(task, TaskStatus.BLOCKED, f"Task blocked: {reason}",
                       reason=reason, is_agent_decision=True, blocked_by=task.agent.name)
        self._log.warning("Task %s blocked by %s: %s", task.id, task.agent.name, reason)
        self._block_downstream(task)

    def _fail_task(self, task, error: str) -> None:
        task.error = error
        if task.status == TaskStatus.REVISE:
            self._set_task(task, TaskStatus.DOING, "Task resumed to record failure",
                           mid_attempt=True)
        self._set_task(task, TaskStatus.ERROR, f"Task failed: {error}", error=error)
        self._metric(MetricDomain.TASK, MetricType.ERROR, 1, task_id=task.id)
        self._log.warning("Task %s (%s) failed: %s", task.id, task.title, error)
        self._block_downstream(task)

    def _block_downstream(self, task) -> None:
        reason = f"upstream task '{task.title}' is {task.status.value}"
        for dependent in self.board.downstream_of(task.id):
            if dependent.status != TaskStatus.TODO:
                continue
            dependent.blocked_reason = reason
            self._set_task(dependent, TaskStatus.BLOCKED, f"Task blocked: {reason}",
                           reason=reason, is_agent_decision=False, blocked_by_task=task.id)

    # ── Conclusion ────────────────────────────────────────────

    def _conclude(self) -> WorkflowResult:
        tasks = self.board.get_all_tasks()
        closure = self.board.deliverable_closure()
        errored = [t for t in tasks if t.id in closure and t.status == TaskStatus.ERROR]
        blocked = [t for t in tasks if t.id in closure and t.status == TaskStatus.BLOCKED]
        waiting = [t for t in tasks if t.status in _WAITING_ON_HUMAN]
        unfinished = [t for t in tasks
                      if t.id in closure and t.status not in COMPLETED_TASK_STATUSES]

        if errored:
            failed = errored[0]
            message = f"task {failed.id} ({failed.title}) failed: {failed.error}"
            self._set_workflow(WorkflowStatus.ERRORED, "Workflow errored",
                               error=message, task_id=failed.id)
            self._metric(MetricDomain.WORKFLOW, MetricType.ERROR, 1)
            raise WorkflowError(self.workflow_id, WorkflowStatus.RUNNING, message,
                                result=self.build_result())

        if blocked:
            self._set_workflow(WorkflowStatus.BLOCKED, "Workflow blocked",
                               blocked_tasks=[t.id for t in blocked],
                               reason=blocked[0].blocked_reason)
            return self._finish_result()

        if waiting:
            self._log.info("Workflow paused: %d task(s) waiting on human input",
                           len(waiting))
            return self.build_result()

        if unfinished:
            message = "no runnable tasks left but " + ", ".join(
                f"{t.id} ({t.status.value})" for t in unfinished) + " did not finish"
            self._set_workflow(WorkflowStatus.ERRORED, "Workflow stalled", error=message)
            raise WorkflowError(self.workflow_id, WorkflowStatus.RUNNING, message,
                                result=self.build_result())

        self._set_workflow(WorkflowStatus.FINISHED, "Workflow finished",
                           result=self._final_result())
        return self._finish_result()

    def _finish_result(self) -> WorkflowResult:
        result = self.build_result()
        self._metric(MetricDomain.WORKFLOW, MetricType.LATENCY, result.stats.duration,
                     status=result.status.value)
        return result

    def _final_result(self) -> Any:
        marked = [t for t in self.board.get_all_tasks() if t.is_deliverable]
        if len(marked) > 1:
            return {t.id: t.result for t in marked}
        deliverables = self.board.deliverables()
        return deliverables[0].result if deliverables else None

    # ── State changes ─────────────────────────────────────────

    def _reset(self) -> None:
        if self.workflow_status == WorkflowStatus.INITIAL and not len(self.workflow_log):
            return
        for task in self.board.get_all_tasks():
            task.reset()
        for agent in self.agents:
            agent.reset()
        self.workflow_log.clear()
        self.workflow_status = WorkflowStatus.INITIAL

    def _set_task(self, task, target: TaskStatus, description: str, **metadata) -> None:
        self.status_manager.transition(
            Entity.TASK, task.id, task.status, target,
            {"description": description, **metadata},
            subjects={"task": task, "agent": task.agent},
        )
        task.status = target

    def _set_workflow(self, target: WorkflowStatus, description: str, **metadata) -> None:
        self.status_manager.transition(
            Entity.WORKFLOW, self.workflow_id, self.workflow_status, target,
            {"description": description, **metadata},
        )
        self.workflow_status = target

    def _on_status_change(self, change: StatusChange) -> None:
        """Mirror every accepted transition into the workflow log."""
        metadata = dict(change.metadata)
        description = metadata.pop("description", "")
        task = change.subjects.get("task")
        agent = change.subjects.get("agent")
        if task is not None and task.id not in self.board:
            return

        if change.entity == Entity.AGENT:
            self.workflow_log.record(
                LogType.AGENT_STATUS_UPDATE, description, change.timestamp,
                task=task, agent=agent, agent_status=change.to_status,
                workflow_status=self.workflow_status, metadata=metadata)
        elif change.entity == Entity.TASK:
            self.workflow_log.record(
                LogType.TASK_STATUS_UPDATE, description, change.timestamp,
                task=task, agent=agent, task_status=change.to_status,
                workflow_status=self.workflow_status, metadata=metadata)
        elif change.entity == Entity.WORKFLOW and change.entity_id == self.workflow_id:
            self.workflow_log.record(
                LogType.WORKFLOW_STATUS_UPDATE, description, change.timestamp,
                workflow_status=change.to_status, metadata=metadata)

    def _metric(self, domain, metric_type, value, **metadata) -> None:
        if self.metrics is not None:
            self.metrics.collect(domain, metric_type, value,
                                 {"workflow_id": self.workflow_id, **metadata})
