"""Team: the public entry point wrapping a TeamManager."""

from typing import Any, Callable, Dict, List, Optional

from ..config import TeamflowConfig
from ..core.stats import TaskStats, WorkflowStats
from ..core.status import StatusManager
from ..core.workflow_log import LogEntry, WorkflowLog
from ..enums import LogType, WorkflowStatus
from ..errors import ConfigError
from ..llm import LiteLLMProvider
from ..logger import get_logger
from ..metrics import MetricsCollector
from ..streaming import StreamTracker
from .manager import TeamManager, WorkflowResult

_log = get_logger(__name__)

StateListener = Callable[[Dict[str, Any]], None]


class Team:
    """A set of agents and the tasks they work through.

    Every collaborator can be injected; anything not given is built from
    ``config``. Nothing is shared between teams unless the caller shares it.

    Example::

        team = Team("research", agents=[writer], tasks=[outline, draft])
        result = await team.start({"topic": "tide pools"})
        if result.status == WorkflowStatus.RUNNING:   # waiting on a human
            team.validate_task(outline.id)
            result = await team.resume()
    """

    def __init__(
        self,
        name: str,
        agents: List,
        tasks: List,
        inputs: Optional[Dict[str, Any]] = None,
        config: Optional[TeamflowConfig] = None,
        provider=None,
        metrics: Optional[MetricsCollector] = None,
        metrics_sink=None,
        status_manager: Optional[StatusManager] = None,
        workflow_log: Optional[WorkflowLog] = None,
    ):
        self.name = name
        self.config = config or TeamflowConfig()
        self.inputs = dict(inputs or {})
        self.agents = list(agents)
        self.tasks = list(tasks)

        agent_ids = {a.id for a in self.agents}
        for task in self.tasks:
            if task.agent is not None and task.agent.id not in agent_ids:
                raise ConfigError(
                    f"team {name}",
                    f"task {task.title!r} is assigned to agent "
                    f"{task.agent.name!r}, which is not part of the team")

        self.metrics = metrics or MetricsCollector.from_config(self.config.metrics,
                                                               sink=metrics_sink)
        self.status_manager = status_manager or StatusManager(metrics=self.metrics)
        self.workflow_log = workflow_log or WorkflowLog()
        self.provider = provider or LiteLLMProvider(StreamTracker(self.metrics))
        self.manager = TeamManager(
            name=name,
            agents=self.agents,
            tasks=self.tasks,
            provider=self.provider,
            status_manager=self.status_manager,
            workflow_log=self.workflow_log,
            metrics=self.metrics,
            max_parallel=self.config.max_parallel,
            pricing_table=self.config.costs.pricing_table(),
            currency=self.config.costs.currency,
            precision=self.config.costs.precision,
        )

    # ── Running ───────────────────────────────────────────────

    async def start(self, inputs: Optional[Dict[str, Any]] = None) -> WorkflowResult:
        """Run the workflow; returns once it finishes, blocks or pauses for HITL.

        Raises ``WorkflowError`` when the run cannot make progress.
        """
        self.metrics.start()
        merged = {**self.inputs, **(inputs or {})}
        _log.info("Team %s starting with %d tasks", self.name, len(self.tasks))
        return await self.manager.start(merged)

    async def resume(self) -> WorkflowResult:
        self.metrics.start()
        return await self.manager.resume()

    def provide_feedback(self, task_id: str, content: str) -> None:
        self.manager.provide_feedback(task_id, content)

    def validate_task(self, task_id: str) -> None:
        self.manager.validate_task(task_id)

    async def cleanup(self) -> None:
        """Abandon in-flight work, flush metrics and clear the log."""
        await self.manager.cancel_running()
        await self.metrics.stop()
        self.workflow_log.clear()

    # ── Inspection ────────────────────────────────────────────

    @property
    def workflow_status(self) -> WorkflowStatus:
        return self.manager.workflow_status

    @property
    def logs(self) -> List[LogEntry]:
        return list(self.workflow_log.entries)

    def get_workflow_stats(self) -> WorkflowStats:
        return self.manager.get_workflow_stats()

    def get_task_stats(self, task_id: str) -> TaskStats:
        return self.manager.get_task_stats(task_id)

    def get_task(self, task_id: str):
        return self.manager.board.require_task(task_id)

    def get_tasks_by_status(self, status) -> List:
        return [t for t in self.tasks if t.status == status]

    def get_state(self) -> Dict[str, Any]:
        """Plain-data snapshot for UIs and subscribers."""
        return {
            "team_name": self.name,
            "workflow_id": self.manager.workflow_id,
            "workflow_status": self.workflow_status.value,
            "inputs": dict(self.manager.inputs),
            "agents": [a.to_dict() for a in self.agents],
            "tasks": [t.to_dict() for t in self.tasks],
            "log_count": len(self.workflow_log),
        }

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(state)`` after every workflow log append."""
        return self.workflow_log.subscribe(lambda entry: listener(self._state_after(entry)))

    def _state_after(self, entry: LogEntry) -> Dict[str, Any]:
        # Entries are written before the new status is assigned to the live object.
        state = self.get_state()
        if entry.log_type == LogType.WORKFLOW_STATUS_UPDATE:
            state["workflow_status"] = entry.workflow_status.value
        elif entry.log_type == LogType.TASK_STATUS_UPDATE:
            for task in state["tasks"]:
                if task["id"] == entry.task_id:
                    task["status"] = entry.task_status.value
        elif entry.log_type == LogType.AGENT_STATUS_UPDATE:
            for agent in state["agents"]:
                if agent["id"] == entry.agent_id:
                    agent["status"] = entry.agent_status.value
        return state
