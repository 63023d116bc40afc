"""Append-only workflow log: the single record of what happened when."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..enums import AgentStatus, LogType, TaskStatus, WorkflowStatus
from ..logger import get_logger

_log = get_logger(__name__)

_UNSET = object()


@dataclass(frozen=True)
class LogEntry:
    """Snapshot of one state change.

    Task and agent fields are copied at append time, so later changes to the
    live objects never alter the history.
    """

    timestamp: float
    log_type: LogType
    description: str
    task_id: Optional[str] = None
    task_title: Optional[str] = None
    task_status: Optional[TaskStatus] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    agent_status: Optional[AgentStatus] = None
    workflow_status: Optional[WorkflowStatus] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "log_type": self.log_type.value,
            "description": self.description,
            "task_id": self.task_id,
            "task_title": self.task_title,
            "task_status": self.task_status.value if self.task_status else None,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "agent_status": self.agent_status.value if self.agent_status else None,
            "workflow_status": self.workflow_status.value if self.workflow_status else None,
            "metadata": dict(self.metadata),
        }


LogListener = Callable[[LogEntry], None]


class WorkflowLog:
    """Ordered, append-only sequence of ``LogEntry`` records.

    Timestamps are forced to strictly increase so entries can be ordered and
    windowed by time alone.
    """

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._listeners: List[LogListener] = []

    # ── Writing ──────────────────────────────────────────────

    def append(self, entry: LogEntry) -> LogEntry:
        if self._entries and entry.timestamp <= self._entries[-1].timestamp:
            entry = dataclasses.replace(
                entry, timestamp=self._entries[-1].timestamp + 1e-6)
        self._entries.append(entry)
        self._notify(entry)
        return entry

    def record(
        self,
        log_type: LogType,
        description: str,
        timestamp: float,
        task=None,
        agent=None,
        task_status: Any = _UNSET,
        agent_status: Any = _UNSET,
        workflow_status: Optional[WorkflowStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LogEntry:
        """Build an entry from live task/agent objects and append it.

        ``task_status``/``agent_status`` override the object's current value,
        for entries written before the caller has applied the new status.
        """
        if task_status is _UNSET:
            task_status = task.status if task is not None else None
        if agent_status is _UNSET:
            agent_status = agent.status if agent is not None else None
        entry = LogEntry(
            timestamp=timestamp,
            log_type=log_type,
            description=description,
            task_id=task.id if task is not None else None,
            task_title=task.title if task is not None else None,
            task_status=task_status,
            agent_id=agent.id if agent is not None else None,
            agent_name=agent.name if agent is not None else None,
            agent_status=agent_status,
            workflow_status=workflow_status,
            metadata=dict(metadata or {}),
        )
        return self.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    # ── Reading ──────────────────────────────────────────────

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))

    def filter(
        self,
        log_type: Optional[LogType] = None,
        task_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        task_status: Optional[TaskStatus] = None,
        agent_status: Optional[AgentStatus] = None,
        workflow_status: Optional[WorkflowStatus] = None,
        since: Optional[float] = None,
    ) -> List[LogEntry]:
        return [
            e for e in self._entries
            if (log_type is None or e.log_type == log_type)
            and (task_id is None or e.task_id == task_id)
            and (agent_id is None or e.agent_id == agent_id)
            and (task_status is None or e.task_status == task_status)
            and (agent_status is None or e.agent_status == agent_status)
            and (workflow_status is None or e.workflow_status == workflow_status)
            and (since is None or e.timestamp >= since)
        ]

    def last(self, **filters) -> Optional[LogEntry]:
        matched = self.filter(**filters)
        return matched[-1] if matched else None

    # ── Subscriptions ────────────────────────────────────────

    def subscribe(self, listener: LogListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, entry: LogEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                _log.exception("Workflow log listener %r failed", listener)
