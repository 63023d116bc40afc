"""Generic transition engine shared by agents, tasks, workflows and streams."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..enums import Entity, MetricDomain, MetricType
from ..errors import InvalidTransitionError
from ..logger import get_logger
from .transitions import is_valid_transition

_log = get_logger(__name__)

_METRIC_DOMAINS = {
    Entity.AGENT: MetricDomain.AGENT,
    Entity.TASK: MetricDomain.TASK,
    Entity.WORKFLOW: MetricDomain.WORKFLOW,
    Entity.STREAM: MetricDomain.LLM,
}


@dataclass
class StatusChange:
    """One accepted transition."""

    entity: Entity
    entity_id: str
    from_status: Any
    to_status: Any
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Live objects the change concerns (task, agent); not part of the record.
    subjects: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


TransitionListener = Callable[[StatusChange], None]


class MonotonicClock:
    """Wall-clock timestamps that never repeat or go backwards."""

    def __init__(self, source: Callable[[], float] = time.time, step: float = 1e-6):
        self._source = source
        self._step = step
        self._last = 0.0

    def __call__(self) -> float:
        now = self._source()
        if now <= self._last:
            now = self._last + self._step
        self._last = now
        return now


class StatusManager:
    """Validates status changes against the per-entity tables.

    The manager never mutates the entity; callers assign the new status only
    after ``transition`` returns. Accepted changes are recorded in
    ``history``, reported as STATE_TRANSITION metrics and handed to every
    registered listener (the team turns them into workflow log entries).
    """

    def __init__(self, metrics=None, clock: Optional[Callable[[], float]] = None):
        self.metrics = metrics
        self.clock = clock or MonotonicClock()
        self.history: List[StatusChange] = []
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def can_transition(self, entity: Entity, current_status, target_status) -> bool:
        return is_valid_transition(entity, current_status, target_status)

    def transition(
        self,
        entity: Entity,
        entity_id: str,
        current_status,
        target_status,
        metadata: Optional[Dict[str, Any]] = None,
        subjects: Optional[Dict[str, Any]] = None,
    ) -> StatusChange:
        if not is_valid_transition(entity, current_status, target_status):
            _log.debug("Rejected %s %s: %s -> %s", entity.value, entity_id,
                       current_status, target_status)
            raise InvalidTransitionError(entity.value, entity_id,
                                         current_status, target_status)

        change = StatusChange(
            entity=entity,
            entity_id=entity_id,
            from_status=current_status,
            to_status=target_status,
            timestamp=self.clock(),
            metadata=dict(metadata or {}),
            subjects=dict(subjects or {}),
        )
        self.history.append(change)
        _log.debug("%s %s: %s -> %s", entity.value, entity_id,
                   current_status.value, target_status.value)

        if self.metrics is not None:
            self.metrics.collect(
                _METRIC_DOMAINS[entity],
                MetricType.STATE_TRANSITION,
                1,
                {
                    "entity_id": entity_id,
                    "from": current_status.value,
                    "to": target_status.value,
                },
            )

        for listener in list(self._listeners):
            listener(change)
        return change
