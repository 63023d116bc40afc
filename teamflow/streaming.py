"""Per-stream state tracking for token-by-token LLM responses.

Each in-flight stream is keyed by a correlation id and moves
START -> TOKEN* -> END | ERROR. Cancelling a stream just drops its entry;
events that arrive for an unknown id afterwards are ignored.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .core.transitions import is_valid_transition
from .enums import Entity, MetricDomain, MetricType, StreamState
from .errors import InvalidTransitionError
from .logger import get_logger

_log = get_logger(__name__)


@dataclass
class StreamSession:
    correlation_id: str
    model: str = ""
    state: StreamState = StreamState.START
    chunks: List[str] = field(default_factory=list)
    started_at: float = 0.0
    first_token_at: Optional[float] = None
    ended_at: Optional[float] = None
    error: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def token_count(self) -> int:
        return len(self.chunks)


class StreamTracker:
    def __init__(self, metrics=None, clock: Callable[[], float] = time.monotonic):
        self.metrics = metrics
        self._clock = clock
        self._sessions: Dict[str, StreamSession] = {}

    def start(self, correlation_id: Optional[str] = None, model: str = "") -> StreamSession:
        cid = correlation_id or uuid.uuid4().hex[:12]
        if cid in self._sessions:
            raise ValueError(f"Stream {cid} is already active")
        session = StreamSession(correlation_id=cid, model=model, started_at=self._clock())
        self._sessions[cid] = session
        return session

    def token(self, correlation_id: str, text: str) -> Optional[StreamSession]:
        session = self._sessions.get(correlation_id)
        if session is None:
            return None
        self._advance(session, StreamState.TOKEN)
        if session.first_token_at is None:
            session.first_token_at = self._clock()
        session.chunks.append(text)
        return session

    def end(self, correlation_id: str,
            usage: Optional[Dict[str, int]] = None) -> Optional[StreamSession]:
        session = self._sessions.get(correlation_id)
        if session is None:
            return None
        self._advance(session, StreamState.END)
        session.ended_at = self._clock()
        session.usage = dict(usage or {})
        del self._sessions[correlation_id]
        self._report(session)
        return session

    def fail(self, correlation_id: str, error: str) -> Optional[StreamSession]:
        session = self._sessions.get(correlation_id)
        if session is None:
            return None
        self._advance(session, StreamState.ERROR)
        session.ended_at = self._clock()
        session.error = error
        del self._sessions[correlation_id]
        if self.metrics is not None:
            self.metrics.collect(MetricDomain.LLM, MetricType.ERROR, 1,
                                 {"correlation_id": correlation_id, "model": session.model})
        _log.warning("Stream %s failed: %s", correlation_id, error)
        return session

    def cancel(self, correlation_id: str) -> bool:
        return self._sessions.pop(correlation_id, None) is not None

    def get(self, correlation_id: str) -> Optional[StreamSession]:
        return self._sessions.get(correlation_id)

    @property
    def active(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def _advance(session: StreamSession, target: StreamState) -> None:
        if not is_valid_transition(Entity.STREAM, session.state, target):
            raise InvalidTransitionError(Entity.STREAM.value, session.correlation_id,
                                         session.state, target)
        session.state = target

    def _report(self, session: StreamSession) -> None:
        if self.metrics is None:
            return
        meta = {"correlation_id": session.correlation_id, "model": session.model}
        elapsed = (session.ended_at or session.started_at) - session.started_at
        if session.first_token_at is not None:
            self.metrics.collect(MetricDomain.LLM, MetricType.LATENCY,
                                 session.first_token_at - session.started_at,
                                 {**meta, "metric": "time_to_first_token"})
        if elapsed > 0:
            self.metrics.collect(MetricDomain.LLM, MetricType.THROUGHPUT,
                                 session.token_count / elapsed,
                                 {**meta, "metric": "chunks_per_second"})
