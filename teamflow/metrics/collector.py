"""Sampling metrics collector with batched, best-effort flushing."""

import asyncio
import random
import time
from typing import Any, Callable, Dict, List, Optional, Set

from ..enums import MetricDomain, MetricType
from ..logger import get_logger
from .aggregator import MetricAggregator
from .buffer import CircularBuffer
from .events import MetricEvent
from .sink import MetricsSink, NullMetricsSink

_log = get_logger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_BATCH_SIZE = 100
DEFAULT_FLUSH_INTERVAL = 5.0
HIGH_RATE_THRESHOLD = 1000.0   # events/sec
LOW_RATE_THRESHOLD = 100.0
MIN_SAMPLING_RATE = 0.1
MAX_SAMPLING_RATE = 1.0
RATE_DECREASE_FACTOR = 0.5
RATE_INCREASE_STEP = 0.1


class MetricsCollector:
    """Buffers metric events and pushes them to a sink in batches.

    ``collect`` is synchronous so callers never suspend while recording.
    Every call feeds the aggregator; only sampled events reach the buffer.
    Flushes run on a timer (``start``/``stop``) and as soon as the buffer
    holds ``batch_size`` events. A failing sink costs that batch and bumps
    ``flush_errors``; it never raises into the caller.
    """

    def __init__(
        self,
        sink: Optional[MetricsSink] = None,
        capacity: int = DEFAULT_CAPACITY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        high_rate: float = HIGH_RATE_THRESHOLD,
        low_rate: float = LOW_RATE_THRESHOLD,
        min_sampling_rate: float = MIN_SAMPLING_RATE,
        max_sampling_rate: float = MAX_SAMPLING_RATE,
        aggregator: Optional[MetricAggregator] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.sink = sink or NullMetricsSink()
        self.buffer: CircularBuffer[MetricEvent] = CircularBuffer(capacity)
        self.batch_size = max(1, batch_size)
        self.flush_interval = flush_interval
        self.high_rate = high_rate
        self.low_rate = low_rate
        self.min_sampling_rate = min_sampling_rate
        self.max_sampling_rate = max_sampling_rate
        self.aggregator = aggregator or MetricAggregator()
        self._clock = clock
        self._rng = rng or random.Random()

        self.sampling_rate = max_sampling_rate
        self.collection_rate = 0.0
        self.flush_errors = 0
        self.flush_count = 0
        self._window_start = clock()
        self._window_events = 0
        self._flush_scheduled = False
        self._timer_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, metrics_config, sink: Optional[MetricsSink] = None) -> "MetricsCollector":
        return cls(
            sink=sink,
            capacity=metrics_config.buffer_capacity,
            batch_size=metrics_config.batch_size,
            flush_interval=metrics_config.flush_interval,
            high_rate=metrics_config.high_rate,
            low_rate=metrics_config.low_rate,
            min_sampling_rate=metrics_config.min_sampling_rate,
            max_sampling_rate=metrics_config.max_sampling_rate,
        )

    # ── Recording ────────────────────────────────────────────

    def collect(
        self,
        domain: MetricDomain,
        metric_type: MetricType,
        value: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MetricEvent]:
        """Record one sample. Returns the buffered event, or None if sampled out."""
        self._window_events += 1
        self.aggregator.add(domain, metric_type, value)

        if self._rng.random() >= self.sampling_rate:
            return None

        event = MetricEvent(domain, metric_type, value, dict(metadata or {}))
        self.buffer.push(event)
        if len(self.buffer) >= min(self.batch_size, self.buffer.capacity):
            self._schedule_flush()
        return event

    def _schedule_flush(self) -> None:
        if self._flush_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next timer tick or explicit flush() picks it up.
            return
        self._flush_scheduled = True
        task = loop.create_task(self.flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ── Flushing ─────────────────────────────────────────────

    async def flush(self) -> int:
        """Drain the buffer into the sink. Returns the number of events stored."""
        self._flush_scheduled = False
        self._update_sampling_rate()

        events = self.buffer.drain()
        events.append(MetricEvent(
            MetricDomain.SYSTEM,
            MetricType.THROUGHPUT,
            self.collection_rate,
            {"metric": "collection_rate", "sampling_rate": self.sampling_rate},
        ))
        chunks = [
            events[i:i + self.batch_size]
            for i in range(0, len(events), self.batch_size)
        ]

        outcomes = await asyncio.gather(
            *(self._store_chunk(chunk) for chunk in chunks),
            return_exceptions=True,
        )

        stored = 0
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, Exception):
                self.flush_errors += 1
                self.aggregator.add(MetricDomain.SYSTEM, MetricType.ERROR, 1)
                _log.error("Metrics flush dropped %d events: %s", len(chunk), outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                stored += len(chunk)
        self.flush_count += 1
        _log.debug("Flushed %d metric events (sampling_rate=%.2f)", stored, self.sampling_rate)
        return stored

    async def _store_chunk(self, chunk: List[MetricEvent]) -> None:
        for event in chunk:
            await self.sink.store_metric(event)

    def _update_sampling_rate(self) -> None:
        now = self._clock()
        elapsed = now - self._window_start
        if elapsed <= 0:
            return
        self.collection_rate = self._window_events / elapsed
        self._window_start = now
        self._window_events = 0

        if self.collection_rate > self.high_rate:
            rate = max(self.min_sampling_rate, self.sampling_rate * RATE_DECREASE_FACTOR)
        elif self.collection_rate < self.low_rate:
            rate = min(self.max_sampling_rate, self.sampling_rate + RATE_INCREASE_STEP)
        else:
            return
        if rate != self.sampling_rate:
            _log.debug("Sampling rate %.2f -> %.2f (%.0f events/s)",
                       self.sampling_rate, rate, self.collection_rate)
        self.sampling_rate = round(rate, 4)

    # ── Timer lifecycle ──────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Start the periodic flush timer on the running event loop."""
        if self.running:
            return
        self._timer_task = asyncio.get_running_loop().create_task(self._flush_loop())

    async def stop(self, final_flush: bool = True) -> None:
        """Stop the timer, wait for in-flight flushes, optionally flush once more."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if final_flush:
            await self.flush()

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            await self.flush()
