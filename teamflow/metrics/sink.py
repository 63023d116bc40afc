"""Metric sinks: where flushed events end up."""

from typing import List, Optional

from ..enums import MetricDomain, MetricType
from .events import MetricEvent


class MetricsSink:
    """Persistence boundary for flushed metric events."""

    async def store_metric(self, event: MetricEvent) -> None:
        raise NotImplementedError

    async def query_metrics(self, **options) -> List[MetricEvent]:
        raise NotImplementedError


class NullMetricsSink(MetricsSink):
    """Discards everything."""

    async def store_metric(self, event: MetricEvent) -> None:
        return None

    async def query_metrics(self, **options) -> List[MetricEvent]:
        return []


class InMemoryMetricsSink(MetricsSink):
    """Keeps every stored event in a list; used by the CLI and tests."""

    def __init__(self):
        self.events: List[MetricEvent] = []

    async def store_metric(self, event: MetricEvent) -> None:
        self.events.append(event)

    async def query_metrics(
        self,
        domain: Optional[MetricDomain] = None,
        metric_type: Optional[MetricType] = None,
        since: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[MetricEvent]:
        matched = [
            e for e in self.events
            if (domain is None or e.domain == domain)
            and (metric_type is None or e.type == metric_type)
            and (since is None or e.timestamp >= since)
        ]
        if limit is not None:
            matched = matched[-limit:]
        return matched
