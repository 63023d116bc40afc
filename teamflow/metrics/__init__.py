"""Metric collection: ring buffer, sampling collector, aggregator, sinks."""

from .aggregator import MetricAggregator
from .buffer import CircularBuffer
from .collector import MetricsCollector
from .events import MetricEvent
from .sink import InMemoryMetricsSink, MetricsSink, NullMetricsSink

__all__ = [
    "CircularBuffer",
    "InMemoryMetricsSink",
    "MetricAggregator",
    "MetricEvent",
    "MetricsCollector",
    "MetricsSink",
    "NullMetricsSink",
]
