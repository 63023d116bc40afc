"""Metric event record."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict

from ..enums import MetricDomain, MetricType


@dataclass
class MetricEvent:
    """A single timestamped (domain, type, value) telemetry sample."""

    domain: MetricDomain
    type: MetricType
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "domain": self.domain.value,
            "type": self.type.value,
            "value": self.value,
            "metadata": dict(self.metadata),
        }
