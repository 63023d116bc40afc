"""Running per-(domain, type) totals, independent of buffer retention."""

from typing import Dict

from ..enums import MetricDomain, MetricType


class MetricAggregator:
    def __init__(self):
        self._sums: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}

    @staticmethod
    def key(domain: MetricDomain, metric_type: MetricType) -> str:
        return f"{domain.value}:{metric_type.value}"

    def add(self, domain: MetricDomain, metric_type: MetricType, value: float) -> None:
        k = self.key(domain, metric_type)
        self._sums[k] = self._sums.get(k, 0.0) + value
        self._counts[k] = self._counts.get(k, 0) + 1

    def get(self, domain: MetricDomain, metric_type: MetricType) -> float:
        return self._sums.get(self.key(domain, metric_type), 0.0)

    def count(self, domain: MetricDomain, metric_type: MetricType) -> int:
        return self._counts.get(self.key(domain, metric_type), 0)

    def snapshot(self) -> Dict[str, float]:
        return dict(self._sums)

    def reset(self) -> None:
        self._sums.clear()
        self._counts.clear()
