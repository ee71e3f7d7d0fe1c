"""Engine counters and gauges, with optional per-label breakdowns.

Labeled counters keep one count per label (a strategy name, an exit type)
next to the plain counter of the same metric, so the summary can answer
"how many positions did memecoin open" without a separate registry.
"""

from collections import defaultdict
from typing import Any

from alphatracker.logging import get_logger

logger = get_logger(__name__)


class SystemMetrics:
    """Tracks engine-level counters and gauges."""

    def __init__(self) -> None:
        """Initialize system metrics."""
        self._counters: dict[str, int] = defaultdict(int)
        self._labeled: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, float] = {}

    def increment(self, metric: str, value: int = 1) -> None:
        """Increment a counter metric."""
        self._counters[metric] += value

    def increment_labeled(self, metric: str, label: str, value: int = 1) -> None:
        """Increment ``metric`` for one label, e.g. a strategy name."""
        self._labeled[metric][label] += value

    def set_gauge(self, metric: str, value: float) -> None:
        self._gauges[metric] = value

    def get_counter(self, metric: str, label: str | None = None) -> int:
        if label is not None:
            return self._labeled.get(metric, {}).get(label, 0)
        return self._counters.get(metric, 0)

    def get_counters(self) -> dict[str, int]:
        return dict(self._counters)

    def get_labeled(self, metric: str) -> dict[str, int]:
        """Per-label counts for ``metric``, highest first."""
        counts = self._labeled.get(metric, {})
        return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))

    def get_gauges(self) -> dict[str, float]:
        return dict(self._gauges)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of all metrics."""
        return {
            "counters": self.get_counters(),
            "by_label": {metric: self.get_labeled(metric) for metric in self._labeled},
            "gauges": self.get_gauges(),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        logger.debug("Resetting system metrics")
        self._counters.clear()
        self._labeled.clear()
        self._gauges.clear()


# Global metrics instance
metrics = SystemMetrics()
