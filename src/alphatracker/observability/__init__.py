"""Observability module -- in-process metrics."""

from .metrics import SystemMetrics, metrics

__all__ = [
    "SystemMetrics",
    "metrics",
]
