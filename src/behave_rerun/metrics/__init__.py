"""Failure metrics exports."""

from .metrics_collector import FailureRecord, MetricsCollector, MetricsSnapshot

__all__ = ["FailureRecord", "MetricsCollector", "MetricsSnapshot"]
