"""Health checking exports."""

from .health_checker import (
    INDICATOR_LABELS,
    HealthChecker,
    HealthCheckReport,
    HealthIndicator,
    HealthStatus,
    aggregate_status,
)

__all__ = [
    "INDICATOR_LABELS",
    "HealthChecker",
    "HealthCheckReport",
    "HealthIndicator",
    "HealthStatus",
    "aggregate_status",
]
