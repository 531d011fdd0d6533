"""Final report entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ReportedRetryEvent:
    """A failure listed in the RETRY EVENTS block."""

    scenario: str
    attempt: int
    error_type: str
    error_message: str
    timestamp: datetime


@dataclass(frozen=True)
class RerunSummary:  # pylint: disable=too-many-instance-attributes
    """Whole-session outcome rendered into the log and JSON reports."""

    timestamp: datetime
    max_retry_attempts: int
    total_scenarios: int
    passed: int
    failed: int
    retried_passed: int
    retry_events: tuple[ReportedRetryEvent, ...] = ()
    health_status: str | None = None
    metrics: Mapping[str, Any] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_scenarios == 0:
            return 0.0
        return self.passed * 100.0 / self.total_scenarios

    @property
    def formatted_success_rate(self) -> str:
        return f"{self.success_rate:.2f}%"
