"""Failure event metrics for one retry session."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureRecord:
    """One observed scenario failure."""

    scenario_id: str
    attempt: int
    error_type: str
    error_message: str
    recorded_at: datetime


@dataclass(frozen=True)
class MetricsSnapshot:
    """Aggregated failure counters."""

    total_failures: int
    failures_by_error_type: dict[str, int]
    failures_by_scenario: dict[str, int]
    most_frequent_error_type: str | None

    def to_dict(self) -> dict[str, object]:
        return {
            "totalFailures": self.total_failures,
            "failuresByErrorType": dict(self.failures_by_error_type),
            "failuresByScenario": dict(self.failures_by_scenario),
            "mostFrequentErrorType": self.most_frequent_error_type,
        }


class MetricsCollector:
    """Records failure events across a session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[FailureRecord] = []
        self._session_started_at: datetime | None = None

    @property
    def records(self) -> tuple[FailureRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def start_session(self) -> None:
        with self._lock:
            self._records.clear()
            self._session_started_at = datetime.now(UTC)
        logger.debug("Metrics session started")

    def end_session(self) -> None:
        snapshot = self.snapshot()
        logger.info(
            "Metrics session ended - failures: %d, most frequent error: %s",
            snapshot.total_failures,
            snapshot.most_frequent_error_type or "none",
        )

    def record_scenario_failure(
        self,
        scenario_id: str,
        attempt: int,
        error_type: str,
        error_message: str,
    ) -> None:
        record = FailureRecord(
            scenario_id=scenario_id,
            attempt=attempt,
            error_type=error_type,
            error_message=error_message,
            recorded_at=datetime.now(UTC),
        )
        with self._lock:
            self._records.append(record)

    def restore(self, records: Iterable[FailureRecord]) -> None:
        """Replace the recorded failures, e.g. with those of earlier rounds."""
        with self._lock:
            self._records = list(records)

    def snapshot(self) -> MetricsSnapshot:
        records = self.records
        by_error_type = Counter(record.error_type for record in records)
        by_scenario = Counter(record.scenario_id for record in records)
        most_common = by_error_type.most_common(1)
        return MetricsSnapshot(
            total_failures=len(records),
            failures_by_error_type=dict(by_error_type),
            failures_by_scenario=dict(by_scenario),
            most_frequent_error_type=most_common[0][0] if most_common else None,
        )
