"""Round and session progress aggregation."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from behave_rerun.notifications import DelegateList
from behave_rerun.process_execution.execution_results import StatisticsSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressInfo:
    """Live counters for the round in progress."""

    current_round: int
    max_rounds: int
    completed_scenarios: int
    passed_scenarios: int
    failed_scenarios: int


@dataclass(frozen=True)
class RoundProgress:
    """Totals for one finished round."""

    round: int
    passed: int
    failed: int
    retried_passed: int
    duration_ms: int


@dataclass(frozen=True)
class SessionProgress:
    """Totals for the whole retry session."""

    total_rounds: int
    success_count: int
    failure_count: int
    total_duration_ms: int

    @property
    def success_rate(self) -> float:
        executed = self.success_count + self.failure_count
        if executed == 0:
            return 0.0
        return self.success_count * 100.0 / executed

    @property
    def formatted_success_rate(self) -> str:
        return f"{self.success_rate:.2f}%"


class ProgressListener(Protocol):
    """Receives progress notifications."""

    def on_progress_update(self, progress: ProgressInfo) -> None: ...

    def on_round_complete(self, round_progress: RoundProgress) -> None: ...

    def on_session_complete(self, session_progress: SessionProgress) -> None: ...


@dataclass
class _RoundCounters:
    round: int
    max_rounds: int
    started_at: float
    passed: int = 0
    failed: int = 0
    retried_passed: int = 0

    @property
    def completed(self) -> int:
        return self.passed + self.failed


class ProgressReporter:
    """Aggregates round and session progress and notifies listeners."""

    def __init__(
        self,
        statistics_source: StatisticsSource,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._statistics_source = statistics_source
        self._clock = clock or time.monotonic
        self._listeners: DelegateList[ProgressListener] = DelegateList("progress")
        self._lock = threading.Lock()
        self._max_rounds = 0
        self._session_started_at: float | None = None
        self._rounds_completed = 0
        self._current: _RoundCounters | None = None

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._listeners.add(listener)

    def start_session(self, max_rounds: int) -> None:
        with self._lock:
            self._max_rounds = max_rounds
            self._session_started_at = self._clock()
            self._rounds_completed = 0
            self._current = None
        logger.info("Progress session started - max rounds: %d", max_rounds)

    def start_round(self, round_number: int, max_rounds: int) -> None:
        with self._lock:
            if self._session_started_at is None:
                self._session_started_at = self._clock()
            self._max_rounds = max_rounds
            self._current = _RoundCounters(
                round=round_number, max_rounds=max_rounds, started_at=self._clock()
            )
        logger.info("[Retry Round %d/%d] Progress tracking started", round_number, max_rounds)

    def record_scenario(self, passed: bool, retried: bool = False) -> None:
        with self._lock:
            current = self._current
            if current is None:
                return
            if passed:
                current.passed += 1
                if retried:
                    current.retried_passed += 1
            else:
                current.failed += 1
            progress = ProgressInfo(
                current_round=current.round,
                max_rounds=current.max_rounds,
                completed_scenarios=current.completed,
                passed_scenarios=current.passed,
                failed_scenarios=current.failed,
            )
        self._listeners.notify("progress update", lambda item: item.on_progress_update(progress))

    def complete_round(self) -> RoundProgress | None:
        with self._lock:
            current = self._current
            if current is None:
                return None
            self._current = None
            self._rounds_completed += 1
            round_progress = RoundProgress(
                round=current.round,
                passed=current.passed,
                failed=current.failed,
                retried_passed=current.retried_passed,
                duration_ms=int((self._clock() - current.started_at) * 1000),
            )
        self._listeners.notify(
            "round complete", lambda item: item.on_round_complete(round_progress)
        )
        return round_progress

    def end_session(self) -> SessionProgress:
        statistics = self._statistics_source.get_statistics()
        with self._lock:
            started_at = self._session_started_at
            total_rounds = max(self._rounds_completed, statistics.total_count)
        duration_ms = 0 if started_at is None else int((self._clock() - started_at) * 1000)
        session_progress = SessionProgress(
            total_rounds=total_rounds,
            success_count=statistics.success_count,
            failure_count=statistics.failure_count,
            total_duration_ms=duration_ms,
        )
        self._listeners.notify(
            "session complete", lambda item: item.on_session_complete(session_progress)
        )
        return session_progress
