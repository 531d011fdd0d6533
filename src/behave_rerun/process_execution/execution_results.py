"""Rerun execution entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class RerunLaunchError(Exception):
    """Raised when a rerun round process cannot be started."""


class RerunTimeoutError(Exception):
    """Raised when a rerun round exceeds its time budget."""


@dataclass(frozen=True)
class RerunExecutionResult:
    """Outcome of supervising one round process."""

    round: int
    exit_code: int
    duration_ms: int
    success: bool
    error_message: str | None = None
    timed_out: bool = False

    @property
    def launched(self) -> bool:
        """False when the round never produced an exit code of its own."""
        return self.error_message is None


@dataclass(frozen=True)
class RerunStatistics:
    """Running counters of rounds executed by one executor."""

    total_count: int
    success_count: int
    failure_count: int
    currently_running: bool

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.success_count * 100.0 / self.total_count

    @property
    def formatted_success_rate(self) -> str:
        return f"{self.success_rate:.2f}%"

    def __str__(self) -> str:
        return (
            f"RerunStatistics[total={self.total_count}, success={self.success_count}, "
            f"failure={self.failure_count}, successRate={self.formatted_success_rate}, "
            f"running={self.currently_running}]"
        )


class RerunExecutionListener(Protocol):
    """Receives round lifecycle notifications from the executor."""

    def on_rerun_started(self, round_number: int, max_rounds: int) -> None: ...

    def on_rerun_completed(self, round_number: int, exit_code: int, duration_ms: int) -> None: ...

    def on_rerun_failed(self, round_number: int, error: BaseException) -> None: ...

    def on_all_reruns_completed(
        self, total_rounds: int, success_count: int, failure_count: int
    ) -> None: ...


class StatisticsSource(Protocol):  # pylint: disable=too-few-public-methods
    """Anything exposing live rerun statistics."""

    def get_statistics(self) -> RerunStatistics: ...
