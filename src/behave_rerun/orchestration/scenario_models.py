"""Scenario identity, outcome and retry bookkeeping entities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath

FEATURE_SUFFIX = ".feature"


class ScenarioStatus(str, Enum):
    """Outcome of one scenario attempt."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    UNDEFINED = "UNDEFINED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class ScenarioIdentity:
    """Correlates the same scenario across rounds."""

    feature_name: str
    scenario_name: str

    @property
    def key(self) -> str:
        return f"{self.feature_name};{self.scenario_name}"

    @classmethod
    def from_test_case(cls, uri: str, name: str) -> ScenarioIdentity:
        """Derive the identity from a feature file URI and the scenario name."""
        feature_name = PurePosixPath(uri.replace("\\", "/")).name
        if feature_name.endswith(FEATURE_SUFFIX):
            feature_name = feature_name[: -len(FEATURE_SUFFIX)]
        return cls(feature_name=feature_name, scenario_name=name)


@dataclass(frozen=True)
class ScenarioResult:
    """Most recent outcome recorded for a scenario."""

    scenario_id: str
    status: ScenarioStatus
    attempt: int


@dataclass(frozen=True)
class RetryEvent:
    """One observed scenario failure."""

    scenario_id: str
    attempt: int
    error_type: str
    error_message: str
    timestamp: datetime

    def __str__(self) -> str:
        return (
            f"{self.timestamp:%Y-%m-%d %H:%M:%S} | {self.scenario_id} | "
            f"Attempt {self.attempt} | {self.error_type}: {self.error_message}"
        )


@dataclass(frozen=True)
class RoundResult:
    """Executor totals reported once the planned rounds are exhausted."""

    round: int
    success_count: int
    failure_count: int
    duration_ms: int


@dataclass(frozen=True)
class FinalTally:
    """Final per-scenario counts computed from the latest results."""

    passed: int
    failed: int
    recovered_by_retry: int
    total: int

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.passed * 100.0 / self.total
