"""Health dashboard for a retry session."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from subprocess import Popen
from typing import Any, Protocol

import psutil

MAX_CONSECUTIVE_FAILURES = 3
MEMORY_USAGE_LIMIT_PERCENT = 90.0
DEFAULT_MAX_IDLE_SECONDS = 300
INDICATOR_LABELS = {
    "process": "Process Status",
    "memory": "Memory Status",
    "disk": "Disk Space",
    "configuration": "Configuration Status",
    "connectivity": "Connectivity Status",
}
_GIB = 1024.0**3

logger = logging.getLogger(__name__)


class HealthStatus(IntEnum):
    """Aggregate health, ordered from best to worst."""

    HEALTHY = 0
    DEGRADED = 1
    UNHEALTHY = 2
    CRITICAL = 3

    @property
    def display_name(self) -> str:
        return self.name


class ValidatableConfiguration(Protocol):  # pylint: disable=too-few-public-methods
    """Anything that can report whether its required fields are set."""

    def is_valid(self) -> bool: ...


@dataclass
class HealthIndicator:
    """Named healthy flag with a free-text detail."""

    name: str
    label: str
    healthy: bool = True
    details: str = "Normal"


@dataclass(frozen=True)
class HealthCheckReport:
    """Point-in-time view of the dashboard."""

    status: HealthStatus
    healthy: bool
    healthy_components: tuple[str, ...]
    unhealthy_details: tuple[str, ...]
    session_duration_ms: int
    consecutive_failures: int

    @property
    def healthy_count(self) -> int:
        return len(self.healthy_components)

    @property
    def unhealthy_count(self) -> int:
        return len(self.unhealthy_details)


def aggregate_status(unhealthy_count: int, indicator_count: int) -> HealthStatus:
    """Map the number of unhealthy indicators onto an aggregate status."""
    if unhealthy_count == 0:
        return HealthStatus.HEALTHY
    if unhealthy_count == 1:
        return HealthStatus.DEGRADED
    if unhealthy_count < indicator_count / 2:
        return HealthStatus.UNHEALTHY
    return HealthStatus.CRITICAL


class HealthChecker:
    """Tracks the five built-in indicators and derives an aggregate status.

    Purely observational: probe failures mark an indicator unhealthy, they are
    never raised to the caller.
    """

    def __init__(
        self,
        *,
        max_idle_seconds: int = DEFAULT_MAX_IDLE_SECONDS,
        memory_probe: Callable[[], Any] | None = None,
        disk_probe: Callable[[str], Any] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._max_idle_seconds = max_idle_seconds
        self._memory_probe = memory_probe or psutil.virtual_memory
        self._disk_probe = disk_probe or psutil.disk_usage
        self._clock = clock or time.monotonic
        self._lock = threading.RLock()
        self._indicators: dict[str, HealthIndicator] = {}
        self._consecutive_failures = 0
        self._last_activity = self._clock()
        self._session_start: float | None = None
        self._status = HealthStatus.HEALTHY
        self._reset_indicators()

    @property
    def max_idle_seconds(self) -> int:
        return self._max_idle_seconds

    @max_idle_seconds.setter
    def max_idle_seconds(self, seconds: int) -> None:
        self._max_idle_seconds = seconds

    @property
    def current_status(self) -> HealthStatus:
        return self._status

    @property
    def is_healthy(self) -> bool:
        return self._status <= HealthStatus.DEGRADED

    @property
    def indicators(self) -> dict[str, HealthIndicator]:
        with self._lock:
            return {
                name: HealthIndicator(item.name, item.label, item.healthy, item.details)
                for name, item in self._indicators.items()
            }

    def start_session(self) -> None:
        with self._lock:
            self._reset_indicators()
            self._consecutive_failures = 0
            self._last_activity = self._clock()
            self._session_start = self._clock()
            self._status = HealthStatus.HEALTHY
        logger.info("Health check monitoring started")

    def end_session(self) -> None:
        logger.info("Health check monitoring ended - status: %s", self._status.display_name)

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def record_round_start(self, round_number: int) -> None:
        self.record_activity()
        self._set("process", True, f"Round {round_number} in progress")
        logger.debug("Health check round %d started", round_number)

    def record_round_end(self, round_number: int, success: bool) -> None:
        self.record_activity()
        with self._lock:
            if success:
                self._consecutive_failures = 0
                self._set("process", True, f"Round {round_number} completed successfully")
            else:
                self._consecutive_failures += 1
                failures = self._consecutive_failures
                self._set(
                    "process",
                    failures < MAX_CONSECUTIVE_FAILURES,
                    f"Round {round_number} failed, consecutive failures: {failures}",
                )
        logger.info(
            "Health check round %d ended - success: %s, status: %s",
            round_number,
            success,
            self._status.display_name,
        )

    def check_process_health(self, process: Popen | None) -> None:
        if process is None:
            self._set("process", False, "Process does not exist")
            return
        if process.poll() is None:
            idle_seconds = self._clock() - self._last_activity
            if idle_seconds > self._max_idle_seconds:
                self._set("process", False, f"Process idle for {int(idle_seconds)} seconds")
            else:
                self._set("process", True, "Process running normally")
            return
        self._set("process", True, "Process completed")

    def check_memory_health(self) -> None:
        try:
            memory = self._memory_probe()
            usage_percent = float(memory.percent)
            details = (
                f"Used {usage_percent:.1f}% "
                f"({memory.used / _GIB:.1f}GB/{memory.total / _GIB:.1f}GB)"
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._set("memory", False, f"Unable to check memory: {exc}")
            return
        self._set("memory", usage_percent < MEMORY_USAGE_LIMIT_PERCENT, details)

    def check_disk_health(self, path: Path | str, min_free_bytes: int) -> None:
        try:
            free_bytes = int(self._disk_probe(str(path)).free)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._set("disk", False, f"Unable to check disk space: {exc}")
            return
        self._set(
            "disk",
            free_bytes > min_free_bytes,
            f"Available {free_bytes / _GIB:.2f}GB (threshold: {min_free_bytes / _GIB:.2f}GB)",
        )

    def check_configuration_health(self, configuration: ValidatableConfiguration | None) -> None:
        try:
            valid = configuration is not None and configuration.is_valid()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._set("configuration", False, f"Configuration check failed: {exc}")
            return
        self._set(
            "configuration",
            valid,
            "Configuration valid" if valid else "Configuration incomplete",
        )

    def record_connectivity_status(self, available: bool, message: str | None = None) -> None:
        default_message = "Connection OK" if available else "Connection failed"
        self._set("connectivity", available, message or default_message)

    def record_failure(self, component: str, message: str) -> None:
        self._set(component, False, message)
        logger.warning("Health check %s failure: %s", component, message)

    def record_recovery(self, component: str, message: str) -> None:
        self._set(component, True, message)
        logger.info("Health check %s recovered: %s", component, message)

    def generate_report(self) -> HealthCheckReport:
        with self._lock:
            healthy = tuple(name for name, item in self._indicators.items() if item.healthy)
            unhealthy = tuple(
                f"{name}: {item.details}"
                for name, item in self._indicators.items()
                if not item.healthy
            )
            status = self._status
            consecutive_failures = self._consecutive_failures
        return HealthCheckReport(
            status=status,
            healthy=status <= HealthStatus.DEGRADED,
            healthy_components=healthy,
            unhealthy_details=unhealthy,
            session_duration_ms=self._session_duration_ms(),
            consecutive_failures=consecutive_failures,
        )

    def format_report(self) -> str:
        report = self.generate_report()
        lines = [
            "=" * 40,
            "         Health Check Status",
            "=" * 40,
            f"Overall Status:       {report.status.display_name}",
            f"Healthy Components:   {report.healthy_count}/{len(INDICATOR_LABELS)}",
            f"Consecutive Failures: {report.consecutive_failures}",
            f"Session Duration:     {_format_duration(report.session_duration_ms)}",
        ]
        if report.unhealthy_details:
            lines.append("")
            lines.append("Unhealthy Components:")
            lines.extend(f"  - {detail}" for detail in report.unhealthy_details)
        lines.append("=" * 40)
        return "\n".join(lines)

    def _set(self, component: str, healthy: bool, details: str) -> None:
        with self._lock:
            indicator = self._indicators.get(component)
            if indicator is None:
                return
            indicator.healthy = healthy
            indicator.details = details
            self._update_overall_health()

    def _update_overall_health(self) -> None:
        unhealthy_count = sum(1 for item in self._indicators.values() if not item.healthy)
        self._status = aggregate_status(unhealthy_count, len(self._indicators))

    def _reset_indicators(self) -> None:
        self._indicators = {
            name: HealthIndicator(name=name, label=label)
            for name, label in INDICATOR_LABELS.items()
        }

    def _session_duration_ms(self) -> int:
        if self._session_start is None:
            return 0
        return int((self._clock() - self._session_start) * 1000)


def _format_duration(duration_ms: int) -> str:
    seconds = duration_ms // 1000
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours} hours {minutes} minutes"
    if minutes > 0:
        return f"{minutes} minutes {seconds} seconds"
    return f"{seconds} seconds"
