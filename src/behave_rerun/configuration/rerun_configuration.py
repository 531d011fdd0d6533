"""Retry parameters and round launch commands for one process."""

from __future__ import annotations

import logging
import shutil
import sys
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from .loader import load_rerun_settings
from .process_parameters import (
    RERUN_COUNT_KEY,
    RERUN_MODE_KEY,
    RERUN_ROUND_KEY,
    SETTINGS_PATH_KEY,
)
from .retry_delay import RetryDelayStrategy, create_delay_strategy
from .runtime_settings import ProcessParameters, RerunPaths, RerunSettings

GLUE_KEY = "rerun.glue"
_SKIPPED_SCAN_DIRS = frozenset({"target", "node_modules", "__pycache__", "venv"})

SettingsLoader = Callable[[Path | None], RerunSettings]

logger = logging.getLogger(__name__)


class RerunConfiguration:
    """Single source of truth for retry parameters within one process.

    Process parameters are known at construction. Loading the settings file,
    resolving the interpreter and locating the glue directory are deferred to
    `lazy_initialize`, so a green initial run never pays for them.
    """

    def __init__(
        self,
        parameters: ProcessParameters,
        paths: RerunPaths,
        *,
        glue_hint: str | None = None,
        settings_loader: SettingsLoader | None = None,
    ) -> None:
        self._parameters = parameters
        self._paths = paths
        self._glue_hint = glue_hint
        self._settings_loader = settings_loader or load_rerun_settings
        self._lock = threading.Lock()
        self._initialized = False
        self._settings: RerunSettings | None = None
        self._executable: str | None = None
        self._glue: str | None = None
        self._delay_strategy: RetryDelayStrategy | None = None

    @property
    def parameters(self) -> ProcessParameters:
        return self._parameters

    @property
    def paths(self) -> RerunPaths:
        return self._paths

    @property
    def max_rerun_attempts(self) -> int:
        return self._parameters.max_rerun_attempts

    @property
    def is_rerun_mode(self) -> bool:
        return self._parameters.rerun_mode

    @property
    def current_rerun_round(self) -> int:
        return self._parameters.rerun_round

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def settings(self) -> RerunSettings:
        self.lazy_initialize()
        assert self._settings is not None
        return self._settings

    @property
    def executable(self) -> str | None:
        return self._executable

    @property
    def glue(self) -> str | None:
        return self._glue

    def lazy_initialize(self) -> None:
        """Load settings and resolve launch details once.

        Raises:
          ConfigurationError: If the settings file exists but is invalid.
        """
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            logger.info("Performing lazy initialization of rerun configuration...")
            settings = self._settings_loader(self._resolve_settings_path())
            self._settings = settings
            self._executable = _resolve_executable(settings.runner.executable)
            self._glue = settings.runner.glue or self._glue_hint or _scan_for_glue(
                self._paths.base_dir, settings.runner.features
            )
            self._delay_strategy = create_delay_strategy(settings.rounds.delay)
            self._initialized = True
            logger.debug(self.configuration_summary())

    def is_valid(self) -> bool:
        """Glue directory and executable are both present and non-empty."""
        return bool(self._glue and self._glue.strip()) and bool(
            self._executable and self._executable.strip()
        )

    def calculate_retry_delay(self, round_number: int) -> int:
        if not self._initialized or self._delay_strategy is None:
            return 0
        return self._delay_strategy.calculate_delay(round_number)

    def build_initial_run_command(self, features: Sequence[str] = ()) -> list[str]:
        """Command for the initial behave run with retries enabled."""
        settings = self.settings
        command = self._base_command()
        command.extend(self._define(RERUN_COUNT_KEY, self.max_rerun_attempts))
        command.extend(self._shared_defines())
        command.extend(settings.runner.extra_args)
        command.extend(features or settings.runner.features)
        return command

    def build_rerun_command(self, rerun_round: int, max_rerun_attempts: int) -> list[str]:
        """Command for one rerun round reading the rerun file as its input."""
        settings = self.settings
        command = self._base_command()
        command.extend(self._define(RERUN_MODE_KEY, "true"))
        command.extend(self._define(RERUN_ROUND_KEY, rerun_round))
        command.extend(self._define(RERUN_COUNT_KEY, max_rerun_attempts))
        command.extend(self._shared_defines())
        command.extend(settings.runner.extra_args)
        command.append(f"@{self._paths.relative_rerun_file()}")
        logger.info(
            "Rerun command for round %d/%d: %s",
            rerun_round,
            max_rerun_attempts,
            " ".join(command),
        )
        return command

    def configuration_summary(self) -> str:
        settings = self._settings
        lines = [
            "Rerun configuration:",
            f"  Max Rerun Attempts: {self.max_rerun_attempts}",
            f"  Rerun Mode: {self.is_rerun_mode}",
            f"  Current Round: {self.current_rerun_round}",
            f"  Executable: {self._executable}",
            f"  Glue: {self._glue}",
        ]
        if settings is not None:
            lines.extend(
                [
                    f"  Features: {list(settings.runner.features)}",
                    f"  Extra Args: {list(settings.runner.extra_args)}",
                    f"  Round Timeout: {settings.rounds.round_timeout_seconds}s",
                    f"  Delay Strategy: {settings.rounds.delay.strategy}",
                ]
            )
        return "\n".join(lines)

    def _resolve_settings_path(self) -> Path | None:
        settings_path = self._parameters.settings_path
        if settings_path is None:
            return None
        if not settings_path.is_absolute():
            return self._paths.base_dir / settings_path
        return settings_path

    def _base_command(self) -> list[str]:
        executable = self._executable or sys.executable
        return [executable, "-m", "behave"]

    def _shared_defines(self) -> list[str]:
        defines: list[str] = []
        if self._glue:
            defines.extend(self._define(GLUE_KEY, self._glue))
        if self._parameters.settings_path is not None:
            defines.extend(self._define(SETTINGS_PATH_KEY, self._parameters.settings_path))
        return defines

    @staticmethod
    def _define(key: str, value: object) -> list[str]:
        return ["-D", f"{key}={value}"]


def _resolve_executable(configured: str | None) -> str:
    if not configured:
        return sys.executable
    resolved = shutil.which(configured)
    if resolved is None:
        logger.warning("Configured executable not found on PATH: %s", configured)
        return configured
    return resolved


def _scan_for_glue(base_dir: Path, features: Sequence[str]) -> str | None:
    """Locate the behave base directory holding `steps/`.

    Configured feature directories are tried first, then the tree below the
    working directory.
    """
    for feature_path in features:
        candidate = base_dir / feature_path
        if candidate.is_file():
            candidate = candidate.parent
        if (candidate / "steps").is_dir():
            return _relative_to(candidate, base_dir)
    if not base_dir.is_dir():
        return None
    for steps_dir in sorted(base_dir.rglob("steps")):
        relative_parts = steps_dir.relative_to(base_dir).parts
        if any(part.startswith(".") or part in _SKIPPED_SCAN_DIRS for part in relative_parts):
            continue
        if steps_dir.is_dir():
            glue = _relative_to(steps_dir.parent, base_dir)
            logger.info("Auto-scanned glue directory: %s", glue)
            return glue
    logger.warning("No glue directory with steps/ found below %s", base_dir)
    return None


def _relative_to(path: Path, base_dir: Path) -> str:
    try:
        return path.relative_to(base_dir).as_posix() or "."
    except ValueError:
        return path.as_posix()
