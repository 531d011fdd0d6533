"""Per-process session context shared by the retry collaborators."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

from behave_rerun.configuration import (
    RerunConfiguration,
    RerunPaths,
    parse_process_parameters,
)
from behave_rerun.health import HealthChecker
from behave_rerun.metrics import MetricsCollector
from behave_rerun.process_execution import RerunProcessExecutor
from behave_rerun.progress import ProgressReporter
from behave_rerun.round_state import RerunFile, RoundStateStore

CleanupHook = Callable[[], None]
ExecutorFactory = Callable[[RerunConfiguration], RerunProcessExecutor]


class BrowserDriver(Protocol):
    """Browser lifecycle operations used to reset state between rounds."""

    def close_page(self) -> None: ...

    def close_context(self) -> None: ...

    def restart_browser(self) -> None: ...

    def create_new_context_and_page(self) -> None: ...


class RetrySession:  # pylint: disable=too-many-instance-attributes
    """Owns every collaborator of one process's retry orchestration.

    The executor and progress reporter are built on first use; a green
    initial run never creates them.
    """

    def __init__(
        self,
        configuration: RerunConfiguration,
        *,
        health_checker: HealthChecker | None = None,
        metrics_collector: MetricsCollector | None = None,
        executor_factory: ExecutorFactory | None = None,
        browser_driver: BrowserDriver | None = None,
        cleanup_hook: CleanupHook | None = None,
    ) -> None:
        self._configuration = configuration
        self._health_checker = health_checker or HealthChecker()
        self._metrics_collector = metrics_collector or MetricsCollector()
        self._executor_factory = executor_factory or RerunProcessExecutor
        self._browser_driver = browser_driver
        self._cleanup_hook = cleanup_hook
        self._rerun_file = RerunFile(configuration.paths.rerun_file, configuration.paths.base_dir)
        self._round_state_store = RoundStateStore(configuration.paths.round_state_file)
        self._lock = threading.Lock()
        self._executor: RerunProcessExecutor | None = None
        self._progress_reporter: ProgressReporter | None = None

    @classmethod
    def from_sources(
        cls,
        *sources: Mapping[str, Any] | None,
        base_dir: Path | None = None,
        glue_hint: str | None = None,
        **collaborators: Any,
    ) -> RetrySession:
        """Build a session from process parameter sources, first source winning."""
        parameters = parse_process_parameters(*sources)
        paths = RerunPaths(base_dir) if base_dir is not None else RerunPaths()
        configuration = RerunConfiguration(parameters, paths, glue_hint=glue_hint)
        return cls(configuration, **collaborators)

    @property
    def configuration(self) -> RerunConfiguration:
        return self._configuration

    @property
    def paths(self) -> RerunPaths:
        return self._configuration.paths

    @property
    def health_checker(self) -> HealthChecker:
        return self._health_checker

    @property
    def metrics_collector(self) -> MetricsCollector:
        return self._metrics_collector

    @property
    def browser_driver(self) -> BrowserDriver | None:
        return self._browser_driver

    @property
    def cleanup_hook(self) -> CleanupHook | None:
        return self._cleanup_hook

    @property
    def rerun_file(self) -> RerunFile:
        return self._rerun_file

    @property
    def round_state_store(self) -> RoundStateStore:
        return self._round_state_store

    @property
    def has_executor(self) -> bool:
        return self._executor is not None

    @property
    def executor(self) -> RerunProcessExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = self._executor_factory(self._configuration)
            return self._executor

    @property
    def progress_reporter(self) -> ProgressReporter:
        executor = self.executor
        with self._lock:
            if self._progress_reporter is None:
                self._progress_reporter = ProgressReporter(executor)
            return self._progress_reporter
