"""Spawns and supervises one behave process per rerun round."""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import IO, Any

import psutil

from behave_rerun.configuration import RerunConfiguration
from behave_rerun.notifications import DelegateList

from .execution_results import (
    RerunExecutionListener,
    RerunExecutionResult,
    RerunLaunchError,
    RerunStatistics,
    RerunTimeoutError,
)

PopenFactory = Callable[..., Any]
ProcessInspector = Callable[[int], Any]

_OUTPUT_JOIN_TIMEOUT_SECONDS = 1.0
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


class RerunProcessExecutor:  # pylint: disable=too-many-instance-attributes
    """Runs one round at a time and blocks until its process exits.

    Round N+1 can never start before round N's process has terminated: a
    second request while a round is running is rejected without spawning.
    """

    def __init__(
        self,
        configuration: RerunConfiguration,
        *,
        popen_factory: PopenFactory | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
        stream: IO[str] | None = None,
        process_inspector: ProcessInspector | None = None,
    ) -> None:
        self._configuration = configuration
        self._popen_factory = popen_factory or subprocess.Popen
        self._process_inspector = process_inspector or psutil.Process
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic
        self._stream = stream
        self._listeners: DelegateList[RerunExecutionListener] = DelegateList("rerun execution")
        self._process_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._running = False
        self._total = 0
        self._successes = 0
        self._failures = 0
        self._current_process: Any = None
        self._last_process: Any = None
        self._output_thread: threading.Thread | None = None
        self._session_started_at = self._clock()

    @property
    def current_process(self) -> Any:
        return self._current_process

    @property
    def last_process(self) -> Any:
        return self._last_process

    def add_execution_listener(self, listener: RerunExecutionListener) -> None:
        self._listeners.add(listener)

    def remove_execution_listener(self, listener: RerunExecutionListener) -> None:
        self._listeners.remove(listener)

    def start_session(self) -> None:
        self._session_started_at = self._clock()
        self.reset_statistics()
        logger.info("Rerun executor session started")

    def session_duration_ms(self) -> int:
        return int((self._clock() - self._session_started_at) * 1000)

    def is_rerun_running(self) -> bool:
        return self._running

    def get_statistics(self) -> RerunStatistics:
        with self._counter_lock:
            return RerunStatistics(
                total_count=self._total,
                success_count=self._successes,
                failure_count=self._failures,
                currently_running=self._running,
            )

    def reset_statistics(self) -> None:
        with self._counter_lock:
            self._total = 0
            self._successes = 0
            self._failures = 0

    def execute_initial_run(self, features: Sequence[str] = ()) -> RerunExecutionResult:
        """Run the initial behave invocation with its output inherited."""
        started_at = self._clock()
        try:
            command = self._configuration.build_initial_run_command(features)
            logger.info("Executing initial test run: %s", shlex.join(command))
            process = self._popen_factory(command, cwd=str(self._configuration.paths.base_dir))
            exit_code = process.wait()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Initial test run failed to execute: %s", exc)
            return RerunExecutionResult(
                round=1,
                exit_code=-1,
                duration_ms=self._elapsed_ms(started_at),
                success=False,
                error_message=str(exc),
            )
        duration_ms = self._elapsed_ms(started_at)
        logger.info(
            "Initial test run completed - exit code: %d, duration: %dms", exit_code, duration_ms
        )
        return RerunExecutionResult(
            round=1, exit_code=exit_code, duration_ms=duration_ms, success=exit_code == 0
        )

    def execute_rerun(self, current_round: int, max_rounds: int) -> RerunExecutionResult:
        """Spawn the process for `current_round` and wait for it to exit."""
        with self._process_lock:
            if self._running:
                logger.warning("Rerun process is already running, skipping duplicate request")
                return RerunExecutionResult(
                    round=current_round,
                    exit_code=-1,
                    duration_ms=0,
                    success=False,
                    error_message="Process already running",
                )
            self._running = True

        with self._counter_lock:
            self._total += 1
        started_at = self._clock()
        self._listeners.notify(
            "rerun started", lambda item: item.on_rerun_started(current_round, max_rounds)
        )
        logger.info("Starting round %d rerun (of %d rounds)...", current_round, max_rounds)

        try:
            self._apply_retry_delay(current_round)
            exit_code = self._run_round_process(current_round, max_rounds)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            duration_ms = self._elapsed_ms(started_at)
            with self._counter_lock:
                self._failures += 1
            logger.error("Rerun execution failed - Round %d: %s", current_round, exc)
            self._listeners.notify(
                "rerun failed", lambda item: item.on_rerun_failed(current_round, exc)
            )
            self._notify_all_completed_if_last(current_round, max_rounds)
            return RerunExecutionResult(
                round=current_round,
                exit_code=-1,
                duration_ms=duration_ms,
                success=False,
                error_message=str(exc),
                timed_out=isinstance(exc, RerunTimeoutError),
            )
        finally:
            self._stop_output_streaming()
            self._current_process = None
            self._running = False

        duration_ms = self._elapsed_ms(started_at)
        success = exit_code == 0
        with self._counter_lock:
            if success:
                self._successes += 1
            else:
                self._failures += 1
        logger.info(
            "Round %d rerun completed - exit code: %d, duration: %dms",
            current_round,
            exit_code,
            duration_ms,
        )
        self._listeners.notify(
            "rerun completed",
            lambda item: item.on_rerun_completed(current_round, exit_code, duration_ms),
        )
        self._notify_all_completed_if_last(current_round, max_rounds)
        return RerunExecutionResult(
            round=current_round, exit_code=exit_code, duration_ms=duration_ms, success=success
        )

    def cancel_running_rerun(self) -> bool:
        process = self._current_process
        if process is None or process.poll() is not None:
            return False
        logger.info("Canceling ongoing rerun process...")
        self._kill_process_tree(process)
        return True

    def _run_round_process(self, current_round: int, max_rounds: int) -> int:
        command = self._configuration.build_rerun_command(current_round, max_rounds)
        logger.debug("Executing command: %s", shlex.join(command))
        try:
            process = self._popen_factory(
                command,
                cwd=str(self._configuration.paths.base_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise RerunLaunchError(
                f"Rerun command could not be started: {shlex.join(command)}"
            ) from exc
        self._current_process = process
        self._last_process = process
        self._start_output_streaming(process, current_round)

        timeout_seconds = self._configuration.settings.rounds.round_timeout_seconds
        try:
            return process.wait(timeout=timeout_seconds)
        except subprocess.TimeoutExpired as exc:
            logger.error(
                "Round %d exceeded %ds, terminating process", current_round, timeout_seconds
            )
            self._kill_process_tree(process)
            process.wait()
            raise RerunTimeoutError(
                f"Round {current_round} timed out after {timeout_seconds} seconds"
            ) from exc

    def _kill_process_tree(self, process: Any) -> None:
        """Kill a round process together with the later rounds it spawned.

        Descendants are collected before the round process dies, since they
        are reparented afterwards and no longer reachable from its pid.
        """
        descendants: list[Any] = []
        try:
            descendants = self._process_inspector(process.pid).children(recursive=True)
        except psutil.Error as exc:
            logger.warning("Failed to list child processes of pid %s: %s", process.pid, exc)
        process.kill()
        for descendant in descendants:
            try:
                descendant.kill()
            except psutil.NoSuchProcess:
                continue
            logger.info("Killed nested round process pid %d", descendant.pid)

    def _apply_retry_delay(self, current_round: int) -> None:
        delay_ms = self._configuration.calculate_retry_delay(current_round)
        if delay_ms > 0:
            logger.info("Round %d retry delay: %dms", current_round, delay_ms)
            self._sleep(delay_ms / 1000.0)

    def _start_output_streaming(self, process: Any, current_round: int) -> None:
        if getattr(process, "stdout", None) is None:
            return
        log_path = self._configuration.paths.round_output_file(current_round)
        self._output_thread = threading.Thread(
            target=self._stream_output,
            args=(process.stdout, log_path, current_round),
            name=f"RerunOutputThread-{current_round}",
            daemon=True,
        )
        self._output_thread.start()

    def _stream_output(self, output: IO[str], log_path: Path, current_round: int) -> None:
        stream = self._stream or sys.stdout
        log_file: IO[str] | None = None
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = log_path.open("a", encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to open round output log %s: %s", log_path, exc)
        try:
            for line in output:
                stream.write(line)
                if log_file is not None:
                    timestamp = datetime.now().strftime(_TIMESTAMP_FORMAT)
                    log_file.write(f"[{timestamp}] [Round {current_round}] {line.rstrip()}\n")
        except (OSError, ValueError) as exc:
            logger.warning("Error streaming round %d output: %s", current_round, exc)
        finally:
            if log_file is not None:
                log_file.close()

    def _stop_output_streaming(self) -> None:
        thread = self._output_thread
        if thread is not None and thread.is_alive():
            thread.join(_OUTPUT_JOIN_TIMEOUT_SECONDS)
        self._output_thread = None

    def _notify_all_completed_if_last(self, current_round: int, max_rounds: int) -> None:
        if current_round < max_rounds:
            return
        statistics = self.get_statistics()
        self._listeners.notify(
            "all reruns completed",
            lambda item: item.on_all_reruns_completed(
                max_rounds, statistics.success_count, statistics.failure_count
            ),
        )

    def _elapsed_ms(self, started_at: float) -> int:
        return int((self._clock() - started_at) * 1000)
