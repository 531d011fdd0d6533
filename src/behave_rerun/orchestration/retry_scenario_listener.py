"""Retry decision state machine driven by scenario lifecycle events."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

from behave_rerun.configuration import ConfigurationError
from behave_rerun.metrics import FailureRecord
from behave_rerun.process_execution import RerunExecutionResult
from behave_rerun.progress import ProgressInfo, RoundProgress, SessionProgress
from behave_rerun.results_writing import (
    ReportedRetryEvent,
    RerunSummary,
    write_rerun_log,
    write_summary_json,
)
from behave_rerun.round_state import (
    PersistedResult,
    PersistedRetryEvent,
    RoundStateRecord,
)

from .events import (
    EventPublisher,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
)
from .retry_session import RetrySession
from .scenario_models import (
    FinalTally,
    RetryEvent,
    RoundResult,
    ScenarioIdentity,
    ScenarioResult,
    ScenarioStatus,
)

_BYTES_PER_MB = 1024 * 1024

logger = logging.getLogger(__name__)


class ListenerState(Enum):
    """Lifecycle of one process's listener."""

    AWAITING_EVENTS = "AWAITING_EVENTS"
    INITIAL_RUN_ACTIVE = "INITIAL_RUN_ACTIVE"
    INITIAL_RUN_COMPLETE = "INITIAL_RUN_COMPLETE"
    RERUN_ACTIVE = "RERUN_ACTIVE"
    RERUN_COMPLETE = "RERUN_COMPLETE"
    TERMINAL = "TERMINAL"


class RetryScenarioListener:  # pylint: disable=too-many-instance-attributes,too-many-public-methods
    """Decides whether failed scenarios are retried and when the session ends.

    One instance drives one process: the initial run, or one rerun round
    spawned by the previous process. Attempt counts, latest results and
    retry events are carried between processes through the round-state
    record, so `attempt < max_rerun_attempts` caps retries for the whole
    session rather than for a single process.

    A listener whose `max_rerun_attempts` is 0 never registers handlers and
    never touches the rerun file; `close` still writes the final report.
    """

    def __init__(self, session: RetrySession) -> None:
        self._session = session
        configuration = session.configuration
        self._max_rerun_attempts = configuration.max_rerun_attempts
        self._rerun_mode = configuration.is_rerun_mode
        self._current_round = configuration.current_rerun_round if self._rerun_mode else 1
        self._latest_round = self._current_round

        self._state_lock = threading.RLock()
        self._attempt_lock = threading.Lock()
        self._result_lock = threading.Lock()
        self._event_lock = threading.Lock()
        self._buffer_lock = threading.Lock()
        self._trigger_lock = threading.Lock()

        self._attempts: dict[str, int] = {}
        self._results: dict[str, ScenarioResult] = {}
        self._retry_events: list[RetryEvent] = []
        self._buffered_locations: list[str] = []
        self._round_results: list[RoundResult] = []

        self._state = ListenerState.AWAITING_EVENTS
        self._handlers_registered = False
        self._run_started = False
        self._run_finished = False
        self._initial_run_completed = False
        self._retry_components_ready = False
        self._halted = False
        self._last_triggered_round: int | None = None
        self._last_exit_code: int | None = None
        self._session_started_at = time.monotonic()

        if self.is_enabled and self._rerun_mode:
            session.metrics_collector.start_session()
            self._restore_round_state()

        logger.info(
            "Retry listener created - max attempts: %d, rerun mode: %s, round: %d",
            self._max_rerun_attempts,
            self._rerun_mode,
            self._current_round,
        )

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_enabled(self) -> bool:
        return self._max_rerun_attempts > 0

    @property
    def max_rerun_attempts(self) -> int:
        return self._max_rerun_attempts

    @property
    def is_rerun_mode(self) -> bool:
        return self._rerun_mode

    @property
    def current_round(self) -> int:
        return self._current_round

    @property
    def handlers_registered(self) -> bool:
        return self._handlers_registered

    @property
    def is_halted(self) -> bool:
        return self._halted

    @property
    def last_exit_code(self) -> int | None:
        return self._last_exit_code

    @property
    def scenario_results(self) -> dict[str, ScenarioResult]:
        with self._result_lock:
            return dict(self._results)

    @property
    def retry_events(self) -> tuple[RetryEvent, ...]:
        with self._event_lock:
            return tuple(self._retry_events)

    @property
    def round_results(self) -> tuple[RoundResult, ...]:
        return tuple(self._round_results)

    def attempt_count(self, scenario_id: str) -> int:
        with self._attempt_lock:
            return self._attempts.get(scenario_id, 0)

    def set_event_publisher(self, publisher: EventPublisher) -> None:
        """Register lifecycle handlers, only when retries are enabled."""
        if not self.is_enabled:
            logger.info(
                "Retry mechanism disabled (maxRerunAttempts=0), skipping event handler registration"
            )
            return
        with self._state_lock:
            if self._handlers_registered:
                logger.debug("Event handlers already registered")
                return
            publisher.register_handler(TestCaseStarted, self.handle_test_case_started)
            publisher.register_handler(TestCaseFinished, self.handle_test_case_finished)
            publisher.register_handler(TestRunFinished, self.handle_test_run_finished)
            self._handlers_registered = True
        logger.info("Event handlers registered (retry enabled)")

    def handle_test_case_started(self, event: TestCaseStarted) -> None:
        self._session.health_checker.record_activity()
        self._begin_run_once()
        logger.debug("%s Test case started: %s", self._round_label(), event.test_case.location)

    def handle_test_case_finished(self, event: TestCaseFinished) -> None:
        test_case = event.test_case
        status = event.result.status
        scenario_id = ScenarioIdentity.from_test_case(test_case.uri, test_case.name).key

        with self._attempt_lock:
            attempt = self._attempts.get(scenario_id, 0) + 1
            self._attempts[scenario_id] = attempt
        with self._result_lock:
            previous = self._results.get(scenario_id)
            if previous is None or previous.attempt <= attempt:
                self._results[scenario_id] = ScenarioResult(scenario_id, status, attempt)

        self._session.health_checker.record_activity()
        logger.info(
            "%s Test case finished - ID: %s, Status: %s, Attempt: %d/%d",
            self._round_label(),
            scenario_id,
            status.value,
            attempt,
            self._max_rerun_attempts,
        )

        if status is ScenarioStatus.FAILED:
            self._handle_failure(test_case, scenario_id, attempt, event.result.error)
        elif status is ScenarioStatus.PASSED:
            self._handle_pass(scenario_id, attempt)

    def handle_test_run_finished(self, _event: TestRunFinished) -> None:
        self._begin_run_once()
        with self._state_lock:
            if self._run_finished:
                logger.debug("Test run already finished, ignoring duplicate notification")
                return
            self._run_finished = True
            self._state = (
                ListenerState.RERUN_COMPLETE
                if self._rerun_mode
                else ListenerState.INITIAL_RUN_COMPLETE
            )

        tally = self.final_tally()
        logger.info(
            "%s Test run complete - Total: %d, Passed: %d, Failed: %d, Retried Passed: %d",
            self._round_label(),
            tally.total,
            tally.passed,
            tally.failed,
            tally.recovered_by_retry,
        )
        if self._rerun_mode:
            self._finish_rerun_round()
        else:
            self._finish_initial_run()

    def trigger_next_round(self) -> RerunExecutionResult | None:
        """Run the next round in a child process and block until it exits.

        Returns None without spawning when the next round would exceed
        `max_rerun_attempts`, was already triggered, or the round sequence
        has been halted by a failed launch.
        """
        with self._trigger_lock:
            next_round = self._current_round + 1
            if next_round > self._max_rerun_attempts:
                logger.warning(
                    "Round %d exceeds max retry attempts %d, not triggering",
                    next_round,
                    self._max_rerun_attempts,
                )
                return None
            if self._halted:
                logger.warning("Round sequence halted, not triggering round %d", next_round)
                return None
            if self._last_triggered_round == next_round:
                logger.warning("Round %d already triggered", next_round)
                return None
            if not self._initialize_retry_components():
                return None

            self._last_triggered_round = next_round
            logger.info(
                "Starting round %d rerun (of %d rounds)...", next_round, self._max_rerun_attempts
            )
            result = self._session.executor.execute_rerun(next_round, self._max_rerun_attempts)
            if result.success:
                logger.info("Round %d rerun completed successfully", next_round)
            else:
                logger.warning(
                    "Round %d rerun failed - exit code: %d", next_round, result.exit_code
                )
            self._absorb_child_round(result)
            return result

    def final_tally(self) -> FinalTally:
        with self._result_lock:
            results = list(self._results.values())
        passed = sum(1 for result in results if result.status is ScenarioStatus.PASSED)
        failed = sum(1 for result in results if result.status is ScenarioStatus.FAILED)
        recovered = sum(
            1
            for result in results
            if result.status is ScenarioStatus.PASSED and result.attempt > 1
        )
        return FinalTally(
            passed=passed, failed=failed, recovered_by_retry=recovered, total=len(results)
        )

    def generate_final_report(self) -> RerunSummary:
        """Write the rerun log and JSON summary; write errors are logged only."""
        summary = self._build_summary()
        paths = self._session.paths
        logger.info("Generating final retry report...")
        try:
            write_rerun_log(paths.rerun_log_file, summary)
            logger.info("Rerun log written to: %s", paths.rerun_log_file)
            write_summary_json(paths.summary_file, summary)
            logger.info("Summary JSON written to: %s", paths.summary_file)
        except OSError as exc:
            logger.error("Failed to generate final report: %s", exc)
        return summary

    def close(self) -> None:
        """Finish the session if no run-finished event reached the listener."""
        self._finalize()

    # Execution listener callbacks

    def on_rerun_started(self, round_number: int, max_rounds: int) -> None:
        self._session.health_checker.record_round_start(round_number)
        logger.info("Starting round %d rerun (of %d rounds)", round_number, max_rounds)

    def on_rerun_completed(self, round_number: int, exit_code: int, duration_ms: int) -> None:
        executor = self._session.executor
        health_checker = self._session.health_checker
        health_checker.check_process_health(executor.last_process)
        health_checker.record_round_end(round_number, exit_code == 0)
        logger.info(
            "Round %d rerun completed - exit code: %d, duration: %dms, stats: %s",
            round_number,
            exit_code,
            duration_ms,
            executor.get_statistics(),
        )

    def on_rerun_failed(self, round_number: int, error: BaseException) -> None:
        self._halted = True
        health_checker = self._session.health_checker
        health_checker.record_round_end(round_number, False)
        health_checker.record_failure("process", f"Round {round_number} could not run: {error}")
        logger.error("Round %d rerun execution failed: %s", round_number, error)

    def on_all_reruns_completed(
        self, total_rounds: int, success_count: int, failure_count: int
    ) -> None:
        duration_ms = int((time.monotonic() - self._session_started_at) * 1000)
        self._round_results.append(
            RoundResult(
                round=total_rounds,
                success_count=success_count,
                failure_count=failure_count,
                duration_ms=duration_ms,
            )
        )
        logger.info(
            "All reruns complete - Total rounds: %d, Success: %d, Failed: %d, Duration: %dms",
            total_rounds,
            success_count,
            failure_count,
            duration_ms,
        )

    # Progress listener callbacks

    def on_progress_update(self, progress: ProgressInfo) -> None:
        logger.debug(
            "[Progress Update] Round: %d/%d | Completed: %d | Passed: %d | Failed: %d | Health: %s",
            progress.current_round,
            progress.max_rounds,
            progress.completed_scenarios,
            progress.passed_scenarios,
            progress.failed_scenarios,
            self._session.health_checker.current_status.display_name,
        )

    def on_round_complete(self, round_progress: RoundProgress) -> None:
        logger.info(
            "[Round Complete] Round %d | Passed: %d | Failed: %d | Retried Passed: %d | "
            "Duration: %dms",
            round_progress.round,
            round_progress.passed,
            round_progress.failed,
            round_progress.retried_passed,
            round_progress.duration_ms,
        )

    def on_session_complete(self, session_progress: SessionProgress) -> None:
        logger.info(
            "[Session Complete] Total Rounds: %d | Success: %d | Failed: %d | Success Rate: %s | "
            "Total Duration: %dms",
            session_progress.total_rounds,
            session_progress.success_count,
            session_progress.failure_count,
            session_progress.formatted_success_rate,
            session_progress.total_duration_ms,
        )
        self._session.health_checker.end_session()
        self._session.metrics_collector.end_session()

    def _begin_run_once(self) -> None:
        with self._state_lock:
            if self._run_started:
                return
            self._run_started = True
            self._state = (
                ListenerState.RERUN_ACTIVE if self._rerun_mode else ListenerState.INITIAL_RUN_ACTIVE
            )
        self._session_started_at = time.monotonic()
        logger.info(
            "%s Test run started - rerun mode: %s, max attempts: %d",
            self._round_label(),
            self._rerun_mode,
            self._max_rerun_attempts,
        )
        # behave has already read the previous round's rerun file at startup.
        self._session.rerun_file.clear()
        self._session.health_checker.start_session()
        if not self._rerun_mode:
            self._session.round_state_store.clear()
            self._clean_old_round_logs()
            self._session.metrics_collector.start_session()
            return
        if self._initialize_retry_components():
            self._session.health_checker.record_round_start(self._current_round)
            self._session.progress_reporter.start_round(
                self._current_round, self._max_rerun_attempts
            )
        self._reset_browser()

    def _initialize_retry_components(self) -> bool:
        with self._state_lock:
            if self._retry_components_ready:
                return True
            logger.info("Initializing retry components...")
            configuration = self._session.configuration
            try:
                configuration.lazy_initialize()
            except ConfigurationError as exc:
                self._halted = True
                self._session.health_checker.check_configuration_health(None)
                logger.error("Retry configuration is unusable, no rounds will run: %s", exc)
                return False
            executor = self._session.executor
            executor.add_execution_listener(self)
            executor.start_session()
            progress_reporter = self._session.progress_reporter
            progress_reporter.add_progress_listener(self)
            progress_reporter.start_session(self._max_rerun_attempts)
            self._retry_components_ready = True

        health_checker = self._session.health_checker
        health_checker.max_idle_seconds = configuration.settings.health.max_idle_seconds
        health_checker.check_configuration_health(configuration)
        health_checker.check_memory_health()
        health_checker.check_disk_health(
            self._session.paths.base_dir,
            configuration.settings.health.min_free_disk_mb * _BYTES_PER_MB,
        )
        logger.debug(configuration.configuration_summary())
        return True

    def _clean_old_round_logs(self) -> None:
        for log_path in self._session.paths.round_output_files():
            try:
                log_path.unlink()
            except OSError as exc:
                logger.warning("Failed to delete old round log %s: %s", log_path, exc)
                continue
            logger.debug("Deleted old round log: %s", log_path)

    def _handle_failure(
        self,
        test_case: TestCase,
        scenario_id: str,
        attempt: int,
        error: BaseException | None,
    ) -> None:
        error_type = type(error).__name__ if error is not None else "UnknownError"
        error_message = str(error) if error is not None else "Unknown error"
        retry_event = RetryEvent(
            scenario_id=scenario_id,
            attempt=attempt,
            error_type=error_type,
            error_message=error_message,
            timestamp=datetime.now(UTC),
        )
        with self._event_lock:
            self._retry_events.append(retry_event)
        self._session.metrics_collector.record_scenario_failure(
            scenario_id, attempt, error_type, error_message
        )
        self._record_progress(passed=False)

        if attempt >= self._max_rerun_attempts:
            logger.error(
                "%s Final failure: %s - Attempt %d/%d, Error: %s",
                self._round_label(),
                scenario_id,
                attempt,
                self._max_rerun_attempts,
                error_type,
            )
            return

        with self._buffer_lock:
            buffered = not self._rerun_mode and not self._initial_run_completed
            if buffered:
                self._buffered_locations.append(test_case.location)
        if buffered:
            logger.warning(
                "Test failed [Attempt %d/%d]: %s - Will add to rerun queue after initial run "
                "completes",
                attempt,
                self._max_rerun_attempts,
                scenario_id,
            )
            return
        self._session.rerun_file.append(test_case.location)
        logger.warning(
            "Test failed [Attempt %d/%d]: %s - Adding to rerun queue",
            attempt,
            self._max_rerun_attempts,
            scenario_id,
        )

    def _handle_pass(self, scenario_id: str, attempt: int) -> None:
        retried = attempt > 1
        self._record_progress(passed=True, retried=retried)
        if retried:
            logger.info(
                "Retry succeeded [Round %d]: %s - Passed after %d attempts",
                self._current_round,
                scenario_id,
                attempt,
            )
        else:
            logger.info("Test passed: %s", scenario_id)

    def _record_progress(self, passed: bool, retried: bool = False) -> None:
        if self._retry_components_ready:
            self._session.progress_reporter.record_scenario(passed, retried)

    def _finish_initial_run(self) -> None:
        with self._buffer_lock:
            self._initial_run_completed = True
            locations = list(self._buffered_locations)
            self._buffered_locations.clear()
        self._session.rerun_file.append_all(locations)
        logger.info("Writing %d failed test locations to rerun file", len(locations))

        has_failures = self._session.rerun_file.has_remaining_failures()
        with self._attempt_lock:
            can_trigger_retry = self._max_rerun_attempts > 0 and any(
                attempt <= self._max_rerun_attempts for attempt in self._attempts.values()
            )
        logger.info(
            "Retry decision - hasFailures: %s, canTriggerRetry: %s, maxRerunAttempts: %d",
            has_failures,
            can_trigger_retry,
            self._max_rerun_attempts,
        )
        if has_failures and can_trigger_retry and self._initialize_retry_components():
            self._save_round_state()
            self.trigger_next_round()
        else:
            logger.info(
                "No rerun triggered - hasFailures: %s, canTriggerRetry: %s",
                has_failures,
                can_trigger_retry,
            )
        self._finalize()

    def _finish_rerun_round(self) -> None:
        has_remaining_failures = self._session.rerun_file.has_remaining_failures()
        can_continue = self._current_round < self._max_rerun_attempts
        logger.info(
            "[Retry Round %d/%d] hasRemainingFailures: %s, canContinueRetry: %s",
            self._current_round,
            self._max_rerun_attempts,
            has_remaining_failures,
            can_continue,
        )
        self._save_round_state()
        if has_remaining_failures and can_continue:
            logger.info(
                "Continuing to next rerun round (Round %d/%d)...",
                self._current_round + 1,
                self._max_rerun_attempts,
            )
            self.trigger_next_round()
        elif has_remaining_failures:
            logger.warning(
                "Max retry attempts %d reached, stopping retry with remaining failures",
                self._max_rerun_attempts,
            )
        else:
            logger.info("All tests passed after round %d retry!", self._current_round)
        self._finalize()

    def _finalize(self) -> None:
        with self._state_lock:
            if self._state is ListenerState.TERMINAL:
                return
            self._state = ListenerState.TERMINAL

        if self._retry_components_ready:
            progress_reporter = self._session.progress_reporter
            progress_reporter.complete_round()
            progress_reporter.end_session()
        else:
            self._session.health_checker.end_session()
            self._session.metrics_collector.end_session()

        tally = self.final_tally()
        logger.info(
            "Final results - Passed: %d, Failed: %d, Recovered by retry: %d, Success rate: %.2f%%",
            tally.passed,
            tally.failed,
            tally.recovered_by_retry,
            tally.success_rate,
        )
        self.generate_final_report()
        self._run_cleanup_hook()

    def _run_cleanup_hook(self) -> None:
        cleanup_hook = self._session.cleanup_hook
        if cleanup_hook is None:
            return
        try:
            cleanup_hook()
        except Exception:  # pylint: disable=broad-exception-caught
            logger.warning("Error during cleanup", exc_info=True)
            return
        logger.info("Cleanup completed")

    def _reset_browser(self) -> None:
        browser_driver = self._session.browser_driver
        if browser_driver is None:
            return
        restart = (
            self._retry_components_ready
            and self._session.configuration.settings.rounds.restart_browser
        )
        steps: list[tuple[str, Callable[[], None]]] = [
            ("close page", browser_driver.close_page),
            ("close context", browser_driver.close_context),
        ]
        if restart:
            steps.append(("restart browser", browser_driver.restart_browser))
        steps.append(("create new context and page", browser_driver.create_new_context_and_page))
        for description, step in steps:
            try:
                step()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning("Browser reset step failed: %s", description, exc_info=True)
        logger.info("%s Browser state reset for rerun", self._round_label())

    def _restore_round_state(self) -> None:
        record = self._session.round_state_store.load()
        if record is None:
            logger.warning(
                "[Retry Round %d/%d] No round state found, attempt counts start fresh",
                self._current_round,
                self._max_rerun_attempts,
            )
            return
        self._adopt_round_state(record)
        logger.info(
            "[Retry Round %d/%d] Restored %d scenario attempt counts from round %d",
            self._current_round,
            self._max_rerun_attempts,
            len(record.attempts),
            record.round,
        )

    def _absorb_child_round(self, result: RerunExecutionResult) -> None:
        record = self._session.round_state_store.load()
        if record is not None and record.round > self._current_round:
            self._adopt_round_state(record)
        if self._last_exit_code is None and result.launched:
            self._last_exit_code = result.exit_code
        child_reported = record is not None and record.round >= result.round
        if result.launched and result.exit_code != 0 and not child_reported:
            round_log = self._session.paths.round_output_file(result.round)
            message = (
                f"Round {result.round} exited with code {result.exit_code} "
                f"without reporting any scenario, see {round_log}"
            )
            self._session.health_checker.record_failure("process", message)
            logger.error(message)
        self._save_round_state()

    def _adopt_round_state(self, record: RoundStateRecord) -> None:
        with self._attempt_lock:
            for scenario_id, attempts in record.attempts.items():
                self._attempts[scenario_id] = max(attempts, self._attempts.get(scenario_id, 0))
        with self._result_lock:
            for scenario_id, persisted in record.results.items():
                restored = _restore_result(scenario_id, persisted)
                previous = self._results.get(scenario_id)
                if restored is not None and (
                    previous is None or previous.attempt <= restored.attempt
                ):
                    self._results[scenario_id] = restored
        with self._event_lock:
            if len(record.retry_events) >= len(self._retry_events):
                self._retry_events = [_restore_event(item) for item in record.retry_events]
            events = list(self._retry_events)
        self._session.metrics_collector.restore(
            FailureRecord(
                scenario_id=event.scenario_id,
                attempt=event.attempt,
                error_type=event.error_type,
                error_message=event.error_message,
                recorded_at=event.timestamp,
            )
            for event in events
        )
        self._latest_round = max(self._latest_round, record.round)
        if record.last_exit_code is not None:
            self._last_exit_code = record.last_exit_code

    def _save_round_state(self) -> None:
        with self._attempt_lock:
            attempts = dict(self._attempts)
        with self._result_lock:
            results = {
                scenario_id: PersistedResult(status=result.status.value, attempt=result.attempt)
                for scenario_id, result in self._results.items()
            }
        with self._event_lock:
            retry_events = tuple(
                PersistedRetryEvent(
                    scenario=event.scenario_id,
                    attempt=event.attempt,
                    error_type=event.error_type,
                    error_message=event.error_message,
                    timestamp=event.timestamp.isoformat(),
                )
                for event in self._retry_events
            )
        self._session.round_state_store.save(
            RoundStateRecord(
                max_rerun_attempts=self._max_rerun_attempts,
                round=self._latest_round,
                attempts=attempts,
                results=results,
                retry_events=retry_events,
                last_exit_code=self._last_exit_code,
            )
        )

    def _build_summary(self) -> RerunSummary:
        tally = self.final_tally()
        return RerunSummary(
            timestamp=datetime.now(UTC),
            max_retry_attempts=self._max_rerun_attempts,
            total_scenarios=tally.total,
            passed=tally.passed,
            failed=tally.failed,
            retried_passed=tally.recovered_by_retry,
            retry_events=tuple(
                ReportedRetryEvent(
                    scenario=event.scenario_id,
                    attempt=event.attempt,
                    error_type=event.error_type,
                    error_message=event.error_message,
                    timestamp=event.timestamp,
                )
                for event in self.retry_events
            ),
            health_status=self._session.health_checker.current_status.display_name,
            metrics=self._session.metrics_collector.snapshot().to_dict(),
        )

    def _round_label(self) -> str:
        if self._rerun_mode:
            return f"[Retry Round {self._current_round}/{self._max_rerun_attempts}]"
        return "[Initial Run]"


def _restore_result(scenario_id: str, persisted: PersistedResult) -> ScenarioResult | None:
    try:
        status = ScenarioStatus(persisted.status)
    except ValueError:
        logger.warning("Ignoring unknown status %r for %s", persisted.status, scenario_id)
        return None
    return ScenarioResult(scenario_id=scenario_id, status=status, attempt=persisted.attempt)


def _restore_event(persisted: PersistedRetryEvent) -> RetryEvent:
    try:
        timestamp = datetime.fromisoformat(persisted.timestamp)
    except ValueError:
        timestamp = datetime.now(UTC)
    return RetryEvent(
        scenario_id=persisted.scenario,
        attempt=persisted.attempt,
        error_type=persisted.error_type,
        error_message=persisted.error_message,
        timestamp=timestamp,
    )


_process_listener: RetryScenarioListener | None = None
_process_listener_lock = threading.Lock()


def get_process_listener(
    factory: Callable[[], RetryScenarioListener],
) -> RetryScenarioListener:
    """Return the listener driving this process, building it on first call."""
    global _process_listener  # pylint: disable=global-statement
    with _process_listener_lock:
        if _process_listener is None:
            _process_listener = factory()
        return _process_listener


def reset_process_listener() -> None:
    global _process_listener  # pylint: disable=global-statement
    with _process_listener_lock:
        _process_listener = None
