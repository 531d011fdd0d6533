"""Retry scenario listener tests."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from behave_rerun.configuration import (
    ConfigurationError,
    ProcessParameters,
    RerunConfiguration,
    RerunPaths,
    default_settings,
)
from behave_rerun.health import HealthChecker
from behave_rerun.orchestration import (
    ListenerState,
    RetryScenarioListener,
    RetrySession,
    ScenarioEventBus,
    ScenarioStatus,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestResult,
    TestRunFinished,
    get_process_listener,
    reset_process_listener,
)
from behave_rerun.process_execution import RerunExecutionResult, RerunStatistics
from behave_rerun.round_state import RoundStateRecord, RoundStateStore

_GIB = 1024**3
LOGIN = TestCase("features/login.feature", "Valid login", 12)
CHECKOUT = TestCase("features/cart.feature", "Checkout", 4)


class _StubExecutor:
    exit_code = 0

    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []
        self.listeners: list[Any] = []
        self.last_process = None

    def add_execution_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def start_session(self) -> None:
        pass

    def get_statistics(self) -> RerunStatistics:
        return RerunStatistics(
            total_count=len(self.calls), success_count=0, failure_count=0, currently_running=False
        )

    def execute_rerun(self, current_round: int, max_rounds: int) -> RerunExecutionResult:
        self.calls.append((current_round, max_rounds))
        return RerunExecutionResult(
            round=current_round,
            exit_code=self.exit_code,
            duration_ms=0,
            success=self.exit_code == 0,
        )


class _BrowserDriver:
    def __init__(self, failing_step: str | None = None) -> None:
        self.calls: list[str] = []
        self.failing_step = failing_step

    def _record(self, step: str) -> None:
        self.calls.append(step)
        if step == self.failing_step:
            raise RuntimeError(f"{step} failed")

    def close_page(self) -> None:
        self._record("close_page")

    def close_context(self) -> None:
        self._record("close_context")

    def restart_browser(self) -> None:
        self._record("restart_browser")

    def create_new_context_and_page(self) -> None:
        self._record("create_new_context_and_page")


def _health() -> HealthChecker:
    return HealthChecker(
        memory_probe=lambda: SimpleNamespace(percent=40.0, used=4 * _GIB, total=10 * _GIB),
        disk_probe=lambda _path: SimpleNamespace(free=100 * _GIB),
    )


def _listener(
    tmp_path: Path,
    *,
    max_attempts: int,
    rerun_round: int | None = None,
    executors: list[_StubExecutor] | None = None,
    settings_loader: Any = None,
    **collaborators: Any,
) -> RetryScenarioListener:
    created = executors if executors is not None else []

    def executor_factory(_configuration: RerunConfiguration) -> _StubExecutor:
        executor = _StubExecutor()
        created.append(executor)
        return executor

    configuration = RerunConfiguration(
        ProcessParameters(
            max_rerun_attempts=max_attempts,
            rerun_mode=rerun_round is not None,
            rerun_round=rerun_round or 1,
        ),
        RerunPaths(tmp_path),
        glue_hint="features",
        settings_loader=settings_loader or (lambda _path: default_settings()),
    )
    collaborators.setdefault("health_checker", _health())
    session = RetrySession(
        configuration,
        executor_factory=executor_factory,
        **collaborators,
    )
    return RetryScenarioListener(session)


def _run(bus: ScenarioEventBus, *outcomes: tuple[TestCase, ScenarioStatus]) -> None:
    for test_case, status in outcomes:
        error = None
        if status is ScenarioStatus.FAILED:
            error = AssertionError(f"{test_case.name} failed")
        bus.publish(TestCaseStarted(test_case))
        bus.publish(TestCaseFinished(test_case, TestResult(status, error)))
    bus.publish(TestRunFinished())


def _attached(listener: RetryScenarioListener) -> ScenarioEventBus:
    bus = ScenarioEventBus()
    listener.set_event_publisher(bus)
    return bus


def test_disabled_listener_leaves_rerun_file_alone_but_still_reports(tmp_path: Path) -> None:
    listener = _listener(tmp_path, max_attempts=0)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED), (CHECKOUT, ScenarioStatus.FAILED))
    listener.close()

    assert listener.handlers_registered is False
    assert bus.handler_count() == 0
    assert not (tmp_path / "target" / "rerun.txt").exists()
    summary = json.loads((tmp_path / "target" / "rerun-summary.json").read_text(encoding="utf-8"))
    assert summary["summary"]["retriedPassed"] == 0
    assert summary["maxRetryAttempts"] == 0


def test_handlers_are_registered_once(tmp_path: Path) -> None:
    listener = _listener(tmp_path, max_attempts=2)
    bus = ScenarioEventBus()

    listener.set_event_publisher(bus)
    listener.set_event_publisher(bus)

    assert listener.handlers_registered is True
    assert bus.handler_count() == 3


def test_concurrent_results_get_consecutive_attempt_numbers(tmp_path: Path) -> None:
    listener = _listener(tmp_path, max_attempts=1000)
    failure = TestCaseFinished(LOGIN, TestResult(ScenarioStatus.FAILED, AssertionError("boom")))

    def deliver() -> None:
        for _ in range(25):
            listener.handle_test_case_finished(failure)

    threads = [threading.Thread(target=deliver) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    attempts = sorted(event.attempt for event in listener.retry_events)
    assert attempts == list(range(1, 201))
    assert listener.attempt_count("login;Valid login") == 200
    assert listener.scenario_results["login;Valid login"].attempt == 200


def test_initial_run_failures_are_written_after_the_run_and_round_two_triggered(
    tmp_path: Path,
) -> None:
    executors: list[_StubExecutor] = []
    listener = _listener(tmp_path, max_attempts=3, executors=executors)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED), (CHECKOUT, ScenarioStatus.PASSED))

    rerun_file = tmp_path / "target" / "rerun.txt"
    login_feature = (tmp_path / "features" / "login.feature").resolve().as_posix()
    assert rerun_file.read_text(encoding="utf-8") == f"{login_feature}:12\n"
    assert executors[0].calls == [(2, 3)]
    assert listener.state is ListenerState.TERMINAL
    assert listener.last_exit_code == 0
    saved = RoundStateStore(tmp_path / "target" / "rerun-state.json").load()
    assert saved is not None
    assert saved.attempts == {"login;Valid login": 1, "cart;Checkout": 1}


def test_green_initial_run_never_builds_the_executor(tmp_path: Path) -> None:
    executors: list[_StubExecutor] = []
    listener = _listener(tmp_path, max_attempts=3, executors=executors)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.PASSED), (CHECKOUT, ScenarioStatus.PASSED))

    assert executors == []
    assert (tmp_path / "target" / "rerun.txt").read_text(encoding="utf-8") == ""
    assert listener.final_tally().passed == 2


def test_round_beyond_max_attempts_is_not_triggered(tmp_path: Path) -> None:
    executors: list[_StubExecutor] = []
    listener = _listener(tmp_path, max_attempts=3, rerun_round=3, executors=executors)

    assert listener.trigger_next_round() is None
    assert executors == []


def test_last_round_with_remaining_failures_stops(tmp_path: Path) -> None:
    executors: list[_StubExecutor] = []
    listener = _listener(tmp_path, max_attempts=3, rerun_round=3, executors=executors)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED))

    assert executors[0].calls == []
    assert listener.final_tally().failed == 1


def test_same_round_is_triggered_only_once(tmp_path: Path) -> None:
    executors: list[_StubExecutor] = []
    listener = _listener(tmp_path, max_attempts=3, executors=executors)

    first = listener.trigger_next_round()
    second = listener.trigger_next_round()

    assert first is not None and first.round == 2
    assert second is None
    assert executors[0].calls == [(2, 3)]


def test_attempts_carried_from_earlier_rounds_cap_requeueing(tmp_path: Path) -> None:
    RoundStateStore(tmp_path / "target" / "rerun-state.json").save(
        RoundStateRecord(max_rerun_attempts=2, round=1, attempts={"login;Valid login": 1})
    )
    listener = _listener(tmp_path, max_attempts=2, rerun_round=2)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED))

    assert listener.attempt_count("login;Valid login") == 2
    assert (tmp_path / "target" / "rerun.txt").read_text(encoding="utf-8") == ""
    assert listener.scenario_results["login;Valid login"].status is ScenarioStatus.FAILED


def test_rerun_round_resets_browser_and_isolates_step_failures(tmp_path: Path) -> None:
    driver = _BrowserDriver(failing_step="close_context")
    listener = _listener(tmp_path, max_attempts=3, rerun_round=2, browser_driver=driver)
    bus = _attached(listener)

    bus.publish(TestCaseStarted(LOGIN))
    bus.publish(TestCaseStarted(CHECKOUT))

    assert driver.calls == [
        "close_page",
        "close_context",
        "restart_browser",
        "create_new_context_and_page",
    ]
    assert listener.state is ListenerState.RERUN_ACTIVE


def test_initial_run_does_not_reset_browser(tmp_path: Path) -> None:
    driver = _BrowserDriver()
    listener = _listener(tmp_path, max_attempts=3, browser_driver=driver)
    bus = _attached(listener)

    bus.publish(TestCaseStarted(LOGIN))

    assert driver.calls == []


def test_cleanup_hook_runs_once_and_its_errors_are_contained(tmp_path: Path) -> None:
    calls: list[str] = []

    def cleanup() -> None:
        calls.append("cleanup")
        raise RuntimeError("browser already gone")

    listener = _listener(tmp_path, max_attempts=2, cleanup_hook=cleanup)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.PASSED))
    listener.close()

    assert calls == ["cleanup"]
    assert listener.state is ListenerState.TERMINAL


def test_invalid_settings_halt_rounds_but_report_is_written(tmp_path: Path) -> None:
    executors: list[_StubExecutor] = []

    def broken_loader(_path: Path | None):
        raise ConfigurationError("rerun.delay.strategy must be one of fixed, exponential.")

    listener = _listener(
        tmp_path, max_attempts=2, executors=executors, settings_loader=broken_loader
    )
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED))

    assert listener.is_halted is True
    assert executors == []
    assert (tmp_path / "target" / "rerun-summary.json").is_file()
    assert (tmp_path / "target" / "rerun.log").is_file()


def test_process_listener_is_built_once_until_reset(tmp_path: Path) -> None:
    built: list[RetryScenarioListener] = []

    def factory() -> RetryScenarioListener:
        listener = _listener(tmp_path, max_attempts=1)
        built.append(listener)
        return listener

    reset_process_listener()
    try:
        first = get_process_listener(factory)
        second = get_process_listener(factory)
    finally:
        reset_process_listener()

    assert first is second
    assert len(built) == 1


def test_initial_run_deletes_round_logs_of_earlier_sessions(tmp_path: Path) -> None:
    target = tmp_path / "target"
    target.mkdir()
    for round_number in (2, 3):
        (target / f"rerun-round-{round_number}.log").write_text("old session\n", encoding="utf-8")
    (target / "unrelated.log").write_text("keep\n", encoding="utf-8")
    listener = _listener(tmp_path, max_attempts=3)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.PASSED))

    assert sorted(path.name for path in target.glob("rerun-round-*.log")) == []
    assert (target / "unrelated.log").exists()


def test_rerun_round_keeps_round_logs_of_its_own_session(tmp_path: Path) -> None:
    round_log = tmp_path / "target" / "rerun-round-2.log"
    round_log.parent.mkdir()
    round_log.write_text("[Round 2] running\n", encoding="utf-8")
    listener = _listener(tmp_path, max_attempts=3, rerun_round=2)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.PASSED))

    assert round_log.read_text(encoding="utf-8") == "[Round 2] running\n"


def test_disabled_listener_leaves_round_logs_alone(tmp_path: Path) -> None:
    round_log = tmp_path / "target" / "rerun-round-2.log"
    round_log.parent.mkdir()
    round_log.write_text("kept\n", encoding="utf-8")
    listener = _listener(tmp_path, max_attempts=0)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED))

    assert round_log.exists()


def test_round_exiting_without_reporting_scenarios_is_surfaced(
    tmp_path: Path, monkeypatch
) -> None:
    monkeypatch.setattr(_StubExecutor, "exit_code", 2)
    health = _health()
    listener = _listener(tmp_path, max_attempts=3, health_checker=health)
    bus = _attached(listener)

    _run(bus, (LOGIN, ScenarioStatus.FAILED))

    process = health.indicators["process"]
    assert process.healthy is False
    assert "Round 2 exited with code 2 without reporting any scenario" in process.details
    assert "rerun-round-2.log" in process.details
    assert listener.last_exit_code == 2
