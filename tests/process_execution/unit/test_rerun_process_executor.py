"""Rerun process executor tests."""

from __future__ import annotations

import io
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import Any

import psutil

from behave_rerun.configuration import (
    DelaySettings,
    ProcessParameters,
    RerunConfiguration,
    RerunPaths,
    RerunSettings,
    default_settings,
)
from behave_rerun.process_execution import (
    RerunLaunchError,
    RerunProcessExecutor,
    RerunTimeoutError,
)


class _FakeProcess:
    pid = 4100

    def __init__(self, output: str = "", exit_code: int = 0, hang: bool = False) -> None:
        self.stdout = io.StringIO(output)
        self.exit_code = exit_code
        self.hang = hang
        self.killed = False

    def wait(self, timeout: float | None = None) -> int:
        if self.hang and not self.killed:
            raise subprocess.TimeoutExpired(cmd="behave", timeout=timeout or 0)
        return -9 if self.killed else self.exit_code

    def poll(self) -> int | None:
        return None if self.hang and not self.killed else self.exit_code

    def kill(self) -> None:
        self.killed = True


class _FakeDescendant:
    def __init__(self, pid: int, gone: bool = False) -> None:
        self.pid = pid
        self.gone = gone
        self.killed = False

    def kill(self) -> None:
        if self.gone:
            raise psutil.NoSuchProcess(self.pid)
        self.killed = True


class _FakeProcessTree:
    def __init__(self, *descendants: _FakeDescendant, error: Exception | None = None) -> None:
        self.descendants = list(descendants)
        self.error = error
        self.inspected: list[int] = []

    def __call__(self, pid: int) -> _FakeProcessTree:
        self.inspected.append(pid)
        if self.error is not None:
            raise self.error
        return self

    def children(self, recursive: bool = False) -> list[_FakeDescendant]:
        assert recursive is True
        return self.descendants


class _FakePopen:
    def __init__(self, process: _FakeProcess | None = None, error: OSError | None = None) -> None:
        self.process = process or _FakeProcess()
        self.error = error
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def __call__(self, command: list[str], **kwargs: Any) -> _FakeProcess:
        self.calls.append((command, kwargs))
        if self.error is not None:
            raise self.error
        return self.process


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def on_rerun_started(self, round_number: int, max_rounds: int) -> None:
        self.events.append(("started", round_number, max_rounds))

    def on_rerun_completed(self, round_number: int, exit_code: int, duration_ms: int) -> None:
        self.events.append(("completed", round_number, exit_code))

    def on_rerun_failed(self, round_number: int, error: BaseException) -> None:
        self.events.append(("failed", round_number, type(error)))

    def on_all_reruns_completed(
        self, total_rounds: int, success_count: int, failure_count: int
    ) -> None:
        self.events.append(("all", total_rounds, success_count, failure_count))


def _configuration(tmp_path: Path, settings: RerunSettings | None = None) -> RerunConfiguration:
    resolved = settings or default_settings()
    configuration = RerunConfiguration(
        ProcessParameters(max_rerun_attempts=3, rerun_mode=False, rerun_round=1),
        RerunPaths(tmp_path),
        glue_hint="features",
        settings_loader=lambda _path: resolved,
    )
    configuration.lazy_initialize()
    return configuration


def _with_delay(wait_ms: int) -> RerunSettings:
    settings = default_settings()
    delay = DelaySettings(strategy="fixed", wait_ms=wait_ms, base_ms=0, max_ms=0, multiplier=2.0)
    return replace(settings, rounds=replace(settings.rounds, delay=delay))


def test_successful_round_streams_output_and_notifies_listeners(tmp_path: Path) -> None:
    popen = _FakePopen(_FakeProcess("1 scenario passed\n", exit_code=0))
    stream = io.StringIO()
    recorder = _Recorder()
    executor = RerunProcessExecutor(_configuration(tmp_path), popen_factory=popen, stream=stream)
    executor.add_execution_listener(recorder)

    result = executor.execute_rerun(2, 3)

    assert result.success is True
    assert result.exit_code == 0
    assert result.launched is True
    assert recorder.events == [("started", 2, 3), ("completed", 2, 0)]
    assert stream.getvalue() == "1 scenario passed\n"
    round_log = (tmp_path / "target" / "rerun-round-2.log").read_text(encoding="utf-8")
    assert "[Round 2] 1 scenario passed" in round_log
    command, kwargs = popen.calls[0]
    assert command[-1] == "@target/rerun.txt"
    assert kwargs["stdout"] is subprocess.PIPE
    assert kwargs["cwd"] == str(tmp_path)
    assert executor.current_process is None
    assert executor.is_rerun_running() is False


def test_last_round_notifies_all_reruns_completed(tmp_path: Path) -> None:
    recorder = _Recorder()
    executor = RerunProcessExecutor(
        _configuration(tmp_path),
        popen_factory=_FakePopen(_FakeProcess(exit_code=1)),
        stream=io.StringIO(),
    )
    executor.add_execution_listener(recorder)

    result = executor.execute_rerun(3, 3)

    assert result.success is False
    assert recorder.events[-1] == ("all", 3, 0, 1)
    statistics = executor.get_statistics()
    assert (statistics.total_count, statistics.success_count, statistics.failure_count) == (1, 0, 1)


def test_launch_error_reports_failed_round(tmp_path: Path) -> None:
    recorder = _Recorder()
    executor = RerunProcessExecutor(
        _configuration(tmp_path),
        popen_factory=_FakePopen(error=FileNotFoundError("no python")),
        stream=io.StringIO(),
    )
    executor.add_execution_listener(recorder)

    result = executor.execute_rerun(2, 3)

    assert result.exit_code == -1
    assert result.launched is False
    assert recorder.events == [("started", 2, 3), ("failed", 2, RerunLaunchError)]
    assert executor.get_statistics().failure_count == 1
    assert executor.is_rerun_running() is False


def test_round_exceeding_timeout_is_killed(tmp_path: Path) -> None:
    process = _FakeProcess(hang=True)
    recorder = _Recorder()
    executor = RerunProcessExecutor(
        _configuration(tmp_path),
        popen_factory=_FakePopen(process),
        stream=io.StringIO(),
        process_inspector=_FakeProcessTree(),
    )
    executor.add_execution_listener(recorder)

    result = executor.execute_rerun(2, 2)

    assert process.killed is True
    assert result.timed_out is True
    assert result.success is False
    assert ("failed", 2, RerunTimeoutError) in recorder.events
    assert recorder.events[-1] == ("all", 2, 0, 1)


def test_second_request_while_running_is_rejected(tmp_path: Path) -> None:
    popen = _FakePopen()
    executor = RerunProcessExecutor(
        _configuration(tmp_path), popen_factory=popen, stream=io.StringIO()
    )
    nested_results = []

    class _Reentrant(_Recorder):
        def on_rerun_started(self, round_number: int, max_rounds: int) -> None:
            nested_results.append(executor.execute_rerun(round_number + 1, max_rounds))

    executor.add_execution_listener(_Reentrant())

    executor.execute_rerun(2, 3)

    assert len(popen.calls) == 1
    assert nested_results[0].error_message == "Process already running"
    assert nested_results[0].success is False


def test_retry_delay_is_applied_before_spawning(tmp_path: Path) -> None:
    sleeps: list[float] = []
    executor = RerunProcessExecutor(
        _configuration(tmp_path, _with_delay(1500)),
        popen_factory=_FakePopen(),
        sleep=sleeps.append,
        stream=io.StringIO(),
    )

    executor.execute_rerun(2, 3)

    assert sleeps == [1.5]


def test_initial_run_inherits_output_and_returns_exit_code(tmp_path: Path) -> None:
    popen = _FakePopen(_FakeProcess(exit_code=1))
    executor = RerunProcessExecutor(_configuration(tmp_path), popen_factory=popen)

    result = executor.execute_initial_run(["features/login.feature"])

    command, kwargs = popen.calls[0]
    assert kwargs == {"cwd": str(tmp_path)}
    assert command[-1] == "features/login.feature"
    assert "rerunFailingTestsCount=3" in command
    assert result.exit_code == 1
    assert result.launched is True


def test_initial_run_launch_failure_is_reported(tmp_path: Path) -> None:
    executor = RerunProcessExecutor(
        _configuration(tmp_path), popen_factory=_FakePopen(error=OSError("denied"))
    )

    result = executor.execute_initial_run()

    assert result.exit_code == -1
    assert result.error_message == "denied"


def test_cancel_without_running_round_returns_false(tmp_path: Path) -> None:
    executor = RerunProcessExecutor(_configuration(tmp_path), popen_factory=_FakePopen())

    assert executor.cancel_running_rerun() is False


def test_start_session_resets_statistics(tmp_path: Path) -> None:
    executor = RerunProcessExecutor(
        _configuration(tmp_path), popen_factory=_FakePopen(), stream=io.StringIO()
    )
    executor.execute_rerun(2, 3)

    executor.start_session()

    assert executor.get_statistics().total_count == 0


def test_timeout_also_kills_rounds_spawned_by_the_round_process(tmp_path: Path) -> None:
    process = _FakeProcess(hang=True)
    nested_round = _FakeDescendant(4101)
    nested_worker = _FakeDescendant(4102)
    already_exited = _FakeDescendant(4103, gone=True)
    tree = _FakeProcessTree(nested_round, already_exited, nested_worker)
    executor = RerunProcessExecutor(
        _configuration(tmp_path),
        popen_factory=_FakePopen(process),
        stream=io.StringIO(),
        process_inspector=tree,
    )

    result = executor.execute_rerun(2, 3)

    assert tree.inspected == [4100]
    assert process.killed is True
    assert nested_round.killed is True
    assert nested_worker.killed is True
    assert result.timed_out is True


def test_timeout_kills_round_process_when_its_children_cannot_be_listed(tmp_path: Path) -> None:
    process = _FakeProcess(hang=True)
    executor = RerunProcessExecutor(
        _configuration(tmp_path),
        popen_factory=_FakePopen(process),
        stream=io.StringIO(),
        process_inspector=_FakeProcessTree(error=psutil.AccessDenied(4100)),
    )

    result = executor.execute_rerun(2, 3)

    assert process.killed is True
    assert result.timed_out is True
