"""Binds behave environment hooks to the retry listener."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping, MutableMapping
from pathlib import Path
from typing import Any

from behave.model import Scenario
from behave.runner import Context

from behave_rerun.configuration import GLUE_KEY
from behave_rerun.orchestration import (
    BrowserDriver,
    CleanupHook,
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
)

BEHAVE_STATUS_MAP = {
    "passed": ScenarioStatus.PASSED,
    "failed": ScenarioStatus.FAILED,
    "error": ScenarioStatus.FAILED,
    "hook_error": ScenarioStatus.FAILED,
    "cleanup_error": ScenarioStatus.FAILED,
    "skipped": ScenarioStatus.SKIPPED,
    "untested": ScenarioStatus.SKIPPED,
    "undefined": ScenarioStatus.UNDEFINED,
    "pending": ScenarioStatus.PENDING,
    "pending_warn": ScenarioStatus.PENDING,
}
_FAILED_STEP_STATUSES = frozenset({"failed", "error", "hook_error", "cleanup_error"})
_WRAPPED_HOOKS = ("before_all", "before_scenario", "after_scenario", "after_all")

ListenerFactory = Callable[[RetrySession], RetryScenarioListener]
Hook = Callable[..., Any]

logger = logging.getLogger(__name__)


class ScenarioFailure(Exception):
    """Stands for a failure behave reported without an exception object."""


def status_name(status: Any) -> str:
    """behave status as its lower-case name."""
    return str(getattr(status, "name", status)).lower()


def to_test_case(scenario: Scenario) -> TestCase:
    return TestCase(
        uri=Path(str(scenario.filename)).as_posix(),
        name=scenario.name,
        line=int(scenario.line),
    )


def to_test_result(scenario: Scenario) -> TestResult:
    status = BEHAVE_STATUS_MAP.get(status_name(scenario.status), ScenarioStatus.UNDEFINED)
    if status is not ScenarioStatus.FAILED:
        return TestResult(status=status)
    return TestResult(status=status, error=_first_failure(scenario))


def _first_failure(scenario: Scenario) -> BaseException:
    steps = getattr(scenario, "all_steps", None) or getattr(scenario, "steps", ())
    for step in steps:
        if status_name(step.status) not in _FAILED_STEP_STATUSES:
            continue
        exception = getattr(step, "exception", None)
        if isinstance(exception, BaseException):
            return exception
        message = getattr(step, "error_message", None)
        return ScenarioFailure(_first_line(message) or f"Step failed: {step.name}")
    message = getattr(scenario, "error_message", None)
    return ScenarioFailure(_first_line(message) or "Scenario failed")


def _first_line(message: str | None) -> str:
    if not message:
        return ""
    return message.strip().splitlines()[0]


class RerunEnvironment:
    """behave hook implementations publishing scenario lifecycle events."""

    def __init__(
        self,
        *,
        browser_driver: BrowserDriver | None = None,
        cleanup_hook: CleanupHook | None = None,
        environ: Mapping[str, str] | None = None,
        base_dir: Path | None = None,
        listener_factory: ListenerFactory | None = None,
    ) -> None:
        self._browser_driver = browser_driver
        self._cleanup_hook = cleanup_hook
        self._environ = environ
        self._base_dir = base_dir
        self._listener_factory = listener_factory or RetryScenarioListener
        self._event_bus = ScenarioEventBus()
        self._listener: RetryScenarioListener | None = None

    @property
    def event_bus(self) -> ScenarioEventBus:
        return self._event_bus

    @property
    def listener(self) -> RetryScenarioListener | None:
        return self._listener

    def before_all(self, context: Context) -> None:
        userdata = dict(getattr(context.config, "userdata", None) or {})
        environ = os.environ if self._environ is None else self._environ
        base_dir = self._base_dir or Path.cwd()
        session = RetrySession.from_sources(
            userdata,
            environ,
            base_dir=base_dir,
            glue_hint=userdata.get(GLUE_KEY) or _glue_hint(context, base_dir),
            browser_driver=self._browser_driver,
            cleanup_hook=self._cleanup_hook,
        )
        self._listener = get_process_listener(lambda: self._listener_factory(session))
        self._listener.set_event_publisher(self._event_bus)

    def before_scenario(self, _context: Context, scenario: Scenario) -> None:
        self._event_bus.publish(TestCaseStarted(test_case=to_test_case(scenario)))

    def after_scenario(self, _context: Context, scenario: Scenario) -> None:
        self._event_bus.publish(
            TestCaseFinished(test_case=to_test_case(scenario), result=to_test_result(scenario))
        )

    def after_all(self, _context: Context) -> None:
        self._event_bus.publish(TestRunFinished())
        if self._listener is not None:
            self._listener.close()


def install_rerun_hooks(
    namespace: MutableMapping[str, Any],
    browser_driver: BrowserDriver | None = None,
    cleanup_hook: CleanupHook | None = None,
) -> RerunEnvironment:
    """Install retry hooks into an `environment.py` namespace.

    Hooks the namespace already defines keep running: before-hooks run after
    the retry hook, after-hooks run before it.

    Example:
      # features/environment.py
      from behave_rerun.behave_integration import install_rerun_hooks

      install_rerun_hooks(globals(), browser_driver=PlaywrightDriver())
    """
    environment = RerunEnvironment(browser_driver=browser_driver, cleanup_hook=cleanup_hook)
    for hook_name in _WRAPPED_HOOKS:
        retry_hook = getattr(environment, hook_name)
        existing = namespace.get(hook_name)
        namespace[hook_name] = _chain_hooks(hook_name, retry_hook, existing)
    return environment


def _chain_hooks(hook_name: str, retry_hook: Hook, existing: Hook | None) -> Hook:
    if existing is None:
        return retry_hook
    if hook_name.startswith("before_"):
        first, second = retry_hook, existing
    else:
        first, second = existing, retry_hook

    def chained(context: Context, *args: Any) -> None:
        first(context, *args)
        second(context, *args)

    chained.__name__ = hook_name
    return chained


def _glue_hint(context: Context, base_dir: Path) -> str | None:
    features_dir = getattr(context.config, "base_dir", None)
    if not features_dir:
        return None
    try:
        return Path(features_dir).resolve().relative_to(base_dir.resolve()).as_posix()
    except ValueError:
        return str(features_dir)
