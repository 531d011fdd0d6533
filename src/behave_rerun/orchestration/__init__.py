"""Retry orchestration exports."""

from .events import (
    EventHandler,
    EventPublisher,
    ScenarioEventBus,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestResult,
    TestRunFinished,
)
from .retry_scenario_listener import (
    ListenerState,
    RetryScenarioListener,
    get_process_listener,
    reset_process_listener,
)
from .retry_session import BrowserDriver, CleanupHook, RetrySession
from .scenario_models import (
    FinalTally,
    RetryEvent,
    RoundResult,
    ScenarioIdentity,
    ScenarioResult,
    ScenarioStatus,
)

__all__ = [
    "EventHandler",
    "EventPublisher",
    "ScenarioEventBus",
    "TestCase",
    "TestCaseFinished",
    "TestCaseStarted",
    "TestResult",
    "TestRunFinished",
    "ListenerState",
    "RetryScenarioListener",
    "get_process_listener",
    "reset_process_listener",
    "BrowserDriver",
    "CleanupHook",
    "RetrySession",
    "FinalTally",
    "RetryEvent",
    "RoundResult",
    "ScenarioIdentity",
    "ScenarioResult",
    "ScenarioStatus",
]
