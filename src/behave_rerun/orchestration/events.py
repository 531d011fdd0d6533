"""Scenario lifecycle events and the in-process event bus."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from behave_rerun.notifications import DelegateList

from .scenario_models import ScenarioStatus

EventHandler = Callable[[Any], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TestCase:
    """A scenario as seen by the event source."""

    __test__ = False

    uri: str
    name: str
    line: int

    @property
    def location(self) -> str:
        return f"{self.uri}:{self.line}"


@dataclass(frozen=True)
class TestResult:
    """Status of one finished scenario plus its first error, if any."""

    __test__ = False

    status: ScenarioStatus
    error: BaseException | None = None


@dataclass(frozen=True)
class TestCaseStarted:
    __test__ = False

    test_case: TestCase


@dataclass(frozen=True)
class TestCaseFinished:
    __test__ = False

    test_case: TestCase
    result: TestResult


@dataclass(frozen=True)
class TestRunFinished:
    __test__ = False


class EventPublisher(Protocol):  # pylint: disable=too-few-public-methods
    """Anything accepting lifecycle handlers per event type."""

    def register_handler(self, event_type: type, handler: EventHandler) -> None: ...


class ScenarioEventBus:
    """Dispatches published events to the handlers registered for their type."""

    def __init__(self) -> None:
        self._handlers: dict[type, DelegateList[EventHandler]] = {}

    def register_handler(self, event_type: type, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(
            event_type, DelegateList(f"{event_type.__name__} handler")
        )
        handlers.add(handler)

    def handler_count(self, event_type: type | None = None) -> int:
        if event_type is not None:
            handlers = self._handlers.get(event_type)
            return 0 if handlers is None else len(handlers)
        return sum(len(handlers) for handlers in self._handlers.values())

    def publish(self, event: object) -> None:
        handlers = self._handlers.get(type(event))
        if handlers is None:
            logger.debug("No handlers registered for %s", type(event).__name__)
            return
        handlers.notify(type(event).__name__, lambda handler: handler(event))
