"""Observer list with a per-delegate error boundary."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

DelegateT = TypeVar("DelegateT")

logger = logging.getLogger(__name__)


class DelegateList(Generic[DelegateT]):
    """Ordered delegates notified one by one.

    A delegate raising during `notify` is logged and skipped; the remaining
    delegates are still called.
    """

    def __init__(self, description: str) -> None:
        self._description = description
        self._lock = threading.Lock()
        self._delegates: list[DelegateT] = []

    def add(self, delegate: DelegateT | None) -> None:
        if delegate is None:
            return
        with self._lock:
            if delegate not in self._delegates:
                self._delegates.append(delegate)

    def remove(self, delegate: DelegateT) -> None:
        with self._lock:
            if delegate in self._delegates:
                self._delegates.remove(delegate)

    def __len__(self) -> int:
        return len(self._delegates)

    def __iter__(self) -> Iterator[DelegateT]:
        with self._lock:
            return iter(list(self._delegates))

    def notify(self, event_name: str, callback: Callable[[DelegateT], object]) -> int:
        """Call `callback` for each delegate and return how many failed."""
        failures = 0
        for delegate in self:
            try:
                callback(delegate)
            except Exception:  # pylint: disable=broad-exception-caught
                failures += 1
                logger.warning(
                    "Error notifying %s %s to %r",
                    self._description,
                    event_name,
                    delegate,
                    exc_info=True,
                )
        return failures
