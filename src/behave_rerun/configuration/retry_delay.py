"""Delay strategies applied between rerun rounds."""

from __future__ import annotations

import logging
from typing import Protocol

from .runtime_settings import DelaySettings

logger = logging.getLogger(__name__)


class RetryDelayStrategy(Protocol):
    """Computes the pause before a given round."""

    name: str

    def calculate_delay(self, round_number: int) -> int: ...


class FixedDelayStrategy:  # pylint: disable=too-few-public-methods
    """Same pause before every rerun round."""

    name = "fixed"

    def __init__(self, delay_ms: int) -> None:
        self.delay_ms = max(0, delay_ms)

    def calculate_delay(self, round_number: int) -> int:
        if round_number <= 1:
            return 0
        return self.delay_ms


class ExponentialBackoffStrategy:  # pylint: disable=too-few-public-methods
    """Pause growing by `multiplier` per round, capped at `max_ms`."""

    name = "exponential"

    def __init__(self, base_ms: int, max_ms: int, multiplier: float) -> None:
        self.base_ms = max(0, base_ms)
        self.max_ms = max(0, max_ms)
        self.multiplier = multiplier

    def calculate_delay(self, round_number: int) -> int:
        if round_number <= 1:
            return 0
        delay = self.base_ms * self.multiplier ** (round_number - 2)
        return int(min(self.max_ms, delay))


def create_delay_strategy(settings: DelaySettings) -> RetryDelayStrategy:
    """Build the configured strategy, falling back to a fixed delay."""
    if settings.strategy == "exponential":
        logger.debug(
            "Using exponential backoff - base: %dms, max: %dms, multiplier: %s",
            settings.base_ms,
            settings.max_ms,
            settings.multiplier,
        )
        return ExponentialBackoffStrategy(settings.base_ms, settings.max_ms, settings.multiplier)
    logger.debug("Using fixed delay: %dms", settings.wait_ms)
    return FixedDelayStrategy(settings.wait_ms)
