"""Parsing of the per-process retry parameters."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .runtime_settings import ProcessParameters

RERUN_COUNT_KEY = "rerunFailingTestsCount"
RERUN_MODE_KEY = "rerun.mode"
RERUN_ROUND_KEY = "rerun.round"
SETTINGS_PATH_KEY = "rerun.config"

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})

logger = logging.getLogger(__name__)


def parse_process_parameters(
    *sources: Mapping[str, Any] | None,
) -> ProcessParameters:
    """Read retry parameters from the first source that defines each key.

    Sources are typically behave userdata followed by the environment. Invalid
    values never raise: a bad rerun count disables retries and a bad round
    number falls back to round 1.
    """
    raw_count = _lookup(sources, RERUN_COUNT_KEY)
    raw_mode = _lookup(sources, RERUN_MODE_KEY)
    raw_round = _lookup(sources, RERUN_ROUND_KEY)
    raw_settings_path = _lookup(sources, SETTINGS_PATH_KEY)

    settings_path = None
    if raw_settings_path is not None and str(raw_settings_path).strip():
        settings_path = Path(str(raw_settings_path).strip())

    return ProcessParameters(
        max_rerun_attempts=_parse_rerun_count(raw_count),
        rerun_mode=_parse_bool(raw_mode),
        rerun_round=_parse_round(raw_round),
        settings_path=settings_path,
    )


def _lookup(sources: tuple[Mapping[str, Any] | None, ...], key: str) -> Any:
    for source in sources:
        if source is None:
            continue
        value = source.get(key)
        if value is not None:
            return value
    return None


def _parse_rerun_count(value: Any) -> int:
    if value is None or not str(value).strip():
        logger.debug("%s not specified, retry mechanism disabled", RERUN_COUNT_KEY)
        return 0
    try:
        count = int(str(value).strip())
    except ValueError:
        logger.warning("Invalid %s value: %s, disabling retry", RERUN_COUNT_KEY, value)
        return 0
    if count <= 0:
        logger.debug("%s=%d, retry mechanism disabled", RERUN_COUNT_KEY, count)
        return 0
    return count


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_round(value: Any) -> int:
    if value is None:
        return 1
    try:
        return max(1, int(str(value).strip()))
    except ValueError:
        logger.warning("Invalid %s value: %s, assuming round 1", RERUN_ROUND_KEY, value)
        return 1
