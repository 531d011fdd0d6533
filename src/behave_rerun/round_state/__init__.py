"""Rerun file and round-state persistence exports."""

from .rerun_file import RerunFile
from .round_state_store import (
    ROUND_STATE_VERSION,
    PersistedRetryEvent,
    PersistedResult,
    RoundStateRecord,
    RoundStateStore,
)

__all__ = [
    "ROUND_STATE_VERSION",
    "PersistedRetryEvent",
    "PersistedResult",
    "RerunFile",
    "RoundStateRecord",
    "RoundStateStore",
]
