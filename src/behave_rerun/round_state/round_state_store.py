"""Round-state record shared between the processes of one retry session."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

ROUND_STATE_VERSION = 1

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistedResult:
    """Latest status and attempt of one scenario."""

    status: str
    attempt: int


@dataclass(frozen=True)
class PersistedRetryEvent:
    """One failed attempt as it is carried across processes."""

    scenario: str
    attempt: int
    error_type: str
    error_message: str
    timestamp: str


@dataclass(frozen=True)
class RoundStateRecord:
    """Everything a later round needs to continue the session."""

    max_rerun_attempts: int
    round: int
    attempts: Mapping[str, int] = field(default_factory=dict)
    results: Mapping[str, PersistedResult] = field(default_factory=dict)
    retry_events: tuple[PersistedRetryEvent, ...] = ()
    last_exit_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": ROUND_STATE_VERSION,
            "maxRerunAttempts": self.max_rerun_attempts,
            "round": self.round,
            "attempts": dict(self.attempts),
            "results": {
                key: {"status": result.status, "attempt": result.attempt}
                for key, result in self.results.items()
            },
            "retryEvents": [
                {
                    "scenario": event.scenario,
                    "attempt": event.attempt,
                    "errorType": event.error_type,
                    "errorMessage": event.error_message,
                    "timestamp": event.timestamp,
                }
                for event in self.retry_events
            ],
            "lastExitCode": self.last_exit_code,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> RoundStateRecord:
        """Build a record from its JSON form; raises on malformed input."""
        if payload.get("version") != ROUND_STATE_VERSION:
            raise ValueError(f"unsupported round-state version: {payload.get('version')!r}")
        last_exit_code = payload.get("lastExitCode")
        return cls(
            max_rerun_attempts=int(payload["maxRerunAttempts"]),
            round=int(payload["round"]),
            attempts={str(key): int(value) for key, value in payload["attempts"].items()},
            results={
                str(key): PersistedResult(
                    status=str(value["status"]), attempt=int(value["attempt"])
                )
                for key, value in payload["results"].items()
            },
            retry_events=tuple(
                PersistedRetryEvent(
                    scenario=str(item["scenario"]),
                    attempt=int(item["attempt"]),
                    error_type=str(item["errorType"]),
                    error_message=str(item.get("errorMessage", "")),
                    timestamp=str(item.get("timestamp", "")),
                )
                for item in payload["retryEvents"]
            ),
            last_exit_code=None if last_exit_code is None else int(last_exit_code),
        )


class RoundStateStore:
    """Loads and atomically saves the round-state record as JSON."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RoundStateRecord | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read round state %s: %s", self._path, exc)
            return None
        try:
            payload = json.loads(text)
            if not isinstance(payload, dict):
                raise ValueError("round state root must be an object")
            return RoundStateRecord.from_dict(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable round state %s: %s", self._path, exc)
            return None

    def save(self, record: RoundStateRecord) -> None:
        payload = json.dumps(record.to_dict(), indent=2, sort_keys=True)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                handle.write(payload)
                temp_name = handle.name
            os.replace(temp_name, self._path)
        except OSError as exc:
            logger.error("Failed to save round state %s: %s", self._path, exc)

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove round state %s: %s", self._path, exc)
