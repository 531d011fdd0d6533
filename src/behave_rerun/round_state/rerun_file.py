"""The rerun file: one failed scenario location per line."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class RerunFile:
    """Line-oriented list of scenario locations consumed by the next round.

    Write failures are logged and swallowed; the test run itself must not be
    interrupted by an unwritable report directory.

    behave resolves the lines of an `@file` argument against the directory of
    that file, so locations relative to `base_dir` are written as absolute
    paths.
    """

    def __init__(self, path: Path, base_dir: Path | None = None) -> None:
        self._path = path
        self._base_dir = base_dir
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text("", encoding="utf-8")
            except OSError as exc:
                logger.warning("Failed to clear rerun file %s: %s", self._path, exc)

    def append(self, location: str) -> None:
        self.append_all((location,))

    def append_all(self, locations: Iterable[str]) -> None:
        lines = [self._absolute(location) for location in locations if location]
        if not lines:
            return
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    for line in lines:
                        handle.write(f"{line}\n")
            except OSError as exc:
                logger.error("Failed to write rerun file %s: %s", self._path, exc)
                return
        for line in lines:
            logger.debug("Added to rerun file: %s", line)

    def has_remaining_failures(self) -> bool:
        try:
            return self._path.is_file() and self._path.stat().st_size > 0
        except OSError as exc:
            logger.warning("Failed to inspect rerun file %s: %s", self._path, exc)
            return False

    def read_locations(self) -> tuple[str, ...]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ()
        except OSError as exc:
            logger.warning("Failed to read rerun file %s: %s", self._path, exc)
            return ()
        return tuple(line.strip() for line in text.splitlines() if line.strip())

    def _absolute(self, location: str) -> str:
        if self._base_dir is None:
            return location
        path, separator, line = location.rpartition(":")
        if not separator or not line.isdigit():
            path, line = location, ""
        resolved = Path(path)
        if not resolved.is_absolute():
            resolved = (self._base_dir / resolved).resolve()
        return f"{resolved.as_posix()}:{line}" if line else resolved.as_posix()
