"""Progress reporting exports."""

from .progress_reporter import (
    ProgressInfo,
    ProgressListener,
    ProgressReporter,
    RoundProgress,
    SessionProgress,
)

__all__ = [
    "ProgressInfo",
    "ProgressListener",
    "ProgressReporter",
    "RoundProgress",
    "SessionProgress",
]
