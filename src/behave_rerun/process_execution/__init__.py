"""Rerun process execution exports."""

from .execution_results import (
    RerunExecutionListener,
    RerunExecutionResult,
    RerunLaunchError,
    RerunStatistics,
    RerunTimeoutError,
    StatisticsSource,
)
from .rerun_process_executor import RerunProcessExecutor

__all__ = [
    "RerunExecutionListener",
    "RerunExecutionResult",
    "RerunLaunchError",
    "RerunStatistics",
    "RerunTimeoutError",
    "StatisticsSource",
    "RerunProcessExecutor",
]
