"""Results writing domain exports."""

from .report_models import RerunSummary, ReportedRetryEvent
from .run_report_writer import (
    build_summary_payload,
    read_summary_json,
    write_rerun_log,
    write_summary_json,
)

__all__ = [
    "RerunSummary",
    "ReportedRetryEvent",
    "build_summary_payload",
    "read_summary_json",
    "write_rerun_log",
    "write_summary_json",
]
