"""Writers for the final rerun log and JSON summary."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .report_models import RerunSummary

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
_RULE = "=" * 80


def write_rerun_log(path: Path | str, summary: RerunSummary) -> None:
    """Write the human-readable rerun report."""
    lines = [
        _RULE,
        "RERUN EXECUTION LOG",
        f"Timestamp: {summary.timestamp.strftime(TIMESTAMP_FORMAT)}",
        f"Max Retry Attempts: {summary.max_retry_attempts}",
        _RULE,
        "",
        "SUMMARY:",
        f"  Total Scenarios: {summary.total_scenarios}",
        f"  Passed: {summary.passed}",
        f"  Failed: {summary.failed}",
        f"  Retried (passed after retry): {summary.retried_passed}",
        f"  Success Rate: {summary.formatted_success_rate}",
    ]
    if summary.health_status is not None:
        lines.append(f"  Health: {summary.health_status}")
    lines.extend(("", "RETRY EVENTS:"))
    for event in summary.retry_events:
        lines.append(
            f"  - {event.timestamp.strftime(TIMESTAMP_FORMAT)} | {event.scenario} | "
            f"Attempt {event.attempt} | {event.error_type}: {event.error_message}"
        )

    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text("\n".join(lines) + "\n", encoding="utf-8")


def write_summary_json(path: Path | str, summary: RerunSummary) -> None:
    """Write the structured rerun summary."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(build_summary_payload(summary), indent=2) + "\n", encoding="utf-8")


def build_summary_payload(summary: RerunSummary) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "timestamp": summary.timestamp.strftime(TIMESTAMP_FORMAT),
        "maxRetryAttempts": summary.max_retry_attempts,
        "summary": {
            "totalScenarios": summary.total_scenarios,
            "passed": summary.passed,
            "failed": summary.failed,
            "retriedPassed": summary.retried_passed,
            "successRate": summary.formatted_success_rate,
        },
        "retryEvents": [
            {"scenario": event.scenario, "attempt": event.attempt, "errorType": event.error_type}
            for event in summary.retry_events
        ],
    }
    if summary.health_status is not None:
        payload["health"] = summary.health_status
    if summary.metrics:
        payload["metrics"] = dict(summary.metrics)
    return payload


def read_summary_json(path: Path | str) -> dict[str, Any]:
    """Read a summary written by `write_summary_json`.

    Raises:
      OSError: If the file cannot be read.
      ValueError: If the file is not a JSON object with a summary block.
    """
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict) or not isinstance(payload.get("summary"), dict):
        raise ValueError(f"{path} is not a rerun summary")
    return payload
