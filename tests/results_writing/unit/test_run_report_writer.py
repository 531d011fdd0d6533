"""Rerun report writer tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from behave_rerun.results_writing import (
    RerunSummary,
    ReportedRetryEvent,
    build_summary_payload,
    read_summary_json,
    write_rerun_log,
    write_summary_json,
)


def _summary(**overrides) -> RerunSummary:
    values = {
        "timestamp": datetime(2026, 1, 5, 10, 30, 0, tzinfo=UTC),
        "max_retry_attempts": 3,
        "total_scenarios": 4,
        "passed": 3,
        "failed": 1,
        "retried_passed": 1,
        "retry_events": (
            ReportedRetryEvent(
                scenario="login;Valid login",
                attempt=1,
                error_type="AssertionError",
                error_message="expected dashboard",
                timestamp=datetime(2026, 1, 5, 10, 29, 0, tzinfo=UTC),
            ),
        ),
        "health_status": "HEALTHY",
    }
    values.update(overrides)
    return RerunSummary(**values)


def test_rerun_log_lists_summary_and_retry_events(tmp_path: Path) -> None:
    log_path = tmp_path / "target" / "rerun.log"

    write_rerun_log(log_path, _summary())

    text = log_path.read_text(encoding="utf-8")
    assert "RERUN EXECUTION LOG" in text
    assert "Timestamp: 2026-01-05 10:30:00" in text
    assert "Max Retry Attempts: 3" in text
    assert "  Total Scenarios: 4" in text
    assert "  Retried (passed after retry): 1" in text
    assert "  Success Rate: 75.00%" in text
    assert "  Health: HEALTHY" in text
    assert (
        "  - 2026-01-05 10:29:00 | login;Valid login | Attempt 1 | "
        "AssertionError: expected dashboard"
    ) in text


def test_rerun_log_omits_health_when_unknown(tmp_path: Path) -> None:
    log_path = tmp_path / "rerun.log"

    write_rerun_log(log_path, _summary(health_status=None, retry_events=()))

    text = log_path.read_text(encoding="utf-8")
    assert "Health:" not in text
    assert text.rstrip().endswith("RETRY EVENTS:")


def test_summary_payload_matches_report_schema() -> None:
    payload = build_summary_payload(_summary(metrics={"totalFailures": 1}))

    assert payload == {
        "timestamp": "2026-01-05 10:30:00",
        "maxRetryAttempts": 3,
        "summary": {
            "totalScenarios": 4,
            "passed": 3,
            "failed": 1,
            "retriedPassed": 1,
            "successRate": "75.00%",
        },
        "retryEvents": [
            {"scenario": "login;Valid login", "attempt": 1, "errorType": "AssertionError"}
        ],
        "health": "HEALTHY",
        "metrics": {"totalFailures": 1},
    }


def test_empty_session_reports_zero_success_rate() -> None:
    payload = build_summary_payload(
        _summary(total_scenarios=0, passed=0, failed=0, retried_passed=0, retry_events=())
    )

    assert payload["summary"]["successRate"] == "0.00%"
    assert payload["retryEvents"] == []
    assert "metrics" not in payload


def test_summary_json_is_read_back(tmp_path: Path) -> None:
    summary_path = tmp_path / "target" / "rerun-summary.json"

    write_summary_json(summary_path, _summary())

    assert read_summary_json(summary_path) == json.loads(
        json.dumps(build_summary_payload(_summary()))
    )


def test_reading_non_summary_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "other.json"
    path.write_text('["not", "a", "summary"]', encoding="utf-8")

    with pytest.raises(ValueError, match="is not a rerun summary"):
        read_summary_json(path)
