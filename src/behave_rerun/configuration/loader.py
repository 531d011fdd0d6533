"""Settings file loader service."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

from .runtime_settings import (
    DelaySettings,
    HealthSettings,
    RerunSettings,
    RoundSettings,
    RunnerSettings,
)

DEFAULT_FEATURES_PATH = "features"
DELAY_STRATEGIES = ("fixed", "exponential")


class ConfigurationError(Exception):
    """Raised when the settings file is invalid."""


def default_settings() -> RerunSettings:
    """Settings used when no settings file exists."""
    return _build_settings({}, path=None)


def load_rerun_settings(settings_path: Path | str | None) -> RerunSettings:
    """Load and validate the rerun settings file.

    A missing file is not an error: every section falls back to its defaults.
    """
    if settings_path is None:
        return default_settings()
    path = Path(settings_path)
    if not path.exists():
        return default_settings()

    text = path.read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse settings file: {exc}") from exc

    if parsed is None:
        parsed = {}

    if not isinstance(parsed, Mapping):
        raise ConfigurationError("Settings root must be a mapping.")

    return _build_settings(parsed, path=path)


def _build_settings(parsed: Mapping[str, Any], *, path: Path | None) -> RerunSettings:
    return RerunSettings(
        path=path,
        runner=_parse_runner_section(parsed.get("runner")),
        rounds=_parse_rerun_section(parsed.get("rerun")),
        health=_parse_health_section(parsed.get("health")),
    )


def _parse_runner_section(value: Any) -> RunnerSettings:
    section = _optional_mapping(value, "runner")
    executable = _optional_string(section.get("executable"), "runner.executable")
    glue = _optional_string(section.get("glue"), "runner.glue")
    features = _normalize_string_sequence(section.get("features"), "runner.features")
    extra_args = _normalize_string_sequence(section.get("extra_args"), "runner.extra_args")
    return RunnerSettings(
        executable=executable,
        glue=glue,
        features=features or (DEFAULT_FEATURES_PATH,),
        extra_args=extra_args,
    )


def _parse_rerun_section(value: Any) -> RoundSettings:
    section = _optional_mapping(value, "rerun")
    round_timeout_seconds = _require_positive_int(
        section.get("round_timeout_seconds", 3600), "rerun.round_timeout_seconds"
    )
    restart_browser = _require_bool(section.get("restart_browser", True), "rerun.restart_browser")
    return RoundSettings(
        round_timeout_seconds=round_timeout_seconds,
        restart_browser=restart_browser,
        delay=_parse_delay_section(section.get("delay")),
    )


def _parse_delay_section(value: Any) -> DelaySettings:
    section = _optional_mapping(value, "rerun.delay")
    strategy = _require_non_empty_string(
        section.get("strategy", "fixed"), "rerun.delay.strategy"
    ).lower()
    if strategy not in DELAY_STRATEGIES:
        raise ConfigurationError(
            f"rerun.delay.strategy must be one of {', '.join(DELAY_STRATEGIES)}."
        )
    multiplier = section.get("multiplier", 2.0)
    if isinstance(multiplier, bool) or not isinstance(multiplier, int | float):
        raise ConfigurationError("rerun.delay.multiplier must be a number.")
    if multiplier < 1:
        raise ConfigurationError("rerun.delay.multiplier must be at least 1.")
    return DelaySettings(
        strategy=strategy,
        wait_ms=_require_non_negative_int(section.get("wait_ms", 0), "rerun.delay.wait_ms"),
        base_ms=_require_non_negative_int(section.get("base_ms", 1000), "rerun.delay.base_ms"),
        max_ms=_require_non_negative_int(section.get("max_ms", 30000), "rerun.delay.max_ms"),
        multiplier=float(multiplier),
    )


def _parse_health_section(value: Any) -> HealthSettings:
    section = _optional_mapping(value, "health")
    return HealthSettings(
        min_free_disk_mb=_require_non_negative_int(
            section.get("min_free_disk_mb", 512), "health.min_free_disk_mb"
        ),
        max_idle_seconds=_require_positive_int(
            section.get("max_idle_seconds", 300), "health.max_idle_seconds"
        ),
    )


def _normalize_string_sequence(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        stripped = value.strip()
        return (stripped,) if stripped else ()
    if isinstance(value, Sequence):
        normalized = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigurationError(f"{field_name} entries must be strings.")
            stripped = item.strip()
            if stripped:
                normalized.append(stripped)
        return tuple(normalized)
    raise ConfigurationError(f"{field_name} must be a string or list of strings.")


def _optional_mapping(value: Any, section_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Settings section '{section_name}' must be a mapping.")
    return value


def _require_non_empty_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string.")
    stripped = value.strip()
    if not stripped:
        raise ConfigurationError(f"{field_name} must not be empty.")
    return stripped


def _optional_string(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string.")
    stripped = value.strip()
    return stripped or None


def _require_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be true or false.")
    return value


def _require_positive_int(value: Any, field_name: str) -> int:
    checked = _require_non_negative_int(value, field_name)
    if checked == 0:
        raise ConfigurationError(f"{field_name} must be greater than zero.")
    return checked


def _require_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{field_name} must be an integer.")
    if value < 0:
        raise ConfigurationError(f"{field_name} must not be negative.")
    return value
