"""Configuration domain entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ProcessParameters:
    """Retry parameters handed to one test-runner process at startup."""

    max_rerun_attempts: int
    rerun_mode: bool
    rerun_round: int
    settings_path: Path | None = None

    @property
    def retry_enabled(self) -> bool:
        return self.max_rerun_attempts > 0


@dataclass(frozen=True)
class RunnerSettings:
    """How a behave round is launched."""

    executable: str | None
    glue: str | None
    features: tuple[str, ...]
    extra_args: tuple[str, ...]


@dataclass(frozen=True)
class DelaySettings:
    """Pause applied before each rerun round."""

    strategy: str
    wait_ms: int
    base_ms: int
    max_ms: int
    multiplier: float


@dataclass(frozen=True)
class RoundSettings:
    """Per-round supervision settings."""

    round_timeout_seconds: int
    restart_browser: bool
    delay: DelaySettings


@dataclass(frozen=True)
class HealthSettings:
    """Thresholds used by the health checker."""

    min_free_disk_mb: int
    max_idle_seconds: int


@dataclass(frozen=True)
class RerunSettings:
    """Top-level settings aggregate loaded from the YAML settings file."""

    path: Path | None
    runner: RunnerSettings
    rounds: RoundSettings
    health: HealthSettings


@dataclass(frozen=True)
class RerunPaths:
    """Fixed artifact locations below the working directory."""

    base_dir: Path = field(default_factory=Path.cwd)

    @property
    def target_dir(self) -> Path:
        return self.base_dir / "target"

    @property
    def rerun_file(self) -> Path:
        return self.target_dir / "rerun.txt"

    @property
    def rerun_log_file(self) -> Path:
        return self.target_dir / "rerun.log"

    @property
    def summary_file(self) -> Path:
        return self.target_dir / "rerun-summary.json"

    @property
    def round_state_file(self) -> Path:
        return self.target_dir / "rerun-state.json"

    def round_output_file(self, round_number: int) -> Path:
        return self.target_dir / f"rerun-round-{round_number}.log"

    def round_output_files(self) -> list[Path]:
        return sorted(self.target_dir.glob("rerun-round-*.log"))

    def relative_rerun_file(self) -> str:
        """Rerun file path as passed to behave, relative to the base directory."""
        return self.rerun_file.relative_to(self.base_dir).as_posix()
