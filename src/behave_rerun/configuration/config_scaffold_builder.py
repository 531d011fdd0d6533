"""Settings scaffold generation helpers."""

from __future__ import annotations

from pathlib import Path

DEFAULT_SETTINGS_FILENAME = "rerun.yaml"

_SETTINGS_SCAFFOLD_TEMPLATE = """# Rerun settings for behave-rerun.
# Every value is optional; remove a line to fall back to its default.
# The number of rounds is not set here: pass -D rerunFailingTestsCount=<n>
# to behave, or --rerun-count to `behave-rerun run`.

runner:
  # Interpreter used to launch `python -m behave` (default: current interpreter).
  # executable: "python3"
  # behave base directory holding steps/ and environment.py (default: auto-scanned).
  # glue: "features"
  features:
    - "features"
  extra_args: []

rerun:
  # Each round is killed and counted as failed after this many seconds.
  round_timeout_seconds: 3600
  # Restart the browser before every rerun round.
  restart_browser: true
  delay:
    # fixed: wait_ms before every round; exponential: base_ms * multiplier^(round-2).
    strategy: "fixed"
    wait_ms: 0
    base_ms: 1000
    max_ms: 30000
    multiplier: 2.0

health:
  min_free_disk_mb: 512
  max_idle_seconds: 300
"""


def build_placeholder_settings() -> str:
    """Build a YAML settings template with defaults and inline guidance."""
    return _SETTINGS_SCAFFOLD_TEMPLATE


def write_placeholder_settings(output_path: Path | str) -> Path:
    """Write the settings template to the requested output path.

    Args:
      output_path: Destination file path for the scaffold.

    Returns:
      The resolved destination path.

    Raises:
      FileExistsError: If the destination file already exists.
      OSError: If writing the scaffold fails.
    """
    destination = Path(output_path)
    if destination.exists():
        raise FileExistsError(f"Settings file already exists: {destination.resolve()}")
    destination.write_text(build_placeholder_settings(), encoding="utf-8")
    return destination.resolve()
