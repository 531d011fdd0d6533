"""Command line interface entry point."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import click

from behave_rerun.configuration import (
    DEFAULT_SETTINGS_FILENAME,
    RERUN_COUNT_KEY,
    SETTINGS_PATH_KEY,
    ConfigurationError,
    RerunConfiguration,
    RerunPaths,
    parse_process_parameters,
    write_placeholder_settings,
)
from behave_rerun.process_execution import RerunProcessExecutor
from behave_rerun.results_writing import read_summary_json
from behave_rerun.round_state import RoundStateStore

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CliError(Exception):
    """Custom CLI error."""


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="behave-rerun")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for retry orchestration messages",
)
def cli(log_level: str) -> None:
    """Rerun failing behave scenarios in fresh processes, round by round."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@cli.command(name="generate-config")
@click.option(
    "--output",
    "output_path",
    required=False,
    default=DEFAULT_SETTINGS_FILENAME,
    show_default=True,
    type=click.Path(path_type=str),
    help="Path to the YAML rerun settings template to write",
)
def generate_config(output_path: str) -> None:
    """Generate a placeholder YAML rerun settings file with guidance comments."""
    try:
        resolved_output = write_placeholder_settings(output_path)
    except (FileExistsError, OSError) as exc:
        raise CliError(str(exc)) from exc
    click.echo(str(resolved_output))


@cli.command(name="run")
@click.option(
    "--config",
    "config_path",
    required=False,
    type=click.Path(path_type=str),
    help=f"Path to YAML rerun settings (default: {DEFAULT_SETTINGS_FILENAME} when present)",
)
@click.option(
    "--rerun-count",
    "rerun_count",
    required=False,
    type=click.IntRange(min=0),
    help=f"Maximum attempts per scenario (falls back to ${RERUN_COUNT_KEY}; 0 disables)",
)
@click.argument("features", nargs=-1, type=click.Path(path_type=str))
def run_tests(config_path: str | None, rerun_count: int | None, features: tuple[str, ...]) -> int:
    """Run behave and rerun failing scenarios until they pass or attempts run out."""
    base_dir = Path.cwd()
    if config_path is None and (base_dir / DEFAULT_SETTINGS_FILENAME).is_file():
        config_path = DEFAULT_SETTINGS_FILENAME
    parameters = parse_process_parameters(
        {RERUN_COUNT_KEY: rerun_count, SETTINGS_PATH_KEY: config_path},
        os.environ,
    )
    configuration = RerunConfiguration(parameters, RerunPaths(base_dir))
    try:
        configuration.lazy_initialize()
    except ConfigurationError as exc:
        raise CliError(str(exc)) from exc

    round_state_store = RoundStateStore(configuration.paths.round_state_file)
    round_state_store.clear()
    result = RerunProcessExecutor(configuration).execute_initial_run(features)
    if not result.launched:
        raise CliError(f"behave could not be started: {result.error_message}")

    record = round_state_store.load()
    if record is not None and record.last_exit_code is not None:
        exit_code = record.last_exit_code
    else:
        exit_code = result.exit_code
    summary_file = configuration.paths.summary_file
    if summary_file.is_file():
        click.echo(str(summary_file))
    return exit_code


@cli.command(name="summary")
@click.option(
    "--target-dir",
    "target_dir",
    required=False,
    default="target",
    show_default=True,
    type=click.Path(path_type=str),
    help="Directory holding rerun-summary.json",
)
def show_summary(target_dir: str) -> None:
    """Print the totals of the last rerun session."""
    summary_path = Path(target_dir) / RerunPaths().summary_file.name
    try:
        payload = read_summary_json(summary_path)
    except (OSError, ValueError) as exc:
        raise CliError(f"Cannot read rerun summary {summary_path}: {exc}") from exc

    totals = payload["summary"]
    click.echo(f"Timestamp: {payload.get('timestamp', '-')}")
    click.echo(f"Max Retry Attempts: {payload.get('maxRetryAttempts', '-')}")
    click.echo(f"Total Scenarios: {totals.get('totalScenarios', 0)}")
    click.echo(f"Passed: {totals.get('passed', 0)}")
    click.echo(f"Failed: {totals.get('failed', 0)}")
    click.echo(f"Retried (passed after retry): {totals.get('retriedPassed', 0)}")
    click.echo(f"Success Rate: {totals.get('successRate', '-')}")
    if "health" in payload:
        click.echo(f"Health: {payload['health']}")
    events = payload.get("retryEvents", [])
    click.echo(f"Retry Events: {len(events)}")
    for event in events:
        click.echo(
            f"  - {event.get('scenario')} [Attempt {event.get('attempt')}] "
            f"{event.get('errorType', 'UnknownError')}"
        )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for console_scripts wiring."""
    argv = argv if argv is not None else sys.argv[1:]
    try:
        result = cli.main(args=list(argv), standalone_mode=False)
    except CliError as exc:
        click.echo(str(exc), err=True)
        return 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        click.echo("Aborted.", err=True)
        return 1
    return result if isinstance(result, int) else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
