"""Configuration domain exports."""

from .config_scaffold_builder import (
    DEFAULT_SETTINGS_FILENAME,
    build_placeholder_settings,
    write_placeholder_settings,
)
from .loader import ConfigurationError, default_settings, load_rerun_settings
from .process_parameters import (
    RERUN_COUNT_KEY,
    RERUN_MODE_KEY,
    RERUN_ROUND_KEY,
    SETTINGS_PATH_KEY,
    parse_process_parameters,
)
from .rerun_configuration import GLUE_KEY, RerunConfiguration
from .retry_delay import (
    ExponentialBackoffStrategy,
    FixedDelayStrategy,
    RetryDelayStrategy,
    create_delay_strategy,
)
from .runtime_settings import (
    DelaySettings,
    HealthSettings,
    ProcessParameters,
    RerunPaths,
    RerunSettings,
    RoundSettings,
    RunnerSettings,
)

__all__ = [
    "DelaySettings",
    "HealthSettings",
    "ProcessParameters",
    "RerunPaths",
    "RerunSettings",
    "RoundSettings",
    "RunnerSettings",
    "ConfigurationError",
    "default_settings",
    "load_rerun_settings",
    "RERUN_COUNT_KEY",
    "RERUN_MODE_KEY",
    "RERUN_ROUND_KEY",
    "SETTINGS_PATH_KEY",
    "GLUE_KEY",
    "parse_process_parameters",
    "RerunConfiguration",
    "RetryDelayStrategy",
    "FixedDelayStrategy",
    "ExponentialBackoffStrategy",
    "create_delay_strategy",
    "DEFAULT_SETTINGS_FILENAME",
    "build_placeholder_settings",
    "write_placeholder_settings",
]
