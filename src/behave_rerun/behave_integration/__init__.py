"""behave adapter exports."""

from behave_rerun.orchestration import BrowserDriver

from .behave_environment import (
    BEHAVE_STATUS_MAP,
    RerunEnvironment,
    ScenarioFailure,
    install_rerun_hooks,
    status_name,
    to_test_case,
    to_test_result,
)

__all__ = [
    "BEHAVE_STATUS_MAP",
    "BrowserDriver",
    "RerunEnvironment",
    "ScenarioFailure",
    "install_rerun_hooks",
    "status_name",
    "to_test_case",
    "to_test_result",
]
