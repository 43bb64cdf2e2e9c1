"""Public API surface for ct_common."""

from ct_common.config.env import env_flag, env_path, env_value, parse_bool_env
from ct_common.errors import (
    ActionTimedOut,
    AssertionFailed,
    BuildError,
    ConfigurationError,
    HarnessError,
    ParticipantExited,
    PreparationError,
    ResolutionError,
    ScenarioFailure,
    ScenarioTimedOut,
    ScenarioValidationError,
    TopologyError,
    error_to_payload,
    wrap_error,
)
from ct_common.logging import attach_run_log, configure_logging, detach_run_log

__all__ = [
    "ActionTimedOut",
    "AssertionFailed",
    "BuildError",
    "ConfigurationError",
    "HarnessError",
    "ParticipantExited",
    "PreparationError",
    "ResolutionError",
    "ScenarioFailure",
    "ScenarioTimedOut",
    "ScenarioValidationError",
    "TopologyError",
    "attach_run_log",
    "configure_logging",
    "detach_run_log",
    "env_flag",
    "env_path",
    "env_value",
    "error_to_payload",
    "parse_bool_env",
    "wrap_error",
]
