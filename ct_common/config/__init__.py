"""Configuration helpers for ct_common."""

from .env import ENV_PREFIX, env_flag, env_path, env_value, parse_bool_env

__all__ = [
    "ENV_PREFIX",
    "env_flag",
    "env_path",
    "env_value",
    "parse_bool_env",
]
