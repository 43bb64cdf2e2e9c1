"""Lookup of ``CT_*`` environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "CT_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def env_value(name: str, environ: Optional[Mapping[str, str]] = None) -> str | None:
    """Return ``CT_<name>`` stripped; blank values count as unset."""
    source = os.environ if environ is None else environ
    value = source.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def parse_bool_env(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() in _TRUE_VALUES


def env_flag(name: str, environ: Optional[Mapping[str, str]] = None) -> bool | None:
    return parse_bool_env(env_value(name, environ))


def env_path(name: str, environ: Optional[Mapping[str, str]] = None) -> Path | None:
    value = env_value(name, environ)
    return None if value is None else Path(value).expanduser()
