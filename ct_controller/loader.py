"""Load configuration, scenario and suite files (YAML or JSON)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from ct_common.api import ConfigurationError, wrap_error
from ct_controller.models.config import HarnessConfig
from ct_controller.models.scenario import Scenario, Suite

M = TypeVar("M", bound=BaseModel)


def _read_document(path: Path) -> Any:
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise wrap_error(
            ConfigurationError, f"Cannot read {path}: {exc}", context={"path": path}, cause=exc
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise wrap_error(
            ConfigurationError, f"Cannot parse {path}: {exc}", context={"path": path}, cause=exc
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{path} must contain a mapping at the top level", context={"path": path}
        )
    return data


def _validate(model: Type[M], data: Any, path: Path) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ConfigurationError(
            f"Invalid {model.__name__} in {path}",
            context={"path": path, "problems": problems},
            cause=exc,
        ) from exc


def load_config(path: Path) -> HarnessConfig:
    """Load a harness configuration and apply environment overrides."""
    config = _validate(HarnessConfig, _read_document(path), path)
    return config.apply_env_overrides()


def load_scenario(path: Path) -> Scenario:
    data = _read_document(path)
    data.setdefault("name", Path(path).stem)
    return _validate(Scenario, data, path)


def load_suite(path: Path) -> Suite:
    """Load a suite file, or wrap a single scenario file into a one-item suite."""
    data = _read_document(path)
    if "scenarios" not in data:
        data.setdefault("name", Path(path).stem)
        scenario = _validate(Scenario, data, path)
        return Suite(name=scenario.name, scenarios=[scenario])
    data.setdefault("name", Path(path).stem)
    return _validate(Suite, data, path)
