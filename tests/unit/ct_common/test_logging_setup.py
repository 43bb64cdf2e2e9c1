"""Tests for the structlog-based logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from ct_common.config.env import env_flag, env_path, env_value, parse_bool_env
from ct_common.logging import _resolve_level, attach_run_log, detach_run_log


pytestmark = pytest.mark.unit_common


@pytest.mark.parametrize(
    "value,expected",
    [("1", True), ("true", True), ("YES", True), ("0", False), ("off", False), (None, None), ("maybe", False)],
)
def test_parse_bool_env(value, expected) -> None:
    assert parse_bool_env(value) is expected


def test_env_helpers_read_prefixed_names() -> None:
    environ = {"CT_LOG_JSON": "on", "CT_OUT_DIR": "~/runs", "CT_LOG_FILE": "  "}

    assert env_flag("LOG_JSON", environ) is True
    assert env_flag("MISSING", environ) is None
    assert env_value("LOG_FILE", environ) is None
    assert env_path("OUT_DIR", environ) == Path("~/runs").expanduser()


def test_resolve_level() -> None:
    assert _resolve_level(None, False) == logging.INFO
    assert _resolve_level("warning", False) == logging.WARNING
    assert _resolve_level("10", False) == logging.DEBUG
    assert _resolve_level("error", True) == logging.DEBUG


def test_attach_run_log_mirrors_records(tmp_path) -> None:
    path = tmp_path / "run" / "integration-test.log"
    root = logging.getLogger()
    previous = root.level
    root.setLevel(logging.INFO)
    handler = attach_run_log(path, json=False)
    try:
        logging.getLogger("ct.test").info("scenario %s started", "basic")
    finally:
        detach_run_log(handler)
        root.setLevel(previous)

    assert handler not in root.handlers
    assert "scenario basic started" in path.read_text()
