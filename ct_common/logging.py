"""Shared logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from ct_common.config.env import env_flag, env_value

_PRE_CHAIN = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _resolve_level(value: str | int | None, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if value is None:
        return logging.INFO
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    return logging.getLevelNamesMapping().get(value.upper(), logging.INFO)


def _build_formatter(json: bool) -> logging.Formatter:
    renderer: structlog.types.Processor
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_PRE_CHAIN,
    )


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    json: bool | None = None,
    force: bool = False,
) -> None:
    """Configure stdlib logging and structlog with a shared formatter."""
    env_level = env_value("LOG_LEVEL")
    env_json = env_flag("LOG_JSON")
    env_log_file = env_value("LOG_FILE")

    resolved_level = _resolve_level(level or env_level, debug)
    resolved_json = bool(env_json if json is None else json)
    resolved_log_file = env_log_file if log_file is None else log_file

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        _configure_structlog()
        return

    formatter = _build_formatter(resolved_json)
    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if resolved_log_file:
        file_handler = logging.FileHandler(resolved_log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if force:
        root_logger.handlers.clear()

    root_logger.setLevel(resolved_level)
    for handler in handlers:
        root_logger.addHandler(handler)

    _configure_structlog()


def attach_run_log(path: Path, *, json: Optional[bool] = None) -> logging.Handler:
    """Mirror orchestrator logs into a run-scoped file (``integration-test.log``)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    env_json = env_flag("LOG_JSON")
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(_build_formatter(bool(env_json if json is None else json)))
    logging.getLogger().addHandler(handler)
    return handler


def detach_run_log(handler: logging.Handler) -> None:
    """Remove and close a handler added by :func:`attach_run_log`."""
    logging.getLogger().removeHandler(handler)
    handler.close()
