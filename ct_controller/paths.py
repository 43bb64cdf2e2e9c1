"""Helpers for run directory and identifier management."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path

RUN_LOG_NAME = "integration-test.log"
SUMMARY_NAME = "summary.json"


def generate_run_id() -> str:
    """Generate a monotonic timestamp-based run identifier."""
    return datetime.now(UTC).strftime("run-%Y%m%d-%H%M%S")


def prepare_run_dir(out_dir: Path, run_id: str) -> Path:
    """Create the run-scoped output directory."""
    run_dir = (Path(out_dir) / run_id).resolve()
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def scenario_dir_name(name: str) -> str:
    """Directory of a scenario under the run directory."""
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "scenario"
