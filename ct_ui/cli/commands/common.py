"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import typer

from ct_common.api import ConfigurationError, HarnessError, ResolutionError
from ct_controller.api import HarnessConfig, RunService, Suite, load_config
from ct_ui.presenters.report import ReportPresenter

EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130

DEFAULT_CONFIG = Path("ct.yaml")

CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG,
    "--config",
    "-c",
    envvar="CT_CONFIG",
    help="Harness configuration file (YAML or JSON).",
)


def show_error(presenter: ReportPresenter, exc: HarnessError) -> None:
    presenter.error(str(exc))
    for problem in exc.context.get("problems", []) or []:
        presenter.console.print(f"  - {problem}", markup=False)
    stderr_tail = exc.context.get("stderr_tail")
    if stderr_tail:
        presenter.console.print(stderr_tail, markup=False)


def load_harness_config(presenter: ReportPresenter, path: Path) -> HarnessConfig:
    try:
        return load_config(path)
    except ConfigurationError as exc:
        show_error(presenter, exc)
        raise typer.Exit(EXIT_INVALID)


def execute_suite(
    presenter: ReportPresenter,
    service: RunService,
    suite: Suite,
    *,
    run_id: Optional[str],
    only: Iterable[str] = (),
) -> None:
    """Run a suite, print the summary and exit with the run's status code."""
    try:
        outcome = service.run(suite, run_id=run_id, only=only)
    except (ConfigurationError, ResolutionError) as exc:
        show_error(presenter, exc)
        raise typer.Exit(EXIT_INVALID)
    except KeyboardInterrupt:
        presenter.warning("Interrupted; all participants were stopped.")
        raise typer.Exit(EXIT_INTERRUPTED)

    presenter.show_report(outcome.report)
    presenter.info(f"Summary: {outcome.summary_path}")
    presenter.info(f"Log: {outcome.log_path}")
    if not outcome.report.passed:
        raise typer.Exit(EXIT_FAILED)
