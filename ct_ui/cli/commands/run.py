from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from ct_common.api import ConfigurationError, configure_logging
from ct_controller.api import RunService, Suite, load_scenario, load_suite
from ct_ui.cli.commands.common import (
    CONFIG_OPTION,
    EXIT_INVALID,
    execute_suite,
    load_harness_config,
    show_error,
)
from ct_ui.presenters.report import ReportPresenter


def register_single_command(app: typer.Typer, presenter: ReportPresenter) -> None:
    """Register the ad-hoc ``single`` command on the given Typer app."""

    @app.command("single")
    def single(
        scenario_file: Optional[Path] = typer.Option(
            None,
            "--scenario",
            help="Scenario file to run instead of the generated ceremony.",
        ),
        config: Path = CONFIG_OPTION,
        contributors: Optional[int] = typer.Option(
            None,
            "--contributors",
            min=0,
            help="Number of contributors (overrides single.contributors).",
        ),
        verifiers: Optional[int] = typer.Option(
            None,
            "--verifiers",
            min=0,
            help="Number of verifiers (overrides single.verifiers).",
        ),
        run_id: Optional[str] = typer.Option(
            None,
            "--run-id",
            help="Optional run identifier; defaults to a timestamp.",
        ),
        debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging."),
    ) -> None:
        """Build the participants and run a single ceremony."""
        if debug:
            configure_logging(debug=True, force=True)
        harness = load_harness_config(presenter, config)
        service = RunService(harness)
        try:
            if scenario_file is not None:
                scenario = load_scenario(scenario_file)
            else:
                scenario = service.single_scenario(contributors, verifiers)
        except ConfigurationError as exc:
            show_error(presenter, exc)
            raise typer.Exit(EXIT_INVALID)
        suite = Suite(name=scenario.name, scenarios=[scenario])
        execute_suite(presenter, service, suite, run_id=run_id)


def register_multi_command(app: typer.Typer, presenter: ReportPresenter) -> None:
    """Register the suite ``multi`` command on the given Typer app."""

    @app.command("multi")
    def multi(
        suite_file: Path = typer.Argument(..., help="Suite (or single scenario) file."),
        config: Path = CONFIG_OPTION,
        only: Optional[List[str]] = typer.Option(
            None,
            "--only",
            help="Run only the named scenario(s); includes skipped ones.",
        ),
        run_id: Optional[str] = typer.Option(
            None,
            "--run-id",
            help="Optional run identifier; defaults to a timestamp.",
        ),
        debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging."),
    ) -> None:
        """Run every scenario of a suite, continuing past failures."""
        if debug:
            configure_logging(debug=True, force=True)
        harness = load_harness_config(presenter, config)
        try:
            suite = load_suite(suite_file)
        except ConfigurationError as exc:
            show_error(presenter, exc)
            raise typer.Exit(EXIT_INVALID)
        execute_suite(presenter, RunService(harness), suite, run_id=run_id, only=only or [])
