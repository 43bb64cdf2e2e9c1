from __future__ import annotations

from pathlib import Path

import typer

from ct_common.api import ConfigurationError
from ct_controller.api import RunService, load_suite
from ct_ui.cli.commands.common import CONFIG_OPTION, EXIT_INVALID, load_harness_config, show_error
from ct_ui.presenters.report import ReportPresenter


def register_validate_command(app: typer.Typer, presenter: ReportPresenter) -> None:
    """Register the static ``validate`` command on the given Typer app."""

    @app.command("validate")
    def validate(
        suite_file: Path = typer.Argument(..., help="Suite (or single scenario) file."),
        config: Path = CONFIG_OPTION,
    ) -> None:
        """Check a suite without fetching, building or launching anything."""
        harness = load_harness_config(presenter, config)
        try:
            suite = load_suite(suite_file)
            RunService(harness).validate(suite)
        except ConfigurationError as exc:
            show_error(presenter, exc)
            raise typer.Exit(EXIT_INVALID)
        presenter.success(
            f"{suite_file}: {len(suite.scenarios)} scenario(s) are valid"
        )
