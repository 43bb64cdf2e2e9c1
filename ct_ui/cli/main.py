"""
Command-line interface for ceremony-test.

Builds the ceremony participants and replays scripted scenarios against them.
"""

from __future__ import annotations

import typer

from ct_common.api import configure_logging
from ct_ui.cli.commands.run import register_multi_command, register_single_command
from ct_ui.cli.commands.validate import register_validate_command
from ct_ui.presenters.report import ReportPresenter

presenter = ReportPresenter()

app = typer.Typer(
    help="Run scripted integration tests of the setup ceremony.",
    no_args_is_help=True,
)


@app.callback()
def entry() -> None:
    """Configure logging before any command runs."""
    configure_logging()


register_single_command(app, presenter)
register_multi_command(app, presenter)
register_validate_command(app, presenter)


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
