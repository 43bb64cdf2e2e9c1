"""Presenter for suite reports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ct_controller.api import SuiteReport, TestRunResult
from ct_ui.theme import RICH_ACCENT_BOLD, RICH_BORDER_STYLE, presenter_message, status_text


@dataclass
class TableModel:
    title: str
    columns: list[str]
    rows: list[list[str]]


def _duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    return f"{seconds:.1f}s"


def _reason(result: TestRunResult) -> str:
    if result.reason is None:
        return ""
    parts = [result.reason.kind]
    if result.reason.action_index is not None:
        parts.append(f"@{result.reason.action_index}")
    return f"{' '.join(parts)}: {result.reason.message}"


def build_report_table(report: SuiteReport) -> TableModel:
    """Transform a SuiteReport into a TableModel."""
    rows = [
        [
            escape(result.scenario_name),
            status_text(result.outcome.value),
            _duration(result.duration_seconds),
            escape(_reason(result)),
            str(len(result.unexpected_exits)) if result.unexpected_exits else "",
        ]
        for result in report.results
    ]
    return TableModel(
        title=f"{escape(report.suite_name)} (run {escape(report.run_id)})",
        columns=["Scenario", "Outcome", "Duration", "Reason", "Crashes"],
        rows=rows,
    )


def build_actions_table(result: TestRunResult) -> TableModel:
    """Per-action breakdown of one scenario."""
    rows = [
        [
            str(record.index),
            escape(record.description),
            status_text(record.status.value),
            _duration(record.duration_seconds),
            escape(record.detail or ""),
        ]
        for record in result.actions
    ]
    return TableModel(
        title=f"Actions of {escape(result.scenario_name)}",
        columns=["#", "Action", "Status", "Duration", "Detail"],
        rows=rows,
    )


def build_rich_table(model: TableModel, *, show_lines: bool = False) -> Table:
    table = Table(
        title=Text.from_markup(model.title),
        show_lines=show_lines,
        box=box.ROUNDED,
        border_style=RICH_BORDER_STYLE,
        header_style=RICH_ACCENT_BOLD,
        title_style=RICH_ACCENT_BOLD,
    )
    for column in model.columns:
        table.add_column(column, overflow="fold")
    for row in model.rows:
        table.add_row(*row)
    return table


class ReportPresenter:
    """Print messages and run summaries to a rich console."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def info(self, message: str) -> None:
        self.console.print(presenter_message("info", escape(message)))

    def warning(self, message: str) -> None:
        self.console.print(presenter_message("warning", escape(message)))

    def error(self, message: str) -> None:
        self.console.print(presenter_message("error", escape(message)))

    def success(self, message: str) -> None:
        self.console.print(presenter_message("success", escape(message)))

    def show_report(self, report: SuiteReport, *, details: bool = True) -> None:
        self.console.print(build_rich_table(build_report_table(report)))
        if details:
            for result in report.failures():
                self.console.print(build_rich_table(build_actions_table(result)))
        counts = report.counts()
        summary = ", ".join(f"{count} {name}" for name, count in counts.items() if count)
        if report.passed:
            self.success(f"Suite passed ({summary})")
        else:
            self.error(f"Suite failed ({summary})")
