from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from rich.console import Console

from ct_controller.report import (
    ActionRecord,
    ActionStatus,
    FailureReason,
    ScenarioOutcome,
    SuiteReport,
    TestRunResult,
)
from ct_ui.presenters.report import ReportPresenter, build_actions_table, build_report_table


pytestmark = pytest.mark.unit_ui


def _report() -> SuiteReport:
    start = datetime(2026, 1, 1, 12, 0, 0)
    failed = TestRunResult(
        scenario_name="restart",
        outcome=ScenarioOutcome.FAILED,
        reason=FailureReason(kind="assertion_failed", message="c1 is [gone]", action_index=1),
        actions=[
            ActionRecord(0, "start", "start contributor c1", ActionStatus.OK, 0.1),
            ActionRecord(1, "assert_all_running", "assert all running", ActionStatus.FAILED, 0.0),
        ],
        started_at=start,
        finished_at=start + timedelta(seconds=2),
        unexpected_exits=[{"id": "c1", "exit_code": 4}],
    )
    passed = TestRunResult(scenario_name="joins", started_at=start, finished_at=start)
    return SuiteReport(run_id="run-1", suite_name="smoke", results=[passed, failed])


def test_report_table_rows() -> None:
    model = build_report_table(_report())

    assert model.columns == ["Scenario", "Outcome", "Duration", "Reason", "Crashes"]
    assert model.rows[0][0] == "joins"
    assert model.rows[0][4] == ""
    assert model.rows[1][2] == "2.0s"
    assert model.rows[1][3].startswith("assertion_failed @1")
    assert model.rows[1][4] == "1"


def test_actions_table_has_one_row_per_action() -> None:
    model = build_actions_table(_report().results[1])
    assert [row[0] for row in model.rows] == ["0", "1"]


def test_show_report_prints_failures() -> None:
    console = Console(record=True, width=200)
    ReportPresenter(console).show_report(_report())

    text = console.export_text()
    assert "Actions of restart" in text
    assert "c1 is [gone]" in text
    assert "Suite failed" in text
