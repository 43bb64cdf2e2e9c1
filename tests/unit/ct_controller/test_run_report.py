"""Tests for result and summary serialization."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from ct_common.errors import AssertionFailed, BuildError, TopologyError
from ct_controller.report import (
    ActionRecord,
    ActionStatus,
    FailureReason,
    ScenarioOutcome,
    SuiteReport,
    TestRunResult,
)


pytestmark = pytest.mark.unit_controller


def test_failure_reason_from_assertion() -> None:
    reason = FailureReason.from_error(
        AssertionFailed("mismatch", action_index=2, expected=0, actual=1)
    )
    assert reason.kind == "assertion_failed"
    assert reason.action_index == 2
    assert (reason.expected, reason.actual) == (0, 1)


def test_failure_reason_from_topology_and_build_errors() -> None:
    topo = FailureReason.from_error(
        TopologyError("dup", reason=TopologyError.DUPLICATE_ID, context={"action_index": 4})
    )
    assert topo.kind == "duplicate_id"
    assert topo.action_index == 4

    build = FailureReason.from_error(BuildError("cargo failed"))
    assert build.kind == "BuildError"
    assert build.action_index is None


def test_suite_report_summary(tmp_path) -> None:
    started = datetime(2026, 1, 1, 12, 0, 0)
    passed = TestRunResult(
        scenario_name="join",
        actions=[ActionRecord(index=0, kind="assert_all_running", description="assert", status=ActionStatus.OK)],
        started_at=started,
        finished_at=started + timedelta(seconds=3),
        log_paths={"coordinator": "/tmp/coordinator.log"},
    )
    failed = TestRunResult(
        scenario_name="leave",
        outcome=ScenarioOutcome.FAILED,
        reason=FailureReason(kind="action_timed_out", message="timeout", action_index=1),
        started_at=started,
        finished_at=started + timedelta(seconds=5),
    )
    skipped = TestRunResult(scenario_name="later", outcome=ScenarioOutcome.SKIPPED)
    report = SuiteReport(run_id="run-1", suite_name="ceremony", results=[passed, failed, skipped])

    assert report.passed is False
    assert report.counts() == {"passed": 1, "failed": 1, "timed_out": 0, "skipped": 1}
    assert report.failures() == [failed]

    path = tmp_path / "summary.json"
    report.save(path)
    data = json.loads(path.read_text())
    assert data["run_id"] == "run-1"
    assert data["scenarios"][0]["outcome"] == "passed"
    assert data["scenarios"][0]["duration_seconds"] == 3.0
    assert data["scenarios"][1]["failing_action"] == 1
    assert data["scenarios"][1]["reason"]["kind"] == "action_timed_out"


def test_result_json_contains_actions(tmp_path) -> None:
    result = TestRunResult(
        scenario_name="join",
        actions=[ActionRecord(index=0, kind="wait_for_log", description="wait", status=ActionStatus.FAILED, detail="x")],
        finished_at=datetime.now(),
    )
    path = tmp_path / "join" / "result.json"
    result.save(path)

    data = json.loads(path.read_text())
    assert data["actions"][0]["status"] == "failed"
    assert data["outcome"] == "passed"
