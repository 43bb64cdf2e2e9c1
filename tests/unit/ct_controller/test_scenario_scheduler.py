"""Tests for ScenarioScheduler with fake participants."""

from __future__ import annotations

import json
import sys

import pytest

from ct_controller.models.config import HarnessConfig
from ct_controller.models.scenario import Scenario, Suite
from ct_controller.report import ActionStatus, ScenarioOutcome
from tests.helpers.participants import config_data


pytestmark = pytest.mark.unit_controller


def _scenario(**data) -> Scenario:
    data.setdefault(
        "participants",
        [
            {"role": "coordinator", "id": "coordinator"},
            {"role": "contributor", "id": "contributor-1"},
        ],
    )
    return Scenario.model_validate(data)


def _assert_nothing_running(scheduler) -> None:
    for topology in scheduler.topologies:
        assert all(handle.is_terminal() for handle in topology.all_handles())


def test_ready_and_joined_scenario_passes(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="basic",
        actions=[
            {"action": "wait_for_log", "id": "coordinator", "pattern": "booted up"},
            {"action": "wait_for_log", "id": "contributor-1", "pattern": "joined"},
            {"action": "assert_all_running"},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.PASSED, result.reason
    assert [a.status for a in result.actions] == [ActionStatus.OK] * 3
    assert set(result.log_paths) == {"coordinator", "contributor-1"}
    _assert_nothing_running(scheduler)
    saved = json.loads((scheduler._run_dir / "basic" / "result.json").read_text())
    assert saved["outcome"] == "passed"
    assert (scheduler._run_dir / "basic" / "scenario.json").exists()
    assert "joined" in (scheduler._run_dir / "basic" / "contributor-1" / "contributor-1.log").read_text()


def test_zero_timeout_on_missing_pattern_fails_with_action_index(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="never",
        actions=[
            {"action": "wait_for_log", "id": "contributor-1", "pattern": "joined"},
            {"action": "wait_for_log", "id": "coordinator", "pattern": "never printed", "timeout_seconds": 0},
            {"action": "assert_all_running"},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "action_timed_out"
    assert result.reason.action_index == 1
    assert [a.status for a in result.actions] == [
        ActionStatus.OK,
        ActionStatus.FAILED,
        ActionStatus.NOT_RUN,
    ]
    _assert_nothing_running(scheduler)


def test_stop_then_start_gives_new_handle(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="restart",
        actions=[
            {"action": "wait_for_log", "id": "contributor-1", "pattern": "joined"},
            {"action": "stop", "id": "contributor-1"},
            {"action": "start", "role": "contributor", "id": "contributor-1"},
            {"action": "wait_for_log", "id": "contributor-1", "pattern": "joined"},
            {"action": "assert_all_running"},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.PASSED, result.reason
    handles = scheduler.topologies[0].handles_for("contributor-1")
    assert len(handles) == 2
    assert handles[0] is not handles[1]
    assert handles[0].buffer.lines() == ["contributor-1 joined"]
    log_text = (scheduler._run_dir / "restart" / "contributor-1" / "contributor-1.log").read_text()
    assert log_text.count("contributor-1 joined") == 2
    assert result.unexpected_exits == []


def test_participant_exit_before_pattern(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="crash",
        actions=[
            {"action": "start", "role": "verifier", "id": "verifier-1", "args": ["crash"]},
            {"action": "wait_for_log", "id": "verifier-1", "pattern": "verified", "timeout_seconds": 30},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "participant_exited"
    assert result.reason.action_index == 1
    assert [exit_info["id"] for exit_info in result.unexpected_exits] == ["verifier-1"]
    _assert_nothing_running(scheduler)


def test_wait_for_exit_and_assert_exited(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="finish",
        actions=[
            {"action": "start", "role": "contributor", "id": "contributor-2", "args": ["finish"]},
            {"action": "wait_for_exit", "id": "contributor-2"},
            {"action": "assert_exited", "id": "contributor-2", "expected_code": 0},
            {"action": "assert_exited", "id": "contributor-2", "expected_code": 3},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "assertion_failed"
    assert result.reason.action_index == 3
    assert result.reason.expected == 3
    assert result.reason.actual == 0


def test_assert_all_running_reports_statuses(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="not-all-running",
        actions=[
            {"action": "start", "role": "verifier", "id": "verifier-1", "args": ["finish"]},
            {"action": "wait_for_exit", "id": "verifier-1"},
            {"action": "assert_all_running"},
        ],
    )

    result = scheduler.run(scenario)

    assert result.reason.kind == "assertion_failed"
    assert result.reason.actual["verifier-1"] == "exited"
    assert result.reason.expected["verifier-1"] == "running"


def test_scenario_time_limit(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="slow",
        timeout_seconds=0.5,
        actions=[{"action": "wait_for_duration", "seconds": 30}],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.TIMED_OUT
    assert result.reason.kind == "scenario_timed_out"
    assert result.duration_seconds < 20
    _assert_nothing_running(scheduler)


def test_scenario_time_limit_covers_coordinator_readiness(tmp_path, make_scheduler) -> None:
    data = config_data(tmp_path)
    data["roles"]["coordinator"]["readiness_pattern"] = "never printed"
    data["timeouts"]["readiness_seconds"] = 4
    scheduler = make_scheduler(HarnessConfig.model_validate(data))
    scenario = _scenario(
        name="slow-coordinator",
        timeout_seconds=1,
        actions=[{"action": "assert_all_running"}],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.TIMED_OUT
    assert result.reason.kind == "scenario_timed_out"
    assert result.reason.context["reason"] == "coordinator_not_ready"
    assert result.duration_seconds < 3.5
    assert scheduler.topologies[0].get("contributor-1") is None
    _assert_nothing_running(scheduler)


def test_topology_error_fails_scenario(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    scenario = _scenario(
        name="two-coordinators",
        actions=[{"action": "start", "role": "coordinator", "id": "coordinator-2"}],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "duplicate_coordinator"
    assert result.reason.action_index == 0


def test_build_error_fails_before_launch(tmp_path, make_scheduler) -> None:
    data = config_data(tmp_path)
    data["roles"]["verifier"]["binary"] = "target/release/missing-verifier"
    scheduler = make_scheduler(HarnessConfig.model_validate(data))
    scenario = _scenario(
        name="no-binary",
        participants=[
            {"role": "coordinator", "id": "coordinator"},
            {"role": "verifier", "id": "verifier-1"},
        ],
    )

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "BuildError"
    assert scheduler.topologies[0].all_handles() == []


def test_prepare_failure_fails_before_launch(tmp_path, make_scheduler) -> None:
    data = config_data(tmp_path)
    data["roles"]["contributor"]["prepare"] = [{"command": [sys.executable, "-c", "raise SystemExit(1)"]}]
    scheduler = make_scheduler(HarnessConfig.model_validate(data))
    scenario = _scenario(name="no-keys", actions=[{"action": "assert_all_running"}])

    result = scheduler.run(scenario)

    assert result.outcome is ScenarioOutcome.FAILED
    assert result.reason.kind == "PreparationError"
    assert scheduler.topologies[0].all_handles() == []


def test_suite_continues_past_failures(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    suite = Suite(
        name="suite",
        scenarios=[
            _scenario(name="one", actions=[{"action": "assert_all_running"}]),
            _scenario(
                name="two",
                actions=[{"action": "wait_for_log", "id": "coordinator", "pattern": "nope", "timeout_seconds": 0}],
            ),
            _scenario(name="three", actions=[{"action": "assert_all_running"}]),
        ],
    )

    report = scheduler.run_suite(suite)

    assert [r.scenario_name for r in report.results] == ["one", "two", "three"]
    assert [r.outcome for r in report.results] == [
        ScenarioOutcome.PASSED,
        ScenarioOutcome.FAILED,
        ScenarioOutcome.PASSED,
    ]
    assert report.passed is False
    assert len(scheduler.topologies) == 3
    _assert_nothing_running(scheduler)


def test_skip_and_only(harness_config, make_scheduler) -> None:
    scheduler = make_scheduler(harness_config)
    suite = Suite(
        name="suite",
        scenarios=[
            _scenario(name="skipped", skip=True, actions=[{"action": "assert_all_running"}]),
            _scenario(name="selected", actions=[{"action": "assert_all_running"}]),
        ],
    )

    report = scheduler.run_suite(suite)
    assert [r.outcome for r in report.results] == [ScenarioOutcome.SKIPPED, ScenarioOutcome.PASSED]
    assert report.passed is True

    only = scheduler.run_suite(suite, only=["skipped"])
    assert [r.scenario_name for r in only.results] == ["skipped"]
    assert only.results[0].outcome is ScenarioOutcome.PASSED
