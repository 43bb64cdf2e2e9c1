"""Execute scenarios against a fresh topology and collect their results."""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

from ct_common.api import (
    ActionTimedOut,
    AssertionFailed,
    HarnessError,
    ParticipantExited,
    ScenarioTimedOut,
    TopologyError,
)
from ct_controller.models.config import TimeoutConfig
from ct_controller.models.scenario import (
    AssertAllRunningAction,
    AssertExitedAction,
    Scenario,
    StartAction,
    StopAction,
    Suite,
    WaitForDurationAction,
    WaitForExitAction,
    WaitForLogAction,
)
from ct_controller.participants import ParticipantFactory
from ct_controller.paths import scenario_dir_name
from ct_controller.report import (
    ActionRecord,
    ActionStatus,
    FailureReason,
    ScenarioOutcome,
    SuiteReport,
    TestRunResult,
)
from ct_controller.scenario_state import ScenarioState, ScenarioStateMachine
from ct_controller.topology import TopologyManager
from ct_runner.api import ParticipantRole, ProcessHandle, ProcessStatus, ProcessSupervisor

logger = logging.getLogger(__name__)


@dataclass
class _Deadline:
    """Optional overall time limit of a scenario."""

    expires_at: Optional[float]

    @classmethod
    def after(cls, seconds: Optional[float]) -> "_Deadline":
        return cls(None if seconds is None else time.monotonic() + seconds)

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(self.expires_at - time.monotonic(), 0.0)

    def clip(self, timeout: float) -> tuple[float, bool]:
        """Return ``(effective_timeout, clipped_by_deadline)``."""
        remaining = self.remaining()
        if remaining is not None and remaining < timeout:
            return remaining, True
        return timeout, False


class ScenarioScheduler:
    """Run scenarios one by one, each with its own topology.

    Teardown always runs once a scenario ends, whatever the outcome, and the
    result records every participant log written during the scenario.
    """

    def __init__(
        self,
        factory: ParticipantFactory,
        supervisor: ProcessSupervisor,
        run_dir: Path,
        *,
        timeouts: Optional[TimeoutConfig] = None,
        readiness_patterns: Optional[Mapping[ParticipantRole, str]] = None,
        run_id: str = "run",
    ) -> None:
        self._factory = factory
        self._supervisor = supervisor
        self._run_dir = run_dir
        self._timeouts = timeouts or TimeoutConfig()
        self._readiness_patterns = readiness_patterns or {}
        self._run_id = run_id

    def new_topology(self) -> TopologyManager:
        return TopologyManager(
            self._supervisor,
            readiness_timeout=self._timeouts.readiness_seconds,
            terminate_grace=self._timeouts.terminate_grace_seconds,
            readiness_patterns=self._readiness_patterns,
        )

    def run_suite(self, suite: Suite, only: Iterable[str] = ()) -> SuiteReport:
        """Run every selected scenario; a failing scenario never stops the suite."""
        selected = set(only)
        report = SuiteReport(run_id=self._run_id, suite_name=suite.name)
        for scenario in suite.scenarios:
            if selected and scenario.name not in selected:
                continue
            if scenario.skip and scenario.name not in selected:
                logger.info("Skipping scenario %s", scenario.name)
                report.results.append(self._skipped(scenario))
                continue
            result = self.run(scenario)
            report.results.append(result)
        report.finished_at = datetime.now()
        failed = len(report.failures())
        if failed:
            logger.error("Suite %s finished with %d failing scenario(s)", suite.name, failed)
        else:
            logger.info("Suite %s passed", suite.name)
        return report

    def run(self, scenario: Scenario) -> TestRunResult:
        scenario_dir = self._run_dir / scenario_dir_name(scenario.name)
        scenario_dir.mkdir(parents=True, exist_ok=True)
        self._write_scenario(scenario, scenario_dir)

        result = TestRunResult(
            scenario_name=scenario.name,
            actions=[
                ActionRecord(index=index, kind=action.action, description=action.describe())
                for index, action in enumerate(scenario.actions)
            ],
        )
        state = ScenarioStateMachine()
        state.register_callback(
            lambda new, reason: logger.debug("Scenario %s -> %s", scenario.name, new.value)
        )
        deadline = _Deadline.after(scenario.timeout_seconds)
        topology = self.new_topology()
        logger.info("Running scenario %s", scenario.name)
        state.transition(ScenarioState.RUNNING)
        try:
            self._factory.prepare(scenario.roles())
            specs = [self._factory.spec_for(entry, scenario_dir) for entry in scenario.participants]
            with self._time_limited(None):
                topology.start(specs, timeout=deadline.remaining())
            for record, action in zip(result.actions, scenario.actions):
                self._run_action(record, action, topology, scenario_dir, deadline)
            state.transition(ScenarioState.COMPLETED)
        except ScenarioTimedOut as exc:
            result.reason = FailureReason.from_error(exc)
            state.transition(ScenarioState.TIMED_OUT, str(exc))
        except HarnessError as exc:
            result.reason = FailureReason.from_error(exc)
            state.transition(ScenarioState.FAILED, str(exc))
        finally:
            topology.teardown()
            result.finished_at = datetime.now()
            result.log_paths = topology.log_paths()
            result.unexpected_exits = [
                handle.snapshot() for handle in topology.unexpected_exits()
            ]

        result.outcome = {
            ScenarioState.COMPLETED: ScenarioOutcome.PASSED,
            ScenarioState.TIMED_OUT: ScenarioOutcome.TIMED_OUT,
        }.get(state.state, ScenarioOutcome.FAILED)
        for exit_info in result.unexpected_exits:
            logger.warning(
                "Scenario %s: %s exited unexpectedly with code %s",
                scenario.name,
                exit_info["id"],
                exit_info["exit_code"],
            )
        if result.reason is not None:
            logger.error(
                "Scenario %s %s: %s", scenario.name, result.outcome.value, result.reason.message
            )
        else:
            logger.info("Scenario %s passed", scenario.name)
        result.save(scenario_dir / "result.json")
        return result

    def _run_action(
        self,
        record: ActionRecord,
        action,
        topology: TopologyManager,
        scenario_dir: Path,
        deadline: _Deadline,
    ) -> None:
        if deadline.remaining() == 0.0:
            raise ScenarioTimedOut(
                "Scenario time limit reached", action_index=record.index
            )
        logger.info("Action %d: %s", record.index, record.description)
        started = time.monotonic()
        try:
            self._execute(record.index, action, topology, scenario_dir, deadline)
        except HarnessError as exc:
            record.status = ActionStatus.FAILED
            record.detail = str(exc)
            if isinstance(exc, TopologyError):
                exc.context.setdefault("action_index", record.index)
            raise
        finally:
            record.duration_seconds = round(time.monotonic() - started, 3)
        record.status = ActionStatus.OK

    def _execute(
        self,
        index: int,
        action,
        topology: TopologyManager,
        scenario_dir: Path,
        deadline: _Deadline,
    ) -> None:
        if isinstance(action, StartAction):
            spec = self._factory.spec_for(action.as_entry(), scenario_dir)
            with self._time_limited(index):
                topology.add_participant(spec, timeout=deadline.remaining())
        elif isinstance(action, StopAction):
            topology.remove_participant(action.id, action.grace_seconds)
        elif isinstance(action, WaitForLogAction):
            self._wait_for_log(index, action, topology, deadline)
        elif isinstance(action, WaitForExitAction):
            self._wait_for_exit(index, action, topology, deadline)
        elif isinstance(action, WaitForDurationAction):
            seconds, clipped = deadline.clip(action.seconds)
            time.sleep(seconds)
            if clipped:
                raise ScenarioTimedOut(
                    "Scenario time limit reached while waiting", action_index=index
                )
        elif isinstance(action, AssertAllRunningAction):
            statuses = topology.statuses()
            not_running = {
                pid: status.value
                for pid, status in statuses.items()
                if status is not ProcessStatus.RUNNING
            }
            if not statuses or not_running:
                raise AssertionFailed(
                    "Not all participants are running",
                    action_index=index,
                    expected={pid: ProcessStatus.RUNNING.value for pid in statuses},
                    actual={pid: status.value for pid, status in statuses.items()},
                )
        elif isinstance(action, AssertExitedAction):
            handle = self._handle(index, action.id, topology)
            if not handle.is_terminal():
                raise AssertionFailed(
                    f"Participant '{action.id}' has not exited",
                    action_index=index,
                    expected="exited",
                    actual=handle.status.value,
                )
            if action.expected_code is not None and handle.exit_code != action.expected_code:
                raise AssertionFailed(
                    f"Participant '{action.id}' exited with {handle.exit_code}",
                    action_index=index,
                    expected=action.expected_code,
                    actual=handle.exit_code,
                )
        else:
            raise TypeError(f"Unsupported action {action!r}")

    def _wait_for_log(
        self,
        index: int,
        action: WaitForLogAction,
        topology: TopologyManager,
        deadline: _Deadline,
    ) -> None:
        handle = self._handle(index, action.id, topology)
        timeout, clipped = deadline.clip(self._timeout(action.timeout_seconds))
        match = self._supervisor.await_log_pattern(handle, action.pattern, timeout)
        if match is not None:
            logger.info("%s matched /%s/: %s", action.id, action.pattern, match.line)
            return
        if handle.is_terminal():
            raise ParticipantExited(
                f"Participant '{action.id}' exited (code {handle.exit_code}) "
                f"before /{action.pattern}/ appeared",
                action_index=index,
                context={"id": action.id, "exit_code": handle.exit_code},
            )
        self._raise_timeout(index, clipped, f"/{action.pattern}/ not seen in {action.id} after {timeout:g}s")

    def _wait_for_exit(
        self,
        index: int,
        action: WaitForExitAction,
        topology: TopologyManager,
        deadline: _Deadline,
    ) -> None:
        handle = self._handle(index, action.id, topology)
        timeout, clipped = deadline.clip(self._timeout(action.timeout_seconds))
        code = self._supervisor.await_exit(handle, timeout)
        if code is None:
            self._raise_timeout(index, clipped, f"{action.id} still running after {timeout:g}s")
        logger.info("%s exited with code %s", action.id, code)

    def _timeout(self, value: Optional[float]) -> float:
        return self._timeouts.default_wait_seconds if value is None else value

    @staticmethod
    @contextmanager
    def _time_limited(index: Optional[int]) -> Iterator[None]:
        """Report readiness waits cut short by the scenario limit as a timeout."""
        try:
            yield
        except TopologyError as exc:
            if exc.context.get("time_limited"):
                raise ScenarioTimedOut(
                    f"Scenario time limit reached: {exc}",
                    action_index=index,
                    context={"id": exc.context.get("id"), "reason": exc.reason},
                ) from exc
            raise

    @staticmethod
    def _raise_timeout(index: int, clipped: bool, message: str) -> None:
        if clipped:
            raise ScenarioTimedOut(f"Scenario time limit reached: {message}", action_index=index)
        raise ActionTimedOut(message, action_index=index)

    @staticmethod
    def _handle(index: int, participant_id: str, topology: TopologyManager) -> ProcessHandle:
        handle = topology.get(participant_id) or topology.latest(participant_id)
        if handle is None:
            raise TopologyError(
                f"Participant '{participant_id}' is not part of the topology",
                reason=TopologyError.UNKNOWN_PARTICIPANT,
                context={"id": participant_id, "action_index": index},
            )
        return handle

    @staticmethod
    def _write_scenario(scenario: Scenario, scenario_dir: Path) -> None:
        with (scenario_dir / "scenario.json").open("w", encoding="utf-8") as handle:
            json.dump(scenario.model_dump(mode="json"), handle, indent=2)

    def _skipped(self, scenario: Scenario) -> TestRunResult:
        now = datetime.now()
        return TestRunResult(
            scenario_name=scenario.name,
            outcome=ScenarioOutcome.SKIPPED,
            actions=[
                ActionRecord(index=i, kind=a.action, description=a.describe())
                for i, a in enumerate(scenario.actions)
            ],
            started_at=now,
            finished_at=now,
        )
