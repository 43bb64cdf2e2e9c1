"""Public API surface for scenario orchestration."""

from ct_controller.loader import load_config, load_scenario, load_suite
from ct_controller.models.config import (
    DEFAULT_COORDINATOR_READY,
    HarnessConfig,
    PrepareStep,
    RoleConfig,
    SingleRunConfig,
    TimeoutConfig,
)
from ct_controller.models.scenario import (
    AssertAllRunningAction,
    AssertExitedAction,
    ParticipantEntry,
    Scenario,
    StartAction,
    StopAction,
    Suite,
    TimelineAction,
    WaitForDurationAction,
    WaitForExitAction,
    WaitForLogAction,
)
from ct_controller.participants import ParticipantFactory
from ct_controller.paths import generate_run_id
from ct_controller.report import (
    ActionRecord,
    ActionStatus,
    FailureReason,
    ScenarioOutcome,
    SuiteReport,
    TestRunResult,
)
from ct_controller.run_service import RunOutcome, RunService
from ct_controller.scenario_state import ScenarioState, ScenarioStateMachine
from ct_controller.scheduler import ScenarioScheduler
from ct_controller.topology import TopologyManager
from ct_controller.validation import scenario_problems, validate_scenario, validate_suite

__all__ = [
    "ActionRecord",
    "ActionStatus",
    "AssertAllRunningAction",
    "AssertExitedAction",
    "DEFAULT_COORDINATOR_READY",
    "FailureReason",
    "HarnessConfig",
    "ParticipantEntry",
    "ParticipantFactory",
    "PrepareStep",
    "RoleConfig",
    "RunOutcome",
    "RunService",
    "Scenario",
    "ScenarioOutcome",
    "ScenarioScheduler",
    "ScenarioState",
    "ScenarioStateMachine",
    "SingleRunConfig",
    "StartAction",
    "StopAction",
    "Suite",
    "SuiteReport",
    "TestRunResult",
    "TimelineAction",
    "TimeoutConfig",
    "TopologyManager",
    "WaitForDurationAction",
    "WaitForExitAction",
    "WaitForLogAction",
    "generate_run_id",
    "load_config",
    "load_scenario",
    "load_suite",
    "scenario_problems",
    "validate_scenario",
    "validate_suite",
]
