"""Static checks run on scenarios before any process is launched."""

from __future__ import annotations

import re
from collections import Counter
from typing import Collection, Dict, Iterable, List, Optional

from ct_common.api import ScenarioValidationError
from ct_controller.models.scenario import (
    AssertExitedAction,
    ParticipantEntry,
    Scenario,
    StartAction,
    StopAction,
    Suite,
    WaitForExitAction,
    WaitForLogAction,
)
from ct_controller.paths import scenario_dir_name
from ct_runner.api import ParticipantRole


def scenario_problems(
    scenario: Scenario,
    configured_roles: Optional[Collection[ParticipantRole]] = None,
) -> List[str]:
    """Return every problem found in one scenario (empty when valid)."""
    problems: List[str] = []
    live: Dict[str, ParticipantRole] = {}
    started: set[str] = set()
    prefix = f"{scenario.name}:"

    def start(entry: ParticipantEntry, where: str) -> None:
        if configured_roles is not None and entry.role not in configured_roles:
            problems.append(f"{prefix} {where}: role '{entry.role.value}' is not configured")
        if entry.id in live:
            problems.append(f"{prefix} {where}: participant '{entry.id}' is already running")
        if entry.role is ParticipantRole.COORDINATOR:
            if ParticipantRole.COORDINATOR in live.values() and entry.id not in live:
                problems.append(f"{prefix} {where}: a coordinator is already running")
        elif ParticipantRole.COORDINATOR not in live.values():
            problems.append(
                f"{prefix} {where}: '{entry.id}' is started while no coordinator is running"
            )
        live[entry.id] = entry.role
        started.add(entry.id)

    def require_started(participant_id: str, where: str) -> None:
        if participant_id not in started:
            problems.append(
                f"{prefix} {where}: participant '{participant_id}' was not started before"
            )

    for entry in scenario.participants:
        start(entry, f"participant '{entry.id}'")

    for index, action in enumerate(scenario.actions):
        where = f"action {index} ({action.action})"
        if isinstance(action, StartAction):
            start(action.as_entry(), where)
        elif isinstance(action, StopAction):
            require_started(action.id, where)
            live.pop(action.id, None)
        elif isinstance(action, WaitForLogAction):
            require_started(action.id, where)
            try:
                re.compile(action.pattern)
            except re.error as exc:
                problems.append(f"{prefix} {where}: invalid pattern {action.pattern!r}: {exc}")
        elif isinstance(action, (WaitForExitAction, AssertExitedAction)):
            require_started(action.id, where)
            live.pop(action.id, None)
    return problems


def validate_scenario(
    scenario: Scenario,
    configured_roles: Optional[Collection[ParticipantRole]] = None,
) -> None:
    problems = scenario_problems(scenario, configured_roles)
    if problems:
        raise ScenarioValidationError(
            f"Scenario '{scenario.name}' is invalid ({len(problems)} problem(s))",
            problems=problems,
        )


def validate_suite(
    suite: Suite,
    configured_roles: Optional[Collection[ParticipantRole]] = None,
    only: Iterable[str] = (),
) -> None:
    """Validate all scenarios of a suite and raise once with every problem."""
    problems: List[str] = []
    counts = Counter(scenario.name for scenario in suite.scenarios)
    for name, count in counts.items():
        if count > 1:
            problems.append(f"scenario name '{name}' is used {count} times")
    by_dir: Dict[str, List[str]] = {}
    for name in counts:
        by_dir.setdefault(scenario_dir_name(name), []).append(name)
    for dir_name, names in by_dir.items():
        if len(names) > 1:
            listed = ", ".join(repr(n) for n in sorted(names))
            problems.append(f"scenario names {listed} share the output directory '{dir_name}'")
    for name in only:
        if name not in counts:
            problems.append(f"--only: unknown scenario '{name}'")
    for scenario in suite.scenarios:
        problems.extend(scenario_problems(scenario, configured_roles))
    if problems:
        raise ScenarioValidationError(
            f"Suite '{suite.name}' is invalid ({len(problems)} problem(s))",
            problems=problems,
            context={"suite": suite.name},
        )
