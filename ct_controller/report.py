"""Per-scenario results and the machine-readable suite summary."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ct_common.api import AssertionFailed, HarnessError, ScenarioFailure


class ScenarioOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class ActionStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    NOT_RUN = "not_run"


@dataclass
class ActionRecord:
    index: int
    kind: str
    description: str
    status: ActionStatus = ActionStatus.NOT_RUN
    duration_seconds: Optional[float] = None
    detail: Optional[str] = None


@dataclass
class FailureReason:
    """Why a scenario did not pass."""

    kind: str
    message: str
    action_index: Optional[int] = None
    expected: Any = None
    actual: Any = None
    context: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(
        cls, error: HarnessError, action_index: Optional[int] = None
    ) -> "FailureReason":
        if isinstance(error, ScenarioFailure):
            kind = error.kind
            if error.action_index is not None:
                action_index = error.action_index
        else:
            kind = getattr(error, "reason", None) or error.error_type
        if action_index is None:
            action_index = error.context.get("action_index")
        reason = cls(
            kind=kind,
            message=str(error),
            action_index=action_index,
            context=dict(error.context),
        )
        if isinstance(error, AssertionFailed):
            reason.expected = error.expected
            reason.actual = error.actual
        return reason


@dataclass
class TestRunResult:
    """Outcome of one scenario."""

    __test__ = False

    scenario_name: str
    outcome: ScenarioOutcome = ScenarioOutcome.PASSED
    reason: Optional[FailureReason] = None
    actions: List[ActionRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    log_paths: Dict[str, str] = field(default_factory=dict)
    unexpected_exits: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.outcome in {ScenarioOutcome.PASSED, ScenarioOutcome.SKIPPED}

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def failing_action(self) -> Optional[int]:
        return self.reason.action_index if self.reason else None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["duration_seconds"] = self.duration_seconds
        data["failing_action"] = self.failing_action
        return data

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(self.to_dict(), handle, indent=2, default=str)


@dataclass
class SuiteReport:
    """Results of every scenario of one run."""

    run_id: str
    suite_name: str
    results: List[TestRunResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    def counts(self) -> Dict[str, int]:
        totals = {outcome.value: 0 for outcome in ScenarioOutcome}
        for result in self.results:
            totals[result.outcome.value] += 1
        return totals

    def failures(self) -> List[TestRunResult]:
        return [result for result in self.results if not result.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "suite": self.suite_name,
            "passed": self.passed,
            "counts": self.counts(),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "scenarios": [
                {
                    "name": result.scenario_name,
                    "outcome": result.outcome.value,
                    "failing_action": result.failing_action,
                    "reason": asdict(result.reason) if result.reason else None,
                    "duration_seconds": result.duration_seconds,
                    "log_paths": result.log_paths,
                    "unexpected_exits": result.unexpected_exits,
                }
                for result in self.results
            ],
        }

    def save(self, path: Path) -> None:
        """Write ``summary.json``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(self.to_dict(), handle, indent=2, default=str)
