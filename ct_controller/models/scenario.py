"""Declarative scenario and suite models."""

from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ct_runner.api import ParticipantRole


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ParticipantEntry(_Frozen):
    """A participant brought up before the timeline starts."""

    role: ParticipantRole
    id: str = Field(min_length=1)
    args: List[str] = Field(default_factory=list, description="Extra argument templates appended to the role's")
    env: Dict[str, str] = Field(default_factory=dict, description="Extra environment merged over the role's")


class StartAction(_Frozen):
    action: Literal["start"] = "start"
    role: ParticipantRole
    id: str = Field(min_length=1)
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    def describe(self) -> str:
        return f"start {self.role.value} {self.id}"

    def as_entry(self) -> ParticipantEntry:
        return ParticipantEntry(role=self.role, id=self.id, args=self.args, env=self.env)


class StopAction(_Frozen):
    action: Literal["stop"] = "stop"
    id: str
    grace_seconds: Optional[float] = Field(default=None, ge=0)

    def describe(self) -> str:
        return f"stop {self.id}"


class WaitForLogAction(_Frozen):
    action: Literal["wait_for_log"] = "wait_for_log"
    id: str
    pattern: str
    timeout_seconds: Optional[float] = Field(default=None, ge=0)

    def describe(self) -> str:
        return f"wait for /{self.pattern}/ in {self.id}"


class WaitForDurationAction(_Frozen):
    action: Literal["wait_for_duration"] = "wait_for_duration"
    seconds: float = Field(ge=0)

    def describe(self) -> str:
        return f"wait {self.seconds:g}s"


class WaitForExitAction(_Frozen):
    action: Literal["wait_for_exit"] = "wait_for_exit"
    id: str
    timeout_seconds: Optional[float] = Field(default=None, ge=0)

    def describe(self) -> str:
        return f"wait for {self.id} to exit"


class AssertAllRunningAction(_Frozen):
    action: Literal["assert_all_running"] = "assert_all_running"

    def describe(self) -> str:
        return "assert all participants running"


class AssertExitedAction(_Frozen):
    action: Literal["assert_exited"] = "assert_exited"
    id: str
    expected_code: Optional[int] = None

    def describe(self) -> str:
        if self.expected_code is None:
            return f"assert {self.id} exited"
        return f"assert {self.id} exited with {self.expected_code}"


TimelineAction = Annotated[
    Union[
        StartAction,
        StopAction,
        WaitForLogAction,
        WaitForDurationAction,
        WaitForExitAction,
        AssertAllRunningAction,
        AssertExitedAction,
    ],
    Field(discriminator="action"),
]


class Scenario(_Frozen):
    """Initial topology plus an ordered timeline of actions."""

    name: str = Field(min_length=1)
    description: str = ""
    skip: bool = False
    timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Caps every wait of the scenario")
    participants: List[ParticipantEntry] = Field(default_factory=list)
    actions: List[TimelineAction] = Field(default_factory=list)

    def roles(self) -> set[ParticipantRole]:
        used = {entry.role for entry in self.participants}
        used.update(a.role for a in self.actions if isinstance(a, StartAction))
        return used


class Suite(_Frozen):
    """Flat, ordered list of scenarios."""

    name: str = "suite"
    scenarios: List[Scenario] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "Suite":
        if not self.scenarios:
            raise ValueError("Suite: at least one scenario is required")
        return self
