"""Shared error taxonomy for ceremony-test."""

from __future__ import annotations

from typing import Any, Mapping, TypeVar


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class HarnessError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self), "context": self.context}


class ConfigurationError(HarnessError):
    """Failure due to invalid configuration."""


class ScenarioValidationError(ConfigurationError):
    """Static validation of a scenario or suite failed."""

    def __init__(
        self,
        message: str,
        *,
        problems: list[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(context or {})
        merged["problems"] = list(problems or [])
        super().__init__(message, context=merged)
        self.problems = list(problems or [])


class ResolutionError(HarnessError):
    """A repository reference could not be resolved to a source directory."""


class BuildError(HarnessError):
    """The build tool failed or did not produce the expected binary."""

    @property
    def stderr_tail(self) -> str:
        return str(self.context.get("stderr_tail", ""))


class PreparationError(HarnessError):
    """Writing a participant's input files or running its prepare commands failed."""

    @property
    def stderr_tail(self) -> str:
        return str(self.context.get("stderr_tail", ""))


class TopologyError(HarnessError):
    """A participant could not be added to or started in the topology."""

    DUPLICATE_ID = "duplicate_id"
    DUPLICATE_COORDINATOR = "duplicate_coordinator"
    MISSING_COORDINATOR = "missing_coordinator"
    COORDINATOR_NOT_READY = "coordinator_not_ready"
    PROXY_NOT_READY = "proxy_not_ready"
    LAUNCH_FAILED = "launch_failed"
    UNKNOWN_PARTICIPANT = "unknown_participant"

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        merged = dict(context or {})
        merged["reason"] = reason
        super().__init__(message, context=merged, cause=cause)
        self.reason = reason


class ScenarioFailure(HarnessError):
    """A timeline action did not resolve successfully."""

    kind = "scenario_failure"

    def __init__(
        self,
        message: str,
        *,
        action_index: int | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(context or {})
        merged["action_index"] = action_index
        super().__init__(message, context=merged)
        self.action_index = action_index


class ActionTimedOut(ScenarioFailure):
    """A wait action exceeded its timeout."""

    kind = "action_timed_out"


class ParticipantExited(ScenarioFailure):
    """A waited-on participant exited before the awaited event happened."""

    kind = "participant_exited"


class AssertionFailed(ScenarioFailure):
    """An assert action observed a topology state different from the expected one."""

    kind = "assertion_failed"

    def __init__(
        self,
        message: str,
        *,
        action_index: int | None = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        super().__init__(
            message,
            action_index=action_index,
            context={"expected": expected, "actual": actual},
        )
        self.expected = self.context["expected"]
        self.actual = self.context["actual"]


class ScenarioTimedOut(ScenarioFailure):
    """The scenario exceeded its overall time limit."""

    kind = "scenario_timed_out"


T = TypeVar("T", bound=HarnessError)


def wrap_error(
    error_cls: type[T],
    message: str,
    *,
    context: Mapping[str, Any] | None = None,
    cause: Exception | None = None,
) -> T:
    """Create a typed HarnessError with optional context and cause."""
    return error_cls(message, context=context, cause=cause)


def error_to_payload(error: HarnessError) -> dict[str, Any]:
    """Convert a HarnessError to a result/report payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }
