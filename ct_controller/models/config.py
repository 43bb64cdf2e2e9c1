"""Harness configuration (repositories, builds, roles, timeouts)."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ct_common.api import env_path
from ct_runner.api import ParticipantRole
from ct_sources.api import BuildSettings, RepositoryRef

DEFAULT_COORDINATOR_READY = "Coordinator has booted up"

BUILTIN_PLACEHOLDERS = frozenset(
    {"id", "role", "participant_dir", "scenario_dir", "run_dir", "source_dir", "binary", "profile"}
)


class PrepareStep(BaseModel):
    """A command run in the participant directory before the process is launched."""

    command: List[str] = Field(min_length=1, description="Command templates (placeholders as for 'args')")
    capture: Optional[str] = Field(
        default=None,
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="Store the first stdout line under this placeholder name for later templates",
    )

    @field_validator("capture")
    @classmethod
    def capture_is_not_builtin(cls, value: Optional[str]) -> Optional[str]:
        if value in BUILTIN_PLACEHOLDERS:
            raise ValueError(f"capture name '{value}' shadows a built-in placeholder")
        return value


class RoleConfig(BaseModel):
    """How to build and launch one participant role.

    Before each launch, ``files`` are written into the participant directory
    and ``prepare`` commands run there in order; captured values become
    placeholders for the following steps, ``args`` and ``env``.
    """

    repository: str = Field(description="Name of the repository (under 'repositories') holding the source")
    workdir: str = Field(default=".", description="Sub-directory of the source to build in")
    binary: str = Field(description="Binary path relative to the source directory, '{profile}' is substituted")
    args: List[str] = Field(default_factory=list, description="Argument templates passed to the binary")
    env: Dict[str, str] = Field(default_factory=dict, description="Environment templates for the process")
    readiness_pattern: Optional[str] = Field(
        default=None,
        description="Regex that marks the participant as ready in its log",
    )
    files: Dict[str, str] = Field(
        default_factory=dict,
        description="Participant-relative path to content template, written before launch",
    )
    prepare: List[PrepareStep] = Field(default_factory=list, description="Commands run before launch")


class TimeoutConfig(BaseModel):
    """Default time limits, in seconds."""

    readiness_seconds: float = Field(default=120.0, ge=0, description="Wait for coordinator/proxy readiness")
    terminate_grace_seconds: float = Field(default=5.0, ge=0, description="SIGTERM to SIGKILL grace period")
    default_wait_seconds: float = Field(default=60.0, ge=0, description="Timeout of wait actions that set none")
    prepare_seconds: float = Field(default=120.0, gt=0, description="Limit of each prepare command")


class SingleRunConfig(BaseModel):
    """Shape of the ad-hoc scenario generated by ``ct single``."""

    contributors: int = Field(default=1, ge=0, description="Number of contributors to start")
    verifiers: int = Field(default=1, ge=0, description="Number of verifiers to start")
    proxy: bool = Field(default=True, description="Start a coordinator proxy when the role is configured")
    completion_pattern: Optional[str] = Field(
        default=None,
        description="Coordinator log line that marks the ceremony as complete",
    )
    duration_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Run time without a completion pattern, or its timeout with one",
    )


class HarnessConfig(BaseModel):
    """Top-level configuration of an integration-test run."""

    out_dir: Path = Field(default=Path("out"), description="Root of run-scoped output directories")
    scratch_dir: Path = Field(default=Path("repos"), description="Where remote repositories are fetched")
    clean: bool = Field(default=False, description="Remove previous outputs before running")
    keep_repos: bool = Field(default=True, description="Keep fetched repositories when cleaning")
    repositories: Dict[str, RepositoryRef] = Field(default_factory=dict, description="Named source repositories")
    build: BuildSettings = Field(default_factory=BuildSettings, description="Build tool settings")
    roles: Dict[ParticipantRole, RoleConfig] = Field(default_factory=dict, description="Per-role launch settings")
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    log_buffer_lines: int = Field(default=10000, gt=0, description="Lines kept in memory per participant")
    single: SingleRunConfig = Field(default_factory=SingleRunConfig)

    @model_validator(mode="after")
    def validate_roles(self) -> "HarnessConfig":
        if ParticipantRole.COORDINATOR not in self.roles:
            raise ValueError("HarnessConfig: the 'coordinator' role must be configured")
        for role, role_cfg in self.roles.items():
            if role_cfg.repository not in self.repositories:
                raise ValueError(
                    f"HarnessConfig: role '{role.value}' references unknown repository "
                    f"'{role_cfg.repository}'"
                )
        return self

    def role(self, role: ParticipantRole) -> Optional[RoleConfig]:
        return self.roles.get(role)

    def readiness_patterns(self) -> Dict[ParticipantRole, str]:
        patterns: Dict[ParticipantRole, str] = {}
        for role, role_cfg in self.roles.items():
            if role_cfg.readiness_pattern:
                patterns[role] = role_cfg.readiness_pattern
        if ParticipantRole.COORDINATOR not in patterns:
            patterns[ParticipantRole.COORDINATOR] = DEFAULT_COORDINATOR_READY
        return patterns

    def apply_env_overrides(self) -> "HarnessConfig":
        """Return a copy with ``CT_OUT_DIR`` applied."""
        env_out = env_path("OUT_DIR")
        if env_out is None:
            return self
        return self.model_copy(update={"out_dir": env_out})
