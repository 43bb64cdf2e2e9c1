"""Data types for source acquisition and builds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RepositoryKind(str, Enum):
    """Where the source of a participant binary comes from."""

    REMOTE = "remote"
    LOCAL = "local"


class RepositoryRef(BaseModel):
    """A pinned git ref on a remote, or a local checkout."""

    model_config = ConfigDict(frozen=True)

    kind: RepositoryKind = Field(description="Remote git repository or local directory")
    location: str = Field(description="Git URL/path for remote repos, directory for local ones")
    ref: Optional[str] = Field(default=None, description="Branch, tag or commit to fetch (remote only)")

    @model_validator(mode="after")
    def _validate_location(self) -> "RepositoryRef":
        if not self.location or not self.location.strip():
            raise ValueError("RepositoryRef: 'location' must be non-empty")
        return self

    @property
    def identity(self) -> tuple[str, str, str | None]:
        return (self.kind.value, self.location, self.ref)

    def describe(self) -> str:
        if self.kind is RepositoryKind.LOCAL:
            return f"local:{self.location}"
        return f"{self.location}@{self.ref or 'HEAD'}"


@dataclass(frozen=True)
class ResolvedRepository:
    """A repository reference resolved to a directory ready to build."""

    ref: RepositoryRef
    source_dir: Path
    commit: Optional[str] = None

    @property
    def revision(self) -> str | None:
        """Commit when known, otherwise the requested ref."""
        return self.commit or self.ref.ref


@dataclass(frozen=True)
class BuildTarget:
    """What to build inside a source directory and which binary it yields."""

    binary: str
    workdir: str = "."

    def render(self, profile: str) -> "BuildTarget":
        return BuildTarget(
            binary=self.binary.format(profile=profile),
            workdir=self.workdir.format(profile=profile),
        )


@dataclass(frozen=True)
class BuildArtifact:
    """An executable produced (or located) by the Builder."""

    repository: RepositoryRef
    binary_path: Path
    profile: str
    built_at: datetime = field(default_factory=datetime.now)
    built: bool = True
