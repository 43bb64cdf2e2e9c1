"""Public API surface for source acquisition and builds."""

from ct_sources.builder import (
    BuildCache,
    Builder,
    BuildSettings,
    DEFAULT_BUILD_COMMAND,
)
from ct_sources.models import (
    BuildArtifact,
    BuildTarget,
    RepositoryKind,
    RepositoryRef,
    ResolvedRepository,
)
from ct_sources.repository import RepositoryProvider, checkout_dir_name

__all__ = [
    "BuildArtifact",
    "BuildCache",
    "BuildSettings",
    "BuildTarget",
    "Builder",
    "DEFAULT_BUILD_COMMAND",
    "RepositoryKind",
    "RepositoryProvider",
    "RepositoryRef",
    "ResolvedRepository",
    "checkout_dir_name",
]
