"""Build participant binaries from resolved sources, with a shared cache."""

from __future__ import annotations

import hashlib
import logging
import subprocess
import threading
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Hashable, Optional, Sequence

from pydantic import BaseModel, Field

from ct_common.api import BuildError
from ct_sources.models import BuildArtifact, BuildTarget, ResolvedRepository
from ct_sources.repository import tail_lines

logger = logging.getLogger(__name__)

BuildRunner = Callable[[Sequence[str], Path, Optional[float]], subprocess.CompletedProcess]

DEFAULT_BUILD_COMMAND = ["cargo", "build", "--profile", "{profile}"]


class BuildSettings(BaseModel):
    """How participant binaries are built."""

    enabled: bool = Field(default=True, description="Invoke the build tool; when false, reuse existing binaries")
    profile: str = Field(default="release", description="Build profile substituted into command and binary paths")
    command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BUILD_COMMAND),
        description="Build command template, '{profile}' is substituted",
    )
    timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Abort builds running longer than this")


def run_build_command(
    cmd: Sequence[str], cwd: Path, timeout: Optional[float]
) -> subprocess.CompletedProcess:
    return subprocess.run(
        list(cmd),
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class BuildCache:
    """Memoize build results per key with at most one build in flight per key.

    The first caller for a key runs the build; concurrent callers block on the
    same future and receive its artifact or its error. Failed builds stay
    cached for the lifetime of the cache.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Future] = {}

    def get_or_build(
        self, key: Hashable, factory: Callable[[], BuildArtifact]
    ) -> BuildArtifact:
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future
        if owner:
            try:
                future.set_result(factory())
            except BaseException as exc:
                future.set_exception(exc)
                if not isinstance(exc, Exception):
                    # Interrupted builds are not cached; waiters see the interrupt.
                    with self._lock:
                        self._entries.pop(key, None)
                    raise
        return future.result()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class Builder:
    """Produce :class:`BuildArtifact` objects for resolved repositories."""

    def __init__(
        self,
        settings: Optional[BuildSettings] = None,
        cache: Optional[BuildCache] = None,
        runner: Optional[BuildRunner] = None,
        log_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings or BuildSettings()
        self.cache = cache or BuildCache()
        self._runner = runner or run_build_command
        self._log_dir = log_dir

    def build(
        self,
        source: ResolvedRepository,
        target: BuildTarget,
        profile: Optional[str] = None,
    ) -> BuildArtifact:
        resolved_profile = profile or self.settings.profile
        rendered = target.render(resolved_profile)
        key = self.cache_key(source, rendered, resolved_profile)
        return self.cache.get_or_build(
            key, lambda: self._produce(source, rendered, resolved_profile, key)
        )

    @staticmethod
    def cache_key(
        source: ResolvedRepository, target: BuildTarget, profile: str
    ) -> tuple:
        return (source.ref.identity, source.revision, profile, target.workdir, target.binary)

    def _produce(
        self,
        source: ResolvedRepository,
        target: BuildTarget,
        profile: str,
        key: tuple,
    ) -> BuildArtifact:
        binary_path = (source.source_dir / target.binary).resolve()
        context = {
            "repository": source.ref.describe(),
            "profile": profile,
            "binary": str(binary_path),
        }
        if not self.settings.enabled:
            if not binary_path.is_file():
                raise BuildError(
                    f"Building is disabled and binary {binary_path} does not exist",
                    context=context,
                )
            logger.info("Using existing binary %s", binary_path)
            return BuildArtifact(
                repository=source.ref,
                binary_path=binary_path,
                profile=profile,
                built=False,
            )

        workdir = (source.source_dir / target.workdir).resolve()
        cmd = [part.format(profile=profile) for part in self.settings.command]
        context["command"] = " ".join(cmd)
        context["workdir"] = str(workdir)
        logger.info("Building %s: %s (cwd=%s)", source.ref.describe(), " ".join(cmd), workdir)

        try:
            completed = self._runner(cmd, workdir, self.settings.timeout_seconds)
        except subprocess.TimeoutExpired as exc:
            raise BuildError(
                f"Build of {source.ref.describe()} timed out after {self.settings.timeout_seconds}s",
                context=context,
                cause=exc,
            ) from exc
        except OSError as exc:
            raise BuildError(
                f"Unable to run build command for {source.ref.describe()}: {exc}",
                context=context,
                cause=exc,
            ) from exc

        self._write_build_log(key, cmd, completed)
        if completed.returncode != 0:
            context["returncode"] = completed.returncode
            context["stderr_tail"] = tail_lines(completed.stderr)
            raise BuildError(
                f"Build of {source.ref.describe()} failed (rc={completed.returncode})",
                context=context,
            )
        if not binary_path.is_file():
            raise BuildError(
                f"Build succeeded but binary {binary_path} was not produced",
                context=context,
            )
        logger.info("Built %s -> %s", source.ref.describe(), binary_path)
        return BuildArtifact(
            repository=source.ref,
            binary_path=binary_path,
            profile=profile,
        )

    def _write_build_log(
        self, key: tuple, cmd: list[str], completed: subprocess.CompletedProcess
    ) -> None:
        if self._log_dir is None:
            return
        slug = hashlib.sha1(repr(key).encode()).hexdigest()[:12]
        path = self._log_dir / f"build-{slug}.log"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(f"# {datetime.now().isoformat()} {' '.join(cmd)}\n")
                handle.write(completed.stdout or "")
                handle.write(completed.stderr or "")
                handle.write(f"# exit code {completed.returncode}\n")
        except OSError as exc:
            logger.warning("Failed to write build log %s: %s", path, exc)
