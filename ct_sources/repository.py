"""Resolve repository references into buildable source directories."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from ct_common.api import ResolutionError
from ct_sources.models import RepositoryKind, RepositoryRef, ResolvedRepository

logger = logging.getLogger(__name__)

MARKER_FILE = ".ct-source.json"

CommandRunner = Callable[[Sequence[str], Path], subprocess.CompletedProcess]


def run_command(cmd: Sequence[str], cwd: Path) -> subprocess.CompletedProcess:
    """Run a short-lived command and capture its output."""
    return subprocess.run(
        list(cmd),
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
    )


def tail_lines(text: str, count: int = 20) -> str:
    lines = (text or "").strip().splitlines()
    return "\n".join(lines[-count:])


def _slug(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-.")
    return cleaned[-40:] or "repo"


def checkout_dir_name(ref: RepositoryRef) -> str:
    """Deterministic directory name for a remote checkout of (location, ref)."""
    digest = hashlib.sha1(f"{ref.location}\n{ref.ref or ''}".encode()).hexdigest()[:10]
    location = ref.location.rstrip("/")
    if location.endswith(".git"):
        location = location[: -len(".git")]
    base = _slug(location.rsplit("/", 1)[-1].rsplit(":", 1)[-1])
    return f"{base}-{_slug(ref.ref or 'HEAD')}-{digest}"


class RepositoryProvider:
    """Resolve :class:`RepositoryRef` values to source directories.

    Local references are validated in place. Remote references are fetched
    (shallow, a single ref) into a deterministic directory below
    ``scratch_root``; a second resolve of the same reference is a no-op.
    """

    def __init__(
        self,
        scratch_root: Path,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self._scratch_root = Path(scratch_root)
        self._runner = runner or run_command
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def scratch_root(self) -> Path:
        return self._scratch_root

    def checkout_path(self, ref: RepositoryRef) -> Path:
        if ref.kind is RepositoryKind.LOCAL:
            return Path(ref.location).expanduser()
        return (self._scratch_root / checkout_dir_name(ref)).resolve()

    def resolve(self, ref: RepositoryRef) -> ResolvedRepository:
        if ref.kind is RepositoryKind.LOCAL:
            return self._resolve_local(ref)
        target = self.checkout_path(ref)
        with self._lock_for(target):
            return self._resolve_remote(ref, target)

    def resolve_all(
        self, refs: Dict[str, RepositoryRef]
    ) -> Dict[str, ResolvedRepository]:
        """Resolve every named reference, failing on the first bad one."""
        resolved: Dict[str, ResolvedRepository] = {}
        for name, ref in refs.items():
            logger.info("Resolving repository %s (%s)", name, ref.describe())
            try:
                resolved[name] = self.resolve(ref)
            except ResolutionError as exc:
                exc.context.setdefault("repository", name)
                raise
        return resolved

    def remove(self, ref: RepositoryRef) -> bool:
        """Delete the fetched checkout of a remote reference."""
        if ref.kind is not RepositoryKind.REMOTE:
            return False
        target = self.checkout_path(ref)
        with self._lock_for(target):
            if not target.exists():
                return False
            logger.info("Removing repository checkout %s", target)
            shutil.rmtree(target)
            return True

    def _lock_for(self, target: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(target, threading.Lock())

    @staticmethod
    def _resolve_local(ref: RepositoryRef) -> ResolvedRepository:
        source_dir = Path(ref.location).expanduser().resolve()
        if not source_dir.exists():
            raise ResolutionError(
                f"Local repository not found: {source_dir}",
                context={"location": ref.location},
            )
        if not source_dir.is_dir():
            raise ResolutionError(
                f"Local repository is not a directory: {source_dir}",
                context={"location": ref.location},
            )
        if not any(source_dir.iterdir()):
            raise ResolutionError(
                f"Local repository is empty: {source_dir}",
                context={"location": ref.location},
            )
        return ResolvedRepository(ref=ref, source_dir=source_dir)

    def _resolve_remote(self, ref: RepositoryRef, target: Path) -> ResolvedRepository:
        marker = self._read_marker(target)
        if marker and marker.get("location") == ref.location and marker.get("ref") == ref.ref:
            logger.info("Repository %s already fetched to %s, skipping.", ref.describe(), target)
            return ResolvedRepository(ref=ref, source_dir=target, commit=marker.get("commit"))

        if target.exists():
            logger.warning("Discarding stale checkout at %s", target)
            shutil.rmtree(target)

        logger.info("Fetching %s into %s", ref.describe(), target)
        target.mkdir(parents=True, exist_ok=True)
        try:
            self._git(ref, target, ["git", "init", "--quiet"])
            self._git(ref, target, ["git", "remote", "add", "origin", ref.location])
            self._git(ref, target, ["git", "fetch", "--depth", "1", "origin", ref.ref or "HEAD"])
            self._git(ref, target, ["git", "checkout", "--quiet", "--detach", "FETCH_HEAD"])
            commit = self._git(ref, target, ["git", "rev-parse", "HEAD"]).strip()
        except ResolutionError:
            shutil.rmtree(target, ignore_errors=True)
            raise

        self._write_marker(target, ref, commit)
        return ResolvedRepository(ref=ref, source_dir=target, commit=commit)

    def _git(self, ref: RepositoryRef, cwd: Path, cmd: list[str]) -> str:
        try:
            completed = self._runner(cmd, cwd)
        except OSError as exc:
            raise ResolutionError(
                f"Unable to run {cmd[0]} for {ref.describe()}",
                context={"command": " ".join(cmd)},
                cause=exc,
            ) from exc
        if completed.returncode != 0:
            raise ResolutionError(
                f"{' '.join(cmd[:2])} failed for {ref.describe()} (rc={completed.returncode})",
                context={
                    "command": " ".join(cmd),
                    "returncode": completed.returncode,
                    "stderr_tail": tail_lines(completed.stderr),
                },
            )
        return completed.stdout or ""

    @staticmethod
    def _read_marker(target: Path) -> dict | None:
        marker_path = target / MARKER_FILE
        if not marker_path.is_file():
            return None
        try:
            return json.loads(marker_path.read_text())
        except (OSError, ValueError):
            return None

    @staticmethod
    def _write_marker(target: Path, ref: RepositoryRef, commit: str) -> None:
        payload = {"location": ref.location, "ref": ref.ref, "commit": commit}
        (target / MARKER_FILE).write_text(json.dumps(payload, indent=2))
