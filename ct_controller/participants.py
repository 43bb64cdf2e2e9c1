"""Turn role configuration plus built artifacts into launchable specs."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from ct_common.api import ConfigurationError, PreparationError
from ct_controller.models.config import HarnessConfig, PrepareStep, RoleConfig
from ct_controller.models.scenario import ParticipantEntry
from ct_runner.api import ParticipantRole, ParticipantSpec
from ct_sources.api import BuildArtifact, Builder, BuildTarget, ResolvedRepository
from ct_sources.repository import tail_lines

logger = logging.getLogger(__name__)

PrepareRunner = Callable[[Sequence[str], Path, Optional[float]], subprocess.CompletedProcess]

PREPARE_LOG_NAME = "prepare.log"


def run_prepare_command(
    cmd: Sequence[str], cwd: Path, timeout: Optional[float]
) -> subprocess.CompletedProcess:
    return subprocess.run(
        list(cmd),
        cwd=cwd,
        env=os.environ.copy(),
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        check=False,
    )


def render_template(template: str, values: Mapping[str, str], *, field: str) -> str:
    try:
        return template.format_map(values)
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigurationError(
            f"Cannot render {field} template {template!r}: {exc}",
            context={"template": template, "placeholders": sorted(values)},
            cause=exc,
        ) from exc


class ParticipantFactory:
    """Build artifacts per role and render participant launch specs."""

    def __init__(
        self,
        config: HarnessConfig,
        builder: Builder,
        sources: Mapping[str, ResolvedRepository],
        run_dir: Path,
        runner: PrepareRunner = run_prepare_command,
    ) -> None:
        self._config = config
        self._builder = builder
        self._sources = dict(sources)
        self._run_dir = run_dir
        self._runner = runner

    def role_config(self, role: ParticipantRole) -> RoleConfig:
        role_cfg = self._config.role(role)
        if role_cfg is None:
            raise ConfigurationError(
                f"Role '{role.value}' is not configured", context={"role": role.value}
            )
        return role_cfg

    def source_for(self, role: ParticipantRole) -> ResolvedRepository:
        role_cfg = self.role_config(role)
        source = self._sources.get(role_cfg.repository)
        if source is None:
            raise ConfigurationError(
                f"Repository '{role_cfg.repository}' of role '{role.value}' was not resolved",
                context={"role": role.value, "repository": role_cfg.repository},
            )
        return source

    def artifact_for(self, role: ParticipantRole) -> BuildArtifact:
        """Build (or reuse from the cache) the binary of ``role``."""
        role_cfg = self.role_config(role)
        target = BuildTarget(binary=role_cfg.binary, workdir=role_cfg.workdir)
        return self._builder.build(self.source_for(role), target)

    def prepare(self, roles: Iterable[ParticipantRole]) -> Dict[ParticipantRole, BuildArtifact]:
        return {role: self.artifact_for(role) for role in sorted(roles, key=lambda r: r.value)}

    def spec_for(self, entry: ParticipantEntry, scenario_dir: Path) -> ParticipantSpec:
        """Render the launch spec of ``entry`` after writing its input files and
        running its prepare commands.

        Raises :class:`PreparationError` when a file cannot be written or a
        prepare command fails, so the participant is never launched.
        """
        role_cfg = self.role_config(entry.role)
        artifact = self.artifact_for(entry.role)
        source = self.source_for(entry.role)
        participant_dir = scenario_dir / entry.id
        participant_dir.mkdir(parents=True, exist_ok=True)
        values = {
            "id": entry.id,
            "role": entry.role.value,
            "participant_dir": str(participant_dir),
            "scenario_dir": str(scenario_dir),
            "run_dir": str(self._run_dir),
            "source_dir": str(source.source_dir),
            "binary": str(artifact.binary_path),
            "profile": artifact.profile,
        }
        self._write_files(entry, role_cfg, values, participant_dir)
        for step_index, step in enumerate(role_cfg.prepare):
            self._run_step(entry, step, step_index, values, participant_dir)
        args = [
            render_template(arg, values, field=f"{entry.role.value} argument")
            for arg in [*role_cfg.args, *entry.args]
        ]
        env = {
            key: render_template(value, values, field=f"{entry.role.value} env {key}")
            for key, value in {**role_cfg.env, **entry.env}.items()
        }
        return ParticipantSpec(
            role=entry.role,
            id=entry.id,
            executable=str(artifact.binary_path),
            log_path=participant_dir / f"{entry.id}.log",
            args=tuple(args),
            env=env,
            workdir=participant_dir,
            artifact=artifact,
        )

    def _write_files(
        self,
        entry: ParticipantEntry,
        role_cfg: RoleConfig,
        values: Mapping[str, str],
        participant_dir: Path,
    ) -> None:
        root = participant_dir.resolve()
        for name, template in role_cfg.files.items():
            relative = render_template(name, values, field=f"{entry.role.value} file name")
            path = (participant_dir / relative).resolve()
            if path == root or root not in path.parents:
                raise ConfigurationError(
                    f"File '{relative}' of role '{entry.role.value}' is outside the participant directory",
                    context={"id": entry.id, "file": relative},
                )
            content = render_template(template, values, field=f"{entry.role.value} file {name}")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
            except OSError as exc:
                raise PreparationError(
                    f"Cannot write {path} for {entry.id}: {exc}",
                    context={"id": entry.id, "file": str(path)},
                    cause=exc,
                ) from exc
            logger.debug("Wrote %s for %s", path, entry.id)

    def _run_step(
        self,
        entry: ParticipantEntry,
        step: PrepareStep,
        step_index: int,
        values: Dict[str, str],
        participant_dir: Path,
    ) -> None:
        cmd = [
            render_template(part, values, field=f"{entry.role.value} prepare command")
            for part in step.command
        ]
        context = {"id": entry.id, "step": step_index, "command": cmd}
        timeout = self._config.timeouts.prepare_seconds
        logger.info("Preparing %s: %s", entry.id, " ".join(cmd))
        try:
            result = self._runner(cmd, participant_dir, timeout)
        except subprocess.TimeoutExpired as exc:
            raise PreparationError(
                f"Prepare command of {entry.id} timed out after {timeout:.0f}s",
                context=context,
                cause=exc,
            ) from exc
        except OSError as exc:
            raise PreparationError(
                f"Prepare command of {entry.id} could not be started: {exc}",
                context=context,
                cause=exc,
            ) from exc
        self._append_log(participant_dir, cmd, result)
        if result.returncode != 0:
            raise PreparationError(
                f"Prepare command of {entry.id} failed with exit code {result.returncode}",
                context={
                    **context,
                    "returncode": result.returncode,
                    "stderr_tail": tail_lines(result.stderr or "", 20),
                },
            )
        if step.capture:
            lines = (result.stdout or "").splitlines()
            captured = lines[0].strip() if lines else ""
            if not captured:
                raise PreparationError(
                    f"Prepare command of {entry.id} printed nothing to capture as '{step.capture}'",
                    context={**context, "capture": step.capture},
                )
            values[step.capture] = captured
            logger.info("Captured %s for %s: %s", step.capture, entry.id, captured)

    @staticmethod
    def _append_log(participant_dir: Path, cmd: Sequence[str], result: subprocess.CompletedProcess) -> None:
        try:
            with (participant_dir / PREPARE_LOG_NAME).open("a", encoding="utf-8") as handle:
                handle.write(f"$ {' '.join(cmd)}\n")
                handle.write(result.stdout or "")
                handle.write(result.stderr or "")
                handle.write(f"[exit code {result.returncode}]\n")
        except OSError as exc:
            logger.warning("Prepare log of %s is not writable: %s", participant_dir, exc)
