"""Application-facing run orchestration for the CLI."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ct_common.api import HarnessError, attach_run_log, detach_run_log, error_to_payload
from ct_controller.models.config import HarnessConfig
from ct_controller.models.scenario import (
    AssertAllRunningAction,
    ParticipantEntry,
    Scenario,
    Suite,
    WaitForDurationAction,
    WaitForLogAction,
)
from ct_controller.participants import ParticipantFactory
from ct_controller.paths import RUN_LOG_NAME, SUMMARY_NAME, generate_run_id, prepare_run_dir
from ct_controller.report import SuiteReport
from ct_controller.scheduler import ScenarioScheduler
from ct_controller.validation import validate_suite
from ct_runner.api import ParticipantRole, ProcessSupervisor
from ct_sources.api import Builder, RepositoryProvider

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Where a finished run left its artifacts."""

    report: SuiteReport
    run_dir: Path
    summary_path: Path
    log_path: Path


class RunService:
    """Prepare sources, build binaries and drive the scenario scheduler."""

    def __init__(
        self,
        config: HarnessConfig,
        *,
        provider: Optional[RepositoryProvider] = None,
        builder: Optional[Builder] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ) -> None:
        self.config = config
        self.provider = provider or RepositoryProvider(config.scratch_dir)
        self._builder = builder
        self.supervisor = supervisor or ProcessSupervisor(config.log_buffer_lines)

    def validate(self, suite: Suite, only: Iterable[str] = ()) -> None:
        validate_suite(suite, configured_roles=set(self.config.roles), only=only)

    def single_scenario(
        self,
        contributors: Optional[int] = None,
        verifiers: Optional[int] = None,
    ) -> Scenario:
        """Generate the ad-hoc ceremony run by ``ct single``."""
        single = self.config.single
        n_contributors = single.contributors if contributors is None else contributors
        n_verifiers = single.verifiers if verifiers is None else verifiers
        participants = [ParticipantEntry(role=ParticipantRole.COORDINATOR, id="coordinator")]
        if single.proxy and ParticipantRole.PROXY in self.config.roles:
            participants.append(ParticipantEntry(role=ParticipantRole.PROXY, id="proxy"))
        participants.extend(
            ParticipantEntry(role=ParticipantRole.CONTRIBUTOR, id=f"contributor-{i}")
            for i in range(1, n_contributors + 1)
        )
        participants.extend(
            ParticipantEntry(role=ParticipantRole.VERIFIER, id=f"verifier-{i}")
            for i in range(1, n_verifiers + 1)
        )
        if single.completion_pattern:
            actions = [
                WaitForLogAction(
                    id="coordinator",
                    pattern=single.completion_pattern,
                    timeout_seconds=single.duration_seconds,
                )
            ]
        else:
            actions = [
                WaitForDurationAction(seconds=single.duration_seconds),
                AssertAllRunningAction(),
            ]
        return Scenario(
            name="single",
            description=f"{n_contributors} contributor(s), {n_verifiers} verifier(s)",
            participants=participants,
            actions=actions,
        )

    def run(
        self,
        suite: Suite,
        *,
        run_id: Optional[str] = None,
        only: Iterable[str] = (),
    ) -> RunOutcome:
        """Validate, fetch, then run ``suite``; raises before any launch on bad input."""
        only = list(only)
        self.validate(suite, only)
        if self.config.clean:
            self._clean()

        resolved_run_id = run_id or generate_run_id()
        run_dir = prepare_run_dir(self.config.out_dir, resolved_run_id)
        log_path = run_dir / RUN_LOG_NAME
        handler = attach_run_log(log_path)
        try:
            logger.info("Run %s: suite %s -> %s", resolved_run_id, suite.name, run_dir)
            sources = self.provider.resolve_all(self._repositories_in_use())
            builder = self._builder or Builder(
                self.config.build, log_dir=run_dir / "build"
            )
            factory = ParticipantFactory(self.config, builder, sources, run_dir)
            scheduler = ScenarioScheduler(
                factory,
                self.supervisor,
                run_dir,
                timeouts=self.config.timeouts,
                readiness_patterns=self.config.readiness_patterns(),
                run_id=resolved_run_id,
            )
            report = scheduler.run_suite(suite, only=only)
            summary_path = run_dir / SUMMARY_NAME
            report.save(summary_path)
            logger.info("Summary written to %s", summary_path)
        except HarnessError as exc:
            logger.error("Run %s aborted: %s", resolved_run_id, error_to_payload(exc))
            raise
        finally:
            detach_run_log(handler)
        return RunOutcome(
            report=report, run_dir=run_dir, summary_path=summary_path, log_path=log_path
        )

    def _repositories_in_use(self):
        names = {role_cfg.repository for role_cfg in self.config.roles.values()}
        return {
            name: ref for name, ref in self.config.repositories.items() if name in names
        }

    def _clean(self) -> None:
        out_dir = Path(self.config.out_dir)
        if out_dir.exists():
            logger.info("Removing previous outputs in %s", out_dir)
            shutil.rmtree(out_dir)
        if not self.config.keep_repos:
            for ref in self.config.repositories.values():
                self.provider.remove(ref)
