from __future__ import annotations

import pytest

from ct_controller.models.config import HarnessConfig
from ct_controller.participants import ParticipantFactory
from ct_runner.supervisor import ProcessSupervisor
from ct_sources.builder import Builder
from ct_sources.repository import RepositoryProvider
from tests.helpers.participants import RecordingScheduler, config_data


@pytest.fixture
def harness_config(tmp_path) -> HarnessConfig:
    return HarnessConfig.model_validate(config_data(tmp_path))


@pytest.fixture
def make_scheduler(tmp_path):
    def _make(config: HarnessConfig) -> RecordingScheduler:
        run_dir = tmp_path / "out" / "run-test"
        sources = RepositoryProvider(config.scratch_dir).resolve_all(config.repositories)
        factory = ParticipantFactory(config, Builder(config.build), sources, run_dir)
        return RecordingScheduler(
            factory,
            ProcessSupervisor(),
            run_dir,
            timeouts=config.timeouts,
            readiness_patterns=config.readiness_patterns(),
            run_id="run-test",
        )

    return _make
