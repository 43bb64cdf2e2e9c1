"""Tests for ProcessSupervisor with real (python) child processes."""

from __future__ import annotations

import signal
import sys
import time

import pytest

from ct_runner.models import (
    LAUNCH_FAILURE_EXIT_CODE,
    ParticipantRole,
    ParticipantSpec,
    ProcessStatus,
    is_clean_exit,
)
from ct_runner.supervisor import ProcessSupervisor


pytestmark = pytest.mark.unit_runner


def _spec(tmp_path, script: str, participant_id: str = "p1", **kwargs) -> ParticipantSpec:
    return ParticipantSpec(
        role=kwargs.pop("role", ParticipantRole.CONTRIBUTOR),
        id=participant_id,
        executable=sys.executable,
        args=("-u", "-c", script),
        log_path=tmp_path / participant_id / f"{participant_id}.log",
        **kwargs,
    )


def test_launch_streams_output_to_buffer_and_file(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "print('hello'); print('world')"))

    assert supervisor.await_exit(handle, 10) == 0
    assert handle.status is ProcessStatus.EXITED
    assert handle.buffer.lines() == ["hello", "world"]
    assert handle.log_path.read_text() == "hello\nworld\n"


def test_stderr_is_merged(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(
        _spec(tmp_path, "import sys; sys.stderr.write('oops\\n')")
    )
    supervisor.await_exit(handle, 10)
    assert "oops" in handle.buffer.lines()


def test_environment_is_passed(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(
        _spec(tmp_path, "import os; print(os.environ['RUST_LOG'])", env={"RUST_LOG": "debug"})
    )
    supervisor.await_exit(handle, 10)
    assert handle.buffer.lines() == ["debug"]


def test_launch_failure_returns_synthetic_exit_code(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    spec = ParticipantSpec(
        role=ParticipantRole.VERIFIER,
        id="v1",
        executable=str(tmp_path / "does-not-exist"),
        log_path=tmp_path / "v1" / "v1.log",
    )

    handle = supervisor.launch(spec)

    assert handle.status is ProcessStatus.EXITED
    assert handle.exit_code == LAUNCH_FAILURE_EXIT_CODE
    assert handle.launch_failed()
    assert "failed to launch" in handle.log_path.read_text()
    assert supervisor.await_exit(handle, 0) == LAUNCH_FAILURE_EXIT_CODE


def test_await_log_pattern_finds_line(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(
        _spec(tmp_path, "import time; print('Coordinator has booted up', flush=True); time.sleep(30)")
    )
    try:
        match = supervisor.await_log_pattern(handle, "booted up", 10)
        assert match is not None
        assert handle.is_running()
    finally:
        supervisor.terminate(handle, 2)


def test_await_log_pattern_returns_none_when_process_exits(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "import sys; print('panic'); sys.exit(3)"))

    started = time.monotonic()
    assert supervisor.await_log_pattern(handle, "ready", 30) is None
    assert time.monotonic() - started < 10
    assert handle.is_terminal()
    assert handle.exit_code == 3
    assert handle.exited_unexpectedly()


def test_await_exit_times_out_without_killing(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "import time; time.sleep(30)"))
    try:
        assert supervisor.await_exit(handle, 0.2) is None
        assert handle.is_running()
    finally:
        supervisor.terminate(handle, 2)


def test_terminate_within_grace_marks_exited(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "import time; time.sleep(30)"))

    supervisor.terminate(handle, 5)

    assert handle.status is ProcessStatus.EXITED
    assert handle.exit_code == -signal.SIGTERM
    assert is_clean_exit(handle.exit_code)
    assert not handle.exited_unexpectedly()


def test_terminate_kills_after_grace(tmp_path) -> None:
    script = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ignoring', flush=True)\n"
        "time.sleep(30)\n"
    )
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, script))
    assert supervisor.await_log_pattern(handle, "ignoring", 10) is not None

    supervisor.terminate(handle, 0.3)

    assert handle.status is ProcessStatus.KILLED
    assert handle.exit_code == -signal.SIGKILL


def test_terminate_is_idempotent(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "print('done')"))
    supervisor.await_exit(handle, 10)

    supervisor.terminate(handle, 1)
    supervisor.terminate(handle, 1)

    assert handle.status is ProcessStatus.EXITED
    assert handle.exit_code == 0
    assert not handle.stop_requested


def test_crash_just_before_stop_is_still_unexpected(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    handle = supervisor.launch(_spec(tmp_path, "import sys; sys.exit(4)"))
    # Reap the child ourselves so the reader thread may not have marked it yet.
    assert handle.process.wait(10) == 4

    supervisor.terminate(handle, 1)

    assert not handle.stop_requested
    assert handle.status is ProcessStatus.EXITED
    assert handle.exit_code == 4
    assert handle.exited_unexpectedly()


def test_restart_appends_to_same_log(tmp_path) -> None:
    supervisor = ProcessSupervisor()
    first = supervisor.launch(_spec(tmp_path, "print('first run')"))
    supervisor.await_exit(first, 10)
    second = supervisor.launch(_spec(tmp_path, "print('second run')"))
    supervisor.await_exit(second, 10)

    assert first is not second
    assert first.buffer.lines() == ["first run"]
    assert second.log_path.read_text() == "first run\nsecond run\n"


@pytest.mark.parametrize(
    "code,clean",
    [(0, True), (-signal.SIGTERM, True), (1, False), (-signal.SIGKILL, False), (None, False)],
)
def test_is_clean_exit(code, clean) -> None:
    assert is_clean_exit(code) is clean
