"""Launch participant processes and supervise their lifetimes."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, Optional, Pattern, Union

from ct_runner.log_buffer import LogBuffer, LogMatch
from ct_runner.models import (
    LAUNCH_FAILURE_EXIT_CODE,
    ParticipantSpec,
    ProcessHandle,
    ProcessStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_GRACE = 5.0
DRAIN_TIMEOUT = 5.0


class ParticipantLogFile:
    """Append-only sink for one participant log; write errors are reported once."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: IO[str] | None = None
        self._failed = False
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = path.open("a", encoding="utf-8")
        except OSError as exc:
            self._report(exc)

    def write(self, line: str) -> None:
        if self._handle is None:
            return
        try:
            self._handle.write(line + "\n")
            self._handle.flush()
        except OSError as exc:
            self._report(exc)
            self.close()

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        except OSError as exc:
            self._report(exc)
        self._handle = None

    def _report(self, exc: OSError) -> None:
        if self._failed:
            return
        self._failed = True
        logger.warning("Participant log %s is not writable: %s", self.path, exc)


class ProcessSupervisor:
    """Start processes, stream their output and terminate them.

    Each launched process gets a reader thread that feeds merged
    stdout/stderr into the handle's :class:`LogBuffer` before writing it to
    the participant log file, so waits never depend on disk I/O.
    """

    def __init__(self, ring_size: int = 10000) -> None:
        self._ring_size = ring_size

    def launch(self, spec: ParticipantSpec) -> ProcessHandle:
        handle = ProcessHandle(spec=spec, buffer=LogBuffer(self._ring_size))
        sink = ParticipantLogFile(spec.log_path)
        env = os.environ.copy()
        env.update(spec.env)
        logger.info("Launching %s %s: %s", spec.role.value, spec.id, " ".join(spec.command))
        try:
            proc = subprocess.Popen(
                spec.command,
                cwd=spec.workdir,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except OSError as exc:
            message = f"failed to launch {spec.command[0]}: {exc}"
            logger.error("Participant %s %s", spec.id, message)
            handle.buffer.append(message)
            sink.write(message)
            sink.close()
            handle.mark_exited(LAUNCH_FAILURE_EXIT_CODE)
            handle.buffer.close()
            return handle

        handle.process = proc
        handle.mark_running(proc.pid)
        reader = threading.Thread(
            target=self._pump,
            args=(handle, proc, sink),
            name=f"ct-log-{spec.id}",
            daemon=True,
        )
        handle.reader = reader
        reader.start()
        return handle

    def await_log_pattern(
        self,
        handle: ProcessHandle,
        pattern: Union[str, Pattern[str]],
        timeout: Optional[float],
        start: int = 0,
    ) -> Optional[LogMatch]:
        """Wait for a line matching ``pattern`` in the participant's output.

        Returns ``None`` on timeout, or early once the process has exited and
        its output is drained without a match.
        """
        return handle.buffer.wait_for(pattern, timeout=timeout, start=start)

    def await_exit(self, handle: ProcessHandle, timeout: Optional[float]) -> Optional[int]:
        if handle.status is ProcessStatus.NOT_STARTED:
            return None
        if not handle.buffer.wait_closed(timeout):
            return None
        return handle.exit_code

    def terminate(
        self, handle: ProcessHandle, grace: float = DEFAULT_TERMINATE_GRACE
    ) -> None:
        """SIGTERM, wait ``grace`` seconds, then SIGKILL. No-op on terminal handles."""
        proc = handle.process
        if proc is None or handle.is_terminal():
            handle.buffer.wait_closed(DRAIN_TIMEOUT)
            return
        if proc.poll() is not None:
            # Exited on its own; the reader thread records the exit.
            self._signal(proc, signal.SIGKILL)
            handle.buffer.wait_closed(DRAIN_TIMEOUT)
            return
        handle.request_stop()
        forced = False
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Participant %s did not exit within %.1fs, killing it", handle.id, grace
            )
            forced = True
            self._signal(proc, signal.SIGKILL)
            proc.wait()
        # Orphans sharing the pipe would block the reader.
        self._signal(proc, signal.SIGKILL)
        if not handle.buffer.wait_closed(DRAIN_TIMEOUT):
            logger.warning("Output of %s was not drained after termination", handle.id)
            handle.mark_exited(proc.returncode)
        if forced:
            handle.mark_killed()
        logger.info(
            "Participant %s stopped (status=%s, exit_code=%s)",
            handle.id,
            handle.status.value,
            handle.exit_code,
        )

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: signal.Signals) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            return
        except PermissionError:
            if proc.poll() is None:
                proc.send_signal(sig)

    @staticmethod
    def _pump(
        handle: ProcessHandle, proc: subprocess.Popen, sink: ParticipantLogFile
    ) -> None:
        assert proc.stdout is not None
        try:
            for raw in proc.stdout:
                line = raw.rstrip("\r\n")
                handle.buffer.append(line)
                sink.write(line)
                logger.debug("[%s] %s", handle.id, line)
        except (OSError, ValueError) as exc:
            logger.warning("Output stream of %s broke: %s", handle.id, exc)
        finally:
            proc.stdout.close()
            code = proc.wait()
            sink.close()
            handle.mark_exited(code)
            handle.buffer.close()
            if handle.exited_unexpectedly():
                logger.warning(
                    "Participant %s exited unexpectedly with code %s", handle.id, code
                )
            else:
                logger.info("Participant %s exited with code %s", handle.id, code)
