"""Participant and process handle models."""

from __future__ import annotations

import signal
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ct_runner.log_buffer import LogBuffer

LAUNCH_FAILURE_EXIT_CODE = -127


class ParticipantRole(str, Enum):
    """Roles taking part in the setup ceremony."""

    COORDINATOR = "coordinator"
    PROXY = "proxy"
    CONTRIBUTOR = "contributor"
    VERIFIER = "verifier"


class ProcessStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"


_TERMINAL_STATUSES = {ProcessStatus.EXITED, ProcessStatus.KILLED}


def is_clean_exit(code: Optional[int]) -> bool:
    """Exit code 0, or termination by SIGTERM, counts as a clean exit."""
    return code == 0 or code == -signal.SIGTERM


@dataclass(frozen=True)
class ParticipantSpec:
    """Everything needed to launch one participant process."""

    role: ParticipantRole
    id: str
    executable: str
    log_path: Path
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    workdir: Optional[Path] = None
    artifact: Any = None

    @property
    def command(self) -> list[str]:
        return [self.executable, *self.args]


@dataclass(eq=False)
class ProcessHandle:
    """Live view of one launched process.

    Only :class:`ProcessSupervisor` mutates a handle. Handles compare by
    identity, so a restart of the same participant id is a distinct handle.
    """

    spec: ParticipantSpec
    buffer: LogBuffer
    pid: Optional[int] = None
    status: ProcessStatus = ProcessStatus.NOT_STARTED
    exit_code: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stop_requested: bool = False
    process: Optional[subprocess.Popen] = field(default=None, repr=False)
    reader: Optional[threading.Thread] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def role(self) -> ParticipantRole:
        return self.spec.role

    @property
    def log_path(self) -> Path:
        return self.spec.log_path

    def is_running(self) -> bool:
        with self._lock:
            return self.status is ProcessStatus.RUNNING

    def is_terminal(self) -> bool:
        with self._lock:
            return self.status in _TERMINAL_STATUSES

    def launch_failed(self) -> bool:
        with self._lock:
            return self.exit_code == LAUNCH_FAILURE_EXIT_CODE and self.pid is None

    def exited_unexpectedly(self) -> bool:
        """Terminal without a stop request and without a clean exit code."""
        with self._lock:
            return (
                self.status in _TERMINAL_STATUSES
                and not self.stop_requested
                and not is_clean_exit(self.exit_code)
            )

    def mark_running(self, pid: int) -> None:
        with self._lock:
            self.pid = pid
            self.status = ProcessStatus.RUNNING
            self.started_at = datetime.now()

    def mark_exited(self, code: Optional[int]) -> None:
        with self._lock:
            if self.exit_code is None:
                self.exit_code = code
            if self.status not in _TERMINAL_STATUSES:
                self.status = ProcessStatus.EXITED
            if self.finished_at is None:
                self.finished_at = datetime.now()

    def mark_killed(self) -> None:
        with self._lock:
            self.status = ProcessStatus.KILLED
            if self.finished_at is None:
                self.finished_at = datetime.now()

    def request_stop(self) -> None:
        with self._lock:
            self.stop_requested = True

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "id": self.spec.id,
                "role": self.spec.role.value,
                "pid": self.pid,
                "status": self.status.value,
                "exit_code": self.exit_code,
                "log_path": str(self.spec.log_path),
            }
