"""Public API surface for participant process supervision."""

from ct_runner.log_buffer import LogBuffer, LogMatch
from ct_runner.models import (
    LAUNCH_FAILURE_EXIT_CODE,
    ParticipantRole,
    ParticipantSpec,
    ProcessHandle,
    ProcessStatus,
    is_clean_exit,
)
from ct_runner.supervisor import DEFAULT_TERMINATE_GRACE, ProcessSupervisor

__all__ = [
    "DEFAULT_TERMINATE_GRACE",
    "LAUNCH_FAILURE_EXIT_CODE",
    "LogBuffer",
    "LogMatch",
    "ParticipantRole",
    "ParticipantSpec",
    "ProcessHandle",
    "ProcessStatus",
    "ProcessSupervisor",
    "is_clean_exit",
]
