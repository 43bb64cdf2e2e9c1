"""Ceremony topology: ordered start-up, readiness gating and teardown."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Mapping, Optional

from ct_common.api import TopologyError
from ct_runner.api import (
    ParticipantRole,
    ParticipantSpec,
    ProcessHandle,
    ProcessStatus,
    ProcessSupervisor,
)

logger = logging.getLogger(__name__)

_SIBLING_ROLES = {ParticipantRole.CONTRIBUTOR, ParticipantRole.VERIFIER}


def _expiry(timeout: Optional[float]) -> Optional[float]:
    return None if timeout is None else time.monotonic() + max(timeout, 0.0)


def _remaining(expires_at: Optional[float]) -> Optional[float]:
    if expires_at is None:
        return None
    return max(expires_at - time.monotonic(), 0.0)


class TopologyManager:
    """Track the participants of one ceremony and enforce start-up order.

    The proxy, contributors and verifiers only start once the coordinator
    printed its readiness line; contributors and verifiers also wait for a
    registered proxy. Every handle ever launched stays in ``history`` so a
    replaced participant's log remains reachable.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        *,
        readiness_timeout: float = 120.0,
        terminate_grace: float = 5.0,
        readiness_patterns: Optional[Mapping[ParticipantRole, str]] = None,
        max_workers: int = 8,
    ) -> None:
        self._supervisor = supervisor
        self._readiness_timeout = readiness_timeout
        self._terminate_grace = terminate_grace
        self._patterns = dict(readiness_patterns or {})
        self._max_workers = max_workers
        self._lock = threading.RLock()
        self._coordinator: Optional[ProcessHandle] = None
        self._proxy: Optional[ProcessHandle] = None
        self._contributors: Dict[str, ProcessHandle] = {}
        self._verifiers: Dict[str, ProcessHandle] = {}
        self._history: Dict[str, List[ProcessHandle]] = {}
        self._ready: set[ProcessHandle] = set()

    @property
    def coordinator(self) -> Optional[ProcessHandle]:
        with self._lock:
            return self._coordinator

    @property
    def proxy(self) -> Optional[ProcessHandle]:
        with self._lock:
            return self._proxy

    def add_participant(
        self, spec: ParticipantSpec, timeout: Optional[float] = None
    ) -> ProcessHandle:
        """Launch one participant once the topology allows it.

        ``timeout`` caps the readiness waits the launch is gated on.
        """
        expires_at = _expiry(timeout)
        if spec.role is not ParticipantRole.COORDINATOR:
            self._await_coordinator(spec, _remaining(expires_at))
        if spec.role in _SIBLING_ROLES:
            self._await_proxy(spec, _remaining(expires_at))

        with self._lock:
            existing = self._registered(spec.id)
            if existing is not None and not existing.is_terminal():
                raise TopologyError(
                    f"Participant '{spec.id}' is already running",
                    reason=TopologyError.DUPLICATE_ID,
                    context={"id": spec.id},
                )
            live_coordinator = self._coordinator
            if (
                spec.role is ParticipantRole.COORDINATOR
                and live_coordinator is not None
                and not live_coordinator.is_terminal()
            ):
                raise TopologyError(
                    f"Coordinator '{live_coordinator.id}' is already running",
                    reason=TopologyError.DUPLICATE_COORDINATOR,
                    context={"id": spec.id, "running": live_coordinator.id},
                )
            handle = self._supervisor.launch(spec)
            self._register(handle)

        if handle.launch_failed():
            raise TopologyError(
                f"Participant '{spec.id}' could not be launched",
                reason=TopologyError.LAUNCH_FAILED,
                context={"id": spec.id, "command": " ".join(spec.command)},
            )
        return handle

    def start(
        self, specs: Iterable[ParticipantSpec], timeout: Optional[float] = None
    ) -> List[ProcessHandle]:
        """Bring up coordinator, proxy, then all other participants concurrently.

        ``timeout`` caps the whole bring-up, readiness waits included.
        """
        specs = list(specs)
        expires_at = _expiry(timeout)
        by_id: Dict[str, ProcessHandle] = {}
        for role in (ParticipantRole.COORDINATOR, ParticipantRole.PROXY):
            for spec in (s for s in specs if s.role is role):
                handle = self.add_participant(spec, _remaining(expires_at))
                by_id[spec.id] = handle
                self.wait_ready(handle, _remaining(expires_at))

        siblings = [s for s in specs if s.role in _SIBLING_ROLES]
        if siblings:
            errors: List[Exception] = []
            workers = max(1, min(self._max_workers, len(siblings)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ct-start") as pool:
                futures = {
                    spec.id: pool.submit(self.add_participant, spec, _remaining(expires_at))
                    for spec in siblings
                }
                for participant_id, future in futures.items():
                    try:
                        by_id[participant_id] = future.result()
                    except TopologyError as exc:
                        errors.append(exc)
            if errors:
                raise errors[0]
        return [by_id[spec.id] for spec in specs]

    def wait_ready(self, handle: ProcessHandle, timeout: Optional[float] = None) -> None:
        """Block until ``handle`` printed its role's readiness pattern.

        ``timeout`` caps the role's readiness timeout. A failure caused by the
        cap, not by the readiness timeout or an exit, is flagged in the
        error context as ``time_limited``.
        """
        with self._lock:
            if handle in self._ready:
                return
        pattern = self._patterns.get(handle.role)
        if pattern is not None:
            wait = self._readiness_timeout
            capped = timeout is not None and timeout < wait
            if capped:
                wait = timeout
            match = self._supervisor.await_log_pattern(handle, pattern, wait)
            if match is None:
                reason = (
                    TopologyError.COORDINATOR_NOT_READY
                    if handle.role is ParticipantRole.COORDINATOR
                    else TopologyError.PROXY_NOT_READY
                )
                raise TopologyError(
                    f"{handle.role.value.capitalize()} '{handle.id}' did not become ready",
                    reason=reason,
                    context={
                        "id": handle.id,
                        "pattern": pattern,
                        "status": handle.status.value,
                        "exit_code": handle.exit_code,
                        "time_limited": capped and not handle.is_terminal(),
                    },
                )
            logger.info("%s %s is ready", handle.role.value.capitalize(), handle.id)
        with self._lock:
            self._ready.add(handle)

    def remove_participant(
        self, participant_id: str, grace: Optional[float] = None
    ) -> Optional[ProcessHandle]:
        """Terminate and unregister a participant; absent ids are ignored."""
        with self._lock:
            handle = self._registered(participant_id)
        if handle is None:
            return None
        self._supervisor.terminate(
            handle, self._terminate_grace if grace is None else grace
        )
        with self._lock:
            self._unregister(handle)
        return handle

    def teardown(self) -> None:
        """Terminate everything, dependents first; safe to call repeatedly."""
        with self._lock:
            siblings = [*self._contributors.values(), *self._verifiers.values()]
            proxy = self._proxy
            coordinator = self._coordinator
            leftovers = [
                handle
                for handles in self._history.values()
                for handle in handles
                if not handle.is_terminal()
            ]
        live = [h for h in siblings if not h.is_terminal()]
        if live:
            logger.info("Stopping %d contributor/verifier process(es)", len(live))
            with ThreadPoolExecutor(
                max_workers=max(1, min(self._max_workers, len(live))),
                thread_name_prefix="ct-stop",
            ) as pool:
                list(pool.map(lambda h: self._supervisor.terminate(h, self._terminate_grace), live))
        for handle in (proxy, coordinator, *leftovers):
            if handle is not None:
                self._supervisor.terminate(handle, self._terminate_grace)

    def get(self, participant_id: str) -> Optional[ProcessHandle]:
        with self._lock:
            return self._registered(participant_id)

    def latest(self, participant_id: str) -> Optional[ProcessHandle]:
        """Current handle, or the last one launched under ``participant_id``."""
        with self._lock:
            handles = self._history.get(participant_id)
            return handles[-1] if handles else None

    def handles_for(self, participant_id: str) -> List[ProcessHandle]:
        with self._lock:
            return list(self._history.get(participant_id, []))

    def statuses(self) -> Dict[str, ProcessStatus]:
        return {handle.id: handle.status for handle in self.registered()}

    def registered(self) -> List[ProcessHandle]:
        with self._lock:
            handles: List[ProcessHandle] = []
            if self._coordinator is not None:
                handles.append(self._coordinator)
            if self._proxy is not None:
                handles.append(self._proxy)
            handles.extend(self._contributors.values())
            handles.extend(self._verifiers.values())
            return handles

    def all_handles(self) -> List[ProcessHandle]:
        with self._lock:
            return [h for handles in self._history.values() for h in handles]

    def unexpected_exits(self) -> List[ProcessHandle]:
        return [h for h in self.all_handles() if h.exited_unexpectedly()]

    def log_paths(self) -> Dict[str, str]:
        with self._lock:
            return {pid: str(handles[-1].log_path) for pid, handles in self._history.items()}

    def _await_coordinator(self, spec: ParticipantSpec, timeout: Optional[float]) -> None:
        coordinator = self.coordinator
        if coordinator is None or coordinator.is_terminal():
            raise TopologyError(
                f"Cannot start '{spec.id}': no coordinator is running",
                reason=TopologyError.MISSING_COORDINATOR,
                context={"id": spec.id},
            )
        self.wait_ready(coordinator, timeout)

    def _await_proxy(self, spec: ParticipantSpec, timeout: Optional[float]) -> None:
        proxy = self.proxy
        if proxy is None:
            return
        if proxy.is_terminal():
            raise TopologyError(
                f"Cannot start '{spec.id}': proxy '{proxy.id}' is not running",
                reason=TopologyError.PROXY_NOT_READY,
                context={"id": spec.id, "proxy": proxy.id},
            )
        self.wait_ready(proxy, timeout)

    def _registered(self, participant_id: str) -> Optional[ProcessHandle]:
        if self._coordinator is not None and self._coordinator.id == participant_id:
            return self._coordinator
        if self._proxy is not None and self._proxy.id == participant_id:
            return self._proxy
        return self._contributors.get(participant_id) or self._verifiers.get(participant_id)

    def _register(self, handle: ProcessHandle) -> None:
        previous = self._registered(handle.id)
        if previous is not None:
            self._unregister(previous)
        if handle.role is ParticipantRole.COORDINATOR:
            self._coordinator = handle
        elif handle.role is ParticipantRole.PROXY:
            self._proxy = handle
        elif handle.role is ParticipantRole.CONTRIBUTOR:
            self._contributors[handle.id] = handle
        else:
            self._verifiers[handle.id] = handle
        self._history.setdefault(handle.id, []).append(handle)

    def _unregister(self, handle: ProcessHandle) -> None:
        if self._coordinator is handle:
            self._coordinator = None
        elif self._proxy is handle:
            self._proxy = None
        elif self._contributors.get(handle.id) is handle:
            del self._contributors[handle.id]
        elif self._verifiers.get(handle.id) is handle:
            del self._verifiers[handle.id]
