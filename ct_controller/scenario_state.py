"""Scenario lifecycle state machine."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional


class ScenarioState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TERMINAL_STATES = {
    ScenarioState.COMPLETED,
    ScenarioState.FAILED,
    ScenarioState.TIMED_OUT,
}


_ALLOWED_TRANSITIONS = {
    ScenarioState.IDLE: {ScenarioState.RUNNING, ScenarioState.FAILED},
    ScenarioState.RUNNING: {
        ScenarioState.COMPLETED,
        ScenarioState.FAILED,
        ScenarioState.TIMED_OUT,
    },
    ScenarioState.COMPLETED: set(),
    ScenarioState.FAILED: set(),
    ScenarioState.TIMED_OUT: set(),
}


class ScenarioStateMachine:
    """Thread-safe scenario state tracker."""

    def __init__(self) -> None:
        self._state = ScenarioState.IDLE
        self._lock = threading.RLock()
        self._reason: Optional[str] = None
        self._callbacks: list[Callable[[ScenarioState, Optional[str]], None]] = []

    @property
    def state(self) -> ScenarioState:
        with self._lock:
            return self._state

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def is_terminal(self) -> bool:
        with self._lock:
            return self._state in _TERMINAL_STATES

    def register_callback(
        self, callback: Callable[[ScenarioState, Optional[str]], None]
    ) -> None:
        """Register a callback invoked on every transition."""
        self._callbacks.append(callback)

    def transition(
        self, new_state: ScenarioState, reason: Optional[str] = None
    ) -> ScenarioState:
        """Attempt a state transition; raise ValueError if invalid."""
        with self._lock:
            allowed = _ALLOWED_TRANSITIONS.get(self._state, set())
            if new_state not in allowed:
                raise ValueError(f"Invalid transition {self._state} -> {new_state}")
            self._state = new_state
            self._reason = reason
            callbacks = list(self._callbacks)
        for cb in callbacks:
            cb(new_state, reason)
        return new_state

    def snapshot(self) -> tuple[ScenarioState, Optional[str]]:
        with self._lock:
            return self._state, self._reason
