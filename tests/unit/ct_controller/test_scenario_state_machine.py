from __future__ import annotations

import pytest

from ct_controller.scenario_state import ScenarioState, ScenarioStateMachine


pytestmark = pytest.mark.unit_controller


def test_happy_path_transitions() -> None:
    sm = ScenarioStateMachine()
    seen = []
    sm.register_callback(lambda state, reason: seen.append((state, reason)))

    sm.transition(ScenarioState.RUNNING)
    sm.transition(ScenarioState.COMPLETED)

    assert sm.is_terminal()
    assert seen == [(ScenarioState.RUNNING, None), (ScenarioState.COMPLETED, None)]


def test_failure_keeps_reason() -> None:
    sm = ScenarioStateMachine()
    sm.transition(ScenarioState.RUNNING)
    sm.transition(ScenarioState.TIMED_OUT, "limit reached")
    assert sm.snapshot() == (ScenarioState.TIMED_OUT, "limit reached")


def test_invalid_transition_raises() -> None:
    sm = ScenarioStateMachine()
    with pytest.raises(ValueError):
        sm.transition(ScenarioState.COMPLETED)
    sm.transition(ScenarioState.RUNNING)
    sm.transition(ScenarioState.FAILED)
    with pytest.raises(ValueError):
        sm.transition(ScenarioState.RUNNING)
