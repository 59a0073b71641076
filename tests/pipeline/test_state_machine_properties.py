"""Property-based tests for the run state machine.

Verifies that RunStateMachine accepts exactly the transitions listed in
VALID_TRANSITIONS, keeps the phase index monotonic and records history.
"""

import pytest
from hypothesis import given, strategies as st

from agent_pipeline.state.machine import InvalidTransitionError, RunStateMachine
from agent_pipeline.state.models import (
    VALID_TRANSITIONS,
    PhaseRecord,
    PhaseStatus,
    RunResult,
    RunStatus,
    is_terminal_status,
)


TERMINAL = [RunStatus.COMPLETED, RunStatus.STOPPED, RunStatus.FAILED]


def _machine_in(status: RunStatus) -> RunStateMachine:
    """Drive a fresh machine into ``status`` through valid transitions."""
    machine = RunStateMachine("shop")
    paths = {
        RunStatus.NOT_STARTED: [],
        RunStatus.PHASE: [RunStatus.PHASE],
        RunStatus.FINALIZING: [RunStatus.FINALIZING],
        RunStatus.COMPLETED: [RunStatus.FINALIZING, RunStatus.COMPLETED],
        RunStatus.STOPPED: [RunStatus.PHASE, RunStatus.STOPPED],
        RunStatus.FAILED: [RunStatus.PHASE, RunStatus.FAILED],
    }
    for step in paths[status]:
        machine.transition(step, phase_index=1 if step == RunStatus.PHASE else None)
    return machine


@given(from_status=st.sampled_from(list(RunStatus)), to_status=st.sampled_from(list(RunStatus)))
def test_transitions_follow_table(from_status, to_status):
    machine = _machine_in(from_status)
    phase_index = 1 if to_status == RunStatus.PHASE else None

    if to_status in VALID_TRANSITIONS[from_status]:
        machine.transition(to_status, phase_index=phase_index)
        assert machine.status == to_status
    else:
        with pytest.raises(InvalidTransitionError):
            machine.transition(to_status, phase_index=phase_index)
        assert machine.status == from_status


@pytest.mark.parametrize("status", TERMINAL)
def test_terminal_statuses_have_no_exits(status):
    assert is_terminal_status(status)
    assert VALID_TRANSITIONS[status] == []
    assert _machine_in(status).is_terminal


def test_stop_and_fail_only_reachable_from_phase():
    for status, targets in VALID_TRANSITIONS.items():
        if status != RunStatus.PHASE:
            assert RunStatus.STOPPED not in targets


def test_finalizing_only_completes():
    assert VALID_TRANSITIONS[RunStatus.FINALIZING] == [RunStatus.COMPLETED]


@given(st.lists(st.integers(min_value=0, max_value=3), min_size=1, max_size=20))
def test_phase_index_never_moves_backwards(steps):
    machine = RunStateMachine()
    index = 1
    machine.transition(RunStatus.PHASE, phase_index=index)
    for step in steps:
        index += step
        machine.transition(RunStatus.PHASE, phase_index=index)
        assert machine.phase_index == index

    with pytest.raises(InvalidTransitionError):
        machine.transition(RunStatus.PHASE, phase_index=index - 1)


def test_phase_requires_index():
    machine = RunStateMachine()
    with pytest.raises(InvalidTransitionError, match="1-based"):
        machine.transition(RunStatus.PHASE)


def test_history_records_every_transition():
    machine = RunStateMachine("shop")
    machine.transition(RunStatus.PHASE, phase_index=1)
    machine.transition(RunStatus.PHASE, phase_index=2)
    machine.transition(RunStatus.FINALIZING)
    machine.transition(RunStatus.COMPLETED, details={"pr": 7})

    assert [(t.from_status, t.to_status) for t in machine.history] == [
        (RunStatus.NOT_STARTED, RunStatus.PHASE),
        (RunStatus.PHASE, RunStatus.PHASE),
        (RunStatus.PHASE, RunStatus.FINALIZING),
        (RunStatus.FINALIZING, RunStatus.COMPLETED),
    ]
    assert machine.history[-1].details == {"pr": 7}
    assert all(t.timestamp.tzinfo is not None for t in machine.history)


# ---------------------------------------------------------------------------
# RunResult
# ---------------------------------------------------------------------------


def test_mark_last_retried_rewrites_trailing_failure():
    result = RunResult()
    result.append(PhaseRecord(phase="Architect", status=PhaseStatus.FAILED, detail="boom"))
    result.mark_last_retried()

    assert result.records[-1].status == PhaseStatus.RETRIED
    assert result.records[-1].detail == "boom"


def test_mark_last_retried_rejects_non_failure():
    result = RunResult()
    result.append(PhaseRecord(phase="Architect", status=PhaseStatus.COMPLETED))

    with pytest.raises(ValueError):
        result.mark_last_retried()
    with pytest.raises(ValueError):
        RunResult().mark_last_retried()


def test_retried_attempts_do_not_block_finalization():
    result = RunResult()
    result.append(PhaseRecord(phase="Architect", status=PhaseStatus.RETRIED))
    result.append(PhaseRecord(phase="Architect", status=PhaseStatus.COMPLETED))
    result.append(PhaseRecord(phase="QA Reviewer", status=PhaseStatus.SKIPPED_SCOPE))

    assert result.phases_succeeded
    assert result.completed_phases() == ["Architect"]


def test_failed_phase_blocks_finalization():
    result = RunResult()
    result.append(PhaseRecord(phase="Engineer", status=PhaseStatus.FAILED))
    assert not result.phases_succeeded
