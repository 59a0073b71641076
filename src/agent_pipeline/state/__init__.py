"""Run state: context, result log and the run-level state machine."""

from agent_pipeline.state.machine import InvalidTransitionError, RunStateMachine
from agent_pipeline.state.models import (
    NO_JOB,
    VALID_TRANSITIONS,
    DesignContext,
    PhaseRecord,
    PhaseStatus,
    RunContext,
    RunMode,
    RunResult,
    RunStatus,
    ScopeTier,
    StateTransition,
    is_terminal_status,
    is_valid_transition,
)

__all__ = [
    "NO_JOB",
    "VALID_TRANSITIONS",
    "DesignContext",
    "InvalidTransitionError",
    "PhaseRecord",
    "PhaseStatus",
    "RunContext",
    "RunMode",
    "RunResult",
    "RunStateMachine",
    "RunStatus",
    "ScopeTier",
    "StateTransition",
    "is_terminal_status",
    "is_valid_transition",
]
