"""In-memory run state machine.

RunStateMachine validates run-level transitions against VALID_TRANSITIONS
and keeps a timestamped history. Run state lives only as long as the
process; a restarted run resumes from an explicit phase index and ref.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from agent_pipeline.state.models import (
    RunStatus,
    StateTransition,
    is_terminal_status,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a state machine rejects a transition.

    Attributes:
        from_state: The current state.
        to_state: The attempted target state.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_state: Enum,
        to_state: Enum,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or (
            f"Invalid transition from {from_state.value} to {to_state.value}"
        )
        super().__init__(self.message)


class RunStateMachine:
    """Tracks the run-level state of a single pipeline run.

    Invariants:
    - Only transitions listed in VALID_TRANSITIONS are accepted
    - While in PHASE, the phase index may stay (retry) or advance, never
      move backwards
    - Every transition is recorded with a timestamp

    Attributes:
        status: The current run status.
        phase_index: 1-based index of the phase being run, if any.
        history: Ordered transition records.

    Example:
        >>> machine = RunStateMachine()
        >>> machine.transition(RunStatus.PHASE, phase_index=1)
        >>> machine.transition(RunStatus.PHASE, phase_index=2)
        >>> machine.transition(RunStatus.FINALIZING)
    """

    def __init__(self, project: str = ""):
        self.project = project
        self.status = RunStatus.NOT_STARTED
        self.phase_index: Optional[int] = None
        self.history: List[StateTransition] = []

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def transition(
        self,
        to_status: RunStatus,
        phase_index: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """Move the run to ``to_status``.

        Args:
            to_status: Target status.
            phase_index: Required when entering PHASE.
            details: Optional metadata stored on the transition.

        Raises:
            InvalidTransitionError: If the transition or index is not allowed.
        """
        from_status = self.status

        if not is_valid_transition(from_status, to_status):
            logger.warning(
                "Invalid run transition attempted",
                extra={
                    "project": self.project,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(from_status, to_status)

        if to_status == RunStatus.PHASE:
            if phase_index is None or phase_index < 1:
                raise InvalidTransitionError(
                    from_status, to_status, "phase transitions need a 1-based phase index"
                )
            if self.phase_index is not None and phase_index < self.phase_index:
                raise InvalidTransitionError(
                    from_status,
                    to_status,
                    f"phase index cannot move back from {self.phase_index} to {phase_index}",
                )
            self.phase_index = phase_index

        record = StateTransition(
            from_status=from_status,
            to_status=to_status,
            phase_index=self.phase_index,
            timestamp=datetime.now(timezone.utc),
            details=details or {},
        )
        self.history.append(record)
        self.status = to_status

        logger.debug(
            "Run transition",
            extra={
                "project": self.project,
                "from_status": from_status.value,
                "to_status": to_status.value,
                "phase_index": self.phase_index,
            },
        )
        return record
