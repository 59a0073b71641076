"""What the orchestrator reports while a run progresses.

EventType names the seven things worth reporting; PipelineEvent carries
one of them with the project it concerns and a free-form ``details`` dict.
Events are observational: nothing in a run depends on them being
delivered.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Kinds of run events.

    Attributes:
        STATE_TRANSITION: The run state machine changed state.
        PHASE_COMPLETED: A phase (or finalization step) succeeded.
        PHASE_SKIPPED: A phase was skipped by ``--from`` or by scope.
        PHASE_FAILED: A phase failed or hit a merge conflict.
        APPROVAL: An approval gate was decided, by a human or by timeout.
        TIMEOUT: A job was still running when its polling budget ran out.
        COMPLETION: The run ended; details carry the final status.
    """

    STATE_TRANSITION = "state_transition"
    PHASE_COMPLETED = "phase_completed"
    PHASE_SKIPPED = "phase_skipped"
    PHASE_FAILED = "phase_failed"
    APPROVAL = "approval"
    TIMEOUT = "timeout"
    COMPLETION = "completion"


class PipelineEvent(BaseModel):
    """One run event.

    ``details`` keys by event type:

    - STATE_TRANSITION: from_status, to_status, phase_index
    - PHASE_*: the PhaseRecord fields (phase, job_id, status, detail,
      duration_seconds)
    - APPROVAL: phase, job_id, decision, automatic
    - TIMEOUT: phase, job_id, elapsed_seconds
    - COMPLETION: status, duration_seconds

    Example:
        >>> PipelineEvent(
        ...     event_type=EventType.PHASE_COMPLETED,
        ...     project="shop",
        ...     repository="acme/shop",
        ...     details={"phase": "Architect", "duration_seconds": 812.0},
        ... )
    """

    event_type: EventType = Field(..., description="Kind of event")

    project: str = Field(..., min_length=1, description="Project being built")

    repository: str = Field(..., min_length=1, description="owner/name of the project repository")

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC time the event was created",
    )

    details: Dict[str, Any] = Field(default_factory=dict, description="Event-type specific fields")

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat dict for a log record's ``extra``."""
        return {
            "event_type": self.event_type.value,
            "project": self.project,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
