"""Run state models.

This module defines the data that flows through a pipeline run:
- RunMode / ScopeTier: how the run was classified
- DesignContext: the approved design direction, set after design exploration
- RunContext: the mutable record threaded through every phase
- PhaseRecord / RunResult: the append-only log of what happened
- RunStatus / VALID_TRANSITIONS: the run-level state machine

The models use Pydantic for validation, consistent with config.py and
webhook/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RunMode(str, Enum):
    """What kind of change the run makes.

    AUTO is resolved to one of the others before any phase runs.
    """

    INIT = "init"
    FEAT = "feat"
    FIX = "fix"
    AUTO = "auto"

    @property
    def uses_feature_branch(self) -> bool:
        return self in (RunMode.FEAT, RunMode.FIX)


class ScopeTier(str, Enum):
    """Estimated size of the requested work."""

    NANO = "nano"
    MICRO = "micro"
    STANDARD = "standard"
    LARGE = "large"


class DesignContext(BaseModel):
    """Approved design direction carried into later phases.

    Attributes:
        approved_mockup_url: URL of the selected mockup image.
        variant_name: Display name of the selected direction.
        feedback: Operator feedback given with the selection.
        scaffold_path: Repository path of the generated code scaffold.
    """

    approved_mockup_url: str
    variant_name: str
    feedback: str = ""
    scaffold_path: Optional[str] = None


class RunContext(BaseModel):
    """Mutable record threaded through every phase of a run.

    Only the orchestrator mutates a RunContext. ``current_ref`` points at
    the output of the last completed phase, or at the resume ref / target
    branch before any phase completes, and is left untouched when a phase
    fails.

    Attributes:
        project: Project (and repository) name.
        user_prompt: The operator's original request.
        repo_url: Clone URL of the repository.
        owner: Repository owner.
        target_branch: Branch phase results are merged into.
        current_ref: Ref the next phase starts from.
        mode: Resolved run mode.
        scope: Scope tier driving deliverables and optional phases.
        chat_channel: Chat channel id, when chat is configured.
        chat_thread: Thread timestamp of the run's kick-off message.
        design_context: Set once design exploration has been approved.
        started_at: When the run started (UTC).
    """

    project: str = Field(..., min_length=1)
    user_prompt: str = Field(..., min_length=1)
    repo_url: str
    owner: str = Field(..., min_length=1)
    target_branch: str = Field(..., min_length=1)
    current_ref: str = Field(..., min_length=1)
    mode: RunMode
    scope: ScopeTier
    chat_channel: Optional[str] = None
    chat_thread: Optional[str] = None
    design_context: Optional[DesignContext] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.project}"

    def branch_url(self, ref: str) -> str:
        return f"https://github.com/{self.owner}/{self.project}/tree/{ref}"


class PhaseStatus(str, Enum):
    """Status of one entry in the run log.

    Attributes:
        COMPLETED: Phase (or finalization step) succeeded.
        SKIPPED: Phase lies before the resume point.
        SKIPPED_SCOPE: Phase is optional for the run's scope tier.
        STOPPED: Operator stopped the run at this phase's approval gate.
        FAILED: Phase failed and the run halted.
        RETRIED: Phase failed and the operator chose to run it again.
        MERGE_CONFLICT: Phase output could not be merged automatically.
        DEGRADED: Optional finalization capability failed or is absent.
    """

    COMPLETED = "completed"
    SKIPPED = "skipped"
    SKIPPED_SCOPE = "skipped-scope"
    STOPPED = "stopped"
    FAILED = "failed"
    RETRIED = "retried"
    MERGE_CONFLICT = "merge-conflict"
    DEGRADED = "degraded"

    @property
    def is_skip(self) -> bool:
        return self in (PhaseStatus.SKIPPED, PhaseStatus.SKIPPED_SCOPE)

    @property
    def is_success(self) -> bool:
        """True for records that let finalization proceed."""
        return self == PhaseStatus.COMPLETED or self.is_skip


NO_JOB = "-"


class PhaseRecord(BaseModel):
    """One entry in the run log."""

    phase: str
    job_id: str = NO_JOB
    status: PhaseStatus
    detail: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)


class RunStatus(str, Enum):
    """Run-level states.

    Flow:
        not_started -> phase(1..n) -> finalizing -> completed

    A run in ``phase`` may stay in ``phase`` (retry of the same index, or
    the next index), stop at an approval gate, or fail.
    """

    NOT_STARTED = "not_started"
    PHASE = "phase"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class RunResult(BaseModel):
    """Append-only log of a run plus its final status.

    Records are never removed or rewritten, except that a failed record
    the operator chose to retry is re-marked RETRIED.
    """

    records: List[PhaseRecord] = Field(default_factory=list)
    status: RunStatus = RunStatus.NOT_STARTED
    total_seconds: Optional[float] = None

    def append(self, record: PhaseRecord) -> PhaseRecord:
        self.records.append(record)
        return record

    def mark_last_retried(self) -> None:
        """Re-mark the trailing failed record as retried.

        Raises:
            ValueError: If the log does not end with a failed record.
        """
        if not self.records or self.records[-1].status != PhaseStatus.FAILED:
            raise ValueError("only a trailing failed record can be retried")
        self.records[-1] = self.records[-1].model_copy(update={"status": PhaseStatus.RETRIED})

    @property
    def phases_succeeded(self) -> bool:
        """True when every non-retried record is completed or skipped."""
        return all(
            r.status.is_success for r in self.records if r.status != PhaseStatus.RETRIED
        )

    def completed_phases(self) -> List[str]:
        return [r.phase for r in self.records if r.status == PhaseStatus.COMPLETED]


class StateTransition(BaseModel):
    """Record of one run-level state transition."""

    from_status: RunStatus
    to_status: RunStatus
    phase_index: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)


# Valid run-level transitions
#
# - NOT_STARTED may go straight to FINALIZING when every phase is skipped
# - PHASE -> PHASE covers both retry (same index) and advancing; the index
#   rule is enforced by RunStateMachine
# - FINALIZING always ends COMPLETED; finalization problems are recorded
#   as degraded entries, not run failures
# - COMPLETED, STOPPED and FAILED are terminal
VALID_TRANSITIONS: Dict[RunStatus, List[RunStatus]] = {
    RunStatus.NOT_STARTED: [
        RunStatus.PHASE,
        RunStatus.FINALIZING,
        RunStatus.FAILED,
    ],
    RunStatus.PHASE: [
        RunStatus.PHASE,
        RunStatus.FINALIZING,
        RunStatus.STOPPED,
        RunStatus.FAILED,
    ],
    RunStatus.FINALIZING: [
        RunStatus.COMPLETED,
    ],
    RunStatus.COMPLETED: [],
    RunStatus.STOPPED: [],
    RunStatus.FAILED: [],
}


def is_valid_transition(from_status: RunStatus, to_status: RunStatus) -> bool:
    """Check if a run-level transition is allowed.

    Example:
        >>> is_valid_transition(RunStatus.PHASE, RunStatus.FINALIZING)
        True
        >>> is_valid_transition(RunStatus.COMPLETED, RunStatus.PHASE)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def is_terminal_status(status: RunStatus) -> bool:
    """Check if a run status has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(status, [])) == 0
