"""Job models shared by every kind of remote asynchronous work.

A job is created once by a service (agent run, image task, deployment
build), then polled until it reaches a terminal status. Resubmission is a
new job; a JobStatus never moves back to non-terminal.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobCategory(str, Enum):
    """Coarse classification of a raw service status.

    Attributes:
        NON_TERMINAL: The job is still queued or running.
        TERMINAL_SUCCESS: The job finished and produced its result.
        TERMINAL_FAILURE: The job ended without a usable result.
    """

    NON_TERMINAL = "non_terminal"
    TERMINAL_SUCCESS = "terminal_success"
    TERMINAL_FAILURE = "terminal_failure"


class JobStatus(BaseModel):
    """Snapshot of a remote job as reported by its service.

    Attributes:
        job_id: Service identifier of the job.
        state: Raw status string from the service (e.g. "RUNNING").
        produced_ref: Branch the job produced, when it has one.
        payload: Service-specific result data (image URL, summary...).
    """

    job_id: str = Field(..., min_length=1, description="Service identifier of the job")

    state: str = Field(..., description="Raw status string reported by the service")

    produced_ref: Optional[str] = Field(
        default=None,
        description="Branch produced by the job, if any",
    )

    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Service-specific result data",
    )
