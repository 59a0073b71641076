"""Remote job handling: status models, polling and parallel fan-out."""

from agent_pipeline.jobs.fanout import TaskGroupResult, run_task_group
from agent_pipeline.jobs.models import JobCategory, JobStatus
from agent_pipeline.jobs.poller import (
    AGENT_VOCABULARY,
    DEPLOY_VOCABULARY,
    IMAGE_VOCABULARY,
    JobPoller,
    JobTerminatedUnsuccessfully,
    JobTimedOut,
    StatusVocabulary,
)

__all__ = [
    "AGENT_VOCABULARY",
    "DEPLOY_VOCABULARY",
    "IMAGE_VOCABULARY",
    "JobCategory",
    "JobPoller",
    "JobStatus",
    "JobTerminatedUnsuccessfully",
    "JobTimedOut",
    "StatusVocabulary",
    "TaskGroupResult",
    "run_task_group",
]
