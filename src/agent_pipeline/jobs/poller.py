"""Generic poller for long-running remote jobs.

The same loop waits on agent runs, image-generation tasks and deployment
builds. Each service describes its raw statuses with a StatusVocabulary:
one success status plus the full terminal set (success included).

    >>> poller = JobPoller(interval=15, max_attempts=480)
    >>> status = await poller.wait(agent_id, agents.status, AGENT_VOCABULARY)

Outcomes:
- success status: the final JobStatus is returned
- any other terminal status: JobTerminatedUnsuccessfully
- poll ceiling or caller timeout exceeded: JobTimedOut
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, FrozenSet, Optional

from agent_pipeline.jobs.models import JobCategory, JobStatus


logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str], Awaitable[JobStatus]]


class JobTerminatedUnsuccessfully(Exception):
    """Raised when a job reaches a terminal status other than success.

    Attributes:
        job_id: The job that ended.
        state: The terminal status it ended in.
    """

    def __init__(self, job_id: str, state: str):
        self.job_id = job_id
        self.state = state
        super().__init__(f"Job {job_id} ended in {state}")


class JobTimedOut(Exception):
    """Raised when a job is still running after the polling budget.

    Attributes:
        job_id: The job that was being waited on.
        elapsed: Seconds spent waiting, by poll count.
    """

    def __init__(self, job_id: str, elapsed: float):
        self.job_id = job_id
        self.elapsed = elapsed
        super().__init__(f"Job {job_id} timed out after {elapsed:.0f}s")


@dataclass(frozen=True)
class StatusVocabulary:
    """Names the success status and terminal statuses of one service."""

    name: str
    success: str
    terminal: FrozenSet[str]

    def categorize(self, state: str) -> JobCategory:
        if state == self.success:
            return JobCategory.TERMINAL_SUCCESS
        if state in self.terminal:
            return JobCategory.TERMINAL_FAILURE
        return JobCategory.NON_TERMINAL


AGENT_VOCABULARY = StatusVocabulary(
    name="agent",
    success="FINISHED",
    terminal=frozenset({"FINISHED", "STOPPED", "FAILED", "ERROR"}),
)

IMAGE_VOCABULARY = StatusVocabulary(
    name="image",
    success="SUCCESS",
    terminal=frozenset({"SUCCESS", "CREATE_TASK_FAILED", "GENERATE_FAILED"}),
)

DEPLOY_VOCABULARY = StatusVocabulary(
    name="deploy",
    success="READY",
    terminal=frozenset({"READY", "ERROR", "CANCELED"}),
)


class JobPoller:
    """Polls a job's status until it is terminal.

    The poller sleeps before every fetch (a freshly submitted job is never
    finished yet) and stops after ``max_attempts`` fetches or once
    ``timeout`` seconds of polling have elapsed, whichever comes first.

    Attributes:
        interval: Seconds between polls.
        max_attempts: Maximum number of status fetches.
    """

    def __init__(
        self,
        interval: float = 15.0,
        max_attempts: int = 480,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def wait(
        self,
        job_id: str,
        fetch: StatusFetcher,
        vocabulary: StatusVocabulary,
        timeout: Optional[float] = None,
    ) -> JobStatus:
        """Wait for ``job_id`` to reach a terminal status.

        Args:
            job_id: Identifier passed to ``fetch``.
            fetch: Coroutine returning the current JobStatus.
            vocabulary: Success and terminal statuses for this service.
            timeout: Optional ceiling in seconds, tighter than max_attempts.

        Returns:
            The JobStatus carrying the success status.

        Raises:
            JobTerminatedUnsuccessfully: On a non-success terminal status.
            JobTimedOut: When the polling budget runs out.
        """
        attempts = self.max_attempts
        if timeout is not None:
            attempts = min(attempts, max(1, int(timeout // self.interval)))

        elapsed = 0.0
        for _ in range(attempts):
            await self._sleep(self.interval)
            elapsed += self.interval

            status = await fetch(job_id)
            category = vocabulary.categorize(status.state)

            logger.info(
                "%s %s: %s (%.0fs elapsed)",
                vocabulary.name,
                job_id,
                status.state,
                elapsed,
                extra={"job_id": job_id, "state": status.state, "elapsed": elapsed},
            )

            if category == JobCategory.TERMINAL_SUCCESS:
                return status
            if category == JobCategory.TERMINAL_FAILURE:
                logger.warning(
                    "%s job ended unsuccessfully",
                    vocabulary.name,
                    extra={"job_id": job_id, "state": status.state},
                )
                raise JobTerminatedUnsuccessfully(job_id, status.state)

        raise JobTimedOut(job_id, elapsed)
