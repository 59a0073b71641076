"""Parallel fan-out with partial-failure tolerance.

All members of a task group run concurrently on the event loop. A failing
member never cancels its siblings; the group waits for the whole cohort
and reports which members produced an artifact. Failures are logged and
dropped, never retried within the same invocation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Sequence, Tuple, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskGroupResult(Generic[T, R]):
    """Outcome of a fan-out.

    Attributes:
        succeeded: (member, artifact) pairs in submission order.
        failed: (member, exception) pairs in submission order.
    """

    succeeded: List[Tuple[T, R]] = field(default_factory=list)
    failed: List[Tuple[T, BaseException]] = field(default_factory=list)

    @property
    def artifacts(self) -> List[R]:
        return [artifact for _, artifact in self.succeeded]

    @property
    def is_empty(self) -> bool:
        """True when no member produced an artifact."""
        return not self.succeeded


async def run_task_group(
    members: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    label: str = "task",
) -> TaskGroupResult[T, R]:
    """Run ``worker`` for every member concurrently.

    Args:
        members: Inputs, one per sub-job.
        worker: Coroutine producing the artifact for one member.
        label: Name used in log lines.

    Returns:
        TaskGroupResult with successes and failures split, order preserved.

    Raises:
        asyncio.CancelledError, KeyboardInterrupt: Re-raised if a member
            raised them; they are not member failures.
    """
    result: TaskGroupResult[T, R] = TaskGroupResult()
    if not members:
        return result

    logger.info("Starting %d %s(s) in parallel", len(members), label)

    outcomes = await asyncio.gather(
        *(worker(member) for member in members),
        return_exceptions=True,
    )

    for index, (member, outcome) in enumerate(zip(members, outcomes), start=1):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(
                "%s %d/%d failed: %s",
                label,
                index,
                len(members),
                outcome,
                extra={"member": repr(member), "error": str(outcome)},
            )
            result.failed.append((member, outcome))
        else:
            result.succeeded.append((member, outcome))

    logger.info(
        "%s group finished: %d succeeded, %d failed",
        label,
        len(result.succeeded),
        len(result.failed),
    )
    return result
