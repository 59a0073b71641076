"""Retry and backoff wrapper for outbound HTTP calls.

Every network call made by the pipeline goes through RetryingTransport.
Each outcome is classified as success, retryable failure, or fatal failure:

- Status codes 429, 500, 502, 503 and 504 are retryable.
- Any httpx transport exception (connection reset, timeout) is retryable.
- Everything else is returned to the caller immediately.

Rate-limited responses honour a positive Retry-After header exactly and
otherwise back off from the rate-limit base delay. All other retryable
outcomes back off with ``base_delay * 2 ** attempt`` (attempts from 0).

When retries are exhausted the last response is returned unchanged, or the
last transport exception is raised as TransientTransportError.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, FrozenSet, Optional

import httpx


logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class TransientTransportError(Exception):
    """Raised when a transport-level failure persists after all retries.

    Attributes:
        description: Human-readable description of the request.
        attempts: Number of calls that were made.
    """

    def __init__(self, description: str, attempts: int, cause: Exception):
        self.description = description
        self.attempts = attempts
        super().__init__(
            f"{description} failed after {attempts} attempt(s): {cause}"
        )


class RetryOutcome(str, Enum):
    """Classification of a single call outcome."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters shared by all service clients.

    Attributes:
        max_retries: Retries after the first call (total calls = max_retries + 1).
        base_delay: Base delay in seconds for exponential backoff.
        rate_limit_delay: Base delay for 429 responses without a Retry-After
            hint. Falls back to base_delay when None.
        retryable_status_codes: Status codes treated as server-busy.
    """

    max_retries: int = 3
    base_delay: float = 2.0
    rate_limit_delay: Optional[float] = None
    retryable_status_codes: FrozenSet[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    def backoff(self, attempt: int) -> float:
        """Exponential delay for a 0-indexed attempt."""
        return self.base_delay * (2 ** attempt)

    def rate_limit_backoff(self, response: httpx.Response, attempt: int) -> float:
        """Delay for a rate-limited response.

        A positive integer Retry-After header wins; otherwise the rate-limit
        base delay is doubled per attempt.
        """
        retry_after = _parse_retry_after(response)
        if retry_after is not None:
            return float(retry_after)
        base = self.rate_limit_delay if self.rate_limit_delay is not None else self.base_delay
        return base * (2 ** attempt)

    def classify(self, response: httpx.Response) -> RetryOutcome:
        """Classify a response as success, retryable, or fatal."""
        if response.status_code in self.retryable_status_codes:
            return RetryOutcome.RETRYABLE
        if response.status_code < 400:
            return RetryOutcome.SUCCESS
        return RetryOutcome.FATAL


def _parse_retry_after(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class RetryingTransport:
    """Executes request callables with classification and backoff.

    The transport is deliberately ignorant of URLs and payloads: callers
    hand it a zero-argument coroutine factory that performs one attempt.

    Attributes:
        policy: The retry policy in force.

    Example:
        >>> transport = RetryingTransport(RetryPolicy(max_retries=3))
        >>> response = await transport.send(
        ...     lambda: client.get("/v0/me"),
        ...     description="GET /v0/me",
        ... )
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: SleepFunc = asyncio.sleep):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def send(
        self,
        call: Callable[[], Awaitable[httpx.Response]],
        description: str,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Perform ``call`` with retries.

        Args:
            call: Coroutine factory performing a single attempt.
            description: Request description used in logs and errors.
            max_retries: Per-call override of the policy's retry count.

        Returns:
            The first non-retryable response, or the last response once
            retries are exhausted.

        Raises:
            TransientTransportError: If the final attempt raised a
                transport-level exception.
        """
        retries = self.policy.max_retries if max_retries is None else max_retries
        last_exception: Optional[Exception] = None

        for attempt in range(retries + 1):
            try:
                response = await call()
            except httpx.TransportError as exc:
                last_exception = exc
                if attempt < retries:
                    delay = self.policy.backoff(attempt)
                    logger.warning(
                        "Network error, retry %d/%d in %.1fs (%s)",
                        attempt + 1,
                        retries,
                        delay,
                        exc,
                        extra={"request": description, "attempt": attempt + 1, "delay": delay},
                    )
                    await self._sleep(delay)
                continue

            outcome = self.policy.classify(response)
            if outcome != RetryOutcome.RETRYABLE or attempt >= retries:
                return response

            if response.status_code == 429:
                delay = self.policy.rate_limit_backoff(response, attempt)
                logger.warning(
                    "Rate limited (429), retry %d/%d in %.1fs",
                    attempt + 1,
                    retries,
                    delay,
                    extra={"request": description, "attempt": attempt + 1, "delay": delay},
                )
            else:
                delay = self.policy.backoff(attempt)
                logger.warning(
                    "HTTP %d, retry %d/%d in %.1fs",
                    response.status_code,
                    attempt + 1,
                    retries,
                    delay,
                    extra={"request": description, "attempt": attempt + 1, "delay": delay},
                )
            await self._sleep(delay)

        logger.error(
            "Request failed after all retries",
            extra={"request": description, "max_retries": retries},
        )
        raise TransientTransportError(description, retries + 1, last_exception) from last_exception
