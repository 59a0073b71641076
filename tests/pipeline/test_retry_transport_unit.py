"""Unit tests for the retrying transport.

Covers outcome classification, call counts on exhaustion, Retry-After
handling for rate limits and exponential backoff for other retryable
outcomes.
"""

import asyncio

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from agent_pipeline.transport.retry import (
    RetryingTransport,
    RetryOutcome,
    RetryPolicy,
    TransientTransportError,
)


def run_async(coro):
    return asyncio.run(coro)


def _make_response(status_code: int, headers=None) -> httpx.Response:
    return httpx.Response(status_code, headers=headers or {})


class _ScriptedCall:
    """Zero-argument coroutine factory returning scripted outcomes in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
def test_busy_status_codes_are_retryable(status_code):
    assert RetryPolicy().classify(_make_response(status_code)) == RetryOutcome.RETRYABLE


@pytest.mark.parametrize("status_code", [200, 201, 204, 302])
def test_success_status_codes(status_code):
    assert RetryPolicy().classify(_make_response(status_code)) == RetryOutcome.SUCCESS


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 409, 422, 501])
def test_other_errors_are_fatal(status_code):
    assert RetryPolicy().classify(_make_response(status_code)) == RetryOutcome.FATAL


# ---------------------------------------------------------------------------
# Call counts
# ---------------------------------------------------------------------------


def test_always_503_makes_retries_plus_one_calls_and_returns_last(recording_sleep):
    call = _ScriptedCall([_make_response(503)])
    transport = RetryingTransport(RetryPolicy(max_retries=3), sleep=recording_sleep)

    response = run_async(transport.send(call, description="GET /x"))

    assert call.calls == 4
    assert response.status_code == 503
    assert recording_sleep.delays == [2.0, 4.0, 8.0]


def test_fatal_response_is_not_retried(recording_sleep):
    call = _ScriptedCall([_make_response(404)])
    transport = RetryingTransport(sleep=recording_sleep)

    response = run_async(transport.send(call, description="GET /missing"))

    assert call.calls == 1
    assert response.status_code == 404
    assert recording_sleep.delays == []


def test_recovers_after_transient_failures(recording_sleep):
    call = _ScriptedCall([_make_response(502), httpx.ConnectError("reset"), _make_response(200)])
    transport = RetryingTransport(sleep=recording_sleep)

    response = run_async(transport.send(call, description="GET /flaky"))

    assert response.status_code == 200
    assert call.calls == 3
    assert recording_sleep.delays == [2.0, 4.0]


def test_persistent_transport_error_raises_transient_error(recording_sleep):
    cause = httpx.ReadTimeout("timed out")
    call = _ScriptedCall([cause])
    transport = RetryingTransport(RetryPolicy(max_retries=2), sleep=recording_sleep)

    with pytest.raises(TransientTransportError) as exc_info:
        run_async(transport.send(call, description="GET /slow"))

    assert call.calls == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.__cause__ is cause


def test_per_call_override_limits_retries(recording_sleep):
    call = _ScriptedCall([_make_response(500)])
    transport = RetryingTransport(RetryPolicy(max_retries=3), sleep=recording_sleep)

    run_async(transport.send(call, description="GET /status", max_retries=1))

    assert call.calls == 2


@settings(max_examples=50, deadline=None)
@given(retries=st.integers(min_value=0, max_value=6))
def test_exhaustion_call_count_property(retries):
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    call = _ScriptedCall([_make_response(500)])
    transport = RetryingTransport(RetryPolicy(max_retries=retries, base_delay=1.0), sleep=sleep)

    run_async(transport.send(call, description="GET /x"))

    assert call.calls == retries + 1
    assert delays == [1.0 * 2 ** attempt for attempt in range(retries)]


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def test_retry_after_header_is_honoured_exactly(recording_sleep):
    call = _ScriptedCall([_make_response(429, {"Retry-After": "7"}), _make_response(200)])
    transport = RetryingTransport(sleep=recording_sleep)

    response = run_async(transport.send(call, description="POST /v0/agents"))

    assert response.status_code == 200
    assert recording_sleep.delays == [7.0]


@pytest.mark.parametrize("header", [None, "0", "-3", "soon"])
def test_rate_limit_without_usable_hint_backs_off_exponentially(recording_sleep, header):
    headers = {"Retry-After": header} if header is not None else {}
    call = _ScriptedCall([_make_response(429, headers)])
    transport = RetryingTransport(RetryPolicy(max_retries=2, base_delay=2.0), sleep=recording_sleep)

    run_async(transport.send(call, description="GET /x"))

    assert recording_sleep.delays == [2.0, 4.0]


def test_rate_limit_delay_overrides_base_for_429(recording_sleep):
    call = _ScriptedCall([_make_response(429)])
    policy = RetryPolicy(max_retries=2, base_delay=2.0, rate_limit_delay=5.0)
    transport = RetryingTransport(policy, sleep=recording_sleep)

    run_async(transport.send(call, description="GET /x"))

    assert recording_sleep.delays == [5.0, 10.0]


def test_retries_are_logged_with_attempt_and_delay(recording_sleep, caplog):
    call = _ScriptedCall([_make_response(503), _make_response(200)])
    transport = RetryingTransport(sleep=recording_sleep)

    with caplog.at_level("WARNING"):
        run_async(transport.send(call, description="GET /x"))

    assert "HTTP 503, retry 1/3 in 2.0s" in caplog.text
