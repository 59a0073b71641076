"""Property-based tests for the partial-failure fan-out.

Feature: agent-pipeline

Testing Configuration:
- Library: Hypothesis (Python)
- Tag format: Feature: agent-pipeline, Property N: <property_text>
"""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from agent_pipeline.jobs.fanout import run_task_group


def run_async(coro):
    return asyncio.run(coro)


@settings(max_examples=100, deadline=None)
@given(outcomes=st.lists(st.booleans(), min_size=0, max_size=12))
def test_group_returns_exactly_the_successes(outcomes):
    """Feature: agent-pipeline, Property 1: M members with F failures yield M - F artifacts in order."""

    async def worker(index):
        await asyncio.sleep(0)
        if not outcomes[index]:
            raise RuntimeError(f"member {index} failed")
        return f"artifact-{index}"

    result = run_async(run_task_group(list(range(len(outcomes))), worker))

    expected = [f"artifact-{i}" for i, ok in enumerate(outcomes) if ok]
    assert result.artifacts == expected
    assert len(result.failed) == outcomes.count(False)
    assert result.is_empty == (not expected)


def test_failures_do_not_cancel_siblings():
    finished = []

    async def worker(name):
        if name == "fast-fail":
            raise ValueError("boom")
        await asyncio.sleep(0.01)
        finished.append(name)
        return name

    result = run_async(run_task_group(["slow-a", "fast-fail", "slow-b"], worker, label="image"))

    assert sorted(finished) == ["slow-a", "slow-b"]
    assert [member for member, _ in result.failed] == ["fast-fail"]


def test_members_run_concurrently():
    active = 0
    peak = 0

    async def worker(_):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return True

    run_async(run_task_group(range(5), worker))

    assert peak == 5


def test_failures_are_logged_as_warnings(caplog):
    async def worker(_):
        raise RuntimeError("quota exceeded")

    with caplog.at_level("WARNING"):
        result = run_async(run_task_group(["logo"], worker, label="image"))

    assert result.is_empty
    assert "quota exceeded" in caplog.text


def test_cancellation_is_not_swallowed():
    async def worker(_):
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        run_async(run_task_group(["a"], worker))
