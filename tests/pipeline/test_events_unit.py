"""Unit tests for pipeline event emitters and Prometheus metrics."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from agent_pipeline.events import (
    CompositeEventEmitter,
    EventType,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    PipelineEvent,
    PipelineMetrics,
    build_event_emitter,
    describe,
    generate_metrics_output,
    write_metrics_textfile,
)


def run_async(coro):
    return asyncio.run(coro)


def _make_event(event_type: EventType, **details) -> PipelineEvent:
    return PipelineEvent(event_type=event_type, project="shop", repository="acme/shop", details=details)


# ---------------------------------------------------------------------------
# Models and emitters
# ---------------------------------------------------------------------------


def test_log_dict_flattens_details():
    event = _make_event(EventType.PHASE_COMPLETED, phase="Architect", duration_seconds=812.0)

    flat = event.to_log_dict()

    assert flat["event_type"] == "phase_completed"
    assert flat["repository"] == "acme/shop"
    assert flat["phase"] == "Architect"
    assert flat["timestamp"].endswith("+00:00")


def test_logging_emitter_levels(caplog):
    emitter = LoggingEventEmitter(logger_name="test.events")

    with caplog.at_level(logging.DEBUG, logger="test.events"):
        run_async(emitter.emit(_make_event(EventType.PHASE_FAILED, phase="Engineer", status="failed")))
        run_async(emitter.emit(_make_event(EventType.TIMEOUT, phase="Engineer")))
        run_async(emitter.emit(_make_event(EventType.COMPLETION, status="completed")))
        run_async(emitter.emit(_make_event(EventType.STATE_TRANSITION, from_status="phase", to_status="failed")))

    assert [r.levelno for r in caplog.records] == [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
    assert caplog.records[0].getMessage() == "[shop] phase_failed Engineer: failed"
    assert caplog.records[0].phase == "Engineer"


@pytest.mark.parametrize(
    "event_type,details,expected",
    [
        (EventType.STATE_TRANSITION, {"from_status": "phase", "to_status": "phase", "phase_index": 3}, "phase -> phase [3]"),
        (EventType.STATE_TRANSITION, {"from_status": "phase", "to_status": "finalizing", "phase_index": 6}, "phase -> finalizing"),
        (EventType.PHASE_SKIPPED, {"phase": "QA Reviewer", "status": "skipped-scope"}, "QA Reviewer: skipped-scope"),
        (EventType.APPROVAL, {"phase": "Architect", "decision": "approve", "automatic": True}, "Architect: approve (automatic)"),
        (EventType.TIMEOUT, {"phase": "Engineer", "job_id": "bc_1", "elapsed_seconds": 7200}, "Engineer: job bc_1 still running after 7200s"),
        (EventType.COMPLETION, {"status": "stopped"}, "run stopped"),
    ],
)
def test_describe(event_type, details, expected):
    assert describe(_make_event(event_type, **details)) == expected


def test_composite_isolates_failing_child():
    broken = AsyncMock()
    broken.emit.side_effect = RuntimeError("sink down")
    healthy = AsyncMock()
    composite = CompositeEventEmitter([broken])
    composite.add_emitter(healthy)
    event = _make_event(EventType.APPROVAL, phase="Architect")

    run_async(composite.emit(event))

    healthy.emit.assert_awaited_once_with(event)
    assert len(composite.emitters) == 2


def test_null_emitter_discards():
    assert run_async(NullEventEmitter().emit(_make_event(EventType.TIMEOUT))) is None


def test_build_event_emitter():
    assert isinstance(build_event_emitter(), LoggingEventEmitter)

    metrics = PipelineMetrics()
    emitter = build_event_emitter(metrics)

    assert [type(e) for e in emitter.emitters] == [LoggingEventEmitter, MetricsEventEmitter]
    assert emitter.emitters[1].metrics is metrics


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@pytest.fixture
def metrics():
    return PipelineMetrics()


def _sample(metrics: PipelineMetrics, name: str, **labels):
    return metrics.registry.get_sample_value(name, labels)


def test_phase_events_counted_by_outcome(metrics):
    emitter = MetricsEventEmitter(metrics)

    run_async(emitter.emit(_make_event(
        EventType.PHASE_COMPLETED, phase="Architect", status="completed", duration_seconds=120.0
    )))
    run_async(emitter.emit(_make_event(EventType.PHASE_SKIPPED, phase="QA Reviewer", status="skipped-scope")))
    run_async(emitter.emit(_make_event(EventType.PHASE_FAILED, phase="Engineer", status="failed")))

    assert _sample(metrics, "pipeline_phases_total", phase="Architect", outcome="completed") == 1.0
    assert _sample(metrics, "pipeline_phases_total", phase="QA Reviewer", outcome="skipped-scope") == 1.0
    assert _sample(metrics, "pipeline_phases_total", phase="Engineer", outcome="failed") == 1.0
    assert _sample(metrics, "pipeline_phase_duration_seconds_sum", phase="Architect") == 120.0
    assert _sample(metrics, "pipeline_phase_duration_seconds_count", phase="Engineer") is None


def test_approval_timeout_and_completion_metrics(metrics):
    emitter = MetricsEventEmitter(metrics)

    run_async(emitter.emit(_make_event(EventType.APPROVAL, phase="Architect", decision="approve", automatic=True)))
    run_async(emitter.emit(_make_event(EventType.TIMEOUT, phase="Engineer", elapsed_seconds=7200)))
    run_async(emitter.emit(_make_event(EventType.COMPLETION, status="failed", duration_seconds=900.0)))

    assert _sample(
        metrics, "pipeline_approvals_total", phase="Architect", decision="approve", automatic="true"
    ) == 1.0
    assert _sample(metrics, "pipeline_job_timeouts_total", phase="Engineer") == 1.0
    assert _sample(metrics, "pipeline_runs_total", status="failed") == 1.0
    assert _sample(metrics, "pipeline_run_duration_seconds_sum") == 900.0


def test_state_transitions_not_counted(metrics):
    run_async(MetricsEventEmitter(metrics).emit(_make_event(EventType.STATE_TRANSITION, to_status="phase")))

    assert b"pipeline_phases_total{" not in generate_metrics_output(metrics)


def test_bad_details_do_not_raise(metrics):
    emitter = MetricsEventEmitter(metrics)

    run_async(emitter.emit(_make_event(EventType.COMPLETION, status="completed", duration_seconds="soon")))

    assert _sample(metrics, "pipeline_runs_total", status="completed") is None


def test_separate_instances_do_not_collide():
    first, second = PipelineMetrics(), PipelineMetrics()
    first.record_run("completed")

    assert second.registry.get_sample_value("pipeline_runs_total", {"status": "completed"}) is None


def test_write_metrics_textfile(metrics, tmp_path):
    metrics.record_phase("Architect", "completed", 30.0)
    path = tmp_path / "pipeline.prom"

    write_metrics_textfile(metrics, str(path))

    text = path.read_text()
    assert 'pipeline_phases_total{phase="Architect",outcome="completed"} 1.0' in text
