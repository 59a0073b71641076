"""Prometheus metrics for pipeline observability.

Metrics Defined:
- pipeline_phases_total: Counter of phase outcomes
- pipeline_phase_duration_seconds: Histogram of completed phase durations
- pipeline_approvals_total: Counter of approval decisions (human or automatic)
- pipeline_job_timeouts_total: Counter of jobs that exceeded their poll budget
- pipeline_runs_total: Counter of finished runs by final status
- pipeline_run_duration_seconds: Histogram of run durations

A CLI run is a short-lived process, so metrics live on their own registry
and are written to a node-exporter textfile when the run ends.

Source:
- agent_pipeline/events/models.py (PipelineEvent, EventType)
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    write_to_textfile,
)

from agent_pipeline.events.emitter import CompositeEventEmitter, EventEmitter, LoggingEventEmitter
from agent_pipeline.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Agent phases take minutes to hours
DEFAULT_DURATION_BUCKETS = (
    30.0,     # 30 seconds
    60.0,     # 1 minute
    300.0,    # 5 minutes
    600.0,    # 10 minutes
    1200.0,   # 20 minutes
    1800.0,   # 30 minutes
    3600.0,   # 1 hour
    7200.0,   # 2 hours
    14400.0,  # 4 hours
)


class PipelineMetrics:
    """Container for all pipeline Prometheus metrics.

    Metrics:
        phases_total: Labels: phase, outcome
        phase_duration_seconds: Labels: phase
        approvals_total: Labels: phase, decision, automatic
        job_timeouts_total: Labels: phase
        runs_total: Labels: status
        run_duration_seconds: no labels

    Example:
        >>> metrics = PipelineMetrics()
        >>> metrics.record_phase("Architect", "completed", 812.0)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize pipeline metrics.

        Args:
            registry: Optional Prometheus registry. A fresh registry is
                      created when None.
        """
        self.registry = registry or CollectorRegistry()

        self.phases_total = Counter(
            "pipeline_phases_total",
            "Phase outcomes recorded by the pipeline",
            labelnames=["phase", "outcome"],
            registry=self.registry,
        )

        self.phase_duration_seconds = Histogram(
            "pipeline_phase_duration_seconds",
            "Time spent in completed phases in seconds",
            labelnames=["phase"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.approvals_total = Counter(
            "pipeline_approvals_total",
            "Approval decisions by phase",
            labelnames=["phase", "decision", "automatic"],
            registry=self.registry,
        )

        self.job_timeouts_total = Counter(
            "pipeline_job_timeouts_total",
            "Jobs still running after their polling budget",
            labelnames=["phase"],
            registry=self.registry,
        )

        self.runs_total = Counter(
            "pipeline_runs_total",
            "Finished runs by final status",
            labelnames=["status"],
            registry=self.registry,
        )

        self.run_duration_seconds = Histogram(
            "pipeline_run_duration_seconds",
            "Total run time in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_phase(self, phase: str, outcome: str, duration_seconds: Optional[float] = None) -> None:
        self.phases_total.labels(phase=phase, outcome=outcome).inc()
        if duration_seconds is not None:
            self.phase_duration_seconds.labels(phase=phase).observe(duration_seconds)

    def record_approval(self, phase: str, decision: str, automatic: bool) -> None:
        self.approvals_total.labels(
            phase=phase,
            decision=decision,
            automatic=str(automatic).lower(),
        ).inc()

    def record_timeout(self, phase: str) -> None:
        self.job_timeouts_total.labels(phase=phase).inc()

    def record_run(self, status: str, duration_seconds: Optional[float] = None) -> None:
        self.runs_total.labels(status=status).inc()
        if duration_seconds is not None:
            self.run_duration_seconds.observe(duration_seconds)


def generate_metrics_output(metrics: PipelineMetrics) -> bytes:
    """Render ``metrics`` in Prometheus text format."""
    return generate_latest(metrics.registry)


def write_metrics_textfile(metrics: PipelineMetrics, path: str) -> None:
    """Write ``metrics`` to a node-exporter textfile (atomic rename)."""
    write_to_textfile(path, metrics.registry)
    logger.info("Metrics written to %s", path)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    Handles:
    - PHASE_COMPLETED / PHASE_SKIPPED / PHASE_FAILED: phase outcome counter
      (and duration for completed phases)
    - APPROVAL: approval decision counter
    - TIMEOUT: job timeout counter
    - COMPLETION: run counter and run duration

    Attributes:
        metrics: The PipelineMetrics instance to update.
    """

    def __init__(self, metrics: Optional[PipelineMetrics] = None):
        self._metrics = metrics or PipelineMetrics()

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type in (
                EventType.PHASE_COMPLETED,
                EventType.PHASE_SKIPPED,
                EventType.PHASE_FAILED,
            ):
                self._handle_phase(event)
            elif event.event_type == EventType.APPROVAL:
                self._metrics.record_approval(
                    phase=event.details.get("phase", "unknown"),
                    decision=event.details.get("decision", "unknown"),
                    automatic=bool(event.details.get("automatic", False)),
                )
            elif event.event_type == EventType.TIMEOUT:
                self._metrics.record_timeout(event.details.get("phase", "unknown"))
            elif event.event_type == EventType.COMPLETION:
                duration = event.details.get("duration_seconds")
                self._metrics.record_run(
                    status=event.details.get("status", "unknown"),
                    duration_seconds=float(duration) if duration is not None else None,
                )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "project": event.project,
                    "error": str(e),
                },
            )

    def _handle_phase(self, event: PipelineEvent) -> None:
        duration = event.details.get("duration_seconds")
        self._metrics.record_phase(
            phase=event.details.get("phase", "unknown"),
            outcome=event.details.get("status", event.event_type.value),
            duration_seconds=(
                float(duration)
                if duration is not None and event.event_type == EventType.PHASE_COMPLETED
                else None
            ),
        )


def build_event_emitter(metrics: Optional[PipelineMetrics] = None) -> EventEmitter:
    """The run's event sink: logging, plus Prometheus when ``metrics`` is given."""
    if metrics is None:
        return LoggingEventEmitter()
    return CompositeEventEmitter([LoggingEventEmitter(), MetricsEventEmitter(metrics)])
