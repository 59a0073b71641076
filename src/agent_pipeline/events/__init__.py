"""Run events and their sinks.

The orchestrator emits a PipelineEvent for every state transition, phase
outcome, approval decision, job timeout and run completion. Sinks log the
events and count them in Prometheus collectors; a CLI run writes the
collectors to a textfile when it ends.
"""

from agent_pipeline.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
    describe,
)
from agent_pipeline.events.metrics import (
    MetricsEventEmitter,
    PipelineMetrics,
    build_event_emitter,
    generate_metrics_output,
    write_metrics_textfile,
)
from agent_pipeline.events.models import EventType, PipelineEvent

__all__ = [
    "CompositeEventEmitter",
    "EventEmitter",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "PipelineEvent",
    "PipelineMetrics",
    "build_event_emitter",
    "describe",
    "generate_metrics_output",
    "write_metrics_textfile",
]
