"""Event sinks for run observability.

The orchestrator hands every PipelineEvent to one EventEmitter. Sinks:

- LoggingEventEmitter: one log line per event, with the event fields as
  structured ``extra``
- CompositeEventEmitter: fans an event out to several sinks
- NullEventEmitter: drops everything

MetricsEventEmitter lives in metrics.py next to the Prometheus
collectors it updates.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from agent_pipeline.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Receives pipeline events.

    ``emit`` is awaited inline by the orchestrator, so sinks should return
    quickly. Exceptions raised by a sink are logged by the caller and never
    change the outcome of a run.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        ...


def describe(event: PipelineEvent) -> str:
    """Short human-readable summary of an event.

    Example:
        >>> describe(PipelineEvent(event_type=EventType.APPROVAL, project="shop",
        ...     repository="acme/shop", details={"phase": "Architect", "decision": "stop"}))
        'Architect: stop'
    """
    d = event.details
    phase = d.get("phase", "?")
    if event.event_type == EventType.STATE_TRANSITION:
        index = d.get("phase_index")
        suffix = f" [{index}]" if index is not None and d.get("to_status") == "phase" else ""
        return f"{d.get('from_status')} -> {d.get('to_status')}{suffix}"
    if event.event_type in (EventType.PHASE_COMPLETED, EventType.PHASE_SKIPPED, EventType.PHASE_FAILED):
        return f"{phase}: {d.get('status', event.event_type.value)}"
    if event.event_type == EventType.APPROVAL:
        automatic = " (automatic)" if d.get("automatic") else ""
        return f"{phase}: {d.get('decision')}{automatic}"
    if event.event_type == EventType.TIMEOUT:
        return f"{phase}: job {d.get('job_id')} still running after {d.get('elapsed_seconds')}s"
    return f"run {d.get('status')}"


class LoggingEventEmitter(EventEmitter):
    """Writes each event to a logger.

    Failed phases log at ERROR, job timeouts at WARNING, state transitions
    at DEBUG and everything else at INFO.
    """

    LEVELS: Dict[EventType, int] = {
        EventType.PHASE_FAILED: logging.ERROR,
        EventType.TIMEOUT: logging.WARNING,
        EventType.STATE_TRANSITION: logging.DEBUG,
    }

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: PipelineEvent) -> None:
        self._logger.log(
            self.LEVELS.get(event.event_type, logging.INFO),
            "[%s] %s %s",
            event.project,
            event.event_type.value,
            describe(event),
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Forwards every event to each child sink in order.

    A failing child is logged and skipped; the others still receive the
    event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception:
                logger.exception(
                    "%s dropped %s event",
                    type(emitter).__name__,
                    event.event_type.value,
                    extra={"project": event.project},
                )


class NullEventEmitter(EventEmitter):
    """Discards all events."""

    async def emit(self, event: PipelineEvent) -> None:
        return None
