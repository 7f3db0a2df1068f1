"""Event reporting interface for the port-forward supervisor.

Every log-worthy thing the supervisor does (port probes, port decisions,
state transitions, backoff scheduling, URL publication and raw kubectl
output) is described by a ``SupervisorEvent`` and handed to an
``EventSink``. The default sink renders events through structlog.
"""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .common.logging import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    """Kinds of events emitted by the supervisor."""

    PORT_PROBE = "port_probe"
    PORT_SELECTED = "port_selected"
    STATE_CHANGED = "state_changed"
    SPAWN = "spawn"
    BACKOFF = "backoff"
    BACKOFF_RESET = "backoff_reset"
    URL_PUBLISHED = "url_published"
    OUTPUT = "output"


class Severity(str, Enum):
    """Severity attached to every event."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SupervisorEvent(BaseModel):
    """Immutable event record.

    Attributes:
        kind: What happened
        severity: How loudly it should be reported
        message: Human readable summary
        data: Structured fields (port, state, delay, stream, line, ...)
        timestamp: When the event was created
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind = Field(description="Event kind")
    severity: Severity = Field(default=Severity.INFO, description="Event severity")
    message: str = Field(description="Human readable summary")
    data: dict[str, Any] = Field(default_factory=dict, description="Structured fields")
    timestamp: datetime = Field(default_factory=datetime.now, description="Creation time")


@runtime_checkable
class EventSink(Protocol):
    """Consumer of supervisor events."""

    def emit(self, event: SupervisorEvent) -> None:
        """Consume a single event."""
        ...


class LoggingEventSink:
    """Event sink that writes events to a structlog logger."""

    def __init__(self, log: structlog.stdlib.BoundLogger | None = None) -> None:
        self._log = log if log is not None else get_logger("kube_tunnel.supervisor")

    def emit(self, event: SupervisorEvent) -> None:
        method = getattr(self._log, event.severity.value)
        method(event.message, kind=event.kind.value, **event.data)


class CompositeEventSink:
    """Fans every event out to several sinks."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[EventSink]:
        return list(self._sinks)

    def emit(self, event: SupervisorEvent) -> None:
        for sink in self._sinks:
            emit_event(sink, event)


def emit_event(sink: EventSink | None, event: SupervisorEvent) -> None:
    """Deliver ``event`` to ``sink``, isolating the caller from sink failures.

    A broken sink must never take the tunnel down, so its errors are logged
    and dropped here.
    """
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.error(
            "Event sink failed",
            sink=type(sink).__name__,
            kind=event.kind.value,
            error=str(e),
        )


def make_event(
    kind: EventKind,
    message: str,
    severity: Severity = Severity.INFO,
    **data: Any,
) -> SupervisorEvent:
    """Build an event with ``data`` collected from keyword arguments."""
    return SupervisorEvent(kind=kind, severity=severity, message=message, data=data)
