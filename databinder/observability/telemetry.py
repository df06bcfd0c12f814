"""Request-scoped telemetry for the fetch pipeline.

A ``Telemetry`` sink is passed explicitly down the call chain; there is no
process-wide tracer. The pipeline emits one ``FetchEvent`` at each attempt
start, attempt failure, final success or failure, and batch yield.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import structlog


logger = structlog.get_logger()


class EventOutcome(str, Enum):
    """Outcome recorded on a telemetry event."""

    ATTEMPT_START = "attempt_start"
    ATTEMPT_FAILURE = "attempt_failure"
    SUCCESS = "success"
    FAILURE = "failure"
    BATCH_YIELD = "batch_yield"
    BATCH_ERROR = "batch_error"


@dataclass(frozen=True)
class FetchEvent:
    """One structured telemetry event.

    Attributes:
        operation: Logical operation name (e.g. ``GET /users``).
        attempt: Attempt (or batch) index, 0-based.
        duration_ms: Elapsed time relevant to the outcome.
        outcome: What happened.
        detail: Extra fields such as error kind or item counts.
    """

    operation: str
    attempt: int
    duration_ms: float
    outcome: EventOutcome
    detail: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Telemetry(Protocol):
    """Sink for fetch events."""

    def emit(self, event: FetchEvent) -> None:
        """Record an event.

        Args:
            event: The event to record.
        """
        ...


class NullTelemetry:
    """Telemetry sink that drops every event."""

    def emit(self, event: FetchEvent) -> None:  # noqa: ARG002
        """Drop the event."""


@dataclass
class RecordingTelemetry:
    """Telemetry sink that keeps events in memory."""

    events: list[FetchEvent] = field(default_factory=list)

    def emit(self, event: FetchEvent) -> None:
        """Append the event."""
        self.events.append(event)

    def outcomes(self) -> list[EventOutcome]:
        """Get the recorded outcomes in order."""
        return [event.outcome for event in self.events]


class LogTelemetry:
    """Telemetry sink that writes events to structlog."""

    def __init__(self, component: str = "telemetry") -> None:
        """Initialize the sink.

        Args:
            component: Value bound to the ``component`` log key.
        """
        self._log = logger.bind(component=component)

    def emit(self, event: FetchEvent) -> None:
        """Log the event at debug level."""
        self._log.debug(
            "fetch_event",
            operation=event.operation,
            attempt=event.attempt,
            duration_ms=round(event.duration_ms, 2),
            outcome=event.outcome.value,
            **event.detail,
        )


@dataclass
class FanOutTelemetry:
    """Telemetry sink that forwards every event to several sinks."""

    sinks: list[Telemetry] = field(default_factory=list)

    def emit(self, event: FetchEvent) -> None:
        """Forward the event."""
        for sink in self.sinks:
            sink.emit(event)
