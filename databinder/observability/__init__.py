"""Observability: structured logging, request-scoped telemetry and metrics."""

from databinder.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_from_settings,
    configure_logging,
    get_logger,
)
from databinder.observability.metrics import FetchMetrics
from databinder.observability.telemetry import (
    EventOutcome,
    FanOutTelemetry,
    FetchEvent,
    LogTelemetry,
    NullTelemetry,
    RecordingTelemetry,
    Telemetry,
)


__all__ = [
    "EventOutcome",
    "FanOutTelemetry",
    "FetchEvent",
    "FetchMetrics",
    "LogTelemetry",
    "NullTelemetry",
    "RecordingTelemetry",
    "Telemetry",
    "bind_request_context",
    "clear_request_context",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
]
