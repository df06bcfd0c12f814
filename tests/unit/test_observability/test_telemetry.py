"""Unit tests for telemetry sinks and metrics."""

import pytest
from structlog.testing import capture_logs

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


def event(outcome: EventOutcome, attempt: int = 0, **detail: object) -> FetchEvent:
    """Create an event with a fixed operation name."""
    return FetchEvent(
        operation="GET /items",
        attempt=attempt,
        duration_ms=10.0,
        outcome=outcome,
        detail=dict(detail),
    )


class TestSinks:
    """Tests for the telemetry sinks."""

    @pytest.mark.unit
    def test_sinks_satisfy_protocol(self) -> None:
        """Every shipped sink is a Telemetry."""
        sinks = [
            NullTelemetry(),
            RecordingTelemetry(),
            LogTelemetry(),
            FanOutTelemetry(),
            FetchMetrics(),
        ]

        assert all(isinstance(sink, Telemetry) for sink in sinks)

    @pytest.mark.unit
    def test_recording(self) -> None:
        """Recorded events keep their order."""
        sink = RecordingTelemetry()

        sink.emit(event(EventOutcome.ATTEMPT_START))
        sink.emit(event(EventOutcome.SUCCESS))

        assert sink.outcomes() == [EventOutcome.ATTEMPT_START, EventOutcome.SUCCESS]

    @pytest.mark.unit
    def test_fan_out(self) -> None:
        """Fan-out forwards to every sink."""
        first, second = RecordingTelemetry(), RecordingTelemetry()
        sink = FanOutTelemetry([first, second])

        sink.emit(event(EventOutcome.FAILURE, kind="NETWORK"))

        assert len(first.events) == len(second.events) == 1

    @pytest.mark.unit
    def test_log_telemetry(self) -> None:
        """Events are logged with their fields."""
        with capture_logs() as logs:
            LogTelemetry(component="test").emit(
                event(EventOutcome.ATTEMPT_FAILURE, attempt=2, kind="TIMEOUT")
            )

        assert logs == [
            {
                "event": "fetch_event",
                "log_level": "debug",
                "component": "test",
                "operation": "GET /items",
                "attempt": 2,
                "duration_ms": 10.0,
                "outcome": "attempt_failure",
                "kind": "TIMEOUT",
            }
        ]


class TestFetchMetrics:
    """Tests for FetchMetrics."""

    @pytest.mark.unit
    def test_counts(self) -> None:
        """Attempts, retries and outcomes are counted."""
        metrics = FetchMetrics()

        for outcome, attempt, detail in [
            (EventOutcome.ATTEMPT_START, 0, {}),
            (EventOutcome.ATTEMPT_FAILURE, 0, {"kind": "NETWORK"}),
            (EventOutcome.ATTEMPT_START, 1, {}),
            (EventOutcome.SUCCESS, 1, {}),
            (EventOutcome.ATTEMPT_START, 0, {}),
            (EventOutcome.FAILURE, 0, {"kind": "NOT_FOUND"}),
        ]:
            metrics.emit(event(outcome, attempt, **detail))

        assert metrics.attempts_total == 3
        assert metrics.retries_total == 1
        assert metrics.successes_total == 1
        assert metrics.failures_total == {"NOT_FOUND": 1}
        assert metrics.calls_completed == 2
        assert metrics.avg_duration_ms == 10.0

    @pytest.mark.unit
    def test_instances_are_independent(self) -> None:
        """Metrics are per instance, not process-wide."""
        first, second = FetchMetrics(), FetchMetrics()

        first.emit(event(EventOutcome.ATTEMPT_START))

        assert first.attempts_total == 1
        assert second.attempts_total == 0

    @pytest.mark.unit
    def test_to_dict(self) -> None:
        """to_dict reports every counter."""
        metrics = FetchMetrics()
        metrics.emit(event(EventOutcome.BATCH_YIELD, item_count=4))

        result = metrics.to_dict()

        assert result["batches_total"] == 1
        assert result["items_total"] == 4
        assert result["failures_total"] == {}

    @pytest.mark.unit
    def test_avg_duration_empty(self) -> None:
        """Average duration is zero before any call completes."""
        assert FetchMetrics().avg_duration_ms == 0.0
