"""Metrics collection for fetch and batch operations."""

from dataclasses import dataclass, field

from databinder.observability.telemetry import EventOutcome, FetchEvent


@dataclass
class FetchMetrics:
    """Counters derived from telemetry events.

    An instance is a telemetry sink; create one per scope you want to
    measure and pass it where a ``Telemetry`` is accepted.
    """

    attempts_total: int = 0
    retries_total: int = 0
    successes_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    batches_total: int = 0
    batch_errors_total: int = 0
    items_total: int = 0
    duration_ms_total: float = 0.0
    calls_completed: int = 0

    def emit(self, event: FetchEvent) -> None:
        """Update counters from an event.

        Args:
            event: Telemetry event.
        """
        if event.outcome == EventOutcome.ATTEMPT_START:
            self.attempts_total += 1
            if event.attempt > 0:
                self.retries_total += 1
        elif event.outcome == EventOutcome.SUCCESS:
            self.successes_total += 1
            self._record_completion(event.duration_ms)
        elif event.outcome == EventOutcome.FAILURE:
            key = str(event.detail.get("kind", "UNKNOWN"))
            self.failures_total[key] = self.failures_total.get(key, 0) + 1
            self._record_completion(event.duration_ms)
        elif event.outcome == EventOutcome.BATCH_YIELD:
            self.batches_total += 1
            self.items_total += int(event.detail.get("item_count", 0))
        elif event.outcome == EventOutcome.BATCH_ERROR:
            self.batches_total += 1
            self.batch_errors_total += 1

    def _record_completion(self, duration_ms: float) -> None:
        self.calls_completed += 1
        self.duration_ms_total += duration_ms

    def to_dict(self) -> dict[str, int | float | dict[str, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "attempts_total": self.attempts_total,
            "retries_total": self.retries_total,
            "successes_total": self.successes_total,
            "failures_total": dict(self.failures_total),
            "batches_total": self.batches_total,
            "batch_errors_total": self.batch_errors_total,
            "items_total": self.items_total,
            "duration_ms_total": self.duration_ms_total,
            "calls_completed": self.calls_completed,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average call duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.calls_completed == 0:
            return 0.0
        return self.duration_ms_total / self.calls_completed
