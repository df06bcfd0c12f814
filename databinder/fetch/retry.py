"""Retry engine with exponential backoff, jitter and per-attempt timeouts."""

import asyncio
import functools
import random
import time
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog

from databinder.fetch.errors import (
    FetchError,
    FetchTimeoutError,
    InvalidConfigError,
    is_retryable_error,
)
from databinder.fetch.models import RetryPolicy
from databinder.observability.telemetry import (
    EventOutcome,
    FetchEvent,
    NullTelemetry,
    Telemetry,
)


logger = structlog.get_logger()

T = TypeVar("T")
P = ParamSpec("P")

Sleep = Callable[[float], Awaitable[None]]


def _elapsed_ms(start_ns: int) -> float:
    return (time.perf_counter_ns() - start_ns) / 1_000_000


def _is_cancelled(policy: RetryPolicy) -> bool:
    return policy.cancel_event is not None and policy.cancel_event.is_set()


async def _run_attempt(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int | None,
) -> T:
    """Run one attempt, racing it against the attempt timeout."""
    if timeout_ms is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000.0)
    except TimeoutError as e:
        msg = f"Operation timed out after {timeout_ms}ms"
        raise FetchTimeoutError(msg, timeout_ms=timeout_ms) from e


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    telemetry: Telemetry | None = None,
    operation_name: str = "operation",
    sleep: Sleep | None = None,
    rng: random.Random | None = None,
) -> T:
    """Invoke an async operation until it succeeds or retries run out.

    Each attempt is raced against ``policy.attempt_timeout_ms``. After a
    failure the cancel event is checked first, then retryability: the
    policy's ``retry_predicate`` if set, otherwise ``is_retryable_error``.
    ``InvalidConfigError`` is never retried.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Retry policy (defaults apply when omitted).
        telemetry: Sink for attempt events.
        operation_name: Name recorded on events and log lines.
        sleep: Awaitable sleep taking seconds (defaults to ``asyncio.sleep``).
        rng: Random source for jitter.

    Returns:
        The operation's result.

    Raises:
        BaseException: The last error once no further attempt is allowed.
    """
    policy = policy or RetryPolicy()
    telemetry = telemetry or NullTelemetry()
    sleep = sleep or asyncio.sleep
    log = logger.bind(component="retry", operation=operation_name)

    call_start_ns = time.perf_counter_ns()
    attempt = 0

    while True:
        attempt_start_ns = time.perf_counter_ns()
        telemetry.emit(
            FetchEvent(
                operation=operation_name,
                attempt=attempt,
                duration_ms=0.0,
                outcome=EventOutcome.ATTEMPT_START,
            )
        )

        try:
            result = await _run_attempt(operation, policy.attempt_timeout_ms)
        except Exception as error:
            kind = error.kind.value if isinstance(error, FetchError) else None
            telemetry.emit(
                FetchEvent(
                    operation=operation_name,
                    attempt=attempt,
                    duration_ms=_elapsed_ms(attempt_start_ns),
                    outcome=EventOutcome.ATTEMPT_FAILURE,
                    detail={"kind": kind, "error": str(error)},
                )
            )

            if not _is_cancelled(policy) and attempt < policy.max_retries:
                if _should_retry(error, attempt, policy):
                    delay_ms = policy.compute_delay_ms(attempt, rng)
                    log.debug(
                        "retry_attempt",
                        attempt=attempt + 1,
                        max_attempts=policy.max_retries + 1,
                        delay_ms=delay_ms,
                        error=str(error),
                    )
                    if not _is_cancelled(policy):
                        await sleep(delay_ms / 1000.0)
                    if not _is_cancelled(policy):
                        attempt += 1
                        continue

            if _is_cancelled(policy):
                log.debug("retry_cancelled", attempt=attempt + 1)
            telemetry.emit(
                FetchEvent(
                    operation=operation_name,
                    attempt=attempt,
                    duration_ms=_elapsed_ms(call_start_ns),
                    outcome=EventOutcome.FAILURE,
                    detail={"kind": kind or type(error).__name__},
                )
            )
            raise

        telemetry.emit(
            FetchEvent(
                operation=operation_name,
                attempt=attempt,
                duration_ms=_elapsed_ms(call_start_ns),
                outcome=EventOutcome.SUCCESS,
            )
        )
        return result


def _should_retry(error: BaseException, attempt: int, policy: RetryPolicy) -> bool:
    if isinstance(error, InvalidConfigError):
        return False
    if policy.retry_predicate is not None:
        return policy.retry_predicate(error, attempt)
    return is_retryable_error(error)


def retry(
    policy: RetryPolicy | None = None,
    **retry_kwargs: object,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorate an async function so each call runs through ``with_retry``.

    Args:
        policy: Retry policy shared by every call.
        **retry_kwargs: Extra keyword arguments for ``with_retry``.

    Returns:
        Decorator.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        options = {"operation_name": func.__qualname__, **retry_kwargs}

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await with_retry(
                lambda: func(*args, **kwargs),
                policy,
                **options,  # type: ignore[arg-type]
            )

        return wrapper

    return decorator
