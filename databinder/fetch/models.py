"""Data models for the fetch layer."""

import asyncio
import math
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from databinder.fetch.config import AuthOverride
from databinder.fetch.constants import (
    DEFAULT_ATTEMPT_TIMEOUT_MS,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_JITTER_FACTOR,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)


RetryPredicate = Callable[[BaseException, int], bool]


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    ``max_retries`` counts retries, so an operation that keeps failing is
    invoked ``max_retries + 1`` times. Exponential backoff doubles the base
    delay per attempt up to ``max_delay_ms``; jitter then scales the delay
    by a uniform factor in ``[1 - jitter_factor, 1 + jitter_factor]``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    max_retries: Annotated[int, Field(ge=0, le=20)] = DEFAULT_MAX_RETRIES
    base_delay_ms: Annotated[int, Field(ge=0, le=300_000)] = DEFAULT_BASE_DELAY_MS
    exponential: bool = True
    max_delay_ms: Annotated[int, Field(ge=0, le=3_600_000)] = DEFAULT_MAX_DELAY_MS
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = DEFAULT_JITTER_FACTOR
    attempt_timeout_ms: Annotated[int, Field(ge=1)] | None = DEFAULT_ATTEMPT_TIMEOUT_MS
    cancel_event: asyncio.Event | None = Field(
        default=None, description="Once set, no further attempts are scheduled"
    )
    retry_predicate: RetryPredicate | None = Field(
        default=None, description="Overrides the default retryability check"
    )

    def compute_delay_ms(self, attempt: int, rng: random.Random | None = None) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Attempt that just failed (0-indexed).
            rng: Random source for jitter.

        Returns:
            Delay in milliseconds.
        """
        if self.exponential:
            delay = float(min(self.base_delay_ms * (2**attempt), self.max_delay_ms))
        else:
            delay = float(self.base_delay_ms)

        if self.jitter_factor > 0:
            draw = (rng or random).random()  # noqa: S311
            factor = 1 - self.jitter_factor + draw * self.jitter_factor * 2
            delay *= factor

        return math.floor(delay)


class PaginationOptions(BaseModel):
    """Server-side pagination request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    page_size: Annotated[int, Field(ge=1)] | None = None
    start_page: Annotated[int, Field(ge=1)] | None = None


class SortDirection(str, Enum):
    """Sort order."""

    ASC = "asc"
    DESC = "desc"


class SortSpec(BaseModel):
    """One sort key."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: Annotated[str, Field(min_length=1)]
    direction: SortDirection = SortDirection.ASC


class QueryOptions(BaseModel):
    """Filtering and sorting applied as query parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    filters: dict[str, Any] = Field(default_factory=dict)
    sort: list[SortSpec] = Field(default_factory=list)


class ResponseFormat(str, Enum):
    """Caller-selected response rendering.

    - FULL: status, headers and body without reshaping
    - BATCH: body coerced to an item list with pagination metadata
    - ITERATOR: batches produced by the batch iterator
    - STREAM: open byte stream, not buffered
    """

    FULL = "full"
    BATCH = "batch"
    ITERATOR = "iterator"
    STREAM = "stream"


class ResponseOptions(BaseModel):
    """Response handling switches."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    full_response: bool = False
    throw_http_errors: bool = True


class FetchOptions(BaseModel):
    """Per-call options for a datasource method.

    Named fields cover everything the fetch pipeline reads. Provider-specific
    keys go in ``extensions``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    endpoint: str | None = None
    http_method: Annotated[str, Field(min_length=1)] = "GET"
    body: Any = None
    pagination: PaginationOptions | None = None
    query: QueryOptions | None = None
    batch_size: Annotated[int, Field(ge=1)] | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    cookies: dict[str, str] = Field(default_factory=dict)
    auth_override: AuthOverride | None = None
    response_options: ResponseOptions = Field(default_factory=ResponseOptions)
    response_format: ResponseFormat | None = None
    retry: RetryPolicy | None = None
    method_name: str | None = None
    datasource_ids: list[str] | None = None
    id: str | None = Field(default=None, description="Resource id for get_by_id")
    extensions: dict[str, Any] = Field(default_factory=dict)

    def merged_with(self, overrides: "FetchOptions | None") -> "FetchOptions":
        """Layer explicitly-set fields of ``overrides`` on top of these options.

        Args:
            overrides: Options whose set fields take priority.

        Returns:
            New merged options.
        """
        if overrides is None:
            return self
        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)


class ResponseMetadata(BaseModel):
    """Metadata attached to every rendered response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp_ms: int
    source: str
    http_status: int
    headers: dict[str, str] = Field(default_factory=dict)
    total_items: int | None = None
    current_page: int | None = None
    has_next_page: bool | None = None
    error: str | None = None


class ResponseEnvelope(BaseModel):
    """Default and batch rendering: data plus metadata."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    data: Any
    metadata: ResponseMetadata


class FullResponse(BaseModel):
    """Full rendering: status, headers and body as received."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """Check if the status is 2xx."""
        return HTTP_STATUS_OK_MIN <= self.status < HTTP_STATUS_OK_MAX


@dataclass
class StreamResponse:
    """Stream rendering: the body as an unbuffered byte iterator.

    The consumer must exhaust ``stream`` or call ``aclose()``; either
    releases the underlying connection.
    """

    stream: AsyncIterator[bytes]
    metadata: ResponseMetadata
    _closer: Callable[[], Awaitable[None]] | None = field(default=None, repr=False)

    async def aclose(self) -> None:
        """Release the underlying response and client."""
        if self._closer is not None:
            closer, self._closer = self._closer, None
            await closer()


class BatchMetadata(BaseModel):
    """Position of a batch within one datasource's result set."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    current_page: int
    total_pages: int
    has_next_page: bool
    total_items: int
    batch_index: int
    batch_size: int
    datasource_id: str | None = None
    error: str | None = None


class Batch(BaseModel):
    """One bounded chunk of a result set."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    data: list[Any]
    metadata: BatchMetadata
