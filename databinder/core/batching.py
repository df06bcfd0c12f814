"""Pull-based batch iterator over one or more datasources.

Each datasource is fetched once with pagination disabled; its items are
then handed out in fixed-size batches. Datasources are processed strictly
in the given order. A failing datasource produces exactly one empty batch
carrying the error message, and iteration moves on to the next one.
"""

import math
import time
from collections import deque
from enum import Enum
from typing import Any

import structlog

from databinder.core.linker import DEFAULT_METHOD_NAME, Linker
from databinder.fetch.errors import InvalidConfigError, wrap_unexpected
from databinder.fetch.models import (
    Batch,
    BatchMetadata,
    FetchOptions,
    FullResponse,
    PaginationOptions,
    ResponseEnvelope,
    ResponseFormat,
)
from databinder.observability.telemetry import (
    EventOutcome,
    FetchEvent,
    NullTelemetry,
    Telemetry,
)


logger = structlog.get_logger()

_UNBUFFERED_FORMATS = frozenset({ResponseFormat.ITERATOR, ResponseFormat.STREAM})


class IteratorState(str, Enum):
    """State of a batch iterator.

    - PENDING: the next datasource has not been fetched yet
    - SLICING: items of the current datasource are being handed out
    - DONE: exhausted or closed; terminal
    """

    PENDING = "PENDING"
    SLICING = "SLICING"
    DONE = "DONE"


def apply_mapping(item: Any, mapping: dict[str, str]) -> Any:
    """Rename the keys of a mapping item.

    Keys present in ``mapping`` are renamed, other keys pass through.
    Items that are not dicts are returned untouched.
    """
    if not isinstance(item, dict):
        return item
    return {mapping.get(key, key): value for key, value in item.items()}


def extract_items(response: Any) -> list[Any]:
    """Pull the item list out of a datasource method's response.

    Args:
        response: Envelope, full response, dict with ``data``, or raw value.

    Returns:
        Items as a list; scalars are wrapped and None becomes empty.
    """
    if isinstance(response, ResponseEnvelope | FullResponse):
        data = response.data
    elif isinstance(response, dict) and "data" in response:
        data = response["data"]
    else:
        data = response

    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, tuple):
        return list(data)
    return [data]


class BatchIterator:
    """Forward-only async iterator of ``Batch`` objects.

    Only one batch is ever in flight: ``__anext__`` may not be awaited
    concurrently. Once exhausted or closed the iterator stays exhausted;
    iterate again by creating a new one.
    """

    def __init__(
        self,
        linker: Linker,
        datasource_ids: list[str],
        batch_size: int,
        shared_options: FetchOptions | None = None,
        telemetry: Telemetry | None = None,
    ) -> None:
        """Initialize the iterator.

        Args:
            linker: Source of datasource methods and mappings.
            datasource_ids: Datasources to read, in order.
            batch_size: Maximum items per batch.
            shared_options: Options layered over each datasource's own.
            telemetry: Sink for batch events.

        Raises:
            InvalidConfigError: If ``batch_size`` is less than 1.
        """
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise InvalidConfigError(
                msg,
                property_name="batch_size",
                expected_type="int",
                received_value=batch_size,
            )

        self._linker = linker
        self._batch_size = batch_size
        self._shared_options = shared_options
        self._telemetry = telemetry or NullTelemetry()
        self._log = logger.bind(component="binder", batch_size=batch_size)

        self._pending_ids: deque[str] = deque(datasource_ids)
        self._current_id: str | None = None
        self._buffered_items: list[Any] = []
        self._chunk_index = 0
        self._total_chunks = 0
        self._load_started_ns = 0
        self._state = IteratorState.PENDING
        self._in_flight = False

    @property
    def state(self) -> IteratorState:
        """Get the current state."""
        return self._state

    @property
    def current_datasource_id(self) -> str | None:
        """Get the datasource currently being read."""
        return self._current_id

    def __aiter__(self) -> "BatchIterator":
        return self

    async def __anext__(self) -> Batch:
        if self._in_flight:
            msg = "BatchIterator does not support concurrent __anext__ calls"
            raise RuntimeError(msg)
        self._in_flight = True
        try:
            return await self._advance()
        finally:
            self._in_flight = False

    async def aclose(self) -> None:
        """Stop iteration and drop buffered items."""
        self._pending_ids.clear()
        self._release_buffer()
        self._state = IteratorState.DONE

    async def _advance(self) -> Batch:
        while True:
            if self._state == IteratorState.DONE:
                raise StopAsyncIteration

            if self._state == IteratorState.SLICING:
                if self._chunk_index < self._total_chunks:
                    return self._next_chunk()
                self._release_buffer()
                self._state = IteratorState.PENDING
                continue

            if not self._pending_ids:
                self._state = IteratorState.DONE
                raise StopAsyncIteration

            datasource_id = self._pending_ids.popleft()
            self._current_id = datasource_id
            self._load_started_ns = time.perf_counter_ns()
            try:
                items = await self._load(datasource_id)
            except Exception as e:  # noqa: BLE001
                return self._error_batch(datasource_id, e)

            self._buffered_items = items
            self._chunk_index = 0
            self._total_chunks = math.ceil(len(items) / self._batch_size)
            self._state = IteratorState.SLICING
            self._log.info(
                "datasource_loaded",
                datasource_id=datasource_id,
                total_items=len(items),
                total_batches=self._total_chunks,
            )

    def _resolve_options(self, datasource_id: str) -> tuple[Any, FetchOptions]:
        resolved = self._linker.get_method_for_datasource(datasource_id)
        if resolved is None:
            method_name = (
                self._shared_options.method_name if self._shared_options else None
            ) or DEFAULT_METHOD_NAME
            method = self._linker.get_method(datasource_id, method_name)
            base_options = FetchOptions()
        else:
            method = resolved.method
            base_options = resolved.options or FetchOptions()

        options = base_options.merged_with(self._shared_options)
        # Iterator and stream formats fall back to the method's own format.
        response_format = next(
            (
                candidate
                for candidate in (options.response_format, base_options.response_format)
                if candidate not in _UNBUFFERED_FORMATS
            ),
            None,
        )
        options = options.model_copy(
            update={
                "pagination": PaginationOptions(enabled=False),
                "response_format": response_format,
            }
        )
        return method, options

    async def _load(self, datasource_id: str) -> list[Any]:
        """Fetch the complete result set of one datasource and map it."""
        method, options = self._resolve_options(datasource_id)

        self._log.debug("datasource_fetch_started", datasource_id=datasource_id)
        response = await method(options)
        items = extract_items(response)

        mapping = self._linker.get_mapping_for_datasource(datasource_id)
        if mapping:
            items = [apply_mapping(item, mapping) for item in items]
        return items

    def _next_chunk(self) -> Batch:
        index = self._chunk_index
        start = index * self._batch_size
        data = self._buffered_items[start : start + self._batch_size]
        self._chunk_index += 1

        batch = Batch(
            data=data,
            metadata=BatchMetadata(
                current_page=index + 1,
                total_pages=self._total_chunks,
                has_next_page=index < self._total_chunks - 1,
                total_items=len(self._buffered_items),
                batch_index=index,
                batch_size=self._batch_size,
                datasource_id=self._current_id,
            ),
        )
        self._telemetry.emit(
            FetchEvent(
                operation=f"batch {self._current_id}",
                attempt=index,
                duration_ms=(time.perf_counter_ns() - self._load_started_ns) / 1_000_000,
                outcome=EventOutcome.BATCH_YIELD,
                detail={"datasource_id": self._current_id, "item_count": len(data)},
            )
        )
        return batch

    def _error_batch(self, datasource_id: str, error: Exception) -> Batch:
        classified = wrap_unexpected(error)
        self._log.error(
            "datasource_fetch_failed",
            datasource_id=datasource_id,
            **classified.to_dict(),
        )
        self._telemetry.emit(
            FetchEvent(
                operation=f"batch {datasource_id}",
                attempt=0,
                duration_ms=(time.perf_counter_ns() - self._load_started_ns) / 1_000_000,
                outcome=EventOutcome.BATCH_ERROR,
                detail={"datasource_id": datasource_id, "kind": classified.kind.value},
            )
        )
        return Batch(
            data=[],
            metadata=BatchMetadata(
                current_page=1,
                total_pages=1,
                has_next_page=False,
                total_items=0,
                batch_index=0,
                batch_size=self._batch_size,
                datasource_id=datasource_id,
                error=str(error),
            ),
        )

    def _release_buffer(self) -> None:
        self._buffered_items = []
        self._chunk_index = 0
        self._total_chunks = 0
