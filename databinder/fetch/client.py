"""Async HTTP fetch executor with retries and response rendering."""

import json
import random
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from databinder.fetch.config import AuthType, RestApiConfig
from databinder.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from databinder.fetch.errors import (
    FetchError,
    FetchTimeoutError,
    NetworkError,
    error_for_status,
    wrap_unexpected,
)
from databinder.fetch.models import (
    FetchOptions,
    FullResponse,
    ResponseEnvelope,
    ResponseFormat,
    ResponseMetadata,
    RetryPolicy,
    StreamResponse,
)
from databinder.fetch.redact import redact_headers, strip_url_query
from databinder.fetch.request import RequestSpec, build_request
from databinder.fetch.retry import Sleep, with_retry
from databinder.observability.telemetry import NullTelemetry, Telemetry


if TYPE_CHECKING:
    from databinder.settings.app import AppSettings


logger = structlog.get_logger()

FetchResponse = ResponseEnvelope | FullResponse | StreamResponse


def _now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def _decode_json(body: bytes) -> Any:
    """Decode a JSON body; anything undecodable becomes an empty object."""
    if not body:
        return {}
    try:
        return json.loads(body)
    except ValueError:
        return {}


def _coerce_items(data: Any) -> list[Any]:
    """Turn a decoded body into an item list."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if not data:
            return []
        for key in ("items", "data"):
            if isinstance(data.get(key), list):
                return data[key]
    return [data]


class RestApiFetcher:
    """Executes REST calls through the retry engine.

    Provides:
    - Fresh request construction on every attempt
    - Per-request deadline from ``RestApiConfig.timeout_ms``
    - HTTP status mapping onto the error taxonomy
    - Rendering into default, full, batch or stream responses
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        telemetry: Telemetry | None = None,
        default_policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
        default_timeout_ms: int | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            transport: httpx transport (tests pass ``httpx.MockTransport``).
            telemetry: Sink for attempt and outcome events.
            default_policy: Retry policy used when options carry none.
            sleep: Backoff sleep, forwarded to the retry engine.
            rng: Jitter source, forwarded to the retry engine.
            default_timeout_ms: Request deadline for configs without
                ``timeout_ms``.
        """
        self._transport = transport
        self._telemetry = telemetry or NullTelemetry()
        self._default_policy = default_policy or RetryPolicy()
        self._default_timeout_ms = default_timeout_ms
        self._sleep = sleep
        self._rng = rng
        self._log = logger.bind(component="fetch")

    @classmethod
    def from_settings(
        cls,
        settings: "AppSettings",
        transport: httpx.AsyncBaseTransport | None = None,
        telemetry: Telemetry | None = None,
        sleep: Sleep | None = None,
    ) -> "RestApiFetcher":
        """Create a fetcher using the ``DATABINDER_RETRY_*`` and timeout settings.

        Args:
            settings: Loaded settings.
            transport: httpx transport.
            telemetry: Sink for attempt and outcome events.
            sleep: Backoff sleep, forwarded to the retry engine.

        Returns:
            Configured fetcher.
        """
        return cls(
            transport=transport,
            telemetry=telemetry,
            default_policy=settings.retry_policy(),
            sleep=sleep,
            default_timeout_ms=settings.default_timeout_ms,
        )

    async def fetch(
        self,
        config: RestApiConfig,
        endpoint: str,
        options: FetchOptions | None = None,
    ) -> FetchResponse:
        """Fetch an endpoint with retry support.

        Args:
            config: Datasource configuration.
            endpoint: Logical endpoint name or path.
            options: Per-call options.

        Returns:
            Response rendered per ``options.response_format``.

        Raises:
            FetchError: The classified failure once retries are exhausted.
        """
        options = options or FetchOptions()
        if config.timeout_ms is None and self._default_timeout_ms is not None:
            config = config.model_copy(update={"timeout_ms": self._default_timeout_ms})
        policy = options.retry or self._default_policy
        operation_name = f"{options.http_method.upper()} {options.endpoint or endpoint}"
        start_time_ns = time.perf_counter_ns()
        log = self._log.bind(source=config.source, operation=operation_name)

        async def attempt() -> FetchResponse:
            request = build_request(config, endpoint, options)
            return await self._execute(request, config, options, log)

        try:
            result = await with_retry(
                attempt,
                policy,
                telemetry=self._telemetry,
                operation_name=operation_name,
                sleep=self._sleep,
                rng=self._rng,
            )
        except FetchError as e:
            log.warning(
                "fetch_failed",
                duration_ms=round(self._elapsed_ms(start_time_ns), 2),
                **e.to_dict(),
            )
            raise
        except Exception as e:
            error = wrap_unexpected(e)
            log.warning("fetch_failed", **error.to_dict())
            raise error from e

        log.info(
            "fetch_complete",
            duration_ms=round(self._elapsed_ms(start_time_ns), 2),
            response_type=type(result).__name__,
        )
        return result

    @staticmethod
    def _elapsed_ms(start_ns: int) -> float:
        return (time.perf_counter_ns() - start_ns) / 1_000_000

    async def _execute(
        self,
        request: RequestSpec,
        config: RestApiConfig,
        options: FetchOptions,
        log: structlog.stdlib.BoundLogger,
    ) -> FetchResponse:
        """Execute a single HTTP request and render the response.

        Args:
            request: Resolved request.
            config: Datasource configuration.
            options: Per-call options.
            log: Bound logger.

        Returns:
            Rendered response.

        Raises:
            FetchError: Classified failure for this attempt.
        """
        extra_sensitive = frozenset()
        if config.auth is not None and config.auth.type == AuthType.CUSTOM:
            extra_sensitive = frozenset({(config.auth.header_name or "").lower()})
        log.debug(
            "request_attempt",
            url=strip_url_query(request.url),
            method=request.method,
            headers=redact_headers(request.headers, extra_sensitive),
        )

        timeout = (
            httpx.Timeout(request.timeout_ms / 1000.0)
            if request.timeout_ms
            else httpx.Timeout(None)
        )
        client = httpx.AsyncClient(
            transport=self._transport,
            timeout=timeout,
            follow_redirects=True,
        )
        response: httpx.Response | None = None
        handed_off = False

        try:
            response = await client.send(self._to_httpx(client, request), stream=True)

            if options.response_options.throw_http_errors:
                http_error = self._classify_http_error(response, request)
                if http_error is not None:
                    raise http_error

            response_format = options.response_format
            if options.response_options.full_response:
                response_format = ResponseFormat.FULL

            if response_format == ResponseFormat.STREAM:
                handed_off = True
                return self._render_stream(response, client, config)

            body = await response.aread()
            return self._render(response, body, config, options, response_format)

        except FetchError:
            raise
        except httpx.TimeoutException as e:
            msg = f"Request timed out after {request.timeout_ms}ms"
            raise FetchTimeoutError(
                msg,
                url=request.url,
                method=request.method,
                timeout_ms=request.timeout_ms,
                context={"original_error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            msg = f"Request failed: {e}"
            raise NetworkError(
                msg,
                url=request.url,
                method=request.method,
                context={"original_error": str(e), "original_type": type(e).__name__},
            ) from e
        except Exception as e:
            raise wrap_unexpected(e, url=request.url, method=request.method) from e
        finally:
            if not handed_off:
                if response is not None:
                    await response.aclose()
                await client.aclose()

    @staticmethod
    def _to_httpx(client: httpx.AsyncClient, request: RequestSpec) -> httpx.Request:
        kwargs: dict[str, Any] = {}
        if isinstance(request.body, bytes | str):
            kwargs["content"] = request.body
        elif request.body is not None:
            kwargs["json"] = request.body
        return client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            **kwargs,
        )

    @staticmethod
    def _classify_http_error(
        response: httpx.Response,
        request: RequestSpec,
    ) -> FetchError | None:
        """Classify an HTTP status as a taxonomy error.

        Args:
            response: HTTP response.
            request: The request that produced it.

        Returns:
            FetchError if the status is not 2xx, None otherwise.
        """
        status = response.status_code
        if HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX:
            return None
        message = f"HTTP error {status}: {response.reason_phrase}"
        return error_for_status(status, message, url=request.url, method=request.method)

    @staticmethod
    def _metadata(
        response: httpx.Response,
        config: RestApiConfig,
        **extra: Any,
    ) -> ResponseMetadata:
        return ResponseMetadata(
            timestamp_ms=_now_ms(),
            source=config.source,
            http_status=response.status_code,
            headers={key.lower(): value for key, value in response.headers.items()},
            **extra,
        )

    def _render_stream(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        config: RestApiConfig,
    ) -> StreamResponse:
        async def close() -> None:
            await response.aclose()
            await client.aclose()

        async def chunks() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
                    yield chunk
            finally:
                await close()

        return StreamResponse(
            stream=chunks(),
            metadata=self._metadata(response, config),
            _closer=close,
        )

    def _render(
        self,
        response: httpx.Response,
        body: bytes,
        config: RestApiConfig,
        options: FetchOptions,
        response_format: ResponseFormat | None,
    ) -> FetchResponse:
        """Render a buffered body.

        Args:
            response: HTTP response.
            body: Raw body bytes.
            config: Datasource configuration.
            options: Per-call options.
            response_format: Requested rendering.

        Returns:
            Rendered response.
        """
        data = _decode_json(body)

        if response_format == ResponseFormat.FULL:
            return FullResponse(
                status=response.status_code,
                status_text=response.reason_phrase,
                headers={key.lower(): value for key, value in response.headers.items()},
                data=data,
                body=body,
            )

        if response_format == ResponseFormat.BATCH:
            items = _coerce_items(data)
            total_items = len(items)
            if isinstance(data, dict) and isinstance(data.get("totalItems"), int):
                total_items = data["totalItems"]
            pagination = options.pagination
            page_size = (pagination.page_size if pagination else None) or options.batch_size
            # Heuristic: a full page suggests more. A last page that is
            # exactly full reports a next page that turns out empty.
            has_next_page = page_size is not None and len(items) == page_size
            return ResponseEnvelope(
                data=items,
                metadata=self._metadata(
                    response,
                    config,
                    total_items=total_items,
                    current_page=(pagination.start_page if pagination else None) or 1,
                    has_next_page=has_next_page,
                ),
            )

        return ResponseEnvelope(data=data, metadata=self._metadata(response, config))


async def fetch_data(
    config: RestApiConfig,
    endpoint: str,
    options: FetchOptions | None = None,
    *,
    telemetry: Telemetry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResponse:
    """Fetch an endpoint with a one-off fetcher.

    Args:
        config: Datasource configuration.
        endpoint: Logical endpoint name or path.
        options: Per-call options.
        telemetry: Sink for attempt and outcome events.
        transport: Optional httpx transport.

    Returns:
        Response rendered per ``options.response_format``.
    """
    fetcher = RestApiFetcher(transport=transport, telemetry=telemetry)
    return await fetcher.fetch(config, endpoint, options)
