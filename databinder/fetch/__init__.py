"""Resilient fetch layer for REST datasources.

This module provides:
- A typed error taxonomy with retryability classifiers
- An async retry engine with exponential backoff, jitter and timeouts
- URL construction and layered authentication merging
- An httpx-based executor rendering full, batch, stream or default responses
- Header and URL redaction for logs
"""

from databinder.fetch.client import FetchResponse, RestApiFetcher, fetch_data
from databinder.fetch.config import AuthConfig, AuthOverride, AuthType, RestApiConfig
from databinder.fetch.errors import (
    AuthenticationError,
    FetchError,
    FetchErrorKind,
    FetchTimeoutError,
    InvalidConfigError,
    NetworkError,
    NotFoundError,
    error_for_status,
    is_http_error,
    is_network_error,
    is_retryable_error,
    is_server_error,
    wrap_unexpected,
)
from databinder.fetch.models import (
    Batch,
    BatchMetadata,
    FetchOptions,
    FullResponse,
    PaginationOptions,
    QueryOptions,
    ResponseEnvelope,
    ResponseFormat,
    ResponseMetadata,
    ResponseOptions,
    RetryPolicy,
    SortDirection,
    SortSpec,
    StreamResponse,
)
from databinder.fetch.redact import redact_headers, redact_url_credentials, strip_url_query
from databinder.fetch.request import (
    RequestSpec,
    apply_authentication,
    build_request,
    build_url,
    merge_cookies,
)
from databinder.fetch.retry import retry, with_retry
from databinder.fetch.sanitize import sanitize, sanitize_url


__all__ = [
    # Client
    "FetchResponse",
    "RestApiFetcher",
    "fetch_data",
    # Config
    "AuthConfig",
    "AuthOverride",
    "AuthType",
    "RestApiConfig",
    # Errors
    "AuthenticationError",
    "FetchError",
    "FetchErrorKind",
    "FetchTimeoutError",
    "InvalidConfigError",
    "NetworkError",
    "NotFoundError",
    "error_for_status",
    "is_http_error",
    "is_network_error",
    "is_retryable_error",
    "is_server_error",
    "wrap_unexpected",
    # Models
    "Batch",
    "BatchMetadata",
    "FetchOptions",
    "FullResponse",
    "PaginationOptions",
    "QueryOptions",
    "ResponseEnvelope",
    "ResponseFormat",
    "ResponseMetadata",
    "ResponseOptions",
    "RetryPolicy",
    "SortDirection",
    "SortSpec",
    "StreamResponse",
    # Requests
    "RequestSpec",
    "apply_authentication",
    "build_request",
    "build_url",
    "merge_cookies",
    # Retry
    "retry",
    "with_retry",
    # Redaction and sanitization
    "redact_headers",
    "redact_url_credentials",
    "sanitize",
    "sanitize_url",
    "strip_url_query",
]
