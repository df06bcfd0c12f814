"""Error taxonomy for the fetch pipeline.

Every failure that leaves the fetch layer is one of a small set of kinds.
Callers branch on ``FetchError.kind`` (or the concrete subclass) and use the
classifier predicates below to decide whether a failure is transient.
"""

import socket
from enum import Enum
from typing import Any

import httpx

from databinder.fetch.constants import (
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_REQUEST_TIMEOUT,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
)
from databinder.fetch.redact import strip_url_query


class FetchErrorKind(str, Enum):
    """Classification of fetch failures.

    - NETWORK: transport failure or unexpected HTTP status
    - AUTHENTICATION: credentials rejected (401/403)
    - NOT_FOUND: resource does not exist (404)
    - TIMEOUT: attempt exceeded its deadline
    - INVALID_CONFIG: datasource or call configuration is unusable
    """

    NETWORK = "NETWORK"
    AUTHENTICATION = "AUTHENTICATION"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    INVALID_CONFIG = "INVALID_CONFIG"


class FetchError(Exception):
    """Base exception for all taxonomy errors.

    Provides structured error information for logging and retry decisions.
    """

    kind: FetchErrorKind = FetchErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the fetch error.

        Args:
            message: Human-readable error message.
            status: HTTP status code, if any.
            context: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.status = status
        self.context: dict[str, Any] = {
            key: value for key, value in (context or {}).items() if value is not None
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "kind": self.kind.value,
            "error_type": type(self).__name__,
            "message": self.message,
            "status": self.status,
            "context": dict(self.context),
        }


class NetworkError(FetchError):
    """Transport failure or an HTTP status with no more specific kind."""

    kind = FetchErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        url: str | None = None,
        method: str | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            status=status,
            context={
                **(context or {}),
                "url": strip_url_query(url) if url else None,
                "method": method,
            },
        )


class FetchTimeoutError(NetworkError):
    """An attempt did not finish within its deadline."""

    kind = FetchErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        url: str | None = None,
        method: str | None = None,
        timeout_ms: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            url=url,
            method=method,
            status=HTTP_STATUS_REQUEST_TIMEOUT,
            context={**(context or {}), "timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms


class AuthenticationError(FetchError):
    """Credentials were missing or rejected."""

    kind = FetchErrorKind.AUTHENTICATION

    def __init__(
        self,
        message: str,
        auth_type: str | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            status=status,
            context={**(context or {}), "auth_type": auth_type},
        )


class NotFoundError(FetchError):
    """The requested resource does not exist."""

    kind = FetchErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            status=status or HTTP_STATUS_NOT_FOUND,
            context={
                **(context or {}),
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )


class InvalidConfigError(FetchError):
    """Configuration is missing or malformed.

    Never retried: it signals a setup defect, not a transient condition.
    """

    kind = FetchErrorKind.INVALID_CONFIG

    def __init__(
        self,
        message: str,
        property_name: str | None = None,
        expected_type: str | None = None,
        received_value: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        # Structured values may hold secrets; only record their shape.
        if isinstance(received_value, dict | list | tuple | set):
            received_value = type(received_value).__name__
        super().__init__(
            message,
            context={
                **(context or {}),
                "property_name": property_name,
                "expected_type": expected_type,
                "received_value": received_value,
            },
        )


_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.NetworkError,
    ConnectionResetError,
    ConnectionRefusedError,
    socket.gaierror,
)


def _status_of(error: BaseException) -> int | None:
    """Find an HTTP status on an error, its own or its response's."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_http_error(error: BaseException, status_code: int) -> bool:
    """Check whether an error carries a specific HTTP status.

    Args:
        error: The error to check.
        status_code: The HTTP status code to look for.

    Returns:
        True if the error, or its nested response, has that status.
    """
    for attr in ("status", "status_code"):
        if getattr(error, attr, None) == status_code:
            return True
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None) == status_code


def is_network_error(error: BaseException) -> bool:
    """Check whether an error is a connection-level failure.

    Args:
        error: The error to check.

    Returns:
        True for ``NetworkError`` (and subclasses) and for raw transport
        errors such as refused or reset connections and unresolved hosts.
    """
    return isinstance(error, (NetworkError, *_TRANSPORT_ERRORS))


def is_server_error(error: BaseException) -> bool:
    """Check whether an error carries a 5xx status."""
    status = _status_of(error)
    return (
        status is not None
        and HTTP_STATUS_SERVER_ERROR_MIN <= status < HTTP_STATUS_SERVER_ERROR_MAX
    )


def is_retryable_error(error: BaseException) -> bool:
    """Check whether an error is likely transient.

    Args:
        error: The error to check.

    Returns:
        True for network errors, 5xx responses, 429 and timeouts.
    """
    if isinstance(error, InvalidConfigError):
        return False
    return (
        is_network_error(error)
        or is_server_error(error)
        or is_http_error(error, HTTP_STATUS_TOO_MANY_REQUESTS)
        or isinstance(error, FetchTimeoutError)
    )


def error_for_status(
    status: int,
    message: str,
    url: str | None = None,
    method: str | None = None,
) -> FetchError:
    """Map a non-2xx HTTP status onto the taxonomy.

    Args:
        status: HTTP status code.
        message: Human-readable message.
        url: Request URL (stored as origin + path).
        method: HTTP verb.

    Returns:
        The matching taxonomy error; it is returned, not raised.
    """
    context = {"url": strip_url_query(url) if url else None, "method": method}
    if status in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
        return AuthenticationError(message, status=status, context=context)
    if status == HTTP_STATUS_NOT_FOUND:
        return NotFoundError(message, status=status, context=context)
    if status >= HTTP_STATUS_SERVER_ERROR_MIN:
        return NetworkError(
            message,
            url=url,
            method=method,
            status=status,
            context={"server_error": True},
        )
    return NetworkError(message, url=url, method=method, status=status)


def wrap_unexpected(
    error: BaseException,
    url: str | None = None,
    method: str | None = None,
) -> FetchError:
    """Convert any exception into a taxonomy error.

    Taxonomy errors pass through unchanged. Anything else becomes a
    ``NetworkError`` that keeps the original message in its context.

    Args:
        error: The exception to convert.
        url: Request URL, if known.
        method: HTTP verb, if known.

    Returns:
        A taxonomy error.
    """
    if isinstance(error, FetchError):
        return error
    return NetworkError(
        f"Unexpected error: {error}",
        url=url,
        method=method,
        status=_status_of(error),
        context={
            "original_error": str(error),
            "original_type": type(error).__name__,
        },
    )
