"""Request construction: URL resolution, authentication and cookies."""

import base64
import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlencode, urljoin, urlsplit, urlunsplit

from databinder.fetch.config import AuthConfig, AuthOverride, AuthType, RestApiConfig
from databinder.fetch.constants import DEFAULT_CONTENT_TYPE
from databinder.fetch.errors import InvalidConfigError
from databinder.fetch.models import FetchOptions, PaginationOptions, QueryOptions
from databinder.fetch.sanitize import (
    sanitize,
    sanitize_header_value,
    sanitize_query_value,
    sanitize_url,
)


AUTHORIZATION_HEADER = "Authorization"
COOKIE_HEADER = "Cookie"

# Characters encodeURIComponent leaves alone; cookie values keep them too.
_COOKIE_SAFE_CHARS = "-_.!~*'()"


@dataclass(frozen=True)
class RequestSpec:
    """Fully resolved description of one outbound call.

    Built fresh for every attempt so auth overrides and deadlines are
    recomputed each time.
    """

    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int | None = None


def _encode_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None or isinstance(value, dict | list | tuple):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def _query_params(
    pagination: PaginationOptions | None,
    query: QueryOptions | None,
) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []

    if pagination is not None and pagination.enabled:
        params.append(("page", str(pagination.start_page or 1)))
        if pagination.page_size:
            params.append(("pageSize", str(pagination.page_size)))

    if query is not None:
        for key, value in query.filters.items():
            params.append((key, _encode_filter_value(value)))
        if query.sort:
            sort_value = ",".join(f"{s.field}:{s.direction.value}" for s in query.sort)
            params.append(("sort", sort_value))

    return [
        (sanitize_query_value(key), sanitize_query_value(value))
        for key, value in params
        if sanitize_query_value(key)
    ]


def build_url(
    config: RestApiConfig | None,
    endpoint: str,
    pagination: PaginationOptions | None = None,
    query: QueryOptions | None = None,
) -> str:
    """Resolve a logical endpoint into an absolute, sanitized URL.

    The endpoint name (minus one leading ``/``) is looked up in
    ``config.endpoints``; unmapped names are used as literal paths and
    resolved relative to ``config.base_url``.

    Args:
        config: Datasource configuration.
        endpoint: Logical endpoint name or path.
        pagination: Adds ``page``/``pageSize`` when enabled.
        query: Filters (objects JSON-encoded) and sort (``field:direction``).

    Returns:
        The absolute URL.

    Raises:
        InvalidConfigError: If the base URL is absent or malformed.
    """
    if config is None:
        msg = "REST API configuration is missing"
        raise InvalidConfigError(msg, property_name="config")
    if not config.base_url:
        msg = "REST API base_url is missing"
        raise InvalidConfigError(msg, property_name="base_url", expected_type="url")

    base_url = sanitize_url(config.base_url)
    if not base_url:
        msg = "REST API base_url is not a valid http(s) URL"
        raise InvalidConfigError(
            msg,
            property_name="base_url",
            expected_type="url",
            received_value=config.base_url,
        )

    endpoint_key = endpoint[1:] if endpoint.startswith("/") else endpoint
    path, sep, fixed_query = config.endpoints.get(endpoint_key, endpoint).partition("?")
    target = sanitize(path) + sep + sanitize_query_value(fixed_query)

    resolved = sanitize_url(urljoin(base_url, target))
    if not resolved:
        msg = f"Endpoint '{endpoint_key}' does not resolve to a valid URL"
        raise InvalidConfigError(msg, property_name="endpoint", received_value=target)

    params = _query_params(pagination, query)
    if not params:
        return resolved

    parts = urlsplit(resolved)
    encoded = urlencode(params)
    merged_query = f"{parts.query}&{encoded}" if parts.query else encoded
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, merged_query, parts.fragment)
    )


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing key that differs only in case."""
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = sanitize_header_value(value)


def _basic_credentials(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode()
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


def apply_authentication(
    headers: dict[str, str],
    auth: AuthConfig | None = None,
    override: AuthOverride | None = None,
) -> dict[str, str]:
    """Merge datasource and per-call authentication into headers.

    An override of a different kind than ``auth`` fully determines the
    headers for the call. An override of the same kind (or without a kind)
    patches ``auth`` field by field. With neither layer set nothing is added.
    Cookie authentication is handled by ``merge_cookies``.

    Args:
        headers: Existing request headers (not modified).
        auth: Datasource-level authentication.
        override: Per-call override.

    Returns:
        New header dict with authentication applied.
    """
    result = dict(headers)
    if auth is None and override is None:
        return result

    base_type = auth.type if auth is not None else None

    if override is not None and override.type is not None and override.type != base_type:
        if override.type == AuthType.BEARER and override.token:
            _set_header(result, AUTHORIZATION_HEADER, f"Bearer {override.token}")
        elif (
            override.type == AuthType.BASIC
            and override.username
            and override.password
        ):
            _set_header(
                result,
                AUTHORIZATION_HEADER,
                _basic_credentials(override.username, override.password),
            )
        elif override.type == AuthType.CUSTOM:
            header_name = override.header_name or (auth.header_name if auth else None)
            if header_name and override.header_value:
                _set_header(result, header_name, override.header_value)
        return result

    if auth is None:
        return result

    if auth.type == AuthType.BEARER:
        token = (override.token if override else None) or auth.token
        if token:
            _set_header(result, AUTHORIZATION_HEADER, f"Bearer {token}")
    elif auth.type == AuthType.BASIC:
        username = (override.username if override else None) or auth.username
        password = (override.password if override else None) or auth.password
        if username and password:
            _set_header(
                result, AUTHORIZATION_HEADER, _basic_credentials(username, password)
            )
    elif auth.type == AuthType.CUSTOM:
        header_name = (override.header_name if override else None) or auth.header_name
        header_value = (
            override.header_value if override else None
        ) or auth.header_value
        if header_name and header_value:
            _set_header(result, header_name, header_value)

    return result


def merge_cookies(
    auth: AuthConfig | None = None,
    override: AuthOverride | None = None,
    cookies: dict[str, str] | None = None,
) -> dict[str, str]:
    """Union cookies from all three layers; the last writer per name wins.

    Args:
        auth: Datasource auth (used when its type is cookie).
        override: Per-call override (used when its type is cookie).
        cookies: Explicit per-call cookies.

    Returns:
        Cookie name to percent-encoded value.
    """
    merged: dict[str, str] = {}
    layers: list[dict[str, str]] = []
    if auth is not None and auth.type == AuthType.COOKIE:
        layers.append(auth.cookies)
    if override is not None and override.type == AuthType.COOKIE:
        layers.append(override.cookies)
    if cookies:
        layers.append(cookies)

    for layer in layers:
        for name, value in layer.items():
            merged[name] = quote(value, safe=_COOKIE_SAFE_CHARS)
    return merged


def build_request(
    config: RestApiConfig,
    endpoint: str,
    options: FetchOptions | None = None,
) -> RequestSpec:
    """Build the request for one attempt.

    Header precedence, lowest first: default content type, datasource
    headers, authentication, explicit per-call headers, merged cookies.

    Args:
        config: Datasource configuration.
        endpoint: Logical endpoint (``options.endpoint`` wins when set).
        options: Per-call options.

    Returns:
        Resolved request description.

    Raises:
        InvalidConfigError: If the URL cannot be built.
    """
    options = options or FetchOptions()
    url = build_url(
        config,
        options.endpoint or endpoint,
        options.pagination,
        options.query,
    )

    headers: dict[str, str] = {}
    _set_header(headers, "Content-Type", DEFAULT_CONTENT_TYPE)
    for name, value in config.headers.items():
        _set_header(headers, name, value)

    headers = apply_authentication(headers, config.auth, options.auth_override)

    for name, value in options.headers.items():
        _set_header(headers, name, value)

    cookie_map = merge_cookies(config.auth, options.auth_override, options.cookies)
    if cookie_map:
        _set_header(
            headers,
            COOKIE_HEADER,
            "; ".join(f"{name}={value}" for name, value in cookie_map.items()),
        )

    return RequestSpec(
        url=url,
        method=options.http_method.upper(),
        headers=headers,
        body=options.body,
        timeout_ms=config.timeout_ms,
    )
