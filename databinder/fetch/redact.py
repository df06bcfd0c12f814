"""Masking of credentials in headers and URLs before they reach logs or errors."""

import re
from urllib.parse import urlsplit


SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
        "x-csrf-token",
    }
)

REDACTED_VALUE = "[REDACTED]"

_CREDENTIALS_PATTERN = re.compile(r"(https?://)([^:/@]+):([^@]+)@")


def is_sensitive_header(header_name: str, extra: frozenset[str] = frozenset()) -> bool:
    """Tell whether a header carries credentials (case-insensitive)."""
    name = header_name.lower()
    return name in SENSITIVE_HEADERS or name in extra


def redact_headers(
    headers: dict[str, str],
    extra_sensitive: frozenset[str] | None = None,
) -> dict[str, str]:
    """Copy ``headers`` with credential values masked.

    Args:
        headers: Request or response headers.
        extra_sensitive: Lower-case names to mask on top of the built-in
            set, e.g. the header chosen for custom authentication.

    Returns:
        A new dict; the input is left as is.
    """
    extra = extra_sensitive or frozenset()
    return {
        key: REDACTED_VALUE if is_sensitive_header(key, extra) else value
        for key, value in headers.items()
    }


def redact_url_credentials(url: str) -> str:
    """Mask ``user:password@`` userinfo in an http(s) URL."""
    return _CREDENTIALS_PATTERN.sub(r"\1[REDACTED]:[REDACTED]@", url)


def strip_url_query(url: str) -> str:
    """Reduce a URL to its origin and path.

    Query strings and fragments can carry tokens, and userinfo can carry
    passwords, so neither is kept.

    Args:
        url: Absolute URL.

    Returns:
        ``scheme://host[:port]/path``, or the input when it is not absolute.
    """
    bare = url.split("?", 1)[0].split("#", 1)[0]
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return bare
    if not parts.scheme or not parts.hostname:
        return bare

    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    if port is not None:
        host = f"{host}:{port}"
    return f"{parts.scheme}://{host}{parts.path or '/'}"
