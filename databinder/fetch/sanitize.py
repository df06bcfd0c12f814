"""Sanitization primitives for values embedded in URLs and headers."""

import re
from urllib.parse import urlsplit, urlunsplit


_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_INJECTION_CHARS = re.compile(r"[;&<>\"'`]")
_TRAVERSAL = re.compile(r"\.\.[/\\]")

ALLOWED_URL_SCHEMES = frozenset({"http", "https"})


def _strip_traversal(value: str) -> str:
    # Removing one sequence can expose another ("....//" -> "../").
    previous = None
    while previous != value:
        previous = value
        value = _TRAVERSAL.sub("", value)
    return value


def sanitize(value: str) -> str:
    """Sanitize a string for use in URL paths.

    Removes control characters, characters commonly used for injection,
    and directory traversal sequences.

    Args:
        value: Raw input.

    Returns:
        Sanitized string (empty for empty input).
    """
    if not value:
        return ""
    value = _CONTROL_CHARS.sub("", value)
    value = _INJECTION_CHARS.sub("", value)
    return _strip_traversal(value)


def sanitize_query_value(value: str) -> str:
    """Sanitize a query parameter key or value.

    Only control characters and traversal sequences are removed so that
    JSON-encoded filter values keep their quotes.
    """
    if not value:
        return ""
    return _strip_traversal(_CONTROL_CHARS.sub("", value))


def sanitize_header_value(value: str) -> str:
    """Strip control characters (including CR/LF) from a header value."""
    return _CONTROL_CHARS.sub("", value)


def sanitize_url(url: str) -> str:
    """Validate and normalize an absolute http(s) URL.

    Args:
        url: URL to check.

    Returns:
        The normalized URL, or an empty string when it is malformed or
        uses a scheme other than http/https.
    """
    if not url or _CONTROL_CHARS.search(url):
        return ""
    try:
        parts = urlsplit(url.strip())
        # Accessing port validates it.
        _ = parts.port
    except ValueError:
        return ""
    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES or not parts.hostname:
        return ""
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc,
            parts.path or "/",
            parts.query,
            parts.fragment,
        )
    )
