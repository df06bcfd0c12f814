"""Structured logging setup for databinder.

Library modules log through ``structlog.get_logger()`` and bind a
``component`` key (``retry``, ``fetch``, ``binder``, ``linker``). Nothing is
configured on import; applications call ``configure_logging`` once, or
``configure_from_settings`` to follow ``DATABINDER_LOG_LEVEL`` and
``DATABINDER_JSON_LOGS``.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from databinder.fetch.redact import REDACTED_VALUE, SENSITIVE_HEADERS, redact_headers


if TYPE_CHECKING:
    from databinder.settings.app import AppSettings


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def redact_sensitive_fields(
    _logger: Any,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Mask credentials that reach a log event.

    Top-level keys named like a sensitive header are masked, and a
    ``headers`` mapping is passed through ``redact_headers``.
    """
    for key in list(event_dict):
        if key.lower().replace("_", "-") in SENSITIVE_HEADERS:
            event_dict[key] = REDACTED_VALUE
    headers = event_dict.get("headers")
    if isinstance(headers, dict):
        event_dict["headers"] = redact_headers(headers)
    return event_dict


def configure_logging(
    level: int | str = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Logging level as a number or name (default: INFO).
        output: Output stream (default: stderr).
        json_format: JSON lines when True, console rendering otherwise.
    """
    numeric_level = _resolve_level(level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=output.isatty()),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=numeric_level)


def configure_from_settings(
    settings: "AppSettings",
    output: TextIO = sys.stderr,
) -> None:
    """Configure logging from application settings.

    Args:
        settings: Loaded settings.
        output: Output stream (default: stderr).
    """
    configure_logging(
        level=settings.log_level,
        output=output,
        json_format=settings.json_logs,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_request_context(request_id: str, **extra: str) -> None:
    """Bind a request id (and any extra keys) to subsequent log lines.

    Args:
        request_id: Caller-chosen request identifier.
        **extra: Additional context such as a datasource id.
    """
    structlog.contextvars.bind_contextvars(request_id=request_id, **extra)


def clear_request_context() -> None:
    """Drop all context bound with ``bind_request_context``."""
    structlog.contextvars.clear_contextvars()
