"""Structured logging configuration for safe-fetch."""

import logging
import sys
from collections.abc import Mapping
from typing import TextIO

import structlog
from structlog.types import EventDict, WrappedLogger

from safefetch.fetch.redact import redact_headers, redact_url


def redact_event(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Scrub credentials from ``url`` and ``headers`` fields of any event."""
    url = event_dict.get("url")
    if isinstance(url, str):
        event_dict["url"] = redact_url(url)
    headers = event_dict.get("headers")
    if isinstance(headers, Mapping):
        event_dict["headers"] = redact_headers(headers)
    return event_dict


def configure_logging(
    level: int = logging.INFO,
    output: TextIO | None = None,
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Events carry an ISO timestamp, their level and any bound call context,
    and pass through ``redact_event`` before rendering.

    Args:
        level: Minimum level for structlog events (default: INFO).
        output: Output stream (default: the current stderr).
        json_format: Render JSON lines instead of console output.
    """
    if output is None:
        output = sys.stderr

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_event,
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True, default=repr),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    # httpx and httpcore log through the standard library
    logging.basicConfig(
        format="%(levelname)s %(name)s %(message)s",
        stream=output,
        level=max(level, logging.WARNING),
        force=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_call_context(**context: str) -> None:
    """Bind context (e.g. a command or invocation id) to later log events."""
    structlog.contextvars.bind_contextvars(**context)


def clear_call_context(*keys: str) -> None:
    """Remove bound context; with no keys, clear all of it."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
