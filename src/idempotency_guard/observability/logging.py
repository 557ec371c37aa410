"""Structured logging configuration for idempotency handling.

Logs are emitted through structlog. Every decision the service takes is a
single event carrying the idempotency key, the request method and URL, and
the decision itself, which makes duplicates and misuse easy to trace in a
log aggregation system.

Examples:
    Configure logging::

        from idempotency_guard.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        from idempotency_guard.observability.logging import get_logger

        logger = get_logger(__name__)
        logger.info("idempotency.hit", key="K1", method="POST", url="/orders")

    Output (JSON)::

        {
            "key": "K1",
            "method": "POST",
            "url": "/orders",
            "event": "idempotency.hit",
            "level": "info",
            "timestamp": "2026-01-01T00:00:00.000000Z"
        }
"""

import logging
import sys
from typing import Any

import structlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    This should be called once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, emit JSON logs; if False, use console format

    Raises:
        ValueError: If level is not a known log level

    Examples:
        >>> configure_logging(level="DEBUG", json_output=False)
    """
    level_name = level.upper()
    if level_name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(LOG_LEVELS)}")
    numeric_level = getattr(logging, level_name)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)
