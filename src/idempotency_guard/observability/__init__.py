"""Observability utilities for idempotency handling.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for decisions and persistence outcomes
- Structured logging with contextual information
"""

from idempotency_guard.observability.logging import configure_logging, get_logger
from idempotency_guard.observability.metrics import (
    record_cleanup,
    record_decision,
    record_persistence,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_decision",
    "record_persistence",
    "record_cleanup",
]
