"""Idempotency key handling for Python web applications.

This package guards non-idempotent operations against duplicate execution:
a request replayed with the same idempotency key receives the captured
outcome of the original execution instead of running it again.
"""

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.service import IdempotencyService
from idempotency_guard.exceptions import (
    CleanupError,
    ConflictError,
    IdempotencyError,
    MisuseError,
    ResourceAlreadyExistsError,
)
from idempotency_guard.http import Request, Response
from idempotency_guard.models import (
    IdempotencyRequest,
    IdempotencyResource,
    IdempotencyResponse,
    ResourceState,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "IdempotencyConfig",
    "IdempotencyService",
    "Request",
    "Response",
    "IdempotencyRequest",
    "IdempotencyResource",
    "IdempotencyResponse",
    "ResourceState",
    "IdempotencyError",
    "ConflictError",
    "MisuseError",
    "ResourceAlreadyExistsError",
    "CleanupError",
]
