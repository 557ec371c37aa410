"""Framework adapters for idempotency handling.

This package provides adapters that embed the framework-agnostic service
in specific web frameworks:

- asgi.py: ASGI middleware for FastAPI, Starlette, etc.

The adapters handle the conversion between framework-specific request/response
objects and the service's internal representation.
"""

from idempotency_guard.adapters.asgi import ASGIIdempotencyMiddleware

__all__ = ["ASGIIdempotencyMiddleware"]
