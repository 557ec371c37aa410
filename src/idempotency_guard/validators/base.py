"""Policy protocols consulted by the idempotency service.

Two decisions are pluggable:

- Whether a request carrying an idempotency key is guarded at all
  (IntentValidator)
- Whether a captured response becomes the canonical replay for its key
  (ResponseValidator)

Examples:
    Guarding only one route::

        class OrdersOnly:
            def should_process(self, request: Request) -> bool:
                return request.url.startswith("/orders")

    Caching client errors as well as successes::

        class BelowServerError:
            def is_valid_for_persistence(self, response: IdempotencyResponse) -> bool:
                return response.status_code is not None and response.status_code < 500
"""

from typing import Protocol, runtime_checkable

from idempotency_guard.http import Request
from idempotency_guard.models import IdempotencyResponse


@runtime_checkable
class IntentValidator(Protocol):
    """Decides whether a keyed request is subject to idempotency handling."""

    def should_process(self, request: Request) -> bool:
        """Return True to guard the request, False to pass it through."""
        ...


@runtime_checkable
class ResponseValidator(Protocol):
    """Decides whether a captured response may be persisted for replay."""

    def is_valid_for_persistence(self, response: IdempotencyResponse) -> bool:
        """Return True to persist the response, False to release the key."""
        ...
