"""Default policy implementations."""

from collections.abc import Iterable

from idempotency_guard.http import Request
from idempotency_guard.models import IdempotencyResponse

# Valid HTTP methods for idempotency
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}


class DefaultIntentValidator:
    """Guards every request that carries an idempotency key.

    Key presence itself is checked by the service before this is consulted.
    """

    def should_process(self, request: Request) -> bool:
        return True


class MethodIntentValidator:
    """Guards only requests whose method is in ``enabled_methods``.

    Example:
        >>> validator = MethodIntentValidator(["post", "patch"])
        >>> validator.enabled_methods
        frozenset({'PATCH', 'POST'})
    """

    def __init__(self, enabled_methods: Iterable[str] = ("POST", "PUT", "PATCH", "DELETE")) -> None:
        """Initialize the validator.

        Args:
            enabled_methods: HTTP methods to guard (case-insensitive).

        Raises:
            ValueError: If any method is not a valid HTTP method.
        """
        methods = {method.strip().upper() for method in enabled_methods}
        invalid_methods = methods - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )
        self.enabled_methods = frozenset(methods)

    def should_process(self, request: Request) -> bool:
        return request.method.upper() in self.enabled_methods


class SuccessfulResponseValidator:
    """Persists only 2xx responses.

    Error responses are never cached, so a failed attempt can be retried
    under the same key once its pending resource has been released.
    """

    def is_valid_for_persistence(self, response: IdempotencyResponse) -> bool:
        status_code = response.status_code
        return status_code is not None and 200 <= status_code < 300
