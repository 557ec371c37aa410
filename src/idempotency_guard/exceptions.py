"""Custom exceptions for idempotency handling.

This module defines the exception hierarchy used to classify what went wrong
while guarding a request: a retry racing the original execution, a key reused
for a different operation, and failures of the resource store.

Examples:
    Handling errors passed to the continuation::

        from idempotency_guard.exceptions import ConflictError, MisuseError

        def next_fn(error=None):
            if isinstance(error, ConflictError):
                return Response(status=409)
            if isinstance(error, MisuseError):
                return Response(status=422)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Attributes:
        message: Human-readable error description.

    Examples:
        Catching all idempotency errors::

            try:
                await service.report_error(request)
            except IdempotencyError as e:
                logger.error("idempotency.error", error=str(e))
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ConflictError(IdempotencyError):
    """A previous request with the same key is still in progress.

    Raised for pending resources, including records whose stored status code
    is missing or malformed. The client should retry later.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key in flight.
    """

    def __init__(self, message: str, key: str) -> None:
        """Initialize the conflict error.

        Args:
            message: Human-readable error description.
            key: The idempotency key in flight.
        """
        super().__init__(message)
        self.key = key


class MisuseError(IdempotencyError):
    """The key was reused for a structurally different request.

    This is a client programming error, not a transient condition: retrying
    the same request will keep failing while the resource exists.

    Attributes:
        message: Human-readable error description.
        key: The reused idempotency key.
        stored_method: Method of the request that claimed the key.
        stored_url: URL of the request that claimed the key.
        request_method: Method of the offending request.
        request_url: URL of the offending request.
    """

    def __init__(
        self,
        message: str,
        key: str,
        stored_method: str,
        stored_url: str,
        request_method: str,
        request_url: str,
    ) -> None:
        """Initialize the misuse error with both request signatures.

        Args:
            message: Human-readable error description.
            key: The reused idempotency key.
            stored_method: Method of the request that claimed the key.
            stored_url: URL of the request that claimed the key.
            request_method: Method of the offending request.
            request_url: URL of the offending request.
        """
        super().__init__(message)
        self.key = key
        self.stored_method = stored_method
        self.stored_url = stored_url
        self.request_method = request_method
        self.request_url = request_url


class ResourceAlreadyExistsError(IdempotencyError):
    """A resource already exists for the key being created.

    Data adapters raise this from ``create`` when they lose the race for a
    key. The service translates it into a ConflictError.

    Attributes:
        key: The idempotency key that already exists.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Idempotency resource already exists for key {key}")
        self.key = key


class StorageError(IdempotencyError):
    """Storage backend operation failed.

    Adapters wrapping a real backend (Redis, MongoDB, SQL...) should raise
    this for transient failures instead of backend-specific exceptions.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.

    Examples:
        Raising a storage error::

            try:
                await redis.get(key)
            except RedisError as e:
                raise StorageError(
                    message=f"Failed to retrieve key from Redis: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the storage error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused the storage error.
        """
        super().__init__(message)
        self.cause = cause


class CleanupError(IdempotencyError):
    """Releasing a pending resource failed.

    Raised when the pending placeholder could not be deleted after its
    response was rejected for persistence, or after persisting the response
    failed. When both happened, the persistence failure is kept in
    ``original_error`` and the deletion failure in ``cleanup_error``.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key left pending.
        cleanup_error: The exception raised by the deletion.
        original_error: The persistence failure that triggered the cleanup, if any.
    """

    def __init__(
        self,
        message: str,
        key: str,
        cleanup_error: BaseException,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialize the cleanup error.

        Args:
            message: Human-readable error description.
            key: The idempotency key left pending.
            cleanup_error: The exception raised by the deletion.
            original_error: The persistence failure that triggered the cleanup.
        """
        super().__init__(message)
        self.key = key
        self.cleanup_error = cleanup_error
        self.original_error = original_error
