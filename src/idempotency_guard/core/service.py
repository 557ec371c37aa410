"""Framework-agnostic idempotency service.

This module provides the coordinator that decides, for every inbound request,
one of:

    pass-through | miss (execute) | hit (replay) | conflict | misuse

Flow:
    1. Extract the idempotency key from the configured header
    2. No key, or the intent validator declines -> pass through
    3. Look the key up in the data adapter
    4. No resource -> atomically create a pending one, install the capture
       hook on the response, continue
    5. Pending resource (or a malformed response) -> ConflictError
    6. Completed resource, different method or URL -> MisuseError
    7. Completed resource, same method and URL -> replay onto the response

Errors are classified here and handed to the continuation; mapping them to
HTTP status codes is the embedding application's job. Data adapter failures
propagate unchanged.

Examples:
    Using the service directly::

        from idempotency_guard.config import IdempotencyConfig
        from idempotency_guard.core.service import IdempotencyService
        from idempotency_guard.http import Request, Response

        service = IdempotencyService(IdempotencyConfig())

        request = Request("POST", "/orders", headers={"Idempotency-Key": "K1"})
        response = Response()

        def next_fn(error=None):
            if error is not None:
                raise error

        await service.provide_middleware_function(request, response, next_fn)
        if not service.is_hit(request):
            response.status_code = 201
            await response.send(b'{"id": 1}')
"""

import inspect
from collections.abc import Callable
from typing import Any
from weakref import WeakKeyDictionary

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.hook import ResponseCaptureHook
from idempotency_guard.core.replay import restore_response
from idempotency_guard.exceptions import (
    CleanupError,
    ConflictError,
    MisuseError,
    ResourceAlreadyExistsError,
)
from idempotency_guard.http import Request, Response
from idempotency_guard.models import (
    IdempotencyRequest,
    IdempotencyResource,
    IdempotencyResponse,
    encode_body,
)
from idempotency_guard.observability.logging import get_logger
from idempotency_guard.observability.metrics import (
    decrement_pending,
    increment_pending,
    record_decision,
    record_persistence,
)
from idempotency_guard.storage.memory import InMemoryDataAdapter
from idempotency_guard.utils.headers import filter_request_headers, get_header_value
from idempotency_guard.validators.defaults import (
    DefaultIntentValidator,
    SuccessfulResponseValidator,
)

logger = get_logger(__name__)

NextFunction = Callable[..., Any]


async def _invoke(next_fn: NextFunction, error: Exception | None = None) -> None:
    result = next_fn() if error is None else next_fn(error)
    if inspect.isawaitable(result):
        await result


class IdempotencyService:
    """Coordinates idempotency decisions for a request pipeline.

    Attributes:
        config: Configuration object
        intent_validator: Policy deciding whether a keyed request is guarded
        data_adapter: Store for idempotency resources
        response_validator: Policy deciding whether a response is persisted
    """

    def __init__(self, config: IdempotencyConfig | None = None) -> None:
        """Initialize the service.

        Collaborators missing from the config are replaced with the defaults.

        Args:
            config: Configuration object (uses defaults if not provided)
        """
        self.config = config if config is not None else IdempotencyConfig()
        # Explicit None checks: a store may be falsy when empty
        self.intent_validator = self.config.intent_validator
        if self.intent_validator is None:
            self.intent_validator = DefaultIntentValidator()
        self.data_adapter = self.config.data_adapter
        if self.data_adapter is None:
            self.data_adapter = InMemoryDataAdapter()
        self.response_validator = self.config.response_validator
        if self.response_validator is None:
            self.response_validator = SuccessfulResponseValidator()
        self._hits: WeakKeyDictionary[Any, bool] = WeakKeyDictionary()
        # Keys this service created and whose capture hook has not fired yet
        self._claims: dict[str, object] = {}

    def extract_idempotency_key_from_req(self, request: Request) -> str | None:
        """Extract the idempotency key from request headers.

        Header names are case-insensitive. A blank value counts as absent.

        Args:
            request: The request object

        Returns:
            The idempotency key if present, None otherwise
        """
        value = get_header_value(request.headers, self.config.idempotency_key_header)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def is_hit(self, request: Request) -> bool:
        """Tell whether the last processing of this request object replayed a response."""
        return self._hits.get(request, False)

    async def provide_middleware_function(
        self,
        request: Request,
        response: Response,
        next_fn: NextFunction,
    ) -> None:
        """Process a request with idempotency handling.

        ``next_fn`` is called with no argument to continue downstream, or with
        a single ConflictError/MisuseError. It may return an awaitable.

        Args:
            request: The incoming request
            response: The outgoing response for this request
            next_fn: Continuation, invoked at most once

        Raises:
            Exception: Whatever the data adapter raises while looking up or
                creating the resource, unchanged.
        """
        self._hits[request] = False

        key = self.extract_idempotency_key_from_req(request)
        if key is None or not self.intent_validator.should_process(request):
            record_decision("pass_through")
            logger.debug(
                "idempotency.pass_through",
                method=request.method,
                url=request.url,
                has_key=key is not None,
            )
            await _invoke(next_fn)
            return

        resource = await self.data_adapter.find_by_idempotency_key(key)

        if resource is None:
            await self._handle_miss(key, request, response, next_fn)
            return

        if not resource.is_completed:
            await self._reject_in_progress(key, request, next_fn)
            return

        stored = resource.request
        if stored.method.upper() != request.method.upper() or stored.url != request.url:
            record_decision("misuse")
            logger.warning(
                "idempotency.misuse",
                key=key,
                stored_method=stored.method,
                stored_url=stored.url,
                method=request.method,
                url=request.url,
            )
            await _invoke(
                next_fn,
                MisuseError(
                    message=(
                        f"Idempotency key {key} was already used for "
                        f"{stored.method} {stored.url}, not {request.method} {request.url}"
                    ),
                    key=key,
                    stored_method=stored.method,
                    stored_url=stored.url,
                    request_method=request.method,
                    request_url=request.url,
                ),
            )
            return

        restore_response(resource, response)
        self._hits[request] = True
        record_decision("hit")
        logger.info(
            "idempotency.hit",
            key=key,
            method=request.method,
            url=request.url,
            status_code=response.status_code,
        )
        if self.config.continue_on_hit:
            await _invoke(next_fn)

    async def report_error(self, request: Request) -> None:
        """Release the resource of a request whose downstream handling failed.

        Requests without an idempotency key are ignored.

        Args:
            request: The request that failed

        Raises:
            Exception: Whatever the data adapter raises while deleting, unchanged.
        """
        key = self.extract_idempotency_key_from_req(request)
        if key is None:
            return

        await self.data_adapter.delete(key)
        self._unclaim(key)
        logger.info("idempotency.error_reported", key=key, method=request.method, url=request.url)

    async def _handle_miss(
        self,
        key: str,
        request: Request,
        response: Response,
        next_fn: NextFunction,
    ) -> None:
        resource = IdempotencyResource(
            idempotency_key=key,
            request=IdempotencyRequest(
                method=request.method,
                url=request.url,
                headers=filter_request_headers(request.headers),
                body_b64=encode_body(request.body),
                query=dict(request.query),
            ),
        )

        try:
            await self.data_adapter.create(resource)
        except ResourceAlreadyExistsError:
            # Lost the race against a concurrent creator
            await self._reject_in_progress(key, request, next_fn)
            return

        claim = object()
        if key not in self._claims:
            increment_pending()
        # Replaces a stale claim on a key the store expired; its hook will skip
        self._claims[key] = claim

        async def on_capture(captured: IdempotencyResponse) -> None:
            if self._claims.get(key) is not claim:
                # Released through report_error; the key may belong to someone else now
                logger.debug("idempotency.capture_skipped", key=key)
                return
            try:
                await self._complete(resource, captured)
            finally:
                self._unclaim(key)

        ResponseCaptureHook.install(response, on_capture)
        record_decision("miss")
        logger.info("idempotency.miss", key=key, method=request.method, url=request.url)
        await _invoke(next_fn)

    async def _reject_in_progress(self, key: str, request: Request, next_fn: NextFunction) -> None:
        record_decision("conflict")
        logger.info("idempotency.conflict", key=key, method=request.method, url=request.url)
        await _invoke(
            next_fn,
            ConflictError(
                message=f"A previous request is still in progress for this idempotency key: {key}",
                key=key,
            ),
        )

    async def _complete(self, resource: IdempotencyResource, captured: IdempotencyResponse) -> None:
        key = resource.idempotency_key

        if not self.response_validator.is_valid_for_persistence(captured):
            record_persistence("discarded")
            logger.info("idempotency.discarded", key=key, status_code=captured.status_code)
            await self._release(key)
            return

        completed = resource.model_copy(update={"response": captured})
        try:
            await self.data_adapter.update(completed)
        except Exception as e:
            record_persistence("failed")
            logger.error(
                "idempotency.persist_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._release(key, original_error=e)
            raise

        record_persistence("persisted")
        logger.info("idempotency.persisted", key=key, status_code=captured.status_code)

    async def _release(self, key: str, original_error: Exception | None = None) -> None:
        try:
            await self.data_adapter.delete(key)
        except Exception as e:
            logger.error(
                "idempotency.cleanup_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
                original_error=str(original_error) if original_error else None,
            )
            raise CleanupError(
                message=f"Failed to release pending idempotency resource {key}: {e}",
                key=key,
                cleanup_error=e,
                original_error=original_error,
            ) from e

    def _unclaim(self, key: str) -> None:
        if self._claims.pop(key, None) is not None:
            decrement_pending()
