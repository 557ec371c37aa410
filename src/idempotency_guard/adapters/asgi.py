"""ASGI middleware adapter for FastAPI and Starlette applications.

This module embeds the IdempotencyService in a Starlette middleware:

1. Converts the Starlette request to the internal Request format
2. Lets the service decide (pass-through, miss, hit, conflict, misuse)
3. On a miss or pass-through, runs the application and finalizes the
   internal Response, which fires the capture hook when one is installed
4. Returns the replayed internal Response, or the application's own
   response (raw headers intact) once it has been finalized

Conflict is answered with 409, misuse with 422. If the application raises or is cancelled,
the claimed key is released through ``report_error`` before re-raising.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from idempotency_guard.adapters.asgi import ASGIIdempotencyMiddleware
        from idempotency_guard.config import IdempotencyConfig
        from idempotency_guard.storage.memory import InMemoryDataAdapter

        app = FastAPI()
        app.add_middleware(
            ASGIIdempotencyMiddleware,
            config=IdempotencyConfig(data_adapter=InMemoryDataAdapter(ttl_seconds=86400)),
        )

        @app.post("/orders", status_code=201)
        async def create_order(order: Order):
            # This endpoint is now idempotent
            return {"id": 1}
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.service import IdempotencyService
from idempotency_guard.exceptions import ConflictError, IdempotencyError, MisuseError
from idempotency_guard.http import Request, Response
from idempotency_guard.observability.logging import get_logger

logger = get_logger(__name__)

CONFLICT_RETRY_AFTER_SECONDS = 1


class ASGIIdempotencyMiddleware(BaseHTTPMiddleware):
    """ASGI middleware for idempotency handling.

    Attributes:
        config: Configuration object
        service: Core service instance
    """

    def __init__(
        self,
        app: Any,
        config: IdempotencyConfig | None = None,
        service: IdempotencyService | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            config: Configuration object (uses defaults if not provided)
            service: Prebuilt service; takes precedence over ``config``
        """
        super().__init__(app)
        self.service = service or IdempotencyService(config)
        self.config = self.service.config

    async def dispatch(
        self,
        request: StarletteRequest,
        call_next: Callable[[StarletteRequest], Awaitable[StarletteResponse]],
    ) -> StarletteResponse:
        """Process an ASGI request with idempotency handling.

        Args:
            request: The Starlette request object
            call_next: Function to call the next middleware/handler

        Returns:
            Starlette Response object
        """
        internal_request = await self._convert_request(request)
        internal_response = Response()
        errors: list[Exception] = []

        def next_fn(error: Exception | None = None) -> None:
            if error is not None:
                errors.append(error)

        await self.service.provide_middleware_function(internal_request, internal_response, next_fn)

        if errors:
            return self._error_response(errors[0])

        if self.service.is_hit(internal_request):
            return self._convert_response(internal_response)

        try:
            app_response = await call_next(request)
            body = await self._read_body(app_response)
        except BaseException:
            # Includes cancellation on client disconnect; the key must not stay pending
            await self.service.report_error(internal_request)
            raise

        internal_response.status_code = app_response.status_code
        internal_response.headers = dict(app_response.headers)
        # Fires the capture hook on a miss; persistence failures propagate
        await internal_response.send(body)

        return self._forward_response(app_response, internal_response)

    async def _convert_request(self, request: StarletteRequest) -> Request:
        """Convert Starlette request to internal Request format.

        Args:
            request: Starlette request object

        Returns:
            Internal Request object
        """
        body = await request.body()

        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        return Request(
            method=request.method,
            url=url,
            headers=dict(request.headers.items()),
            body=body,
            query=dict(request.query_params.items()),
        )

    async def _read_body(self, response: StarletteResponse) -> bytes:
        body = b""
        if hasattr(response, "body_iterator"):
            async for chunk in response.body_iterator:
                if isinstance(chunk, str):
                    chunk = chunk.encode("utf-8")
                body += bytes(chunk)
        else:
            body = bytes(getattr(response, "body", b""))
        return body

    def _convert_response(self, response: Response) -> StarletteResponse:
        """Convert internal Response to Starlette Response.

        Args:
            response: Internal response object

        Returns:
            Starlette Response object
        """
        # Starlette recomputes content-length from the body
        headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
        return StarletteResponse(
            content=response.body,
            status_code=response.status_code,
            headers=headers,
        )

    def _forward_response(
        self,
        app_response: StarletteResponse,
        response: Response,
    ) -> StarletteResponse:
        """Send the application's own response on pass-through and miss paths.

        Raw headers are kept so repeated names such as Set-Cookie survive.

        Args:
            app_response: Response produced by the application
            response: Finalized internal response holding the body

        Returns:
            Starlette Response object
        """
        forwarded = StarletteResponse(content=response.body, status_code=response.status_code)
        forwarded.raw_headers = list(app_response.raw_headers)
        return forwarded

    def _error_response(self, error: Exception) -> StarletteResponse:
        if isinstance(error, ConflictError):
            return StarletteResponse(
                content=f"Request conflict: {error.message}".encode(),
                status_code=409,
                headers={
                    "content-type": "text/plain",
                    "retry-after": str(CONFLICT_RETRY_AFTER_SECONDS),
                },
            )
        if isinstance(error, MisuseError):
            return StarletteResponse(
                content=f"Idempotency key misuse: {error.message}".encode(),
                status_code=422,
                headers={"content-type": "text/plain"},
            )
        if isinstance(error, IdempotencyError):
            logger.error("idempotency.error", error=error.message)
            return StarletteResponse(
                content=f"Idempotency error: {error.message}".encode(),
                status_code=500,
                headers={"content-type": "text/plain"},
            )
        raise error
