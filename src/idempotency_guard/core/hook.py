"""Response capture hook.

A ``ResponseCaptureHook`` wraps the finalize operation of one outgoing
response. It is only ever installed on the request path that created the
pending resource for a key, so it never races the service's own decision for
that key.

On the first ``send``:

1. Status code, whitelisted headers and body are captured
2. The original finalize operation runs and its return value is kept
3. The capture callback persists (or releases) the resource; its failures
   propagate to whoever awaits ``send``
4. The original return value is handed back, so chaining keeps working

Examples:
    Installing a hook::

        async def on_capture(captured: IdempotencyResponse) -> None:
            print(captured.status_code)

        ResponseCaptureHook.install(response, on_capture)
        same = await response.send(b"done")
        assert same is response
"""

from collections.abc import Awaitable, Callable

from idempotency_guard.http import Response
from idempotency_guard.models import IdempotencyResponse, encode_body
from idempotency_guard.utils.headers import filter_response_headers

CaptureCallback = Callable[[IdempotencyResponse], Awaitable[None]]


class ResponseCaptureHook:
    """Capture-then-delegate wrapper around ``Response.finalize``.

    Attributes:
        response: The response being observed
        fired: True once the outcome has been captured
    """

    def __init__(self, response: Response, on_capture: CaptureCallback) -> None:
        self.response = response
        self.fired = False
        self._finalize = response.finalize
        self._on_capture = on_capture

    @classmethod
    def install(cls, response: Response, on_capture: CaptureCallback) -> "ResponseCaptureHook":
        """Create a hook and route ``response.send`` through it."""
        hook = cls(response, on_capture)
        response.install_finalize_hook(hook)
        return hook

    def capture(self, body: bytes | str | None) -> IdempotencyResponse:
        return IdempotencyResponse(
            status_code=self.response.status_code,
            headers=filter_response_headers(self.response.headers),
            body_b64=encode_body(body),
        )

    async def __call__(self, body: bytes | str | None = None) -> Response:
        if self.fired:
            return self._finalize(body)

        # Fires once; later sends go straight to finalize
        self.fired = True
        self.response.install_finalize_hook(None)

        captured = self.capture(body)
        result = self._finalize(body)
        await self._on_capture(captured)
        return result
