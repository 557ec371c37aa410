"""Framework-agnostic request and response objects.

These are simple containers for the data the idempotency service needs.
Framework adapters convert their own request objects into ``Request`` and
drive an outgoing ``Response`` whose single finalize operation, ``send``,
commits status, headers and body.

Examples:
    Building a request/response pair::

        from idempotency_guard.http import Request, Response

        request = Request(
            method="POST",
            url="/orders",
            headers={"Idempotency-Key": "K1", "Content-Type": "application/json"},
            body=b'{"qty": 1}',
        )
        response = Response()
        response.status_code = 201
        response.set_header("Content-Type", "application/json")
        await response.send(b'{"id": 1}')
"""

from collections.abc import Awaitable, Callable

from idempotency_guard.utils.headers import get_header_value, merge_headers

FinalizeHook = Callable[[bytes | str | None], Awaitable["Response"]]


class Request:
    """Abstract request representation.

    Instances are compared by identity, so the service can keep per-request
    state (such as the hit flag) without touching the object.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        url: Request target, path plus query string
        headers: Request headers as dict
        body: Request body as bytes
        query: Parsed query parameters
    """

    def __init__(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        query: dict[str, str] | None = None,
    ) -> None:
        """Initialize a request.

        Args:
            method: HTTP method
            url: Request target
            headers: Request headers
            body: Request body
            query: Query parameters
        """
        self.method = method
        self.url = url
        self.headers = headers or {}
        self.body = body
        self.query = query or {}

    def get_header(self, name: str) -> str | None:
        return get_header_value(self.headers, name)


class Response:
    """Outgoing response handle.

    ``finalize`` is the raw commit of status, headers and body. ``send`` is
    what application code calls; it routes through an installed finalize
    hook when there is one.

    Attributes:
        status_code: HTTP status code
        headers: Response headers
        body: Committed body, empty until finalized
        finished: True once the response has been finalized
    """

    def __init__(self, status_code: int = 200, headers: dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self.headers: dict[str, str] = dict(headers or {})
        self.body = b""
        self.finished = False
        self._finalize_hook: FinalizeHook | None = None

    def set_header(self, name: str, value: str) -> "Response":
        """Set a header, replacing any existing value regardless of case."""
        self.headers = merge_headers(self.headers, {name: value})
        return self

    def get_header(self, name: str) -> str | None:
        return get_header_value(self.headers, name)

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        self.headers = {k: v for k, v in self.headers.items() if k.lower() != lowered}

    def install_finalize_hook(self, hook: FinalizeHook | None) -> None:
        """Route the next ``send`` calls through ``hook``; None removes it."""
        self._finalize_hook = hook

    @property
    def has_finalize_hook(self) -> bool:
        return self._finalize_hook is not None

    def finalize(self, body: bytes | str | None = None) -> "Response":
        """Commit the body and mark the response as finished.

        Args:
            body: Body to write; strings are UTF-8 encoded

        Returns:
            The response itself, for chaining
        """
        if body is None:
            body = b""
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        self.finished = True
        return self

    async def send(self, body: bytes | str | None = None) -> "Response":
        """Finalize the response, through the installed hook if any.

        Args:
            body: Body to write

        Returns:
            Whatever the finalize operation returns (the response itself)
        """
        if self._finalize_hook is not None:
            return await self._finalize_hook(body)
        return self.finalize(body)
