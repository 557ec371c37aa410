"""Core type definitions and models for idempotency handling.

This module provides the data structures persisted for every idempotency key:
the request snapshot taken on first arrival, the captured response, and the
resource tying them together.

A resource is in exactly one of two states, derived from its response alone:

- PENDING: no response yet, or a response without a valid status code
- COMPLETED: a response with a valid status code is available for replay

Examples:
    Creating a pending resource::

        from idempotency_guard.models import IdempotencyRequest, IdempotencyResource

        resource = IdempotencyResource(
            idempotency_key="order-create-abc123",
            request=IdempotencyRequest(
                method="POST",
                url="/orders",
                headers={"content-type": "application/json"},
                body_b64="eyJxdHkiOiAxfQ==",
            ),
        )
        assert resource.state is ResourceState.PENDING

    Completing it::

        completed = resource.model_copy(
            update={
                "response": IdempotencyResponse(
                    status_code=201,
                    headers={"content-type": "application/json"},
                    body_b64="eyJpZCI6IDF9",
                )
            }
        )
        assert completed.state is ResourceState.COMPLETED
"""

import base64
from enum import Enum

from pydantic import BaseModel, Field, field_validator

MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 599


class ResourceState(str, Enum):
    """Represents the state of an idempotency resource.

    Attributes:
        PENDING: The key is claimed but no outcome has been captured.
        COMPLETED: A validated outcome is available for replay.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


def _validate_base64(v: str) -> str:
    try:
        base64.b64decode(v)
    except Exception as e:
        raise ValueError(f"Invalid base64 encoding: {e}") from e
    return v


def encode_body(body: bytes | str | None) -> str:
    """Encode a request or response body for storage.

    Args:
        body: Raw body; strings are encoded as UTF-8, None as empty.

    Returns:
        The base64-encoded body.

    Examples:
        >>> encode_body(b"Hello")
        'SGVsbG8='
        >>> encode_body(None)
        ''
    """
    if body is None:
        body = b""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return base64.b64encode(body).decode("ascii")


class IdempotencyRequest(BaseModel):
    """Snapshot of the request that first claimed an idempotency key.

    Only used for misuse detection and audit; it is never re-executed.
    Headers are stored after credential redaction.

    Attributes:
        method: HTTP method of the original request.
        url: Request target (path plus query string) of the original request.
        headers: Redacted request headers.
        body_b64: Base64-encoded request body.
        query: Parsed query parameters.
    """

    method: str = Field(..., description="HTTP method", examples=["POST"])
    url: str = Field(..., description="Request URL", examples=["/orders?source=web"])
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Request headers with credentials removed",
        examples=[{"content-type": "application/json"}],
    )
    body_b64: str = Field(
        default="",
        description="Base64-encoded request body",
        examples=["eyJxdHkiOiAxfQ=="],
    )
    query: dict[str, str] = Field(
        default_factory=dict,
        description="Query parameters",
        examples=[{"source": "web"}],
    )

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        return _validate_base64(v)

    def get_body_bytes(self) -> bytes:
        """Decode and return the request body as bytes."""
        return base64.b64decode(self.body_b64)


class IdempotencyResponse(BaseModel):
    """A captured HTTP response that can be replayed for duplicate requests.

    ``status_code`` accepts None so that a malformed or partially written
    record can still be loaded; such a record is classified as PENDING.

    Attributes:
        status_code: HTTP status code, None when unknown.
        headers: Whitelisted response headers.
        body_b64: Base64-encoded response body.

    Examples:
        Decoding the response body::

            response = IdempotencyResponse(status_code=200, body_b64="SGVsbG8=")
            assert response.get_body_bytes() == b"Hello"
    """

    status_code: int | None = Field(
        default=None,
        description="HTTP status code",
        examples=[200, 201, None],
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Replayable response headers",
        examples=[{"content-type": "application/json", "location": "/orders/1"}],
    )
    body_b64: str = Field(
        default="",
        description="Base64-encoded response body",
        examples=["eyJpZCI6IDF9"],
    )

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Validate that the body is properly base64-encoded.

        Args:
            v: The base64-encoded string to validate.

        Returns:
            The validated base64 string.

        Raises:
            ValueError: If the string is not valid base64.
        """
        return _validate_base64(v)

    @property
    def has_valid_status(self) -> bool:
        """True when the status code is a defined HTTP status code."""
        return (
            isinstance(self.status_code, int)
            and not isinstance(self.status_code, bool)
            and MIN_STATUS_CODE <= self.status_code <= MAX_STATUS_CODE
        )

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes.

        Examples:
            >>> IdempotencyResponse(status_code=200, body_b64="SGVsbG8=").get_body_bytes()
            b'Hello'
        """
        return base64.b64decode(self.body_b64)


class IdempotencyResource(BaseModel):
    """Persisted state for one idempotency key.

    Attributes:
        idempotency_key: The key provided by the client; primary key of the store.
        request: Snapshot of the request that claimed the key.
        response: Captured response, None while the operation is in flight.
    """

    idempotency_key: str = Field(
        ...,
        description="Idempotency key provided by the client",
        min_length=1,
        examples=["order-create-abc123"],
    )
    request: IdempotencyRequest = Field(
        ...,
        description="Snapshot of the request that first used the key",
    )
    response: IdempotencyResponse | None = Field(
        default=None,
        description="Captured response (set once completed)",
    )

    @property
    def state(self) -> ResourceState:
        """Derive the resource state from the stored response."""
        if self.response is not None and self.response.has_valid_status:
            return ResourceState.COMPLETED
        return ResourceState.PENDING

    @property
    def is_completed(self) -> bool:
        return self.state is ResourceState.COMPLETED
