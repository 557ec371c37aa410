"""
Pytest configuration and shared fixtures for idempotency_guard tests.
"""

import uuid

import pytest

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.service import IdempotencyService
from idempotency_guard.http import Request
from idempotency_guard.storage.memory import InMemoryDataAdapter
from idempotency_guard.validators.defaults import (
    DefaultIntentValidator,
    SuccessfulResponseValidator,
)


class NextRecorder:
    """Continuation that records every call."""

    def __init__(self) -> None:
        self.calls: list[Exception | None] = []

    def __call__(self, error: Exception | None = None) -> None:
        self.calls.append(error)

    @property
    def called(self) -> bool:
        return bool(self.calls)

    @property
    def error(self) -> Exception | None:
        return self.calls[-1] if self.calls else None


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a unique idempotency key for tests."""
    return f"test-key-{uuid.uuid4()}"


@pytest.fixture
def data_adapter() -> InMemoryDataAdapter:
    return InMemoryDataAdapter()


@pytest.fixture
def intent_validator() -> DefaultIntentValidator:
    return DefaultIntentValidator()


@pytest.fixture
def response_validator() -> SuccessfulResponseValidator:
    return SuccessfulResponseValidator()


@pytest.fixture
def service(
    data_adapter: InMemoryDataAdapter,
    intent_validator: DefaultIntentValidator,
    response_validator: SuccessfulResponseValidator,
) -> IdempotencyService:
    """Service wired with the default collaborators, as injectable instances."""
    return IdempotencyService(
        IdempotencyConfig(
            idempotency_key_header="idempotency-key",
            intent_validator=intent_validator,
            data_adapter=data_adapter,
            response_validator=response_validator,
        )
    )


@pytest.fixture
def next_fn() -> NextRecorder:
    return NextRecorder()


def make_request(
    key: str | None,
    method: str = "POST",
    url: str = "/orders",
    headers: dict[str, str] | None = None,
    body: bytes = b'{"qty": 1}',
) -> Request:
    """Build a request carrying ``key`` in the idempotency-key header."""
    all_headers = dict(headers or {})
    if key is not None:
        all_headers["idempotency-key"] = key
    return Request(method=method, url=url, headers=all_headers, body=body)


@pytest.fixture(name="make_request")
def make_request_fixture():
    """Factory fixture for keyed requests."""
    return make_request


@pytest.fixture
def next_factory():
    """Factory fixture for extra continuations within one test."""
    return NextRecorder
