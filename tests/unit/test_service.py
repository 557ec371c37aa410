"""Unit tests for the IdempotencyService decision logic.

Covers the pass-through, miss, hit, conflict and misuse branches, the
capture hook's persistence path, and report_error.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.service import IdempotencyService
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
    ResourceState,
)
from idempotency_guard.observability.metrics import pending_resources
from idempotency_guard.storage.memory import InMemoryDataAdapter


async def run_first_request(service, request, status_code=201, body=b'{"id": 1}', headers=None):
    """Process a fresh request through the service and finalize its response."""
    response = Response()
    errors = []
    await service.provide_middleware_function(request, response, lambda e=None: errors.append(e))
    assert errors == [None]
    response.status_code = status_code
    for name, value in (headers or {}).items():
        response.set_header(name, value)
    await response.send(body)
    return response


class TestExtractIdempotencyKey:
    """Tests for extract_idempotency_key_from_req."""

    def test_reads_configured_header_case_insensitively(self, service):
        request = Request("POST", "/orders", headers={"Idempotency-Key": "K1"})

        assert service.extract_idempotency_key_from_req(request) == "K1"

    def test_missing_header_returns_none(self, service):
        assert service.extract_idempotency_key_from_req(Request("POST", "/orders")) is None

    def test_blank_header_counts_as_absent(self, service):
        request = Request("POST", "/orders", headers={"idempotency-key": "   "})

        assert service.extract_idempotency_key_from_req(request) is None

    def test_strips_whitespace(self, service):
        request = Request("POST", "/orders", headers={"idempotency-key": " K1 "})

        assert service.extract_idempotency_key_from_req(request) == "K1"

    def test_custom_header_name(self):
        service = IdempotencyService(IdempotencyConfig(idempotency_key_header="X-Request-Key"))
        request = Request("POST", "/orders", headers={"x-request-key": "K9"})

        assert service.extract_idempotency_key_from_req(request) == "K9"


class TestPassThrough:
    """Requests that are not guarded."""

    @pytest.mark.asyncio
    async def test_no_key_passes_through(self, service, data_adapter, next_fn, monkeypatch):
        calls = []

        async def spy(*args, **kwargs):
            calls.append(args)

        monkeypatch.setattr(data_adapter, "find_by_idempotency_key", spy)
        monkeypatch.setattr(data_adapter, "create", spy)
        request = Request("POST", "/orders")
        response = Response()

        await service.provide_middleware_function(request, response, next_fn)

        assert next_fn.calls == [None]
        assert service.is_hit(request) is False
        assert calls == []
        assert len(data_adapter) == 0
        assert not response.has_finalize_hook

    @pytest.mark.asyncio
    async def test_intent_validator_can_decline(
        self, service, intent_validator, data_adapter, next_fn, make_request, monkeypatch
    ):
        monkeypatch.setattr(intent_validator, "should_process", lambda request: False)
        request = make_request("K1")

        await service.provide_middleware_function(request, Response(), next_fn)

        assert next_fn.calls == [None]
        assert service.is_hit(request) is False
        assert len(data_adapter) == 0

    @pytest.mark.asyncio
    async def test_awaitable_continuation_is_awaited(self, service):
        called = asyncio.Event()

        async def next_fn(error=None):
            called.set()

        await service.provide_middleware_function(Request("POST", "/orders"), Response(), next_fn)

        assert called.is_set()


class TestMiss:
    """First request for a key."""

    @pytest.mark.asyncio
    async def test_creates_pending_resource(self, service, data_adapter, next_fn, make_request):
        request = make_request("K1")
        response = Response()

        await service.provide_middleware_function(request, response, next_fn)

        assert next_fn.calls == [None]
        assert service.is_hit(request) is False
        assert response.has_finalize_hook
        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource is not None
        assert resource.state is ResourceState.PENDING
        assert resource.request.method == "POST"
        assert resource.request.url == "/orders"
        assert resource.request.get_body_bytes() == b'{"qty": 1}'

    @pytest.mark.asyncio
    async def test_snapshot_redacts_sensitive_headers(self, service, data_adapter, next_fn, make_request):
        request = make_request(
            "K1",
            headers={
                "authorization": "Bearer secret",
                "cookie": "session=abc",
                "X-API-KEY": "key",
                "x-auth-custom": "secret",
                "content-type": "application/json",
                "accept": "application/json",
            },
        )

        await service.provide_middleware_function(request, Response(), next_fn)

        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource.request.headers == {
            "content-type": "application/json",
            "accept": "application/json",
            "idempotency-key": "K1",
        }

    @pytest.mark.asyncio
    async def test_snapshot_keeps_query(self, service, data_adapter, next_fn):
        request = Request(
            "POST",
            "/orders?source=web",
            headers={"idempotency-key": "K1"},
            query={"source": "web"},
        )

        await service.provide_middleware_function(request, Response(), next_fn)

        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource.request.query == {"source": "web"}

    @pytest.mark.asyncio
    async def test_lost_create_race_is_a_conflict(
        self, service, data_adapter, next_fn, make_request, monkeypatch
    ):
        async def create(resource):
            raise ResourceAlreadyExistsError(resource.idempotency_key)

        monkeypatch.setattr(data_adapter, "create", create)
        response = Response()

        await service.provide_middleware_function(make_request("K1"), response, next_fn)

        assert isinstance(next_fn.error, ConflictError)
        assert next_fn.error.key == "K1"
        assert not response.has_finalize_hook

    @pytest.mark.asyncio
    async def test_other_create_failures_propagate(
        self, service, data_adapter, next_fn, make_request, monkeypatch
    ):
        async def create(resource):
            raise RuntimeError("disk full")

        monkeypatch.setattr(data_adapter, "create", create)

        with pytest.raises(RuntimeError, match="disk full"):
            await service.provide_middleware_function(make_request("K1"), Response(), next_fn)
        assert not next_fn.called

    @pytest.mark.asyncio
    async def test_lookup_failure_propagates(
        self, service, data_adapter, next_fn, make_request, monkeypatch
    ):
        async def find(key):
            raise RuntimeError("Database error")

        monkeypatch.setattr(data_adapter, "find_by_idempotency_key", find)

        with pytest.raises(RuntimeError, match="Database error"):
            await service.provide_middleware_function(make_request("K1"), Response(), next_fn)
        assert not next_fn.called


class TestConflict:
    """Retries arriving while the original is in flight."""

    @pytest.mark.asyncio
    async def test_second_request_while_pending(self, service, make_request, next_factory):
        first_next = next_factory()
        await service.provide_middleware_function(make_request("K1"), Response(), first_next)

        second_next = next_factory()
        second = make_request("K1")
        await service.provide_middleware_function(second, Response(), second_next)

        assert first_next.calls == [None]
        assert isinstance(second_next.error, ConflictError)
        assert "A previous request is still in progress" in second_next.error.message
        assert service.is_hit(second) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "stored_response",
        [
            IdempotencyResponse(status_code=None, headers={}, body_b64="dGVzdA=="),
            IdempotencyResponse(status_code=42, headers={}, body_b64="dGVzdA=="),
            IdempotencyResponse(status_code=1000, headers={}, body_b64=""),
        ],
    )
    async def test_malformed_status_is_treated_as_pending(
        self, service, data_adapter, next_fn, make_request, stored_response
    ):
        await data_adapter.create(
            IdempotencyResource(
                idempotency_key="K1",
                request=IdempotencyRequest(method="POST", url="/orders"),
                response=stored_response,
            )
        )
        request = make_request("K1")
        response = Response()

        await service.provide_middleware_function(request, response, next_fn)

        assert isinstance(next_fn.error, ConflictError)
        assert service.is_hit(request) is False
        assert response.finished is False

    @pytest.mark.asyncio
    async def test_continuation_may_raise_the_error(self, service, make_request):
        def raising_next(error=None):
            if error is not None:
                raise error

        await service.provide_middleware_function(make_request("K1"), Response(), raising_next)

        with pytest.raises(ConflictError):
            await service.provide_middleware_function(make_request("K1"), Response(), raising_next)


class TestHit:
    """Replays of a completed key."""

    @pytest.mark.asyncio
    async def test_replays_status_headers_and_body(self, service, next_fn, make_request):
        await run_first_request(
            service,
            make_request("K1"),
            status_code=201,
            body=b'{"id": 1}',
            headers={
                "content-type": "application/json",
                "location": "/orders/1",
                "cache-control": "max-age=300",
                "etag": '"abc"',
                "set-cookie": "session=abc",
            },
        )

        replay = make_request("K1")
        response = Response()
        await service.provide_middleware_function(replay, response, next_fn)

        assert next_fn.calls == [None]
        assert service.is_hit(replay) is True
        assert response.status_code == 201
        assert response.body == b'{"id": 1}'
        assert response.headers == {"content-type": "application/json", "location": "/orders/1"}
        assert response.finished is True
        assert not response.has_finalize_hook

    @pytest.mark.asyncio
    async def test_string_body_is_replayed_as_bytes(self, service, next_fn, make_request):
        await run_first_request(service, make_request("K1"), status_code=200, body="test")

        response = Response()
        await service.provide_middleware_function(make_request("K1"), response, next_fn)

        assert response.body == b"test"

    @pytest.mark.asyncio
    async def test_method_compared_case_insensitively(self, service, next_fn, make_request):
        await run_first_request(service, make_request("K1", method="POST"))

        replay = make_request("K1", method="post")
        await service.provide_middleware_function(replay, Response(), next_fn)

        assert service.is_hit(replay) is True

    @pytest.mark.asyncio
    async def test_continue_on_hit_disabled(self, data_adapter, next_fn, make_request):
        service = IdempotencyService(
            IdempotencyConfig(data_adapter=data_adapter, continue_on_hit=False)
        )
        await run_first_request(service, make_request("K1"))

        replay = make_request("K1")
        response = Response()
        await service.provide_middleware_function(replay, response, next_fn)

        assert not next_fn.called
        assert service.is_hit(replay) is True
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_hit_flag_is_per_request_object(self, service, next_factory, make_request):
        await run_first_request(service, make_request("K1"))

        replay = make_request("K1")
        other = make_request("K1")
        await service.provide_middleware_function(replay, Response(), next_factory())

        assert service.is_hit(replay) is True
        assert service.is_hit(other) is False

    @pytest.mark.asyncio
    async def test_hit_flag_reset_on_reprocessing(self, service, data_adapter, next_factory, make_request):
        await run_first_request(service, make_request("K1"))
        replay = make_request("K1")
        await service.provide_middleware_function(replay, Response(), next_factory())
        assert service.is_hit(replay) is True

        await data_adapter.delete("K1")
        await service.provide_middleware_function(replay, Response(), next_factory())

        assert service.is_hit(replay) is False


class TestMisuse:
    """Key reuse for a different request."""

    @pytest.mark.asyncio
    async def test_different_url(self, service, next_fn, make_request):
        await run_first_request(service, make_request("K1", url="/orders"))

        other = make_request("K1", url="/other")
        response = Response()
        await service.provide_middleware_function(other, response, next_fn)

        error = next_fn.error
        assert isinstance(error, MisuseError)
        assert not isinstance(error, ConflictError)
        assert error.key == "K1"
        assert error.stored_url == "/orders"
        assert error.request_url == "/other"
        assert service.is_hit(other) is False
        assert response.finished is False

    @pytest.mark.asyncio
    async def test_different_method(self, service, next_fn, make_request):
        await run_first_request(service, make_request("K1", method="POST"))

        await service.provide_middleware_function(make_request("K1", method="PUT"), Response(), next_fn)

        assert isinstance(next_fn.error, MisuseError)
        assert next_fn.error.stored_method == "POST"
        assert next_fn.error.request_method == "PUT"


class TestCaptureHook:
    """Persistence of the response captured on the miss path."""

    @pytest.mark.asyncio
    async def test_send_returns_response_for_chaining(self, service, next_fn, make_request):
        response = Response()
        await service.provide_middleware_function(make_request("K1"), response, next_fn)

        result = await response.send("test data")

        assert result is response

    @pytest.mark.asyncio
    async def test_successful_response_completes_resource(self, service, data_adapter, make_request):
        await run_first_request(
            service,
            make_request("K1"),
            status_code=200,
            body=b"ok",
            headers={"content-type": "text/plain", "x-powered-by": "Python"},
        )

        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource.state is ResourceState.COMPLETED
        assert resource.response.status_code == 200
        assert resource.response.headers == {"content-type": "text/plain"}
        assert resource.response.get_body_bytes() == b"ok"

    @pytest.mark.asyncio
    async def test_rejected_response_releases_key(self, service, data_adapter, make_request):
        await run_first_request(service, make_request("K1"), status_code=500, body=b"boom")

        assert await data_adapter.find_by_idempotency_key("K1") is None

    @pytest.mark.asyncio
    async def test_validator_rejection_allows_fresh_retry(
        self, service, response_validator, next_fn, make_request, monkeypatch
    ):
        monkeypatch.setattr(response_validator, "is_valid_for_persistence", lambda response: False)
        request = make_request("K1")
        await run_first_request(service, request, status_code=200)

        await service.provide_middleware_function(request, Response(), next_fn)

        assert next_fn.calls == [None]
        assert service.is_hit(request) is False

    @pytest.mark.asyncio
    async def test_delete_failure_after_rejection_is_surfaced(
        self, service, data_adapter, response_validator, make_request, monkeypatch
    ):
        async def delete(key):
            raise RuntimeError("Doh!")

        monkeypatch.setattr(data_adapter, "delete", delete)
        monkeypatch.setattr(response_validator, "is_valid_for_persistence", lambda response: False)
        response = Response()
        await service.provide_middleware_function(make_request("K1"), response, lambda e=None: None)

        with pytest.raises(CleanupError) as exc_info:
            await response.send("something")

        assert exc_info.value.key == "K1"
        assert str(exc_info.value.cleanup_error) == "Doh!"
        assert exc_info.value.original_error is None
        # The original finalization still happened
        assert response.finished is True

    @pytest.mark.asyncio
    async def test_update_failure_propagates_and_releases_key(
        self, service, data_adapter, make_request, monkeypatch
    ):
        async def update(resource):
            raise RuntimeError("write failed")

        monkeypatch.setattr(data_adapter, "update", update)
        response = Response()
        await service.provide_middleware_function(make_request("K1"), response, lambda e=None: None)

        with pytest.raises(RuntimeError, match="write failed"):
            await response.send(b"ok")

        assert await data_adapter.find_by_idempotency_key("K1") is None

    @pytest.mark.asyncio
    async def test_update_and_delete_failures_are_both_observable(
        self, service, data_adapter, make_request, monkeypatch
    ):
        update_error = RuntimeError("write failed")
        delete_error = RuntimeError("delete failed")

        async def update(resource):
            raise update_error

        async def delete(key):
            raise delete_error

        monkeypatch.setattr(data_adapter, "update", update)
        monkeypatch.setattr(data_adapter, "delete", delete)
        response = Response()
        await service.provide_middleware_function(make_request("K1"), response, lambda e=None: None)

        with pytest.raises(CleanupError) as exc_info:
            await response.send(b"ok")

        assert exc_info.value.original_error is update_error
        assert exc_info.value.cleanup_error is delete_error
        assert exc_info.value.__cause__ is delete_error

    @pytest.mark.asyncio
    async def test_hook_fires_once(self, service, data_adapter, make_request, monkeypatch):
        updates = []
        original_update = data_adapter.update

        async def update(resource):
            updates.append(resource)
            await original_update(resource)

        monkeypatch.setattr(data_adapter, "update", update)
        response = await run_first_request(service, make_request("K1"), status_code=200, body=b"one")

        await response.send(b"two")

        assert len(updates) == 1
        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource.response.get_body_bytes() == b"one"
        assert response.body == b"two"


class TestClaimBookkeeping:
    """Pending gauge and claim tracking across store expiry."""

    @pytest.mark.asyncio
    async def test_reclaiming_expired_key_counts_once(self, next_factory, make_request):
        data_adapter = InMemoryDataAdapter(ttl_seconds=60)
        service = IdempotencyService(IdempotencyConfig(data_adapter=data_adapter))
        baseline = pending_resources._value.get()

        stale_response = Response()
        await service.provide_middleware_function(make_request("K1"), stale_response, next_factory())
        resource, _ = data_adapter._store["K1"]
        data_adapter._store["K1"] = (resource, datetime.now(UTC) - timedelta(seconds=1))

        fresh_response = Response()
        await service.provide_middleware_function(make_request("K1"), fresh_response, next_factory())

        assert pending_resources._value.get() == baseline + 1
        assert list(service._claims) == ["K1"]

        fresh_response.status_code = 201
        await fresh_response.send(b"fresh")
        stale_response.status_code = 201
        await stale_response.send(b"stale")

        assert pending_resources._value.get() == baseline
        assert service._claims == {}
        stored = await data_adapter.find_by_idempotency_key("K1")
        assert stored.response.get_body_bytes() == b"fresh"

    @pytest.mark.asyncio
    async def test_report_error_clears_claim(self, service, next_fn, make_request):
        baseline = pending_resources._value.get()
        request = make_request("K1")
        await service.provide_middleware_function(request, Response(), next_fn)

        await service.report_error(request)

        assert service._claims == {}
        assert pending_resources._value.get() == baseline


class TestReportError:
    """Explicit release of a failed request."""

    @pytest.mark.asyncio
    async def test_deletes_pending_resource(self, service, data_adapter, next_factory, make_request):
        request = make_request("K1")
        await service.provide_middleware_function(request, Response(), next_factory())

        await service.report_error(request)

        assert await data_adapter.find_by_idempotency_key("K1") is None
        retry_next = next_factory()
        await service.provide_middleware_function(request, Response(), retry_next)
        assert retry_next.calls == [None]
        assert service.is_hit(request) is False

    @pytest.mark.asyncio
    async def test_without_key_is_a_no_op(self, service, data_adapter, monkeypatch):
        calls = []

        async def delete(key):
            calls.append(key)

        monkeypatch.setattr(data_adapter, "delete", delete)

        await service.report_error(Request("POST", "/orders"))

        assert calls == []

    @pytest.mark.asyncio
    async def test_delete_failure_propagates(self, service, data_adapter, make_request, monkeypatch):
        async def delete(key):
            raise RuntimeError("Doh!")

        monkeypatch.setattr(data_adapter, "delete", delete)

        with pytest.raises(RuntimeError, match="Doh!"):
            await service.report_error(make_request("K1"))

    @pytest.mark.asyncio
    async def test_late_send_after_report_error_does_not_touch_store(
        self, service, data_adapter, next_factory, make_request
    ):
        first = make_request("K1")
        first_response = Response()
        await service.provide_middleware_function(first, first_response, next_factory())
        await service.report_error(first)

        # Someone else claims the key in the meantime
        second = make_request("K1")
        await service.provide_middleware_function(second, Response(), next_factory())

        first_response.status_code = 500
        await first_response.send(b"failure")

        resource = await data_adapter.find_by_idempotency_key("K1")
        assert resource is not None
        assert resource.state is ResourceState.PENDING


class TestDefaults:
    """Collaborators resolved when not configured."""

    def test_defaults_are_filled_in(self):
        service = IdempotencyService()

        assert isinstance(service.data_adapter, InMemoryDataAdapter)
        assert service.intent_validator.should_process(Request("GET", "/")) is True
        assert service.config.idempotency_key_header == "idempotency-key"

    @pytest.mark.asyncio
    async def test_k1_orders_example(self, next_factory):
        """K1 + POST /orders -> 201 replayed; /other -> misuse; immediate retry -> conflict."""
        service = IdempotencyService()

        first = Request("POST", "/orders", headers={"idempotency-key": "K1"})
        first_response = Response()
        await service.provide_middleware_function(first, first_response, next_factory())

        early = next_factory()
        await service.provide_middleware_function(
            Request("POST", "/orders", headers={"idempotency-key": "K1"}), Response(), early
        )
        assert isinstance(early.error, ConflictError)

        first_response.status_code = 201
        await first_response.send('{"id": 1}')

        replay = Request("POST", "/orders", headers={"idempotency-key": "K1"})
        replay_response = Response()
        await service.provide_middleware_function(replay, replay_response, next_factory())
        assert service.is_hit(replay)
        assert replay_response.status_code == 201
        assert replay_response.body == b'{"id": 1}'

        misuse = next_factory()
        await service.provide_middleware_function(
            Request("POST", "/other", headers={"idempotency-key": "K1"}), Response(), misuse
        )
        assert isinstance(misuse.error, MisuseError)
