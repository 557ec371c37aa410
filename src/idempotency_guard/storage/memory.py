"""In-memory data adapter with asyncio concurrency control.

This module provides an in-memory implementation of the DataAdapter
interface using an asyncio.Lock around every mutation.

The InMemoryDataAdapter is suitable for:
    - Single-process applications
    - Development and testing

It is not a production store: without ``ttl_seconds`` resources never expire,
and nothing bounds its size.

Expiry:
    - With ``ttl_seconds`` set, each resource expires that many seconds after
      it was last written
    - Expired resources are invisible to lookups and do not block creation
    - cleanup_expired() removes them for good

Examples:
    Basic usage::

        from idempotency_guard.storage.memory import InMemoryDataAdapter

        adapter = InMemoryDataAdapter(ttl_seconds=86400)
        await adapter.create(resource)

        found = await adapter.find_by_idempotency_key(resource.idempotency_key)

    Concurrent creation::

        results = await asyncio.gather(
            adapter.create(resource),
            adapter.create(resource),
            return_exceptions=True,
        )
        # Exactly one ResourceAlreadyExistsError in results
"""

import asyncio
from datetime import UTC, datetime, timedelta

from idempotency_guard.exceptions import ResourceAlreadyExistsError
from idempotency_guard.models import IdempotencyResource
from idempotency_guard.storage.base import DataAdapter


class InMemoryDataAdapter(DataAdapter):
    """In-memory data adapter.

    Resources are deep-copied on the way in and out, so callers can never
    mutate stored state in place.

    Attributes:
        ttl_seconds: Lifetime of a resource after its last write, None for no expiry.
        _store: Dictionary mapping keys to (resource, expires_at) pairs.
        _lock: Lock serializing all writes.
    """

    def __init__(self, ttl_seconds: int | None = None) -> None:
        """Initialize a new in-memory data adapter.

        Args:
            ttl_seconds: Optional resource lifetime in seconds.

        Raises:
            ValueError: If ttl_seconds is not positive.
        """
        if ttl_seconds is not None and ttl_seconds < 1:
            raise ValueError(f"ttl_seconds must be >= 1, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._store: dict[str, tuple[IdempotencyResource, datetime | None]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    def _expiry(self) -> datetime | None:
        if self.ttl_seconds is None:
            return None
        return datetime.now(UTC) + timedelta(seconds=self.ttl_seconds)

    def _live_entry(self, key: str) -> IdempotencyResource | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        resource, expires_at = entry
        if expires_at is not None and expires_at <= datetime.now(UTC):
            return None
        return resource

    async def find_by_idempotency_key(self, idempotency_key: str) -> IdempotencyResource | None:
        """Retrieve a resource by idempotency key.

        Args:
            idempotency_key: The key to look up.

        Returns:
            A copy of the resource if found and not expired, None otherwise.
        """
        resource = self._live_entry(idempotency_key)
        if resource is None:
            return None
        return resource.model_copy(deep=True)

    async def create(self, resource: IdempotencyResource) -> None:
        """Atomically insert a new resource.

        The existence check and the insert happen under the same lock, so
        concurrent creations for one key yield exactly one success.

        Args:
            resource: The resource to insert.

        Raises:
            ResourceAlreadyExistsError: If a live resource exists for the key.
        """
        async with self._lock:
            if self._live_entry(resource.idempotency_key) is not None:
                raise ResourceAlreadyExistsError(resource.idempotency_key)
            self._store[resource.idempotency_key] = (
                resource.model_copy(deep=True),
                self._expiry(),
            )

    async def update(self, resource: IdempotencyResource) -> None:
        """Replace the stored resource.

        Args:
            resource: The complete new version of the resource.
        """
        async with self._lock:
            self._store[resource.idempotency_key] = (
                resource.model_copy(deep=True),
                self._expiry(),
            )

    async def delete(self, idempotency_key: str) -> None:
        """Remove the resource for a key. Absent keys are ignored.

        Args:
            idempotency_key: The key to remove.
        """
        async with self._lock:
            self._store.pop(idempotency_key, None)

    async def cleanup_expired(self) -> int:
        """Remove expired resources from storage.

        Returns:
            The number of resources removed.
        """
        now = datetime.now(UTC)
        removed_count = 0
        async with self._lock:
            expired_keys = [
                key
                for key, (_, expires_at) in self._store.items()
                if expires_at is not None and expires_at <= now
            ]
            for key in expired_keys:
                del self._store[key]
                removed_count += 1

        return removed_count
