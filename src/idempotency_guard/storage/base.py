"""Data adapter protocol for idempotency resources.

This module defines the interface that every resource store must implement
to work with the idempotency service. Implementations can target Redis,
MongoDB, PostgreSQL, or in-memory storage.

Examples:
    Implementing a custom data adapter::

        from idempotency_guard.exceptions import ResourceAlreadyExistsError
        from idempotency_guard.models import IdempotencyResource

        class RedisDataAdapter:
            async def find_by_idempotency_key(self, key: str) -> IdempotencyResource | None:
                data = await self.redis.get(key)
                if data is None:
                    return None
                return IdempotencyResource.model_validate_json(data)

            async def create(self, resource: IdempotencyResource) -> None:
                created = await self.redis.set(
                    resource.idempotency_key,
                    resource.model_dump_json(),
                    nx=True,
                )
                if not created:
                    raise ResourceAlreadyExistsError(resource.idempotency_key)

            ...

Atomicity Requirements:
    All DataAdapter implementations MUST guarantee:

    1. **Atomic creation**: create() must atomically check for an existing
       resource and insert the new one. Two concurrent creations for the same
       key result in exactly one success and one ResourceAlreadyExistsError,
       even when a preceding lookup observed nothing.

    2. **Whole-resource writes**: update() replaces the stored resource; it
       never merges fields.

    3. **Idempotent deletion**: delete() on an absent key is not an error.

    Expiry and capacity bounding are the adapter's own policy. A pending
    resource whose creator crashed stays pending until the adapter expires it.
"""

from typing import Protocol, runtime_checkable

from idempotency_guard.models import IdempotencyResource


@runtime_checkable
class DataAdapter(Protocol):
    """Protocol defining the interface for idempotency resource stores.

    All methods are async and must be safe to call concurrently from
    multiple asyncio tasks.

    Error Handling:
        create() raises ResourceAlreadyExistsError when the key exists.
        Transient failures should be raised as StorageError. Any exception is
        propagated by the service to its caller unchanged.
    """

    async def find_by_idempotency_key(self, idempotency_key: str) -> IdempotencyResource | None:
        """Retrieve a resource by idempotency key.

        Args:
            idempotency_key: The key to look up.

        Returns:
            The resource if found, None otherwise.
        """
        ...

    async def create(self, resource: IdempotencyResource) -> None:
        """Atomically insert a new resource.

        Args:
            resource: The resource to insert.

        Raises:
            ResourceAlreadyExistsError: If a resource already exists for the key.
        """
        ...

    async def update(self, resource: IdempotencyResource) -> None:
        """Replace the stored resource for ``resource.idempotency_key``.

        Args:
            resource: The complete new version of the resource.
        """
        ...

    async def delete(self, idempotency_key: str) -> None:
        """Remove the resource for a key. Absent keys are ignored.

        Args:
            idempotency_key: The key to remove.
        """
        ...


@runtime_checkable
class ExpiringDataAdapter(DataAdapter, Protocol):
    """A data adapter that expires resources itself and can purge them.

    The expiry policy is how a pending resource whose creator crashed is
    eventually released.
    """

    async def cleanup_expired(self) -> int:
        """Remove expired resources.

        Returns:
            The number of resources removed.
        """
        ...
