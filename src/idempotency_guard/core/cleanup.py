"""Background purge of expired idempotency resources.

Expiry is the data adapter's policy, not the service's. For adapters that
expire resources lazily (such as InMemoryDataAdapter with a TTL), this task
periodically calls ``cleanup_expired()`` so expired entries, including
pending resources whose creator crashed, do not accumulate.

Examples:
    Integrate with FastAPI lifespan::

        from contextlib import asynccontextmanager

        adapter = InMemoryDataAdapter(ttl_seconds=86400)

        @asynccontextmanager
        async def lifespan(app):
            cleanup = start_cleanup_task(adapter, interval_seconds=300)
            yield
            await cleanup.stop()

        app = FastAPI(lifespan=lifespan)
"""

import asyncio

from idempotency_guard.observability.logging import get_logger
from idempotency_guard.observability.metrics import record_cleanup
from idempotency_guard.storage.base import ExpiringDataAdapter

logger = get_logger(__name__)


async def cleanup_loop(
    data_adapter: ExpiringDataAdapter,
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Periodically remove expired resources until ``stop_event`` is set.

    A failing run is logged and the loop carries on with the next interval.

    Args:
        data_adapter: Adapter to purge
        interval_seconds: Time between runs (default 300s = 5 minutes)
        stop_event: Event to signal the loop to stop (optional)
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            count = await data_adapter.cleanup_expired()
            record_cleanup(count)
            if count > 0:
                logger.info("cleanup.completed", records_removed=count)
            else:
                logger.debug("cleanup.completed", records_removed=0)
        except Exception as e:
            logger.error(
                "cleanup.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("cleanup.stopped")


class CleanupTask:
    """Handle on a running cleanup loop.

    Attributes:
        task: The asyncio task running the loop
        stop_event: Event that ends the loop once set
    """

    def __init__(self, task: "asyncio.Task[None]", stop_event: asyncio.Event) -> None:
        self.task = task
        self.stop_event = stop_event

    @property
    def running(self) -> bool:
        return not self.task.done()

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop gracefully, cancelling it if it does not finish in time."""
        self.stop_event.set()
        try:
            await asyncio.wait_for(self.task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("cleanup.stop_timeout", timeout=timeout)
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                logger.debug("cleanup.cancelled")


def start_cleanup_task(
    data_adapter: ExpiringDataAdapter,
    interval_seconds: float = 300,
) -> CleanupTask:
    """Start the cleanup loop in the running event loop.

    Args:
        data_adapter: Adapter to purge
        interval_seconds: Time between runs

    Returns:
        A CleanupTask; call ``stop()`` on shutdown
    """
    stop_event = asyncio.Event()
    task = asyncio.create_task(
        cleanup_loop(
            data_adapter=data_adapter,
            interval_seconds=interval_seconds,
            stop_event=stop_event,
        )
    )
    return CleanupTask(task, stop_event)
