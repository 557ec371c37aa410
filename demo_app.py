"""Demo FastAPI application guarded by idempotency keys.

Run with: python demo_app.py

Then try:
    curl -X POST localhost:8000/api/orders -H 'Idempotency-Key: K1' \\
        -H 'Content-Type: application/json' -d '{"product_id": "p1", "quantity": 2}'

Repeating the call returns the same order; reusing K1 on another URL
returns 422; a retry while the first call is still running returns 409.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from idempotency_guard.adapters.asgi import ASGIIdempotencyMiddleware
from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.cleanup import start_cleanup_task
from idempotency_guard.observability.logging import configure_logging
from idempotency_guard.storage.memory import InMemoryDataAdapter
from idempotency_guard.validators.defaults import MethodIntentValidator

configure_logging(level="INFO", json_output=False)

data_adapter = InMemoryDataAdapter(ttl_seconds=86400)  # 24 hours
order_ids = itertools.count(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup = start_cleanup_task(data_adapter, interval_seconds=300)
    yield
    await cleanup.stop()


app = FastAPI(
    title="Idempotency Demo",
    description="Demo API showing idempotent request handling",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    ASGIIdempotencyMiddleware,
    config=IdempotencyConfig(
        data_adapter=data_adapter,
        intent_validator=MethodIntentValidator(["POST", "PUT", "PATCH", "DELETE"]),
    ),
)


class OrderRequest(BaseModel):
    product_id: str
    quantity: int


class OrderResponse(BaseModel):
    order_id: int
    product_id: str
    quantity: int
    created_at: str


@app.post("/api/orders", status_code=201, response_model=OrderResponse)
async def create_order(order: OrderRequest) -> OrderResponse:
    """Create an order. Slow enough to observe a 409 on a fast retry."""
    await asyncio.sleep(2)
    return OrderResponse(
        order_id=next(order_ids),
        product_id=order.product_id,
        quantity=order.quantity,
        created_at=datetime.now(UTC).isoformat(),
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
