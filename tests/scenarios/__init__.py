"""End-to-end scenarios for the idempotency middleware.

Each module drives a FastAPI application through ASGIIdempotencyMiddleware
and checks one aspect of idempotency handling from the client's side.
"""
