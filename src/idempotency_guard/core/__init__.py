"""Core logic for idempotency handling.

This package contains:
- Service: the per-request decision state machine
- Hook: capture of the outgoing response for a claimed key
- Replay: restoring a captured response onto a new response
- Cleanup: periodic purge of expired resources

The core logic is framework-agnostic and can be wrapped by adapters
for different web frameworks (FastAPI, Flask, Django, etc.).
"""

from idempotency_guard.core.hook import ResponseCaptureHook
from idempotency_guard.core.replay import restore_response
from idempotency_guard.core.service import IdempotencyService

__all__ = ["IdempotencyService", "ResponseCaptureHook", "restore_response"]
