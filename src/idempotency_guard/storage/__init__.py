"""Data adapters for idempotency resources.

This package provides store implementations for persisting idempotency
resources. All adapters implement the DataAdapter protocol defined in base.py.

Available Adapters:
    - InMemoryDataAdapter: In-memory storage with optional TTL
"""

from idempotency_guard.storage.base import DataAdapter, ExpiringDataAdapter
from idempotency_guard.storage.memory import InMemoryDataAdapter

__all__ = [
    "DataAdapter",
    "ExpiringDataAdapter",
    "InMemoryDataAdapter",
]
