"""Progress key-value store implementations."""

from asin_tracker.infrastructure.progress.in_memory_key_value_store import (
    InMemoryKeyValueStore,
)
from asin_tracker.infrastructure.progress.postgres_key_value_store import (
    PostgresKeyValueStore,
)

__all__ = ["InMemoryKeyValueStore", "PostgresKeyValueStore"]
