"""In-memory TTL key-value store for local development and tests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from asin_tracker.domain.ports import KeyValueStore


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Atomic against concurrent tasks of one event loop."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        """Return live value."""

        async with self._lock:
            entry = self._live_entry(key)
            return None if entry is None else entry.value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        """Store value with expiry."""

        async with self._lock:
            self._entries[key] = self._new_entry(value, ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Store value when key is absent or expired."""

        async with self._lock:
            if self._live_entry(key) is not None:
                return False
            self._entries[key] = self._new_entry(value, ttl_seconds)
            return True

    async def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        ttl_seconds: float,
    ) -> bool:
        """Replace value when the live value matches."""

        async with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.value != expected:
                return False
            self._entries[key] = self._new_entry(value, ttl_seconds)
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete value when the live value matches."""

        async with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.value != expected:
                return False
            del self._entries[key]
            return True

    async def delete(self, key: str) -> None:
        """Remove key."""

        async with self._lock:
            self._entries.pop(key, None)

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _new_entry(self, value: str, ttl_seconds: float) -> _Entry:
        return _Entry(value=value, expires_at=self._clock() + max(ttl_seconds, 0.0))


__all__ = ["InMemoryKeyValueStore"]
