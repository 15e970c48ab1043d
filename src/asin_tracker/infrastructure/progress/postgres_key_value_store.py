"""PostgreSQL-backed TTL key-value store for job progress."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager

import asyncpg  # type: ignore[import-untyped]

from asin_tracker.domain.errors import ProgressStoreUnavailableError
from asin_tracker.domain.ports import KeyValueStore

_EXPIRY = "NOW() + make_interval(secs => $3::double precision)"


class PostgresKeyValueStore(KeyValueStore):
    """Key-value entries in one table, visible to every service process."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        """Return live value."""

        with _store_errors():
            pool = await self._get_pool()
            return await pool.fetchval(
                "SELECT value FROM progress_entries WHERE key = $1 AND expires_at > NOW()",
                key,
            )

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        """Store value with expiry."""

        with _store_errors():
            pool = await self._get_pool()
            await pool.execute(
                f"""
                INSERT INTO progress_entries (key, value, expires_at)
                VALUES ($1, $2, {_EXPIRY})
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value,
                    expires_at = EXCLUDED.expires_at
                """,
                key,
                value,
                float(ttl_seconds),
            )

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Store value when key is absent or expired."""

        with _store_errors():
            pool = await self._get_pool()
            acquired = await pool.fetchval(
                f"""
                INSERT INTO progress_entries (key, value, expires_at)
                VALUES ($1, $2, {_EXPIRY})
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value,
                    expires_at = EXCLUDED.expires_at
                WHERE progress_entries.expires_at <= NOW()
                RETURNING key
                """,
                key,
                value,
                float(ttl_seconds),
            )
            if acquired is not None:
                await self._purge_expired(pool)
            return acquired is not None

    async def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        ttl_seconds: float,
    ) -> bool:
        """Replace value when the live value matches."""

        with _store_errors():
            pool = await self._get_pool()
            result = await pool.execute(
                f"""
                UPDATE progress_entries
                SET value = $2,
                    expires_at = {_EXPIRY}
                WHERE key = $1
                  AND value = $4
                  AND expires_at > NOW()
                """,
                key,
                value,
                float(ttl_seconds),
                expected,
            )
            return result.endswith("1")

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete value when the live value matches."""

        with _store_errors():
            pool = await self._get_pool()
            result = await pool.execute(
                """
                DELETE FROM progress_entries
                WHERE key = $1
                  AND value = $2
                  AND expires_at > NOW()
                """,
                key,
                expected,
            )
            return result.endswith("1")

    async def delete(self, key: str) -> None:
        """Remove key."""

        with _store_errors():
            pool = await self._get_pool()
            await pool.execute("DELETE FROM progress_entries WHERE key = $1", key)

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _purge_expired(self, pool: asyncpg.Pool) -> None:
        await pool.execute("DELETE FROM progress_entries WHERE expires_at <= NOW()")

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS progress_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_progress_entries_expiry
                ON progress_entries (expires_at);
            """
        )


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise ProgressStoreUnavailableError(f"Progress store unavailable: {exc}") from exc


__all__ = ["PostgresKeyValueStore"]
