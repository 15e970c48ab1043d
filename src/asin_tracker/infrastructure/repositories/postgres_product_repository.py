"""PostgreSQL repository implementation for products, statuses, tags, and imports."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from asin_tracker.domain.imports import ImportHistoryEntry, ImportSource
from asin_tracker.domain.ports import (
    ImportHistoryRepository,
    ProductRepository,
    SellerStatusRepository,
    TagRepository,
)
from asin_tracker.domain.products import (
    PRODUCT_ATTRIBUTE_FIELDS,
    ProcessingMode,
    ProductFilter,
    ProductPage,
    ProductRecord,
    SellerStatusRecord,
    SellerStatusValue,
    Tag,
    amazon_url_for,
)

_PRODUCT_COLUMNS = ("asin", *PRODUCT_ATTRIBUTE_FIELDS, "created_at", "updated_at")
_SELECT_PRODUCT_COLUMNS = ", ".join(f"p.{column}" for column in _PRODUCT_COLUMNS)
_IMPORT_COLUMNS = """
    id,
    file_name,
    source,
    uploaded_at,
    total_rows,
    inserted_rows,
    updated_rows,
    failed_rows,
    error_file_path
"""
_SORT_COLUMNS = {
    **{column: f"p.{column}" for column in _PRODUCT_COLUMNS},
    "seller_status": "s.status",
    "checked_at": "s.checked_at",
}
_COLUMN_TYPES = {
    "sales_rank_current": "INTEGER",
    "sales_rank_avg_90d": "INTEGER",
    "sales_rank_drop_90d": "DOUBLE PRECISION",
    "bought_past_month": "INTEGER",
    "rating": "DOUBLE PRECISION",
    "rating_count": "INTEGER",
    "rating_count_drop_90d": "DOUBLE PRECISION",
    "buybox_price": "DOUBLE PRECISION",
    "buybox_price_avg_90d": "DOUBLE PRECISION",
    "buybox_price_drop_90d": "DOUBLE PRECISION",
    "buybox_price_lowest": "DOUBLE PRECISION",
    "buybox_price_highest": "DOUBLE PRECISION",
    "buybox_stock": "INTEGER",
    "amazon_share_180d": "DOUBLE PRECISION",
    "buybox_winner_count_90d": "INTEGER",
    "referral_fee": "DOUBLE PRECISION",
    "offer_count_total": "INTEGER",
    "new_offer_count_current": "INTEGER",
    "new_offer_count_avg_90d": "INTEGER",
    "package_dimension_cm3": "DOUBLE PRECISION",
    "package_weight_g": "DOUBLE PRECISION",
    "package_quantity": "INTEGER",
    "is_hazmat": "BOOLEAN",
    "is_heat_sensitive": "BOOLEAN",
}


class PostgresProductRepository(
    ProductRepository,
    SellerStatusRepository,
    TagRepository,
    ImportHistoryRepository,
):
    """Product repository backed by PostgreSQL."""

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

    async def find_many(self, product_filter: ProductFilter) -> ProductPage:
        """Return one filtered, sorted page."""

        conditions: list[str] = []
        params: list[Any] = []
        if product_filter.search:
            params.append(f"%{product_filter.search}%")
            conditions.append(f"(p.asin ILIKE ${len(params)} OR p.brand ILIKE ${len(params)})")
        if product_filter.brand:
            params.append(f"%{product_filter.brand}%")
            conditions.append(f"p.brand ILIKE ${len(params)}")
        if product_filter.checked is True:
            conditions.append("s.checked_at IS NOT NULL")
        elif product_filter.checked is False:
            conditions.append("s.checked_at IS NULL")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sort_column = _SORT_COLUMNS.get(product_filter.sort_by, "p.created_at")
        direction = "DESC" if product_filter.sort_desc else "ASC"
        limit = max(product_filter.limit, 1)
        offset = (max(product_filter.page, 1) - 1) * limit

        pool = await self._get_pool()
        base = f"FROM products p LEFT JOIN seller_statuses s ON s.asin = p.asin {where}"
        total = await pool.fetchval(f"SELECT COUNT(*) {base}", *params)
        rows = await pool.fetch(
            f"""
            SELECT {_SELECT_PRODUCT_COLUMNS}
            {base}
            ORDER BY {sort_column} {direction} NULLS LAST, p.id {direction}
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return ProductPage(items=[self._to_product(row) for row in rows], total=int(total or 0))

    async def find_by_id(self, asin: str) -> ProductRecord | None:
        """Return product by ASIN."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_SELECT_PRODUCT_COLUMNS} FROM products p WHERE p.asin = $1",
            asin,
        )
        if row is None:
            return None
        return self._to_product(row)

    async def find_existing_asins(self, asins: Sequence[str]) -> set[str]:
        """Return ASINs already stored."""

        if not asins:
            return set()
        pool = await self._get_pool()
        rows = await pool.fetch(
            "SELECT asin FROM products WHERE asin = ANY($1::text[])",
            list(asins),
        )
        return {row["asin"] for row in rows}

    async def upsert_batch(self, records: Sequence[ProductRecord]) -> None:
        """Insert or merge records in one transaction; NULL never overwrites."""

        if not records:
            return
        columns = ("asin", *PRODUCT_ATTRIBUTE_FIELDS)
        placeholders = ", ".join(f"${index}" for index in range(1, len(columns) + 1))
        assignments = ",\n".join(
            f"{column} = COALESCE(EXCLUDED.{column}, products.{column})"
            for column in PRODUCT_ATTRIBUTE_FIELDS
            if column != "amazon_url"
        )
        statement = f"""
            INSERT INTO products ({", ".join(columns)}, created_at, updated_at)
            VALUES ({placeholders}, NOW(), NOW())
            ON CONFLICT (asin) DO UPDATE
            SET {assignments},
                amazon_url = EXCLUDED.amazon_url,
                updated_at = NOW()
        """
        arguments = [self._product_arguments(record) for record in records]

        pool = await self._get_pool()
        async with pool.acquire() as connection:
            async with connection.transaction():
                await connection.executemany(statement, arguments)

    async def delete_many(self, asins: Sequence[str]) -> int:
        """Delete products; statuses and tag links cascade."""

        if not asins:
            return 0
        pool = await self._get_pool()
        result = await pool.execute(
            "DELETE FROM products WHERE asin = ANY($1::text[])",
            list(asins),
        )
        return int(result.split()[-1])

    async def find_ids_by_mode(self, mode: ProcessingMode) -> list[str]:
        """Return ASINs selected by processing mode."""

        pool = await self._get_pool()
        if mode is ProcessingMode.UNCHECKED:
            rows = await pool.fetch(
                """
                SELECT p.asin
                FROM products p
                LEFT JOIN seller_statuses s ON s.asin = p.asin
                WHERE s.asin IS NULL OR s.checked_at IS NULL
                ORDER BY p.id ASC
                """
            )
        elif mode is ProcessingMode.GATED:
            rows = await pool.fetch(
                """
                SELECT p.asin
                FROM products p
                JOIN seller_statuses s ON s.asin = p.asin
                WHERE s.status = $1
                ORDER BY p.id ASC
                """,
                SellerStatusValue.GATED.value,
            )
        else:
            rows = await pool.fetch(
                "SELECT asin FROM products ORDER BY created_at DESC, id DESC LIMIT $1",
                mode.recent_limit or 0,
            )
        return [row["asin"] for row in rows]

    async def upsert_seller_status(self, record: SellerStatusRecord) -> None:
        """Store latest status."""

        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO seller_statuses (asin, status, checked_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (asin) DO UPDATE
            SET status = EXCLUDED.status,
                checked_at = EXCLUDED.checked_at
            """,
            record.asin,
            record.status.value,
            record.checked_at,
        )

    async def get_seller_statuses(
        self,
        asins: Sequence[str],
    ) -> dict[str, SellerStatusRecord]:
        """Return statuses keyed by ASIN."""

        if not asins:
            return {}
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT asin, status, checked_at
            FROM seller_statuses
            WHERE asin = ANY($1::text[])
            """,
            list(asins),
        )
        return {
            row["asin"]: SellerStatusRecord(
                asin=row["asin"],
                status=self._as_status(row["status"]),
                checked_at=row["checked_at"],
            )
            for row in rows
        }

    async def get_or_create_tag(self, name: str, kind: str) -> Tag:
        """Return tag by name, creating it once."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            INSERT INTO tags (name, kind)
            VALUES ($1, $2)
            ON CONFLICT (name) DO UPDATE SET name = tags.name
            RETURNING id, name, kind
            """,
            name.strip(),
            kind,
        )
        return Tag(id=row["id"], name=row["name"], kind=row["kind"])

    async def associate(self, asin: str, tag_id: int) -> None:
        """Link tag to product. Duplicates are absorbed."""

        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO product_tags (asin, tag_id)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            asin,
            tag_id,
        )

    async def create_import_entry(
        self,
        *,
        file_name: str,
        source: ImportSource,
        total_rows: int,
    ) -> ImportHistoryEntry:
        """Create history entry."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO import_files (file_name, source, total_rows)
            VALUES ($1, $2, $3)
            RETURNING {_IMPORT_COLUMNS}
            """,
            file_name,
            source.value,
            total_rows,
        )
        return self._to_import_entry(row)

    async def update_import_summary(
        self,
        import_file_id: int,
        *,
        inserted_rows: int,
        updated_rows: int,
        failed_rows: int,
        error_file_path: str | None = None,
    ) -> None:
        """Record final counters."""

        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE import_files
            SET inserted_rows = $2,
                updated_rows = $3,
                failed_rows = $4,
                error_file_path = $5
            WHERE id = $1
            """,
            import_file_id,
            inserted_rows,
            updated_rows,
            failed_rows,
            error_file_path,
        )

    async def get_import_entry(self, import_file_id: int) -> ImportHistoryEntry | None:
        """Return one history entry."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_IMPORT_COLUMNS} FROM import_files WHERE id = $1",
            import_file_id,
        )
        if row is None:
            return None
        return self._to_import_entry(row)

    async def list_import_entries(self) -> list[ImportHistoryEntry]:
        """Return history newest first."""

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {_IMPORT_COLUMNS} FROM import_files ORDER BY uploaded_at DESC, id DESC",
        )
        return [self._to_import_entry(row) for row in rows]

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

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
        attribute_columns = ",\n".join(
            f"{column} {_COLUMN_TYPES.get(column, 'TEXT')}"
            for column in PRODUCT_ATTRIBUTE_FIELDS
        )
        await pool.execute(
            f"""
            CREATE TABLE IF NOT EXISTS products (
                id BIGSERIAL UNIQUE,
                asin TEXT PRIMARY KEY,
                {attribute_columns},
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            CREATE INDEX IF NOT EXISTS idx_products_created
                ON products (created_at DESC, id DESC);
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS seller_statuses (
                asin TEXT PRIMARY KEY REFERENCES products(asin) ON DELETE CASCADE,
                status TEXT NOT NULL,
                checked_at TIMESTAMPTZ
            );
            CREATE INDEX IF NOT EXISTS idx_seller_statuses_status
                ON seller_statuses (status);
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS tags (
                id BIGSERIAL PRIMARY KEY,
                name TEXT UNIQUE NOT NULL,
                kind TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS product_tags (
                asin TEXT NOT NULL REFERENCES products(asin) ON DELETE CASCADE,
                tag_id BIGINT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                PRIMARY KEY (asin, tag_id)
            );
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS import_files (
                id BIGSERIAL PRIMARY KEY,
                file_name TEXT NOT NULL,
                source TEXT NOT NULL,
                uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                total_rows INTEGER NOT NULL DEFAULT 0,
                inserted_rows INTEGER NOT NULL DEFAULT 0,
                updated_rows INTEGER NOT NULL DEFAULT 0,
                failed_rows INTEGER NOT NULL DEFAULT 0,
                error_file_path TEXT
            );
            """
        )

    def _product_arguments(self, record: ProductRecord) -> tuple[Any, ...]:
        values = record.attribute_values()
        values["amazon_url"] = record.amazon_url or amazon_url_for(record.asin)
        return (record.asin, *(values[column] for column in PRODUCT_ATTRIBUTE_FIELDS))

    def _to_product(self, row: asyncpg.Record) -> ProductRecord:
        return ProductRecord(**{column: row[column] for column in _PRODUCT_COLUMNS})

    def _to_import_entry(self, row: asyncpg.Record) -> ImportHistoryEntry:
        return ImportHistoryEntry(
            id=row["id"],
            file_name=row["file_name"],
            source=ImportSource(row["source"]),
            uploaded_at=row["uploaded_at"],
            total_rows=row["total_rows"],
            inserted_rows=row["inserted_rows"],
            updated_rows=row["updated_rows"],
            failed_rows=row["failed_rows"],
            error_file_path=row["error_file_path"],
        )

    def _as_status(self, value: object) -> SellerStatusValue:
        try:
            return SellerStatusValue(str(value))
        except ValueError:
            return SellerStatusValue.UNKNOWN


__all__ = ["PostgresProductRepository"]
