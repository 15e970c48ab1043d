"""In-memory repository implementation for products, statuses, tags, and imports."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime

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

_STATUS_SORT_KEYS = {"seller_status", "checked_at"}


def _utc_now() -> datetime:
    return datetime.now(UTC)


class InMemoryProductRepository(
    ProductRepository,
    SellerStatusRepository,
    TagRepository,
    ImportHistoryRepository,
):
    """Simple repository for local development and tests."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._products: dict[str, ProductRecord] = {}
        self._insert_order: dict[str, int] = {}
        self._statuses: dict[str, SellerStatusRecord] = {}
        self._tags: dict[str, Tag] = {}
        self._product_tags: set[tuple[str, int]] = set()
        self._imports: dict[int, ImportHistoryEntry] = {}
        self._next_insert = 0
        self._next_tag_id = 1
        self._next_import_id = 1
        self._lock = asyncio.Lock()

    async def find_many(self, product_filter: ProductFilter) -> ProductPage:
        """Return one filtered, sorted page."""

        async with self._lock:
            matches = [
                product
                for product in self._products.values()
                if self._matches(product, product_filter)
            ]
            matches.sort(
                key=lambda product: self._sort_key(product, product_filter.sort_by),
                reverse=product_filter.sort_desc,
            )
            limit = max(product_filter.limit, 1)
            offset = (max(product_filter.page, 1) - 1) * limit
            page = [replace(product) for product in matches[offset : offset + limit]]
            return ProductPage(items=page, total=len(matches))

    async def find_by_id(self, asin: str) -> ProductRecord | None:
        """Return product by ASIN."""

        async with self._lock:
            product = self._products.get(asin)
            return None if product is None else replace(product)

    async def find_existing_asins(self, asins: Sequence[str]) -> set[str]:
        """Return ASINs already stored."""

        async with self._lock:
            return {asin for asin in asins if asin in self._products}

    async def upsert_batch(self, records: Sequence[ProductRecord]) -> None:
        """Insert or merge records, keeping stored values where incoming ones are None."""

        async with self._lock:
            now = self._clock()
            for record in records:
                existing = self._products.get(record.asin)
                if existing is None:
                    stored = replace(record, created_at=now, updated_at=now)
                    stored.amazon_url = record.amazon_url or amazon_url_for(record.asin)
                    self._products[record.asin] = stored
                    self._insert_order[record.asin] = self._next_insert
                    self._next_insert += 1
                    continue

                for field_name, value in record.attribute_values().items():
                    if value is not None:
                        setattr(existing, field_name, value)
                existing.amazon_url = record.amazon_url or amazon_url_for(record.asin)
                existing.updated_at = now

    async def delete_many(self, asins: Sequence[str]) -> int:
        """Delete products together with their statuses and tag links."""

        async with self._lock:
            removed = 0
            for asin in set(asins):
                if self._products.pop(asin, None) is None:
                    continue
                removed += 1
                self._insert_order.pop(asin, None)
                self._statuses.pop(asin, None)
                self._product_tags = {
                    link for link in self._product_tags if link[0] != asin
                }
            return removed

    async def find_ids_by_mode(self, mode: ProcessingMode) -> list[str]:
        """Return ASINs selected by processing mode."""

        async with self._lock:
            oldest_first = sorted(self._products, key=self._insert_order.__getitem__)
            if mode is ProcessingMode.UNCHECKED:
                return [
                    asin
                    for asin in oldest_first
                    if asin not in self._statuses or self._statuses[asin].checked_at is None
                ]
            if mode is ProcessingMode.GATED:
                return [
                    asin
                    for asin in oldest_first
                    if asin in self._statuses
                    and self._statuses[asin].status is SellerStatusValue.GATED
                ]
            limit = mode.recent_limit or 0
            newest_first = sorted(
                self._products,
                key=lambda asin: (self._products[asin].created_at, self._insert_order[asin]),
                reverse=True,
            )
            return newest_first[:limit]

    async def upsert_seller_status(self, record: SellerStatusRecord) -> None:
        """Store latest status."""

        async with self._lock:
            self._statuses[record.asin] = record

    async def get_seller_statuses(
        self,
        asins: Sequence[str],
    ) -> dict[str, SellerStatusRecord]:
        """Return statuses keyed by ASIN."""

        async with self._lock:
            return {asin: self._statuses[asin] for asin in asins if asin in self._statuses}

    async def get_or_create_tag(self, name: str, kind: str) -> Tag:
        """Return tag by case-insensitive name, creating it once."""

        async with self._lock:
            key = name.strip().casefold()
            tag = self._tags.get(key)
            if tag is None:
                tag = Tag(id=self._next_tag_id, name=name.strip(), kind=kind)
                self._next_tag_id += 1
                self._tags[key] = tag
            return tag

    async def associate(self, asin: str, tag_id: int) -> None:
        """Link tag to product. Duplicates are absorbed."""

        async with self._lock:
            self._product_tags.add((asin, tag_id))

    async def list_tag_ids(self, asin: str) -> list[int]:
        """Return tag ids attached to a product."""

        async with self._lock:
            return sorted(tag_id for linked, tag_id in self._product_tags if linked == asin)

    async def create_import_entry(
        self,
        *,
        file_name: str,
        source: ImportSource,
        total_rows: int,
    ) -> ImportHistoryEntry:
        """Create history entry."""

        async with self._lock:
            entry = ImportHistoryEntry(
                id=self._next_import_id,
                file_name=file_name,
                source=source,
                uploaded_at=self._clock(),
                total_rows=total_rows,
            )
            self._next_import_id += 1
            self._imports[entry.id] = entry
            return replace(entry)

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

        async with self._lock:
            entry = self._imports.get(import_file_id)
            if entry is None:
                return
            entry.inserted_rows = inserted_rows
            entry.updated_rows = updated_rows
            entry.failed_rows = failed_rows
            entry.error_file_path = error_file_path

    async def get_import_entry(self, import_file_id: int) -> ImportHistoryEntry | None:
        """Return one history entry."""

        async with self._lock:
            entry = self._imports.get(import_file_id)
            return None if entry is None else replace(entry)

    async def list_import_entries(self) -> list[ImportHistoryEntry]:
        """Return history newest first."""

        async with self._lock:
            entries = sorted(
                self._imports.values(),
                key=lambda entry: (entry.uploaded_at, entry.id),
                reverse=True,
            )
            return [replace(entry) for entry in entries]

    def _matches(self, product: ProductRecord, product_filter: ProductFilter) -> bool:
        if product_filter.search:
            needle = product_filter.search.casefold()
            haystacks = (product.asin, product.brand or "")
            if not any(needle in value.casefold() for value in haystacks):
                return False
        if product_filter.brand:
            if product_filter.brand.casefold() not in (product.brand or "").casefold():
                return False
        if product_filter.checked is not None:
            status = self._statuses.get(product.asin)
            is_checked = status is not None and status.checked_at is not None
            if is_checked != product_filter.checked:
                return False
        return True

    def _sort_key(self, product: ProductRecord, sort_by: str) -> tuple[bool, object, int]:
        if sort_by in _STATUS_SORT_KEYS:
            status = self._statuses.get(product.asin)
            value: object = None
            if status is not None:
                value = status.status.value if sort_by == "seller_status" else status.checked_at
        elif sort_by in PRODUCT_ATTRIBUTE_FIELDS or sort_by in {"asin", "created_at", "updated_at"}:
            value = getattr(product, sort_by)
        else:
            value = product.created_at
        order = self._insert_order[product.asin]
        if value is None:
            return (False, 0, order)
        return (True, value, order)


__all__ = ["InMemoryProductRepository"]
