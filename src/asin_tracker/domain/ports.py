"""Ports for progress storage, product persistence, and eligibility lookups."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from asin_tracker.domain.imports import ImportHistoryEntry, ImportSource
from asin_tracker.domain.products import (
    ProcessingMode,
    ProductFilter,
    ProductPage,
    ProductRecord,
    SellerStatusRecord,
    SellerStatusValue,
    Tag,
)


class KeyValueStore(Protocol):
    """TTL-capable key-value store shared by every process of the service.

    Expired entries behave exactly like absent ones.
    """

    async def get(self, key: str) -> str | None:
        """Return the live value stored under `key`."""

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        """Store `value` unconditionally with a fresh expiry."""

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Atomically store `value` only when `key` is absent or expired."""

    async def compare_and_set(
        self,
        key: str,
        expected: str,
        value: str,
        ttl_seconds: float,
    ) -> bool:
        """Atomically replace the live value only when it equals `expected`."""

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete the live value only when it equals `expected`."""

    async def delete(self, key: str) -> None:
        """Remove `key` if present."""


class ProductRepository(Protocol):
    """Persistence port for product records."""

    async def find_many(self, product_filter: ProductFilter) -> ProductPage:
        """Return one filtered, sorted page of products."""

    async def find_by_id(self, asin: str) -> ProductRecord | None:
        """Return one product by ASIN."""

    async def find_existing_asins(self, asins: Sequence[str]) -> set[str]:
        """Return the subset of `asins` that already have a stored record."""

    async def upsert_batch(self, records: Sequence[ProductRecord]) -> None:
        """Insert or update records without overwriting stored values with None."""

    async def delete_many(self, asins: Sequence[str]) -> int:
        """Delete products and return the number removed."""

    async def find_ids_by_mode(self, mode: ProcessingMode) -> list[str]:
        """Return the ASINs selected by an eligibility processing mode."""


class SellerStatusRepository(Protocol):
    """Persistence port for eligibility classifications."""

    async def upsert_seller_status(self, record: SellerStatusRecord) -> None:
        """Create or replace the classification for one ASIN."""

    async def get_seller_statuses(
        self,
        asins: Sequence[str],
    ) -> dict[str, SellerStatusRecord]:
        """Return stored classifications keyed by ASIN."""


class TagRepository(Protocol):
    """Persistence port for product tags."""

    async def get_or_create_tag(self, name: str, kind: str) -> Tag:
        """Return the tag named `name`, creating it once."""

    async def associate(self, asin: str, tag_id: int) -> None:
        """Attach a tag to a product. Duplicate associations are ignored."""


class ImportHistoryRepository(Protocol):
    """Durable import history port."""

    async def create_import_entry(
        self,
        *,
        file_name: str,
        source: ImportSource,
        total_rows: int,
    ) -> ImportHistoryEntry:
        """Create a history entry before rows are persisted."""

    async def update_import_summary(
        self,
        import_file_id: int,
        *,
        inserted_rows: int,
        updated_rows: int,
        failed_rows: int,
        error_file_path: str | None = None,
    ) -> None:
        """Record final counters for an import."""

    async def get_import_entry(self, import_file_id: int) -> ImportHistoryEntry | None:
        """Return one history entry."""

    async def list_import_entries(self) -> list[ImportHistoryEntry]:
        """Return history entries, newest first."""


@runtime_checkable
class EligibilityClient(Protocol):
    """Marketplace eligibility lookup port."""

    async def check_eligibility(self, asin: str) -> SellerStatusValue:
        """Return the classification for one ASIN or raise `EligibilityClientError`."""


__all__ = [
    "EligibilityClient",
    "ImportHistoryRepository",
    "KeyValueStore",
    "ProductRepository",
    "SellerStatusRepository",
    "TagRepository",
]
