from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from asin_tracker.domain.imports import ImportSource
from asin_tracker.domain.products import (
    ProcessingMode,
    ProductFilter,
    ProductRecord,
    SellerStatusRecord,
    SellerStatusValue,
)
from asin_tracker.infrastructure.repositories import InMemoryProductRepository


class SteppingClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _repository() -> InMemoryProductRepository:
    return InMemoryProductRepository(clock=SteppingClock())


def test_modes_select_unchecked_gated_and_recent() -> None:
    repository = _repository()

    async def scenario() -> None:
        for asin in ("B000000001", "B000000002", "B000000003", "B000000004"):
            await repository.upsert_batch([ProductRecord(asin=asin)])
        checked_at = datetime(2026, 1, 2, tzinfo=UTC)
        await repository.upsert_seller_status(
            SellerStatusRecord("B000000001", SellerStatusValue.ALLOWED, checked_at)
        )
        await repository.upsert_seller_status(
            SellerStatusRecord("B000000002", SellerStatusValue.GATED, checked_at)
        )
        await repository.upsert_seller_status(
            SellerStatusRecord("B000000003", SellerStatusValue.UNKNOWN, None)
        )

        assert await repository.find_ids_by_mode(ProcessingMode.UNCHECKED) == [
            "B000000003",
            "B000000004",
        ]
        assert await repository.find_ids_by_mode(ProcessingMode.GATED) == ["B000000002"]
        assert await repository.find_ids_by_mode(ProcessingMode.RECENT_100) == [
            "B000000004",
            "B000000003",
            "B000000002",
            "B000000001",
        ]

    asyncio.run(scenario())


def test_upsert_keeps_creation_time_and_merges_known_values() -> None:
    repository = _repository()

    async def scenario() -> None:
        await repository.upsert_batch([ProductRecord(asin="B000000001", brand="Acme", rating=4.0)])
        first = await repository.find_by_id("B000000001")
        await repository.upsert_batch(
            [ProductRecord(asin="B000000001", rating=4.5, amazon_url="https://example.com/p")]
        )
        second = await repository.find_by_id("B000000001")

        assert first is not None and second is not None
        assert second.created_at == first.created_at
        assert second.updated_at is not None and first.updated_at is not None
        assert second.updated_at > first.updated_at
        assert second.brand == "Acme"
        assert second.rating == 4.5
        assert second.amazon_url == "https://example.com/p"

    asyncio.run(scenario())


def test_find_many_filters_sorts_and_paginates() -> None:
    repository = _repository()

    async def scenario() -> None:
        await repository.upsert_batch(
            [
                ProductRecord(asin="B000000001", brand="Acme", buybox_price=5.0),
                ProductRecord(asin="B000000002", brand="Globex", buybox_price=9.0),
                ProductRecord(asin="B000000003", brand="acme labs", buybox_price=7.0),
            ]
        )
        await repository.upsert_seller_status(
            SellerStatusRecord(
                "B000000003",
                SellerStatusValue.ALLOWED,
                datetime(2026, 1, 2, tzinfo=UTC),
            )
        )

        acme = await repository.find_many(
            ProductFilter(brand="acme", sort_by="buybox_price", sort_desc=False)
        )
        assert acme.total == 2
        assert [item.asin for item in acme.items] == ["B000000001", "B000000003"]

        unchecked = await repository.find_many(ProductFilter(checked=False))
        assert {item.asin for item in unchecked.items} == {"B000000001", "B000000002"}

        second_page = await repository.find_many(
            ProductFilter(sort_by="buybox_price", sort_desc=True, page=2, limit=2)
        )
        assert second_page.total == 3
        assert [item.asin for item in second_page.items] == ["B000000001"]

        search = await repository.find_many(ProductFilter(search="000002"))
        assert [item.asin for item in search.items] == ["B000000002"]

    asyncio.run(scenario())


def test_delete_many_removes_statuses_and_tag_links() -> None:
    repository = _repository()

    async def scenario() -> None:
        await repository.upsert_batch(
            [ProductRecord(asin="B000000001"), ProductRecord(asin="B000000002")]
        )
        tag = await repository.get_or_create_tag("HazMat", "warning")
        await repository.associate("B000000001", tag.id)
        await repository.associate("B000000001", tag.id)
        await repository.upsert_seller_status(
            SellerStatusRecord("B000000001", SellerStatusValue.GATED)
        )
        assert await repository.list_tag_ids("B000000001") == [tag.id]

        assert await repository.delete_many(["B000000001", "B000000009"]) == 1
        assert await repository.find_by_id("B000000001") is None
        assert await repository.get_seller_statuses(["B000000001"]) == {}
        assert await repository.list_tag_ids("B000000001") == []
        assert await repository.find_existing_asins(["B000000001", "B000000002"]) == {
            "B000000002"
        }

    asyncio.run(scenario())


def test_import_history_is_listed_newest_first() -> None:
    repository = _repository()

    async def scenario() -> None:
        first = await repository.create_import_entry(
            file_name="a.csv",
            source=ImportSource.KEEPA,
            total_rows=3,
        )
        second = await repository.create_import_entry(
            file_name="manual:B000000001",
            source=ImportSource.MANUAL,
            total_rows=1,
        )
        await repository.update_import_summary(
            first.id,
            inserted_rows=2,
            updated_rows=0,
            failed_rows=1,
            error_file_path="uploads/errors/errors_1_0.json",
        )

        entries = await repository.list_import_entries()
        assert [entry.id for entry in entries] == [second.id, first.id]
        stored = await repository.get_import_entry(first.id)
        assert stored is not None
        assert stored.inserted_rows == 2
        assert stored.error_file_path == "uploads/errors/errors_1_0.json"

    asyncio.run(scenario())
