from __future__ import annotations

import asyncio

import pytest

from asin_tracker.application.services import JobTracker, ProcessingService, ProgressStore
from asin_tracker.domain.errors import (
    EligibilityClientError,
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
)
from asin_tracker.domain.jobs import IdleJobStatus, JobProgress, JobStatus
from asin_tracker.domain.ports import EligibilityClient
from asin_tracker.domain.products import (
    ProcessingMode,
    ProductRecord,
    SellerStatusRecord,
    SellerStatusValue,
)
from asin_tracker.infrastructure.progress import InMemoryKeyValueStore
from asin_tracker.infrastructure.repositories import InMemoryProductRepository
from asin_tracker.infrastructure.runtime import ChunkedBatchExecutor


class ScriptedEligibilityClient(EligibilityClient):
    def __init__(
        self,
        outcomes: dict[str, SellerStatusValue | Exception] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.gate = gate
        self.calls: list[str] = []

    async def check_eligibility(self, asin: str) -> SellerStatusValue:
        self.calls.append(asin)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.get(asin, SellerStatusValue.ALLOWED)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _build(
    client: EligibilityClient,
    *,
    concurrency: int = 2,
) -> tuple[ProcessingService, JobTracker, InMemoryProductRepository]:
    repository = InMemoryProductRepository()
    tracker = JobTracker(
        ProgressStore(InMemoryKeyValueStore(), namespace="test"),
        job_ttl_seconds=600,
        finished_slot_linger_seconds=10,
        cancel_flag_ttl_seconds=60,
    )
    service = ProcessingService(
        job_tracker=tracker,
        product_repository=repository,
        seller_status_repository=repository,
        eligibility_client=client,
        executor=ChunkedBatchExecutor(concurrency=concurrency),
    )
    return service, tracker, repository


async def _seed(repository: InMemoryProductRepository, *asins: str) -> None:
    await repository.upsert_batch([ProductRecord(asin=asin) for asin in asins])


def test_unchecked_run_classifies_and_keeps_failed_lookups_retryable() -> None:
    client = ScriptedEligibilityClient(
        {
            "B000000002": SellerStatusValue.GATED,
            "B000000003": EligibilityClientError("throttled"),
        }
    )
    service, tracker, repository = _build(client)

    async def scenario() -> JobProgress | IdleJobStatus:
        await _seed(repository, "B000000001", "B000000002", "B000000003")
        started = await service.start_processing("unchecked")
        assert started.total_asins == 3
        await tracker.wait_for_background_jobs()

        assert await repository.find_ids_by_mode(ProcessingMode.UNCHECKED) == ["B000000003"]
        return await service.get_processing_status(started.job_id)

    status = asyncio.run(scenario())

    assert isinstance(status, JobProgress)
    assert status.status is JobStatus.COMPLETED
    assert status.processed == 3
    assert status.percentage == 100
    assert status.cancelled is False
    assert status.result == {"checked": 2, "skipped": 1, "failed": 0}
    assert status.work_item_ids == ["B000000001", "B000000002", "B000000003"]
    assert status.summary is not None
    assert status.summary["allowed"] == 1
    assert status.summary["gated"] == 1
    assert status.summary["unchecked"] == 1
    assert status.summary["restricted"] == 0
    assert sorted(client.calls) == ["B000000001", "B000000002", "B000000003"]


def test_status_without_any_job_is_idle() -> None:
    service, _, _ = _build(ScriptedEligibilityClient())

    status = asyncio.run(service.get_processing_status())

    assert isinstance(status, IdleJobStatus)
    assert status.model_dump() == {"status": "idle"}


def test_recently_finished_job_is_reported_as_current_status() -> None:
    service, tracker, repository = _build(ScriptedEligibilityClient())

    async def scenario() -> JobProgress | IdleJobStatus:
        await _seed(repository, "B000000001")
        started = await service.start_processing(ProcessingMode.RECENT_100)
        await tracker.wait_for_background_jobs()
        status = await service.get_processing_status()
        assert isinstance(status, JobProgress)
        assert status.job_id == started.job_id
        return status

    status = asyncio.run(scenario())

    assert status.status is JobStatus.COMPLETED


def test_empty_selection_is_rejected() -> None:
    service, _, _ = _build(ScriptedEligibilityClient())

    with pytest.raises(JobValidationError, match="No ASINs found"):
        asyncio.run(service.start_processing(ProcessingMode.UNCHECKED))


def test_unknown_mode_is_rejected() -> None:
    service, _, _ = _build(ScriptedEligibilityClient())

    with pytest.raises(JobValidationError, match="Invalid processing mode"):
        asyncio.run(service.start_processing("everything"))


def test_gated_mode_selects_only_gated_products() -> None:
    client = ScriptedEligibilityClient()
    service, tracker, repository = _build(client)

    async def scenario() -> None:
        await _seed(repository, "B000000001", "B000000002")
        await repository.upsert_seller_status(
            SellerStatusRecord(asin="B000000002", status=SellerStatusValue.GATED)
        )
        started = await service.start_processing("gated")
        assert started.total_asins == 1
        await tracker.wait_for_background_jobs()

    asyncio.run(scenario())

    assert client.calls == ["B000000002"]


def test_second_start_while_running_conflicts() -> None:
    gate = asyncio.Event()
    service, tracker, repository = _build(ScriptedEligibilityClient(gate=gate))

    async def scenario() -> None:
        await _seed(repository, "B000000001", "B000000002")
        started = await service.start_processing("unchecked")
        with pytest.raises(JobConflictError) as conflict:
            await service.start_processing("unchecked")
        assert conflict.value.active_job_id == started.job_id

        gate.set()
        await tracker.wait_for_background_jobs()
        restarted = await service.start_processing("100")
        assert restarted.job_id != started.job_id
        await tracker.wait_for_background_jobs()

    asyncio.run(scenario())


def test_cancel_stops_after_the_current_chunk() -> None:
    gate = asyncio.Event()
    client = ScriptedEligibilityClient(gate=gate)
    service, tracker, repository = _build(client, concurrency=1)

    async def scenario() -> JobProgress | IdleJobStatus:
        await _seed(repository, "B000000001", "B000000002", "B000000003", "B000000004")
        started = await service.start_processing("unchecked")

        cancel = await service.cancel_processing()
        assert cancel.cancelled is True
        assert cancel.job_id == started.job_id

        gate.set()
        await tracker.wait_for_background_jobs()
        return await service.get_processing_status(started.job_id)

    status = asyncio.run(scenario())

    assert isinstance(status, JobProgress)
    assert status.status is JobStatus.COMPLETED
    assert status.cancelled is True
    assert status.processed == 1
    assert status.percentage == 25
    assert client.calls == ["B000000001"]


def test_cancel_with_nothing_running_is_a_no_op() -> None:
    service, _, _ = _build(ScriptedEligibilityClient())

    result = asyncio.run(service.cancel_processing())

    assert result.cancelled is False
    assert result.job_id is None


def test_job_fails_when_every_item_raises_unexpectedly() -> None:
    client = ScriptedEligibilityClient(
        {
            "B000000001": RuntimeError("database unavailable"),
            "B000000002": RuntimeError("database unavailable"),
        }
    )
    service, tracker, repository = _build(client)

    async def scenario() -> JobProgress | IdleJobStatus:
        await _seed(repository, "B000000001", "B000000002")
        started = await service.start_processing("unchecked")
        await tracker.wait_for_background_jobs()
        assert isinstance(await service.get_processing_status(), IdleJobStatus)
        return await service.get_processing_status(started.job_id)

    status = asyncio.run(scenario())

    assert isinstance(status, JobProgress)
    assert status.status is JobStatus.FAILED
    assert status.error is not None


def test_status_for_unknown_job_is_not_found() -> None:
    service, _, _ = _build(ScriptedEligibilityClient())

    with pytest.raises(JobNotFoundError):
        asyncio.run(service.get_processing_status("missing"))
