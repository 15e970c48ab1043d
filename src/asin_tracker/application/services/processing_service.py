"""Bulk marketplace eligibility checks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from asin_tracker.application.services.job_tracker import JobTracker
from asin_tracker.domain.errors import (
    EligibilityClientError,
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
)
from asin_tracker.domain.jobs import CancelResult, IdleJobStatus, JobKind, JobProgress
from asin_tracker.domain.ports import EligibilityClient, ProductRepository, SellerStatusRepository
from asin_tracker.domain.processing_models import StartProcessingResponse
from asin_tracker.domain.products import ProcessingMode, SellerStatusRecord, SellerStatusValue
from asin_tracker.infrastructure.runtime import BatchDisposition, ChunkedBatchExecutor

logger = logging.getLogger(__name__)

UNCHECKED_SUMMARY_KEY = "unchecked"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ProcessingService:
    """Select ASINs by mode and classify each through the eligibility client."""

    def __init__(
        self,
        *,
        job_tracker: JobTracker,
        product_repository: ProductRepository,
        seller_status_repository: SellerStatusRepository,
        eligibility_client: EligibilityClient,
        executor: ChunkedBatchExecutor,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._job_tracker = job_tracker
        self._product_repository = product_repository
        self._seller_status_repository = seller_status_repository
        self._eligibility_client = eligibility_client
        self._executor = executor
        self._clock = clock

    async def start_processing(self, mode: ProcessingMode | str) -> StartProcessingResponse:
        """Start a background eligibility run for the ASINs selected by `mode`."""

        resolved_mode = self._resolve_mode(mode)
        active = await self._job_tracker.get_active(JobKind.ELIGIBILITY)
        if active is not None and not active.is_terminal:
            raise JobConflictError(
                f"An eligibility job is already running ({active.job_id}).",
                active_job_id=active.job_id,
            )

        asins = await self._product_repository.find_ids_by_mode(resolved_mode)
        if not asins:
            raise JobValidationError("No ASINs found for the selected processing mode.")

        progress = await self._job_tracker.start_job(
            JobKind.ELIGIBILITY,
            len(asins),
            work_item_ids=asins,
        )
        job_id = progress.job_id
        self._job_tracker.spawn(
            job_id,
            lambda: self._run(job_id, asins),
            name=f"eligibility-job-{job_id}",
        )
        logger.info(
            "Eligibility job %s started with %s ASINs (mode: %s).",
            job_id,
            len(asins),
            resolved_mode,
        )
        return StartProcessingResponse(job_id=job_id, total_asins=len(asins))

    async def get_processing_status(
        self,
        job_id: str | None = None,
    ) -> JobProgress | IdleJobStatus:
        """Return one job, or the active job, with a summary computed from stored statuses."""

        if job_id is None:
            progress = await self._job_tracker.get_active(JobKind.ELIGIBILITY)
            if progress is None:
                return IdleJobStatus()
        else:
            progress = await self._job_tracker.get(job_id)
            if progress is None or progress.kind is not JobKind.ELIGIBILITY:
                raise JobNotFoundError(f"Processing job '{job_id}' not found.")

        work_item_ids = await self._job_tracker.get_work_item_ids(progress.job_id)
        summary = await self._summarize(work_item_ids)
        return progress.model_copy(update={"work_item_ids": work_item_ids, "summary": summary})

    async def cancel_processing(self) -> CancelResult:
        """Request cancellation of the running eligibility job, if any."""

        return await self._job_tracker.request_cancel(JobKind.ELIGIBILITY)

    async def _run(self, job_id: str, asins: list[str]) -> None:
        async def publish_progress(processed: int, _total: int) -> None:
            await self._job_tracker.update_progress(job_id, processed)

        async def cancel_requested() -> bool:
            return await self._job_tracker.is_cancel_requested(job_id)

        result = await self._executor.run(
            asins,
            self._check_one,
            progress_sink=publish_progress,
            cancel_probe=cancel_requested,
        )
        await self._job_tracker.complete(
            job_id,
            cancelled=result.disposition is BatchDisposition.CANCELLED,
            result={
                "checked": result.succeeded,
                "skipped": result.skipped,
                "failed": result.failed,
            },
        )

    async def _check_one(self, asin: str) -> bool:
        try:
            status = await self._eligibility_client.check_eligibility(asin)
        except EligibilityClientError as exc:
            logger.warning("Eligibility check for %s failed; left unchecked: %s", asin, exc)
            return False

        await self._seller_status_repository.upsert_seller_status(
            SellerStatusRecord(asin=asin, status=status, checked_at=self._clock())
        )
        return True

    async def _summarize(self, asins: list[str]) -> dict[str, int]:
        unique_asins = list(dict.fromkeys(asins))
        statuses = await self._seller_status_repository.get_seller_statuses(unique_asins)
        summary = {status.value: 0 for status in SellerStatusValue}
        summary[UNCHECKED_SUMMARY_KEY] = 0
        for asin in unique_asins:
            record = statuses.get(asin)
            if record is None or record.checked_at is None:
                summary[UNCHECKED_SUMMARY_KEY] += 1
            else:
                summary[record.status.value] += 1
        return summary

    def _resolve_mode(self, mode: ProcessingMode | str) -> ProcessingMode:
        if isinstance(mode, ProcessingMode):
            return mode
        try:
            return ProcessingMode(str(mode).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(item.value for item in ProcessingMode)
            raise JobValidationError(
                f"Invalid processing mode '{mode}'. Expected one of: {allowed}."
            ) from exc


__all__ = ["ProcessingService", "UNCHECKED_SUMMARY_KEY"]
