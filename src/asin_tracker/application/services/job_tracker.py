"""Job lifecycle: creation under the active slot, progress, terminal states, cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from asin_tracker.application.services.progress_store import ProgressStore
from asin_tracker.domain.errors import JobConflictError, JobValidationError
from asin_tracker.domain.jobs import CancelResult, JobKind, JobProgress, JobStatus

logger = logging.getLogger(__name__)

_DEFAULT_JOB_TTL_SECONDS = 86400
_DEFAULT_FINISHED_SLOT_LINGER_SECONDS = 10
_DEFAULT_CANCEL_FLAG_TTL_SECONDS = 3600
_SLOT_CLAIM_ATTEMPTS = 3

JobBody = Callable[[], Awaitable[None]]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class JobTracker:
    """Own every write to job progress documents.

    Progress updates assume a single executing worker per job; the
    read-modify-write in `update_progress` is not atomic across processes.
    """

    def __init__(
        self,
        progress_store: ProgressStore,
        *,
        job_ttl_seconds: float = _DEFAULT_JOB_TTL_SECONDS,
        finished_slot_linger_seconds: float = _DEFAULT_FINISHED_SLOT_LINGER_SECONDS,
        cancel_flag_ttl_seconds: float = _DEFAULT_CANCEL_FLAG_TTL_SECONDS,
        exclusive_kinds: Collection[JobKind] = (JobKind.ELIGIBILITY,),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._progress_store = progress_store
        self._job_ttl_seconds = max(job_ttl_seconds, 1)
        self._finished_slot_linger_seconds = max(finished_slot_linger_seconds, 0)
        self._cancel_flag_ttl_seconds = max(cancel_flag_ttl_seconds, 1)
        self._exclusive_kinds = frozenset(exclusive_kinds)
        self._clock = clock
        self._background_tasks: set[asyncio.Task[None]] = set()

    def is_exclusive(self, kind: JobKind) -> bool:
        """Return whether at most one job of `kind` may run at a time."""

        return kind in self._exclusive_kinds

    async def start_job(
        self,
        kind: JobKind,
        total: int,
        *,
        work_item_ids: Sequence[str] = (),
        initial_processed: int = 0,
    ) -> JobProgress:
        """Create a running job, claiming the active slot for exclusive kinds."""

        if total < 1:
            raise JobValidationError("A job needs at least one work item.")

        job_id = str(uuid4())
        progress = JobProgress(
            job_id=job_id,
            kind=kind,
            total=total,
            processed=min(max(initial_processed, 0), total),
            started_at=self._clock(),
            work_item_ids=list(work_item_ids),
        )
        try:
            if progress.work_item_ids:
                await self._progress_store.write_work_items(
                    job_id,
                    progress.work_item_ids,
                    self._job_ttl_seconds,
                )
            # Written before the slot claim: a slot pointing at a missing record
            # counts as stale and may be reclaimed.
            await self._progress_store.write(progress, self._job_ttl_seconds)
            if self.is_exclusive(kind):
                await self._claim_active_slot(kind, job_id)
        except Exception:
            await self._discard_quietly(job_id)
            raise

        logger.info("Started %s job %s with %s work items.", kind, job_id, total)
        return progress

    async def update_progress(self, job_id: str, processed: int) -> JobProgress | None:
        """Publish a processed count. Counts never decrease and never exceed total."""

        progress = await self._progress_store.read(job_id)
        if progress is None:
            logger.warning("Progress update for unknown or expired job %s ignored.", job_id)
            return None
        if progress.is_terminal:
            return progress

        clamped = min(max(progress.processed, processed), progress.total)
        if clamped == progress.processed:
            return progress
        updated = self._replace(progress, processed=clamped)
        await self._progress_store.write(updated, self._job_ttl_seconds)
        return updated

    async def complete(
        self,
        job_id: str,
        *,
        cancelled: bool = False,
        result: dict[str, Any] | None = None,
        processed: int | None = None,
    ) -> JobProgress | None:
        """Move a running job to `completed`."""

        progress = await self._progress_store.read(job_id)
        if progress is None:
            logger.warning("Completion for unknown or expired job %s ignored.", job_id)
            return None
        if progress.is_terminal:
            return progress

        changes: dict[str, Any] = {
            "status": JobStatus.COMPLETED,
            "completed_at": self._clock(),
            "cancelled": cancelled,
            "result": result,
        }
        if processed is not None:
            changes["processed"] = min(max(progress.processed, processed), progress.total)
        completed = self._replace(progress, **changes)
        await self._progress_store.write(completed, self._job_ttl_seconds)
        await self._progress_store.read_cancel_flag(job_id, clear=True)
        if self.is_exclusive(progress.kind):
            await self._progress_store.release_active_slot(
                progress.kind,
                job_id,
                linger_seconds=self._finished_slot_linger_seconds,
            )

        logger.info(
            "%s job %s completed%s: %s/%s processed.",
            progress.kind,
            job_id,
            " after cancellation" if cancelled else "",
            completed.processed,
            completed.total,
        )
        return completed

    async def fail(self, job_id: str, error: str) -> JobProgress | None:
        """Move a running job to `failed` and free its slot immediately."""

        progress = await self._progress_store.read(job_id)
        if progress is None:
            logger.warning("Failure for unknown or expired job %s ignored: %s", job_id, error)
            return None
        if progress.is_terminal:
            return progress

        failed = self._replace(
            progress,
            status=JobStatus.FAILED,
            completed_at=self._clock(),
            error=error or "Job failed.",
        )
        await self._progress_store.write(failed, self._job_ttl_seconds)
        await self._progress_store.read_cancel_flag(job_id, clear=True)
        if self.is_exclusive(progress.kind):
            await self._progress_store.release_active_slot(progress.kind, job_id)

        logger.warning("%s job %s failed: %s", progress.kind, job_id, failed.error)
        return failed

    async def get(self, job_id: str) -> JobProgress | None:
        """Return the progress document of one job."""

        return await self._progress_store.read(job_id)

    async def get_work_item_ids(self, job_id: str) -> list[str]:
        """Return the ordered work item ids stored when the job started."""

        return await self._progress_store.read_work_items(job_id)

    async def get_active(self, kind: JobKind) -> JobProgress | None:
        """Return the job currently holding (or recently finished in) the slot."""

        job_id = await self._progress_store.get_active_job_id(kind)
        if job_id is None:
            return None
        return await self._progress_store.read(job_id)

    async def request_cancel(self, kind: JobKind) -> CancelResult:
        """Flag the running job of `kind` for cancellation at its next checkpoint."""

        progress = await self.get_active(kind)
        if progress is None or progress.is_terminal:
            return CancelResult(cancelled=False)

        await self._progress_store.set_cancel_flag(
            progress.job_id,
            self._cancel_flag_ttl_seconds,
        )
        logger.info("Cancellation requested for %s job %s.", kind, progress.job_id)
        return CancelResult(cancelled=True, job_id=progress.job_id)

    async def is_cancel_requested(self, job_id: str) -> bool:
        """Return whether cancellation was requested for `job_id`."""

        return await self._progress_store.read_cancel_flag(job_id)

    def spawn(self, job_id: str, body: JobBody, *, name: str) -> asyncio.Task[None]:
        """Run `body` detached from the caller, guaranteeing a terminal job state."""

        task = asyncio.create_task(self._run_guarded(job_id, body), name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background_jobs(self) -> None:
        """Wait until every spawned job body has finished."""

        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel spawned job bodies; each is marked failed by its guard."""

        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_guarded(self, job_id: str, body: JobBody) -> None:
        try:
            await body()
        except asyncio.CancelledError:
            await self._fail_quietly(job_id, "Job was interrupted before completion.")
            raise
        except Exception as exc:
            logger.exception("Job %s failed with an unexpected error.", job_id)
            await self._fail_quietly(job_id, str(exc) or exc.__class__.__name__)
            return

        progress = await self._progress_store.read(job_id)
        if progress is not None and not progress.is_terminal:
            await self.complete(job_id)

    async def _fail_quietly(self, job_id: str, error: str) -> None:
        try:
            await self.fail(job_id, error)
        except Exception:
            logger.exception("Could not record failure of job %s.", job_id)

    async def _discard_quietly(self, job_id: str) -> None:
        try:
            await self._progress_store.discard(job_id)
        except Exception:
            logger.exception("Could not discard documents of unstarted job %s.", job_id)

    async def _claim_active_slot(self, kind: JobKind, job_id: str) -> None:
        holder: str | None = None
        for _ in range(_SLOT_CLAIM_ATTEMPTS):
            if await self._progress_store.acquire_active_slot(
                kind,
                job_id,
                self._job_ttl_seconds,
            ):
                return

            holder = await self._progress_store.get_active_job_id(kind)
            if holder is None:
                continue
            existing = await self._progress_store.read(holder)
            if existing is not None and not existing.is_terminal:
                raise JobConflictError(
                    f"A {kind} job is already running ({holder}).",
                    active_job_id=holder,
                )
            if await self._progress_store.reclaim_active_slot(
                kind,
                holder,
                job_id,
                self._job_ttl_seconds,
            ):
                logger.info("Reclaimed stale %s slot from job %s.", kind, holder)
                return

        raise JobConflictError(
            f"Could not acquire the {kind} job slot.",
            active_job_id=holder,
        )

    def _replace(self, progress: JobProgress, **changes: Any) -> JobProgress:
        return JobProgress.model_validate({**progress.model_dump(), **changes})


__all__ = ["JobTracker"]
