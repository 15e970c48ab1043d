"""Job progress documents, active-job slots, and cancel flags over a key-value port."""

from __future__ import annotations

import logging

from pydantic import TypeAdapter, ValidationError

from asin_tracker.domain.jobs import JobKind, JobProgress
from asin_tracker.domain.ports import KeyValueStore

logger = logging.getLogger(__name__)

_CANCEL_FLAG_VALUE = "1"
_WORK_ITEMS_ADAPTER = TypeAdapter(list[str])


class ProgressStore:
    """Typed operations on top of a TTL key-value store.

    Key layout (``namespace`` defaults to ``asin``)::

        {namespace}:job:{job_id}              serialized JobProgress
        {namespace}:job:{job_id}:items        ordered work item ids, written once
        {namespace}:job:{job_id}:cancel       cancellation flag
        {namespace}:{kind}:active_job_id      active slot for one job kind

    Store failures surface as ``ProgressStoreUnavailableError`` and are not
    retried here.
    """

    def __init__(self, store: KeyValueStore, namespace: str = "asin") -> None:
        self._store = store
        self._namespace = namespace.strip(":") or "asin"

    async def acquire_active_slot(
        self,
        kind: JobKind,
        job_id: str,
        ttl_seconds: float,
    ) -> bool:
        """Atomically claim the active slot for `kind`."""

        return await self._store.set_if_absent(self._active_key(kind), job_id, ttl_seconds)

    async def get_active_job_id(self, kind: JobKind) -> str | None:
        """Return the job id currently holding the slot for `kind`."""

        return await self._store.get(self._active_key(kind))

    async def reclaim_active_slot(
        self,
        kind: JobKind,
        stale_job_id: str,
        job_id: str,
        ttl_seconds: float,
    ) -> bool:
        """Move the slot from a stale holder to `job_id` if nobody else did first."""

        return await self._store.compare_and_set(
            self._active_key(kind),
            stale_job_id,
            job_id,
            ttl_seconds,
        )

    async def release_active_slot(
        self,
        kind: JobKind,
        job_id: str,
        linger_seconds: float | None = None,
    ) -> None:
        """Release the slot held by `job_id`.

        With `linger_seconds` the slot keeps pointing at the finished job for
        that long, so pollers of the active job see the terminal state instead
        of `idle`. Without it the slot is deleted immediately.
        """

        key = self._active_key(kind)
        if linger_seconds is not None and linger_seconds > 0:
            released = await self._store.compare_and_set(key, job_id, job_id, linger_seconds)
        else:
            released = await self._store.compare_and_delete(key, job_id)
        if not released:
            logger.debug("Active %s slot no longer held by job %s.", kind, job_id)

    async def write(self, progress: JobProgress, ttl_seconds: float) -> None:
        """Store a progress document without work items or derived summaries."""

        payload = progress.model_dump_json(by_alias=True, exclude={"summary", "work_item_ids"})
        await self._store.set(self._job_key(progress.job_id), payload, ttl_seconds)

    async def read(self, job_id: str) -> JobProgress | None:
        """Return a progress document, or None when unknown or expired."""

        payload = await self._store.get(self._job_key(job_id))
        if payload is None:
            return None
        try:
            return JobProgress.model_validate_json(payload)
        except ValidationError:
            logger.warning("Discarding unreadable progress document for job %s.", job_id)
            return None

    async def write_work_items(
        self,
        job_id: str,
        work_item_ids: list[str],
        ttl_seconds: float,
    ) -> None:
        """Store the ordered work item ids of a job once, next to its progress document."""

        payload = _WORK_ITEMS_ADAPTER.dump_json(work_item_ids).decode()
        await self._store.set(self._items_key(job_id), payload, ttl_seconds)

    async def read_work_items(self, job_id: str) -> list[str]:
        """Return the work item ids of a job, or an empty list when none are stored."""

        payload = await self._store.get(self._items_key(job_id))
        if payload is None:
            return []
        try:
            return _WORK_ITEMS_ADAPTER.validate_json(payload)
        except ValidationError:
            logger.warning("Discarding unreadable work item list for job %s.", job_id)
            return []

    async def discard(self, job_id: str) -> None:
        """Remove the documents of a job that never became active."""

        await self._store.delete(self._job_key(job_id))
        await self._store.delete(self._items_key(job_id))

    async def set_cancel_flag(self, job_id: str, ttl_seconds: float) -> None:
        """Request cooperative cancellation of `job_id`."""

        await self._store.set(self._cancel_key(job_id), _CANCEL_FLAG_VALUE, ttl_seconds)

    async def read_cancel_flag(self, job_id: str, *, clear: bool = False) -> bool:
        """Return whether cancellation was requested, optionally clearing the flag."""

        key = self._cancel_key(job_id)
        requested = await self._store.get(key) == _CANCEL_FLAG_VALUE
        if requested and clear:
            await self._store.delete(key)
        return requested

    def _job_key(self, job_id: str) -> str:
        return f"{self._namespace}:job:{job_id}"

    def _items_key(self, job_id: str) -> str:
        return f"{self._namespace}:job:{job_id}:items"

    def _cancel_key(self, job_id: str) -> str:
        return f"{self._namespace}:job:{job_id}:cancel"

    def _active_key(self, kind: JobKind) -> str:
        return f"{self._namespace}:{kind.value}:active_job_id"


__all__ = ["ProgressStore"]
