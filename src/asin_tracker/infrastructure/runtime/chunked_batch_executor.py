"""Chunked fan-out executor with per-item isolation and cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from asin_tracker.domain.errors import BatchExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemOperation = Callable[[T], Awaitable[bool | None]]
ProgressSink = Callable[[int, int], Awaitable[None]]
CancelProbe = Callable[[], Awaitable[bool]]
Sleeper = Callable[[float], Awaitable[None]]


class BatchDisposition(StrEnum):
    """Final disposition of one executor run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class BatchResult:
    """Counters of one executor run. `skipped` items returned False."""

    disposition: BatchDisposition
    total: int
    processed: int
    succeeded: int
    skipped: int
    failed: int


@dataclass(slots=True)
class _RunState:
    total: int
    lock: asyncio.Lock
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0


class ChunkedBatchExecutor:
    """Drive work items through an async operation in fixed-size chunks.

    Every item of a chunk is dispatched at once and the next chunk starts only
    after the whole chunk finished, so at most `concurrency` operations are in
    flight. The cancel probe and the inter-chunk delay run between chunks only.
    """

    def __init__(
        self,
        concurrency: int,
        inter_chunk_delay_seconds: float = 0.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if inter_chunk_delay_seconds < 0:
            raise ValueError("inter_chunk_delay_seconds must be >= 0")
        self._concurrency = concurrency
        self._inter_chunk_delay_seconds = inter_chunk_delay_seconds
        self._sleep = sleep

    @property
    def concurrency(self) -> int:
        """Return the chunk size."""

        return self._concurrency

    async def run(
        self,
        items: Iterable[T],
        operation: ItemOperation[T],
        *,
        progress_sink: ProgressSink | None = None,
        cancel_probe: CancelProbe | None = None,
    ) -> BatchResult:
        """Run every item unless cancelled between chunks.

        Raises `BatchExecutionError` when every attempted item raised. Errors
        raised by `progress_sink` or `cancel_probe` propagate unchanged.
        """

        work = list(items)
        state = _RunState(total=len(work), lock=asyncio.Lock())
        chunks = [
            work[start : start + self._concurrency]
            for start in range(0, len(work), self._concurrency)
        ]

        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(self._run_item(item, operation, state, progress_sink) for item in chunk),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

            if index == len(chunks) - 1:
                break
            if cancel_probe is not None and await cancel_probe():
                logger.info(
                    "Batch cancelled after %s/%s items.",
                    state.processed,
                    state.total,
                )
                return self._finish(state, BatchDisposition.CANCELLED)
            if self._inter_chunk_delay_seconds > 0:
                await self._sleep(self._inter_chunk_delay_seconds)

        return self._finish(state, BatchDisposition.COMPLETED)

    async def _run_item(
        self,
        item: T,
        operation: ItemOperation[T],
        state: _RunState,
        progress_sink: ProgressSink | None,
    ) -> None:
        try:
            outcome = await operation(item)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Batch item %r failed: %s", item, exc)
            outcome = None
            failed = True
        else:
            failed = False

        async with state.lock:
            if failed:
                state.failed += 1
            elif outcome is False:
                state.skipped += 1
            else:
                state.succeeded += 1
            state.processed += 1
            if progress_sink is not None:
                await progress_sink(state.processed, state.total)

    def _finish(self, state: _RunState, disposition: BatchDisposition) -> BatchResult:
        if state.processed > 0 and state.failed == state.processed:
            raise BatchExecutionError(
                f"All {state.failed} attempted batch items failed."
            )
        return BatchResult(
            disposition=disposition,
            total=state.total,
            processed=state.processed,
            succeeded=state.succeeded,
            skipped=state.skipped,
            failed=state.failed,
        )


__all__ = ["BatchDisposition", "BatchResult", "ChunkedBatchExecutor"]
