from __future__ import annotations

import asyncio

import pytest

from asin_tracker.domain.errors import BatchExecutionError
from asin_tracker.infrastructure.runtime import BatchDisposition, ChunkedBatchExecutor


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def test_executor_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        ChunkedBatchExecutor(concurrency=0)
    with pytest.raises(ValueError):
        ChunkedBatchExecutor(concurrency=1, inter_chunk_delay_seconds=-1)


def test_progress_reports_strictly_increase_up_to_total() -> None:
    executor = ChunkedBatchExecutor(concurrency=3)
    reports: list[tuple[int, int]] = []

    async def operation(_: int) -> bool:
        await asyncio.sleep(0)
        return True

    async def sink(processed: int, total: int) -> None:
        reports.append((processed, total))

    result = asyncio.run(executor.run(range(7), operation, progress_sink=sink))

    assert [processed for processed, _ in reports] == list(range(1, 8))
    assert {total for _, total in reports} == {7}
    assert result.disposition is BatchDisposition.COMPLETED
    assert result.processed == 7
    assert result.succeeded == 7


def test_in_flight_operations_never_exceed_concurrency() -> None:
    executor = ChunkedBatchExecutor(concurrency=4)
    in_flight = 0
    peak = 0

    async def operation(_: int) -> bool:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.001)
        in_flight -= 1
        return True

    asyncio.run(executor.run(range(10), operation))

    assert peak == 4


def test_cancel_probe_stops_after_current_chunk() -> None:
    executor = ChunkedBatchExecutor(concurrency=5)
    seen: list[int] = []
    probes = 0

    async def operation(item: int) -> bool:
        seen.append(item)
        return True

    async def cancel_probe() -> bool:
        nonlocal probes
        probes += 1
        return probes >= 2

    result = asyncio.run(executor.run(range(20), operation, cancel_probe=cancel_probe))

    assert result.disposition is BatchDisposition.CANCELLED
    assert result.processed == 10
    assert sorted(seen) == list(range(10))
    assert result.total == 20


def test_cancel_probe_is_not_consulted_after_the_last_chunk() -> None:
    executor = ChunkedBatchExecutor(concurrency=5)

    async def operation(_: int) -> bool:
        return True

    async def cancel_probe() -> bool:
        return True

    result = asyncio.run(executor.run(range(5), operation, cancel_probe=cancel_probe))

    assert result.disposition is BatchDisposition.COMPLETED
    assert result.processed == 5


def test_delay_only_between_chunks() -> None:
    sleep = RecordingSleep()
    executor = ChunkedBatchExecutor(concurrency=2, inter_chunk_delay_seconds=0.25, sleep=sleep)

    async def operation(_: int) -> bool:
        return True

    asyncio.run(executor.run(range(5), operation))

    assert sleep.calls == [0.25, 0.25]


def test_item_failures_are_isolated_and_counted() -> None:
    executor = ChunkedBatchExecutor(concurrency=2)

    async def operation(item: int) -> bool:
        if item == 1:
            raise RuntimeError("boom")
        return item != 2

    result = asyncio.run(executor.run(range(4), operation))

    assert result.disposition is BatchDisposition.COMPLETED
    assert result.processed == 4
    assert result.succeeded == 2
    assert result.skipped == 1
    assert result.failed == 1


def test_batch_fails_when_every_item_raises() -> None:
    executor = ChunkedBatchExecutor(concurrency=2)

    async def operation(_: int) -> bool:
        raise RuntimeError("database unavailable")

    with pytest.raises(BatchExecutionError):
        asyncio.run(executor.run(range(3), operation))


def test_all_skipped_items_still_complete() -> None:
    executor = ChunkedBatchExecutor(concurrency=2)

    async def operation(_: int) -> bool:
        return False

    result = asyncio.run(executor.run(range(3), operation))

    assert result.disposition is BatchDisposition.COMPLETED
    assert result.skipped == 3
    assert result.failed == 0


def test_progress_sink_errors_propagate() -> None:
    executor = ChunkedBatchExecutor(concurrency=2)

    async def operation(_: int) -> bool:
        return True

    async def sink(_processed: int, _total: int) -> None:
        raise ConnectionError("progress store down")

    with pytest.raises(ConnectionError):
        asyncio.run(executor.run(range(2), operation, progress_sink=sink))


def test_empty_input_completes_without_work() -> None:
    executor = ChunkedBatchExecutor(concurrency=2)

    async def operation(_: int) -> bool:
        raise AssertionError("not called")

    result = asyncio.run(executor.run([], operation))

    assert result.disposition is BatchDisposition.COMPLETED
    assert result.processed == 0
