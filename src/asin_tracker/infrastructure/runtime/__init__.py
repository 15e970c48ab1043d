"""Shared runtime execution primitives."""

from asin_tracker.infrastructure.runtime.chunked_batch_executor import (
    BatchDisposition,
    BatchResult,
    ChunkedBatchExecutor,
)

__all__ = ["BatchDisposition", "BatchResult", "ChunkedBatchExecutor"]
