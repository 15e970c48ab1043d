"""Infrastructure layer public API."""

from asin_tracker.infrastructure.amazon import (
    LwaTokenProvider,
    SellingPartnerEligibilityClient,
    SigV4RequestSigner,
    UnconfiguredEligibilityClient,
)
from asin_tracker.infrastructure.imports import ImportErrorArtifactStore, KeepaCsvParser
from asin_tracker.infrastructure.progress import InMemoryKeyValueStore, PostgresKeyValueStore
from asin_tracker.infrastructure.repositories import (
    InMemoryProductRepository,
    PostgresProductRepository,
)
from asin_tracker.infrastructure.runtime import ChunkedBatchExecutor

__all__ = [
    "ChunkedBatchExecutor",
    "ImportErrorArtifactStore",
    "InMemoryKeyValueStore",
    "InMemoryProductRepository",
    "KeepaCsvParser",
    "LwaTokenProvider",
    "PostgresKeyValueStore",
    "PostgresProductRepository",
    "SellingPartnerEligibilityClient",
    "SigV4RequestSigner",
    "UnconfiguredEligibilityClient",
]
