"""Domain public API."""

from asin_tracker.domain.errors import (
    BatchExecutionError,
    EligibilityClientError,
    JobConflictError,
    JobError,
    JobNotFoundError,
    JobValidationError,
    ProgressStoreUnavailableError,
)
from asin_tracker.domain.imports import (
    ImportHistoryEntry,
    ImportHistoryResponse,
    ImportOutcome,
    ImportRowError,
    ImportSource,
    ParseResult,
    StartImportResponse,
)
from asin_tracker.domain.jobs import (
    TERMINAL_JOB_STATUSES,
    CancelResult,
    IdleJobStatus,
    JobKind,
    JobProgress,
    JobStatus,
    progress_percentage,
)
from asin_tracker.domain.ports import (
    EligibilityClient,
    ImportHistoryRepository,
    KeyValueStore,
    ProductRepository,
    SellerStatusRepository,
    TagRepository,
)
from asin_tracker.domain.processing_models import (
    StartProcessingRequest,
    StartProcessingResponse,
)
from asin_tracker.domain.products import (
    ProcessingMode,
    ProductFilter,
    ProductPage,
    ProductRecord,
    SellerStatusRecord,
    SellerStatusValue,
    Tag,
    amazon_url_for,
    normalize_asin,
)

__all__ = [
    "BatchExecutionError",
    "CancelResult",
    "EligibilityClient",
    "EligibilityClientError",
    "IdleJobStatus",
    "ImportHistoryEntry",
    "ImportHistoryRepository",
    "ImportHistoryResponse",
    "ImportOutcome",
    "ImportRowError",
    "ImportSource",
    "JobConflictError",
    "JobError",
    "JobKind",
    "JobNotFoundError",
    "JobProgress",
    "JobStatus",
    "JobValidationError",
    "KeyValueStore",
    "ParseResult",
    "ProcessingMode",
    "ProductFilter",
    "ProductPage",
    "ProductRecord",
    "ProductRepository",
    "ProgressStoreUnavailableError",
    "SellerStatusRecord",
    "SellerStatusRepository",
    "SellerStatusValue",
    "StartImportResponse",
    "StartProcessingRequest",
    "StartProcessingResponse",
    "TERMINAL_JOB_STATUSES",
    "Tag",
    "TagRepository",
    "amazon_url_for",
    "normalize_asin",
    "progress_percentage",
]
