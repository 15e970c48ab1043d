"""Domain exceptions for batch job operations."""


class JobError(Exception):
    """Base class for batch job errors."""


class JobNotFoundError(JobError):
    """Raised when a job or import record cannot be found."""


class JobConflictError(JobError):
    """Raised when a job of the same kind is already running."""

    def __init__(self, message: str, active_job_id: str | None = None) -> None:
        super().__init__(message)
        self.active_job_id = active_job_id


class JobValidationError(JobError):
    """Raised when request validation fails before a job is created."""


class ProgressStoreUnavailableError(JobError):
    """Raised when the progress key-value store cannot be reached."""


class BatchExecutionError(JobError):
    """Raised when a batch fails systemically rather than per item."""


class EligibilityClientError(RuntimeError):
    """Raised when an eligibility lookup fails definitively."""


__all__ = [
    "BatchExecutionError",
    "EligibilityClientError",
    "JobConflictError",
    "JobError",
    "JobNotFoundError",
    "JobValidationError",
    "ProgressStoreUnavailableError",
]
