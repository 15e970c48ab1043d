"""Job progress models shared by the progress store, services, and API."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobKind(StrEnum):
    """Batch operation families tracked by the progress store."""

    IMPORT = "import"
    ELIGIBILITY = "eligibility"


class JobStatus(StrEnum):
    """Job lifecycle states. Transitions only move forward out of RUNNING."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


def progress_percentage(processed: int, total: int) -> int:
    """Return `processed / total` in percent, rounded half up."""

    if total <= 0:
        raise ValueError("total must be >= 1")
    return (processed * 200 + total) // (2 * total)


class JobModel(BaseModel):
    """Base model for job payloads exchanged over the API."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class JobProgress(JobModel):
    """Ephemeral progress document for one batch job."""

    job_id: str = Field(alias="jobId")
    kind: JobKind
    status: JobStatus = JobStatus.RUNNING
    total: int = Field(ge=1)
    processed: int = Field(default=0, ge=0)
    percentage: int = 0
    started_at: datetime = Field(alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")
    error: str | None = None
    cancelled: bool = False
    work_item_ids: list[str] = Field(default_factory=list, alias="workItemIds")
    summary: dict[str, int] | None = None
    result: dict[str, Any] | None = None

    @model_validator(mode="after")
    def derive_percentage(self) -> "JobProgress":
        """Keep `percentage` consistent with `processed` and `total`."""

        self.percentage = progress_percentage(min(self.processed, self.total), self.total)
        return self

    @property
    def is_terminal(self) -> bool:
        """Return whether the job reached `completed` or `failed`."""

        return self.status in TERMINAL_JOB_STATUSES


class IdleJobStatus(JobModel):
    """Status payload returned when no job of a kind is active."""

    status: Literal["idle"] = "idle"


class CancelResult(JobModel):
    """Outcome of a cancellation request."""

    cancelled: bool
    job_id: str | None = Field(default=None, alias="jobId")


__all__ = [
    "CancelResult",
    "IdleJobStatus",
    "JobKind",
    "JobModel",
    "JobProgress",
    "JobStatus",
    "TERMINAL_JOB_STATUSES",
    "progress_percentage",
]
