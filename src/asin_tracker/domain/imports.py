"""Import parsing results, outcomes, and history models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import Field

from asin_tracker.domain.jobs import JobModel
from asin_tracker.domain.products import ProductRecord


class ImportSource(StrEnum):
    """Origin of an import history entry."""

    KEEPA = "keepa"
    MANUAL = "manual"


@dataclass(slots=True, frozen=True)
class ImportRowError:
    """One rejected row. `row` counts the header as row 1."""

    row: int
    reason: str
    raw_data: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"row": self.row, "reason": self.reason}
        if self.raw_data is not None:
            payload["rawData"] = self.raw_data
        return payload


@dataclass(slots=True)
class ParseResult:
    """Validated records plus row-level errors from one tabular file."""

    valid: list[ProductRecord] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)
    total_rows: int = 0


@dataclass(slots=True)
class ImportHistoryEntry:
    """Durable summary of one import, kept after the job record expires."""

    id: int
    file_name: str
    source: ImportSource
    uploaded_at: datetime
    total_rows: int
    inserted_rows: int = 0
    updated_rows: int = 0
    failed_rows: int = 0
    error_file_path: str | None = None


class ImportRowErrorResponse(JobModel):
    row: int
    reason: str
    raw_data: str | None = Field(default=None, alias="rawData")


class ImportOutcome(JobModel):
    """Result attached to a completed import job."""

    import_file_id: int = Field(alias="importFileId")
    total_rows: int = Field(alias="totalRows")
    inserted_rows: int = Field(default=0, alias="insertedRows")
    updated_rows: int = Field(default=0, alias="updatedRows")
    failed_rows: int = Field(default=0, alias="failedRows")
    skipped_rows: int = Field(default=0, alias="skippedRows")
    errors: list[ImportRowErrorResponse] = Field(default_factory=list)
    error_count: int = Field(default=0, alias="errorCount")
    error_file_path: str | None = Field(default=None, alias="errorFilePath")


class ImportHistoryResponse(JobModel):
    """Import history row exposed by the API."""

    id: int
    file_name: str = Field(alias="fileName")
    source: ImportSource
    uploaded_at: datetime = Field(alias="uploadedAt")
    total_rows: int = Field(alias="totalRows")
    inserted_rows: int = Field(alias="insertedRows")
    updated_rows: int = Field(alias="updatedRows")
    failed_rows: int = Field(alias="failedRows")
    error_file_path: str | None = Field(default=None, alias="errorFilePath")

    @classmethod
    def from_entry(cls, entry: ImportHistoryEntry) -> "ImportHistoryResponse":
        return cls(
            id=entry.id,
            file_name=entry.file_name,
            source=entry.source,
            uploaded_at=entry.uploaded_at,
            total_rows=entry.total_rows,
            inserted_rows=entry.inserted_rows,
            updated_rows=entry.updated_rows,
            failed_rows=entry.failed_rows,
            error_file_path=entry.error_file_path,
        )


class StartImportResponse(JobModel):
    job_id: str = Field(alias="jobId")
    total: int


class ManualImportRequest(JobModel):
    asin: str


__all__ = [
    "ImportHistoryEntry",
    "ImportHistoryResponse",
    "ImportOutcome",
    "ImportRowError",
    "ImportRowErrorResponse",
    "ImportSource",
    "ManualImportRequest",
    "ParseResult",
    "StartImportResponse",
]
