"""Keepa CSV and manual ASIN imports."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from asin_tracker.application.services.job_tracker import JobTracker
from asin_tracker.domain.errors import JobNotFoundError, JobValidationError
from asin_tracker.domain.imports import (
    ImportHistoryEntry,
    ImportHistoryResponse,
    ImportOutcome,
    ImportRowErrorResponse,
    ImportSource,
    ParseResult,
    StartImportResponse,
)
from asin_tracker.domain.jobs import JobKind, JobProgress
from asin_tracker.domain.ports import ImportHistoryRepository, ProductRepository, TagRepository
from asin_tracker.domain.products import ProductRecord, normalize_asin
from asin_tracker.infrastructure.imports import ImportErrorArtifactStore, KeepaCsvParser

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE = 100
_DEFAULT_ERROR_PREVIEW_LIMIT = 50
_DEFAULT_MAX_FILE_BYTES = 50 * 1024 * 1024
_WARNING_TAG_KIND = "warning"


class ImportService:
    """Parse uploads, then persist them in the background under an import job."""

    def __init__(
        self,
        *,
        job_tracker: JobTracker,
        product_repository: ProductRepository,
        tag_repository: TagRepository,
        import_history_repository: ImportHistoryRepository,
        error_artifacts: ImportErrorArtifactStore,
        parser: KeepaCsvParser | None = None,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        error_preview_limit: int = _DEFAULT_ERROR_PREVIEW_LIMIT,
        max_file_bytes: int = _DEFAULT_MAX_FILE_BYTES,
        hazmat_tag_name: str = "HazMat",
    ) -> None:
        self._job_tracker = job_tracker
        self._product_repository = product_repository
        self._tag_repository = tag_repository
        self._import_history_repository = import_history_repository
        self._error_artifacts = error_artifacts
        self._parser = parser or KeepaCsvParser()
        self._batch_size = max(batch_size, 1)
        self._error_preview_limit = max(error_preview_limit, 0)
        self._max_file_bytes = max(max_file_bytes, 1)
        self._hazmat_tag_name = hazmat_tag_name

    @property
    def max_file_bytes(self) -> int:
        return self._max_file_bytes

    def check_upload_size(self, size: int | None) -> None:
        """Reject an upload whose declared size is over the limit before it is read."""

        if size is not None and size > self._max_file_bytes:
            raise JobValidationError(self._size_limit_message())

    async def start_import(self, file_bytes: bytes, filename: str) -> StartImportResponse:
        """Validate and parse an upload, then persist it without blocking the caller."""

        file_name = self._validate_upload(file_bytes, filename)
        parse_result = await asyncio.to_thread(self._parser.parse, file_bytes)
        if parse_result.total_rows < 1:
            raise JobValidationError("CSV file contains no data rows.")

        progress = await self._job_tracker.start_job(
            JobKind.IMPORT,
            parse_result.total_rows,
            initial_processed=len(parse_result.errors),
        )
        job_id = progress.job_id
        self._job_tracker.spawn(
            job_id,
            lambda: self._persist(job_id, file_name, parse_result),
            name=f"import-job-{job_id}",
        )
        logger.info(
            "Import job %s accepted for '%s' (%s rows).",
            job_id,
            file_name,
            parse_result.total_rows,
        )
        return StartImportResponse(job_id=job_id, total=progress.total)

    async def get_import_progress(self, job_id: str) -> JobProgress:
        """Return progress of one import job."""

        progress = await self._job_tracker.get(job_id)
        if progress is None or progress.kind is not JobKind.IMPORT:
            raise JobNotFoundError(f"Import job '{job_id}' not found.")
        return progress

    async def import_manual_asin(self, asin: str) -> ImportOutcome:
        """Add or refresh a single ASIN and record it in the import history."""

        normalized = normalize_asin(asin)
        if normalized is None:
            raise JobValidationError("Invalid ASIN: must be 10 letters or digits.")

        already_stored = normalized in await self._product_repository.find_existing_asins(
            [normalized]
        )
        entry = await self._import_history_repository.create_import_entry(
            file_name=f"manual:{normalized}",
            source=ImportSource.MANUAL,
            total_rows=1,
        )
        try:
            await self._product_repository.upsert_batch([ProductRecord(asin=normalized)])
        except Exception:
            await self._import_history_repository.update_import_summary(
                entry.id,
                inserted_rows=0,
                updated_rows=0,
                failed_rows=1,
            )
            raise

        inserted_rows = 0 if already_stored else 1
        updated_rows = 1 if already_stored else 0
        await self._import_history_repository.update_import_summary(
            entry.id,
            inserted_rows=inserted_rows,
            updated_rows=updated_rows,
            failed_rows=0,
        )
        logger.info("Manual import of %s recorded as import %s.", normalized, entry.id)
        return ImportOutcome(
            import_file_id=entry.id,
            total_rows=1,
            inserted_rows=inserted_rows,
            updated_rows=updated_rows,
        )

    async def list_import_history(self) -> list[ImportHistoryResponse]:
        """Return import history, newest first."""

        entries = await self._import_history_repository.list_import_entries()
        return [ImportHistoryResponse.from_entry(entry) for entry in entries]

    async def get_error_artifact_path(self, import_file_id: int) -> Path:
        """Return the error artifact written for one import."""

        entry = await self._import_history_repository.get_import_entry(import_file_id)
        if entry is None:
            raise JobNotFoundError(f"Import '{import_file_id}' not found.")
        if entry.error_file_path is None:
            raise JobNotFoundError(f"Import '{import_file_id}' has no error file.")
        path = self._error_artifacts.resolve(entry.error_file_path)
        if path is None:
            raise JobNotFoundError(f"Error file for import '{import_file_id}' is missing.")
        return path

    async def _persist(self, job_id: str, file_name: str, parse_result: ParseResult) -> None:
        entry = await self._import_history_repository.create_import_entry(
            file_name=file_name,
            source=ImportSource.KEEPA,
            total_rows=parse_result.total_rows,
        )

        processed = len(parse_result.errors)
        inserted_rows = 0
        updated_rows = 0
        known_asins: set[str] = set()
        hazmat_tag_id: int | None = None
        valid = parse_result.valid
        for start in range(0, len(valid), self._batch_size):
            batch = valid[start : start + self._batch_size]
            asins = [record.asin for record in batch]
            known_asins |= await self._product_repository.find_existing_asins(asins)
            for asin in asins:
                if asin in known_asins:
                    updated_rows += 1
                else:
                    inserted_rows += 1
                    known_asins.add(asin)

            await self._product_repository.upsert_batch(batch)
            hazmat_asins = [record.asin for record in batch if record.is_hazmat]
            if hazmat_asins:
                if hazmat_tag_id is None:
                    tag = await self._tag_repository.get_or_create_tag(
                        self._hazmat_tag_name,
                        _WARNING_TAG_KIND,
                    )
                    hazmat_tag_id = tag.id
                for asin in hazmat_asins:
                    await self._tag_repository.associate(asin, hazmat_tag_id)

            processed += len(batch)
            await self._job_tracker.update_progress(job_id, processed)
            logger.info(
                "Import job %s upserted batch %s (records %s-%s).",
                job_id,
                start // self._batch_size + 1,
                start + 1,
                start + len(batch),
            )

        outcome = await self._finish_import(entry, parse_result, inserted_rows, updated_rows)
        await self._job_tracker.complete(
            job_id,
            result=outcome.model_dump(by_alias=True, mode="json"),
            processed=parse_result.total_rows,
        )

    async def _finish_import(
        self,
        entry: ImportHistoryEntry,
        parse_result: ParseResult,
        inserted_rows: int,
        updated_rows: int,
    ) -> ImportOutcome:
        errors = parse_result.errors
        error_file_path: str | None = None
        if errors:
            error_file_path = await self._error_artifacts.write(entry.id, errors)

        failed_rows = len(errors)
        skipped_rows = parse_result.total_rows - inserted_rows - updated_rows - failed_rows
        if skipped_rows > 0:
            logger.warning(
                "Import %s accounted for %s of %s rows; %s rows were skipped.",
                entry.id,
                inserted_rows + updated_rows + failed_rows,
                parse_result.total_rows,
                skipped_rows,
            )

        await self._import_history_repository.update_import_summary(
            entry.id,
            inserted_rows=inserted_rows,
            updated_rows=updated_rows,
            failed_rows=failed_rows,
            error_file_path=error_file_path,
        )
        return ImportOutcome(
            import_file_id=entry.id,
            total_rows=parse_result.total_rows,
            inserted_rows=inserted_rows,
            updated_rows=updated_rows,
            failed_rows=failed_rows,
            skipped_rows=max(skipped_rows, 0),
            errors=[
                ImportRowErrorResponse(row=error.row, reason=error.reason, raw_data=error.raw_data)
                for error in errors[: self._error_preview_limit]
            ],
            error_count=failed_rows,
            error_file_path=error_file_path,
        )

    def _validate_upload(self, file_bytes: bytes, filename: str) -> str:
        file_name = Path(filename or "").name.strip()
        if not file_name:
            raise JobValidationError("No file uploaded.")
        if not file_name.lower().endswith(".csv"):
            raise JobValidationError("Only CSV files are accepted.")
        if not file_bytes:
            raise JobValidationError("Uploaded file is empty.")
        if len(file_bytes) > self._max_file_bytes:
            raise JobValidationError(self._size_limit_message())
        return file_name

    def _size_limit_message(self) -> str:
        return f"Uploaded file exceeds the {self._max_file_bytes} byte limit."


__all__ = ["ImportService"]
