"""CSV and manual import routes."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile
from fastapi.responses import FileResponse

from asin_tracker.api.dependencies import get_import_service
from asin_tracker.application.services import ImportService
from asin_tracker.domain.errors import (
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
    ProgressStoreUnavailableError,
)
from asin_tracker.domain.imports import (
    ImportHistoryResponse,
    ImportOutcome,
    ManualImportRequest,
    StartImportResponse,
)
from asin_tracker.domain.jobs import JobProgress

router = APIRouter(prefix="/import", tags=["import"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, JobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, JobValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, JobConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProgressStoreUnavailableError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected import error")


@router.post("/csv", response_model=StartImportResponse, status_code=202)
async def upload_csv(
    file: UploadFile = File(...),
    service: ImportService = Depends(get_import_service),
) -> StartImportResponse:
    """Accept a Keepa CSV export and import it in the background."""

    try:
        service.check_upload_size(file.size)
        content = await file.read(service.max_file_bytes + 1)
        return await service.start_import(content, file.filename or "")
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/progress/{job_id}", response_model=JobProgress, status_code=200)
async def get_import_progress(
    job_id: str = Path(...),
    service: ImportService = Depends(get_import_service),
) -> JobProgress:
    """Poll one import job."""

    try:
        return await service.get_import_progress(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/manual", response_model=ImportOutcome, status_code=200)
async def import_manual_asin(
    request: ManualImportRequest,
    service: ImportService = Depends(get_import_service),
) -> ImportOutcome:
    """Add a single ASIN."""

    try:
        return await service.import_manual_asin(request.asin)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/history", response_model=list[ImportHistoryResponse], status_code=200)
async def list_import_history(
    service: ImportService = Depends(get_import_service),
) -> list[ImportHistoryResponse]:
    """List past imports, newest first."""

    try:
        return await service.list_import_history()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/{import_file_id}/errors", response_class=FileResponse)
async def download_import_errors(
    import_file_id: int = Path(...),
    service: ImportService = Depends(get_import_service),
) -> FileResponse:
    """Download every row error of one import as JSON."""

    try:
        path = await service.get_error_artifact_path(import_file_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return FileResponse(path, media_type="application/json", filename=path.name)


__all__ = ["router"]
