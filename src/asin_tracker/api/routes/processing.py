"""Eligibility processing routes."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path

from asin_tracker.api.dependencies import get_processing_service
from asin_tracker.application.services import ProcessingService
from asin_tracker.domain.errors import (
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
    ProgressStoreUnavailableError,
)
from asin_tracker.domain.jobs import CancelResult, IdleJobStatus, JobProgress
from asin_tracker.domain.processing_models import (
    StartProcessingRequest,
    StartProcessingResponse,
)

router = APIRouter(prefix="/processing", tags=["processing"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, JobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, JobValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, JobConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProgressStoreUnavailableError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected processing error")


@router.post("/start", response_model=StartProcessingResponse, status_code=202)
async def start_processing(
    request: StartProcessingRequest,
    service: ProcessingService = Depends(get_processing_service),
) -> StartProcessingResponse:
    """Start an eligibility run for the selected mode."""

    try:
        return await service.start_processing(request.mode)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get(
    "/status",
    response_model=JobProgress | IdleJobStatus,
    status_code=200,
)
async def get_active_processing_status(
    service: ProcessingService = Depends(get_processing_service),
) -> JobProgress | IdleJobStatus:
    """Return the active (or just finished) eligibility job, or `idle`."""

    try:
        return await service.get_processing_status()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/status/{job_id}", response_model=JobProgress, status_code=200)
async def get_processing_status(
    job_id: str = Path(...),
    service: ProcessingService = Depends(get_processing_service),
) -> JobProgress:
    """Poll one eligibility job."""

    try:
        status = await service.get_processing_status(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    assert isinstance(status, JobProgress)
    return status


@router.post("/cancel", response_model=CancelResult, status_code=200)
async def cancel_processing(
    service: ProcessingService = Depends(get_processing_service),
) -> CancelResult:
    """Request cancellation of the running eligibility job."""

    try:
        return await service.cancel_processing()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


__all__ = ["router"]
