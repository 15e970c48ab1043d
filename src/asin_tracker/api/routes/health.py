"""Health check routes."""

from fastapi import APIRouter, Depends, HTTPException

from asin_tracker.api.dependencies import get_application_services
from asin_tracker.bootstrap import ApplicationServices
from asin_tracker.domain.errors import ProgressStoreUnavailableError

router = APIRouter(tags=["health"])

_READINESS_PROBE_KEY = "readiness:probe"


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness probe."""

    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    services: ApplicationServices = Depends(get_application_services),
) -> dict[str, str]:
    """Readiness probe: the progress store must answer."""

    try:
        await services.key_value_store.get(_READINESS_PROBE_KEY)
    except ProgressStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"status": "ready"}


__all__ = ["router"]
