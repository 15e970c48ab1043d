"""Top-level API router composition."""

from fastapi import APIRouter

from asin_tracker.api.routes import health_router, imports_router, processing_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(imports_router)
api_router.include_router(processing_router)

__all__ = ["api_router"]
