"""Route modules public API."""

from asin_tracker.api.routes.health import router as health_router
from asin_tracker.api.routes.imports import router as imports_router
from asin_tracker.api.routes.processing import router as processing_router

__all__ = ["health_router", "imports_router", "processing_router"]
