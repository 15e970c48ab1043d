"""HTTP API public surface."""

from asin_tracker.api.router import api_router

__all__ = ["api_router"]
