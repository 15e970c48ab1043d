"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from asin_tracker.application.services import ImportService, ProcessingService
from asin_tracker.bootstrap import ApplicationServices, build_application_services
from asin_tracker.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_application_services() -> ApplicationServices:
    """Return singleton service graph."""

    return build_application_services(get_settings())


def get_import_service() -> ImportService:
    """Return the import service of the singleton graph."""

    return get_application_services().import_service


def get_processing_service() -> ProcessingService:
    """Return the processing service of the singleton graph."""

    return get_application_services().processing_service


__all__ = [
    "get_application_services",
    "get_import_service",
    "get_processing_service",
    "get_settings",
]
