"""Application services public API."""

from asin_tracker.application.services.import_service import ImportService
from asin_tracker.application.services.job_tracker import JobTracker
from asin_tracker.application.services.processing_service import ProcessingService
from asin_tracker.application.services.progress_store import ProgressStore

__all__ = ["ImportService", "JobTracker", "ProcessingService", "ProgressStore"]
