"""Request and response models for eligibility processing routes."""

from __future__ import annotations

from pydantic import Field

from asin_tracker.domain.jobs import JobModel
from asin_tracker.domain.products import ProcessingMode


class StartProcessingRequest(JobModel):
    mode: ProcessingMode


class StartProcessingResponse(JobModel):
    job_id: str = Field(alias="jobId")
    total_asins: int = Field(alias="totalAsins")


__all__ = ["StartProcessingRequest", "StartProcessingResponse"]
