"""Pydantic schemas package."""

from brandcrawl.schemas.crawl_job import (
    CompletedJob,
    CrawlJobState,
    CrawlStartRequest,
    CrawlStartResponse,
    CrawlStatusResponse,
    FailedJob,
    PendingJob,
    ProcessingJob,
    ProcessJobsResponse,
    WorkerInfo,
    to_job_state,
)

__all__ = [
    # Job states
    "PendingJob",
    "ProcessingJob",
    "CompletedJob",
    "FailedJob",
    "CrawlJobState",
    "to_job_state",
    "WorkerInfo",
    # API
    "CrawlStartRequest",
    "CrawlStartResponse",
    "CrawlStatusResponse",
    "ProcessJobsResponse",
]
