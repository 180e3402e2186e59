"""Error taxonomy for the crawl job queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from brandcrawl.models.crawl_job import CrawlJob


class CrawlJobError(Exception):
    """Base class for crawl queue errors."""


class InvalidCrawlRequest(CrawlJobError):
    """Malformed enqueue request. Surfaced as HTTP 400; no job is created."""


class DuplicateJobError(CrawlJobError):
    """A job for the same brand and URL is already in flight."""

    def __init__(self, existing: "CrawlJob"):
        super().__init__(f"Crawl job {existing.id} is already {existing.status.value} for {existing.url}")
        self.existing = existing


class PipelineExecutionError(CrawlJobError):
    """The extraction pipeline could not produce a brand kit."""


class StaleTimeoutError(CrawlJobError):
    """Synthetic error explaining a reaper-forced transition."""

    def __init__(self, stale_threshold_seconds: int):
        super().__init__(f"stale: heartbeat timeout (no progress for {stale_threshold_seconds} seconds)")
        self.stale_threshold_seconds = stale_threshold_seconds


class LeaseLostError(CrawlJobError):
    """A heartbeat matched no row: the job is no longer owned by this worker."""
