"""Database models."""

from brandcrawl.models.base import Base
from brandcrawl.models.crawl_job import CrawlErrorCode, CrawlJob, CrawlStatus

__all__ = [
    "Base",
    "CrawlJob",
    "CrawlStatus",
    "CrawlErrorCode",
]
