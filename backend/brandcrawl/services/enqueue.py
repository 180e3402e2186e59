"""Enqueue validation and dedup for new crawl requests."""

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from brandcrawl.exceptions import DuplicateJobError, InvalidCrawlRequest
from brandcrawl.models.crawl_job import CrawlJob
from brandcrawl.services.job_store import CrawlJobStore

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048
MAX_ID_LENGTH = 255


@dataclass
class EnqueueResult:
    job: CrawlJob
    created: bool


def validate_crawl_url(url: str | None) -> str:
    if url is None or not url.strip():
        raise InvalidCrawlRequest("url is required")
    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise InvalidCrawlRequest(f"url must be at most {MAX_URL_LENGTH} characters")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidCrawlRequest("url must be an absolute http(s) URL")
    return url


def _validate_id(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise InvalidCrawlRequest(f"{name} is required")
    value = value.strip()
    if len(value) > MAX_ID_LENGTH:
        raise InvalidCrawlRequest(f"{name} must be at most {MAX_ID_LENGTH} characters")
    return value


def enqueue_crawl(
    store: CrawlJobStore,
    brand_id: str | None,
    workspace_id: str | None,
    url: str | None,
) -> EnqueueResult:
    """Create a pending crawl job, or return the one already in flight for this brand and URL.

    Raises InvalidCrawlRequest before anything is written.
    """
    url = validate_crawl_url(url)
    brand_id = _validate_id("brandId", brand_id)
    workspace_id = _validate_id("workspaceId", workspace_id)

    try:
        job = store.insert(brand_id, workspace_id, url)
    except DuplicateJobError as e:
        logger.info(f"Deduplicated crawl request for brand_id={brand_id} url={url}: reusing run_id={e.existing.id}")
        return EnqueueResult(job=e.existing, created=False)
    return EnqueueResult(job=job, created=True)
