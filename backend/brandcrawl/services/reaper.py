"""Recovers crawl jobs whose worker stopped heartbeating."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import sessionmaker

from brandcrawl.config import Settings, get_settings
from brandcrawl.models.base import utcnow
from brandcrawl.models.crawl_job import CrawlStatus
from brandcrawl.services.job_store import CrawlJobStore, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ReapSummary:
    found: int = 0
    requeued: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def reaped(self) -> int:
        return self.requeued + self.failed


class StaleJobReaper:
    """Requeues or fails processing jobs with no heartbeat inside the stale threshold.

    Each job is transitioned with its own conditional write, so a worker whose
    heartbeat lands between the scan and the write keeps its job.
    """

    def __init__(
        self,
        store: CrawlJobStore,
        retry_policy: RetryPolicy | None = None,
        stale_threshold: int | None = None,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy(store.settings.max_retries)
        if stale_threshold is None:
            stale_threshold = store.settings.stale_threshold_seconds
        self.stale_threshold = stale_threshold

    def sweep(self) -> ReapSummary:
        summary = ReapSummary()
        stale_ids = [job.id for job in self.store.list_stale(self.stale_threshold)]
        summary.found = len(stale_ids)
        if not stale_ids:
            return summary

        logger.warning(f"Found {len(stale_ids)} stale crawl jobs (no heartbeat for {self.stale_threshold}s)")
        for job_id in stale_ids:
            new_status = self.store.mark_stale(job_id, self.stale_threshold, self.retry_policy)
            if new_status == CrawlStatus.PENDING:
                summary.requeued += 1
            elif new_status == CrawlStatus.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info(
            f"Reaper sweep: {summary.requeued} requeued, {summary.failed} failed, {summary.skipped} skipped"
        )
        return summary


def reap_stale_jobs(
    session_factory: sessionmaker,
    settings: Settings | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> ReapSummary:
    settings = settings or get_settings()
    with session_factory() as session:
        store = CrawlJobStore(session, settings, clock)
        return StaleJobReaper(store, RetryPolicy(settings.max_retries), settings.stale_threshold_seconds).sweep()
