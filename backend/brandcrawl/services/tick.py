"""One processing tick: reap stale jobs, claim a batch, run it to completion."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import sessionmaker

from brandcrawl.config import Settings, get_settings
from brandcrawl.models.base import utcnow
from brandcrawl.pipelines.base import BaseBrandPipeline
from brandcrawl.pipelines.registry import build_pipeline
from brandcrawl.schemas.crawl_job import ProcessingJob, WorkerInfo, to_job_state
from brandcrawl.services.job_store import CrawlJobStore, RetryPolicy
from brandcrawl.services.processor import CrawlJobProcessor, JobOutcome, JobResult
from brandcrawl.services.reaper import StaleJobReaper

logger = logging.getLogger(__name__)


@dataclass
class TickSummary:
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    lost: int = 0
    reaped: int = 0
    requeued: int = 0
    outcomes: list[JobOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.claimed:
            return "No pending jobs to process"
        return f"Processed {self.claimed} jobs: {self.completed} completed, {self.failed} failed"


def _reap_and_claim(
    session_factory: sessionmaker,
    settings: Settings,
    clock: Callable[[], datetime],
    worker: WorkerInfo,
    summary: TickSummary,
) -> list[ProcessingJob]:
    with session_factory() as session:
        store = CrawlJobStore(session, settings, clock)
        reap = StaleJobReaper(store, RetryPolicy(settings.max_retries), settings.stale_threshold_seconds).sweep()
        summary.reaped = reap.reaped
        summary.requeued = reap.requeued
        return [to_job_state(row) for row in store.claim_batch(worker, settings.max_claim_batch)]


async def run_tick(
    session_factory: sessionmaker,
    settings: Settings | None = None,
    pipeline: BaseBrandPipeline | None = None,
    clock: Callable[[], datetime] = utcnow,
    worker: WorkerInfo | None = None,
) -> TickSummary:
    """Safe to run concurrently with other ticks; claims never overlap."""
    settings = settings or get_settings()
    worker = worker or WorkerInfo.current()
    summary = TickSummary()

    # Reap and claim are blocking writes; keep them off the event loop.
    jobs = await asyncio.to_thread(_reap_and_claim, session_factory, settings, clock, worker, summary)
    summary.claimed = len(jobs)

    if not jobs:
        logger.info(f"Tick {worker.worker_id}: no pending jobs (reaped={summary.reaped})")
        return summary

    processor = CrawlJobProcessor(session_factory, pipeline or build_pipeline(settings), settings, clock)
    summary.outcomes = await processor.process_batch(jobs)
    for outcome in summary.outcomes:
        if outcome.result == JobResult.COMPLETED:
            summary.completed += 1
        elif outcome.result == JobResult.FAILED:
            summary.failed += 1
        else:
            summary.lost += 1

    logger.info(
        f"Tick {worker.worker_id}: claimed={summary.claimed} completed={summary.completed} "
        f"failed={summary.failed} lost={summary.lost} reaped={summary.reaped}"
    )
    return summary
