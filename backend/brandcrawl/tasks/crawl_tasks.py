"""Crawl queue tasks — periodic processing tick and stale job sweep."""

import asyncio
import logging

from brandcrawl.config import get_settings
from brandcrawl.models.base import SessionLocal
from brandcrawl.services.reaper import reap_stale_jobs
from brandcrawl.services.tick import run_tick
from brandcrawl.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="brandcrawl.tasks.crawl_tasks.process_crawl_jobs")
def process_crawl_jobs():
    """Reap, claim a batch of pending crawl jobs, and run them."""
    summary = asyncio.run(run_tick(SessionLocal, get_settings()))
    logger.info(f"process_crawl_jobs: {summary.message}")
    return {
        "claimed": summary.claimed,
        "completed": summary.completed,
        "failed": summary.failed,
        "lost": summary.lost,
        "reaped": summary.reaped,
        "requeued": summary.requeued,
    }


@celery_app.task(name="brandcrawl.tasks.crawl_tasks.reap_stale_crawl_jobs")
def reap_stale_crawl_jobs():
    """Requeue or fail processing jobs whose worker stopped heartbeating."""
    summary = reap_stale_jobs(SessionLocal, get_settings())
    return {"found": summary.found, "requeued": summary.requeued, "failed": summary.failed}
