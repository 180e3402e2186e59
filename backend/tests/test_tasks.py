"""Tests for the Celery task wrappers and beat schedule."""
from datetime import timedelta

from sqlalchemy import update

from brandcrawl.models.base import utcnow
from brandcrawl.models.crawl_job import CrawlJob, CrawlStatus
from brandcrawl.schemas.crawl_job import WorkerInfo
from brandcrawl.services.job_store import CrawlJobStore
from brandcrawl.tasks.celery_app import celery_app
from brandcrawl.tasks.crawl_tasks import process_crawl_jobs, reap_stale_crawl_jobs


def test_beat_schedule_covers_tick_and_reaper() -> None:
    tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert tasks == {
        "brandcrawl.tasks.crawl_tasks.process_crawl_jobs",
        "brandcrawl.tasks.crawl_tasks.reap_stale_crawl_jobs",
    }


def test_process_task_with_empty_queue(db) -> None:
    result = process_crawl_jobs()
    assert result["claimed"] == 0


def test_reap_task_requeues_stale_job(db) -> None:
    store = CrawlJobStore(db)
    job = store.insert("brand-1", "ws-1", "https://acme.test")
    store.claim_batch(WorkerInfo.current())
    db.execute(
        update(CrawlJob)
        .where(CrawlJob.id == job.id)
        .values(updated_at=utcnow() - timedelta(hours=1))
    )
    db.commit()

    result = reap_stale_crawl_jobs()

    assert result == {"found": 1, "requeued": 1, "failed": 0}
    assert store.get(job.id).status == CrawlStatus.PENDING
