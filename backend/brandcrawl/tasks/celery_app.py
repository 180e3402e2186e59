"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from brandcrawl.config import get_settings

settings = get_settings()

celery_app = Celery(
    "brandcrawl",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["brandcrawl.tasks.crawl_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    task_track_started=True,
    # A tick must finish well inside the stale threshold of the jobs it owns.
    task_time_limit=settings.stale_threshold_seconds,
    task_soft_time_limit=max(settings.stale_threshold_seconds - 60, 60),
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "process-crawl-jobs": {
        "task": "brandcrawl.tasks.crawl_tasks.process_crawl_jobs",
        "schedule": crontab(minute="*"),
    },
    "reap-stale-crawl-jobs": {
        "task": "brandcrawl.tasks.crawl_tasks.reap_stale_crawl_jobs",
        "schedule": crontab(minute="*/5"),
    },
}
