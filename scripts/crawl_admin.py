#!/usr/bin/env python3
"""Operator script for the crawl queue.

Enqueue a crawl, run a processing tick or a reaper sweep by hand, or inspect
a job, without going through the HTTP API or waiting for Celery beat.

Run from the repository root:
    python scripts/crawl_admin.py enqueue https://acme.test --brand brand-1 --workspace ws-1
    python scripts/crawl_admin.py tick
    python scripts/crawl_admin.py reap
    python scripts/crawl_admin.py status <run_id>
Or via Docker:
    docker compose exec celery_worker python /app/scripts/crawl_admin.py tick
"""

import sys
from pathlib import Path

# Add backend to path when running as script
backend_dir = Path(__file__).resolve().parent.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))

import argparse
import asyncio
import json
import uuid

from brandcrawl.config import get_settings
from brandcrawl.exceptions import InvalidCrawlRequest
from brandcrawl.models.base import Base, SessionLocal, engine
from brandcrawl.schemas.crawl_job import CrawlStatusResponse
from brandcrawl.services.enqueue import enqueue_crawl
from brandcrawl.services.job_store import CrawlJobStore
from brandcrawl.services.reaper import reap_stale_jobs
from brandcrawl.services.tick import run_tick

settings = get_settings()


def cmd_enqueue(args) -> int:
    db = SessionLocal()
    try:
        result = enqueue_crawl(CrawlJobStore(db, settings), args.brand, args.workspace, args.url)
    except InvalidCrawlRequest as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        db.close()

    verb = "Created" if result.created else "Already in flight:"
    print(f"{verb} run {result.job.id} ({result.job.status.value})")
    return 0


def cmd_tick(args) -> int:
    summary = asyncio.run(run_tick(SessionLocal, settings))
    print(summary.message)
    print(f"  lost={summary.lost} reaped={summary.reaped} requeued={summary.requeued}")
    for outcome in summary.outcomes:
        line = f"  {outcome.job_id}: {outcome.result.value} ({outcome.duration_ms} ms)"
        if outcome.error:
            line += f" - {outcome.error}"
        print(line)
    return 0


def cmd_reap(args) -> int:
    summary = reap_stale_jobs(SessionLocal, settings)
    print(
        f"Found {summary.found} stale jobs: {summary.requeued} requeued, "
        f"{summary.failed} failed, {summary.skipped} skipped"
    )
    return 0


def cmd_status(args) -> int:
    try:
        job_id = uuid.UUID(args.run_id)
    except ValueError:
        print(f"ERROR: {args.run_id} is not a run id")
        return 1

    db = SessionLocal()
    try:
        job = CrawlJobStore(db, settings).get(job_id)
        if not job:
            print(f"Run {job_id} not found")
            return 1
        payload = CrawlStatusResponse.from_job(job).model_dump(mode="json", by_alias=True)
        print(json.dumps(payload, indent=2))
        return 0
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Crawl queue maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    enqueue = sub.add_parser("enqueue", help="Queue a crawl for a brand website")
    enqueue.add_argument("url")
    enqueue.add_argument("--brand", required=True)
    enqueue.add_argument("--workspace", required=True)
    enqueue.set_defaults(func=cmd_enqueue)

    sub.add_parser("tick", help="Reap, claim and process one batch").set_defaults(func=cmd_tick)
    sub.add_parser("reap", help="Requeue or fail stale jobs").set_defaults(func=cmd_reap)

    status = sub.add_parser("status", help="Show a job as polling clients see it")
    status.add_argument("run_id")
    status.set_defaults(func=cmd_status)

    args = parser.parse_args()
    Base.metadata.create_all(bind=engine)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
