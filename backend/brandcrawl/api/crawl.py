"""Crawl job API endpoints."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session, sessionmaker

from brandcrawl.config import Settings, get_settings
from brandcrawl.dependencies.cron import get_pipeline, verify_cron_secret
from brandcrawl.models.base import get_db, get_session_factory
from brandcrawl.pipelines.base import BaseBrandPipeline
from brandcrawl.schemas.crawl_job import (
    CrawlStartRequest,
    CrawlStartResponse,
    CrawlStatusResponse,
    ProcessJobsResponse,
)
from brandcrawl.services.enqueue import enqueue_crawl
from brandcrawl.services.job_store import CrawlJobStore
from brandcrawl.services.tick import run_tick


router = APIRouter(prefix="/crawl", tags=["crawl"])


@router.post("/start", response_model=CrawlStartResponse, status_code=status.HTTP_201_CREATED)
def start_crawl(
    payload: CrawlStartRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Enqueue a crawl. Returns the in-flight job with 200 if one already exists."""
    store = CrawlJobStore(db, settings)
    result = enqueue_crawl(store, payload.brand_id, payload.workspace_id, payload.url)
    if not result.created:
        response.status_code = status.HTTP_200_OK

    job = result.job
    return CrawlStartResponse(
        run_id=job.id,
        status=job.status,
        poll_url=f"/api/crawl/status/{job.id}",
    )


@router.get("/status/{run_id}", response_model=CrawlStatusResponse)
def get_crawl_status(
    run_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Poll a single crawl job."""
    try:
        job_id = UUID(run_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Crawl job not found")

    job = CrawlJobStore(db, settings).get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Crawl job not found")
    return CrawlStatusResponse.from_job(job)


@router.get("/runs", response_model=list[CrawlStatusResponse])
def list_crawl_runs(
    brand_id: str = Query(..., min_length=1, max_length=255, description="Brand to list runs for"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """List recent crawl jobs for a brand, newest first."""
    jobs = CrawlJobStore(db, settings).list_for_brand(brand_id, limit=limit)
    return [CrawlStatusResponse.from_job(job) for job in jobs]


@router.post(
    "/process-jobs",
    response_model=ProcessJobsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def process_jobs(
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
    pipeline: BaseBrandPipeline = Depends(get_pipeline),
):
    """Run one processing tick: reap stale jobs, claim a batch, process it."""
    summary = await run_tick(session_factory, settings, pipeline)
    return ProcessJobsResponse(
        success=True,
        message=summary.message,
        timestamp=datetime.now(timezone.utc),
        claimed=summary.claimed,
        completed=summary.completed,
        failed=summary.failed,
        lost=summary.lost,
        reaped=summary.reaped,
        requeued=summary.requeued,
    )
