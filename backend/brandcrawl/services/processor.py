"""Turns claimed crawl jobs into finished ones.

The processor never leaves a job it still owns in `processing`: the finalize
write sits in a `finally` block, so pipeline errors become `failed` jobs and
even a cancelled or interrupted run records a terminal state before the
interruption propagates. The reaper only covers process death.
"""

import asyncio
import enum
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from brandcrawl.config import Settings, get_settings
from brandcrawl.exceptions import LeaseLostError, PipelineExecutionError
from brandcrawl.models.base import utcnow
from brandcrawl.models.crawl_job import CrawlErrorCode
from brandcrawl.pipelines.base import BaseBrandPipeline
from brandcrawl.schemas.crawl_job import ProcessingJob
from brandcrawl.services.job_store import Completed, CrawlJobStore, Failed, Outcome

logger = logging.getLogger(__name__)

# Pipeline progress is capped below 100; only a completed finalize reports 100.
MAX_PIPELINE_PROGRESS = 99


class JobResult(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    LOST = "lost"                      # ownership lost mid-run; row left to its new owner
    FINALIZE_SKIPPED = "finalize_skipped"  # finished, but the row had already been reaped
    ERRORED = "errored"                # infrastructure error; reaper will recover the row


@dataclass
class JobOutcome:
    job_id: uuid.UUID
    result: JobResult
    error: str | None = None
    duration_ms: int = 0


async def _in_thread(fn: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking store call in a worker thread.

    A cancelled caller still waits for the call to return before the
    cancellation propagates, so the job's session is never used by two
    threads at once.
    """
    task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        raise


class Heartbeat:
    """Progress callback handed to the pipeline; every call is a liveness write.

    Holds the claim token, keeps progress monotonic, and raises LeaseLostError
    once a write matches no row. Writes are serialized through a lock because
    the pipeline and the keep-alive task share one session.
    """

    def __init__(self, store: CrawlJobStore, job: ProcessingJob):
        self.store = store
        self.job_id = job.id
        self.claim_token = job.claim_token
        self.progress = job.progress
        self.lost = False
        self.lock = asyncio.Lock()

    async def __call__(self, progress: int, message: str | None = None) -> None:
        self.progress = max(self.progress, min(int(progress), MAX_PIPELINE_PROGRESS))
        try:
            await self.beat()
        except SQLAlchemyError as e:
            # The keep-alive retries; a missed progress write is not a crawl failure.
            logger.warning(f"Progress write failed for run_id={self.job_id}: {e}")
        if message:
            logger.info(f"CRAWL_JOB_PROGRESS run_id={self.job_id} progress={self.progress} message={message}")

    async def beat(self) -> None:
        async with self.lock:
            if self.lost:
                raise LeaseLostError(f"Run {self.job_id} is no longer owned by this worker")
            if not await _in_thread(self.store.heartbeat, self.job_id, self.claim_token, self.progress):
                self.lost = True
                raise LeaseLostError(f"Run {self.job_id} is no longer owned by this worker")


class CrawlJobProcessor:
    def __init__(
        self,
        session_factory: sessionmaker,
        pipeline: BaseBrandPipeline,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        heartbeat_interval: float | None = None,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.settings = settings or get_settings()
        self.clock = clock
        if heartbeat_interval is None:
            heartbeat_interval = self.settings.effective_heartbeat_interval
        self.heartbeat_interval = heartbeat_interval

    async def process_batch(self, jobs: list[ProcessingJob]) -> list[JobOutcome]:
        """Run claimed jobs concurrently; one job's failure never affects its siblings."""
        results = await asyncio.gather(*(self.process_job(job) for job in jobs), return_exceptions=True)

        outcomes = []
        for job, result in zip(jobs, results):
            if isinstance(result, BaseException):
                logger.error(f"Processing run_id={job.id} aborted with {type(result).__name__}: {result}")
                outcomes.append(JobOutcome(job.id, JobResult.ERRORED, error=str(result)))
            else:
                outcomes.append(result)
        return outcomes

    async def process_job(self, job: ProcessingJob) -> JobOutcome:
        started = time.monotonic()
        with self.session_factory() as session:
            store = CrawlJobStore(session, self.settings, self.clock)
            heartbeat = Heartbeat(store, job)
            outcome: Outcome | None = None
            lost = False

            logger.info(f"CRAWL_JOB_PROCESS_BEGIN run_id={job.id} brand_id={job.brand_id} url={job.url}")
            try:
                brand_kit = await self._run_pipeline(job, heartbeat)
                outcome = Completed(brand_kit)
            except LeaseLostError as e:
                lost = True
                logger.warning(f"CRAWL_JOB_LEASE_LOST run_id={job.id}: {e}; abandoning run")
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.error(f"CRAWL_JOB_FAILED run_id={job.id} url={job.url}: {message}")
                outcome = Failed(message, CrawlErrorCode.CRAWL_ERROR)
            finally:
                finalized = False
                duration_ms = int((time.monotonic() - started) * 1000)
                if not lost:
                    if outcome is None:
                        outcome = Failed("Worker interrupted before the crawl finished", CrawlErrorCode.WORKER_INTERRUPTED)
                    finalized, outcome = await self._finalize(store, heartbeat, job, outcome, duration_ms)

        if lost:
            return JobOutcome(job.id, JobResult.LOST, duration_ms=duration_ms)
        if not finalized:
            return JobOutcome(job.id, JobResult.FINALIZE_SKIPPED, duration_ms=duration_ms)
        if isinstance(outcome, Completed):
            logger.info(f"CRAWL_JOB_COMPLETED run_id={job.id} duration_ms={duration_ms}")
            return JobOutcome(job.id, JobResult.COMPLETED, duration_ms=duration_ms)
        return JobOutcome(job.id, JobResult.FAILED, error=outcome.error_message, duration_ms=duration_ms)

    async def _finalize(
        self,
        store: CrawlJobStore,
        heartbeat: Heartbeat,
        job: ProcessingJob,
        outcome: Outcome,
        duration_ms: int,
    ) -> tuple[bool, Outcome]:
        """Write the terminal state. A brand kit the database rejects is recorded as a failure."""
        pages = outcome.result.get("pagesCrawled", 0) if isinstance(outcome, Completed) else 0
        worker_info = {
            **(job.worker_info or {}),
            "runtime_info": {"duration_ms": duration_ms, "pages_crawled": pages},
        }
        async with heartbeat.lock:
            try:
                finalized = await _in_thread(store.finalize, job.id, job.claim_token, outcome, worker_info)
            except SQLAlchemyError as e:
                if not isinstance(outcome, Completed):
                    raise
                logger.error(f"CRAWL_JOB_FINALIZE_FAILED run_id={job.id}: {e}; recording failure instead")
                outcome = Failed(f"Could not store brand kit: {e}", CrawlErrorCode.CRAWL_ERROR)
                worker_info["runtime_info"]["pages_crawled"] = 0
                finalized = await _in_thread(store.finalize, job.id, job.claim_token, outcome, worker_info)
        return finalized, outcome

    async def _run_pipeline(self, job: ProcessingJob, heartbeat: Heartbeat) -> dict[str, Any]:
        pipeline_task = asyncio.create_task(self.pipeline.run(job, heartbeat))
        keep_alive = asyncio.create_task(self._keep_alive(heartbeat, pipeline_task))
        try:
            brand_kit = await pipeline_task
        except asyncio.CancelledError:
            if heartbeat.lost:
                raise LeaseLostError(f"Run {job.id} was reclaimed while the pipeline was running")
            raise
        finally:
            keep_alive.cancel()
            await asyncio.gather(keep_alive, return_exceptions=True)

        if heartbeat.lost:
            raise LeaseLostError(f"Run {job.id} was reclaimed while the pipeline was running")
        if not isinstance(brand_kit, dict):
            raise PipelineExecutionError(
                f"Pipeline '{self.pipeline.name}' returned {type(brand_kit).__name__} instead of a brand kit"
            )
        try:
            json.dumps(brand_kit)
        except (TypeError, ValueError) as e:
            raise PipelineExecutionError(f"Pipeline '{self.pipeline.name}' returned a brand kit that is not JSON: {e}")
        return brand_kit

    async def _keep_alive(self, heartbeat: Heartbeat, pipeline_task: asyncio.Task) -> None:
        """Re-send the last progress while a long pipeline stage runs without reporting."""
        while not pipeline_task.done():
            await asyncio.sleep(self.heartbeat_interval)
            if pipeline_task.done():
                return
            try:
                await heartbeat.beat()
            except LeaseLostError:
                logger.warning(f"Keep-alive lost ownership of run_id={heartbeat.job_id}; cancelling pipeline")
                pipeline_task.cancel()
                return
            except SQLAlchemyError as e:
                logger.warning(f"Keep-alive write failed for run_id={heartbeat.job_id}: {e}; retrying next interval")
