"""Crawl job store — the only place job rows are written.

Every state transition is a single conditional UPDATE whose WHERE clause
carries the predicate the caller observed (status, claim token, heartbeat
age). A write that matches zero rows means another claimant, the reaper, or
a finalize got there first; callers treat that as "not mine any more" and
never retry the write. No in-process locks are used: claimants may be
separate processes sharing nothing but the database.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable
from urllib.parse import urlsplit

from sqlalchemy import and_, case, func, literal, null, or_, select, update
from sqlalchemy.orm import Session

from brandcrawl.config import Settings, get_settings
from brandcrawl.exceptions import DuplicateJobError, StaleTimeoutError
from brandcrawl.models.base import utcnow
from brandcrawl.models.crawl_job import CrawlErrorCode, CrawlJob, CrawlStatus
from brandcrawl.schemas.crawl_job import WorkerInfo

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000

IN_FLIGHT_STATUSES = (CrawlStatus.PENDING, CrawlStatus.PROCESSING)


@dataclass(frozen=True)
class Completed:
    result: dict[str, Any]


@dataclass(frozen=True)
class Failed:
    error_message: str
    error_code: str = CrawlErrorCode.CRAWL_ERROR


Outcome = Completed | Failed


@dataclass(frozen=True)
class RetryPolicy:
    """How the reaper treats a stale job. max_retries=0 fails it outright."""

    max_retries: int = 2

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


def normalize_url(url: str) -> str:
    """Dedup key: scheme://host/path, lower-cased, without query, fragment or trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return f"{parts.scheme}://{parts.hostname or ''}{path}".lower()


def _truncate(message: str) -> str:
    return message[:MAX_ERROR_MESSAGE_LENGTH]


class CrawlJobStore:
    """Conditional-write primitives over the crawl_jobs table.

    Each mutating method commits its own statement, so a heartbeat written by
    one worker is immediately visible to the reaper in another process.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, job_id: uuid.UUID) -> CrawlJob | None:
        return self.session.get(CrawlJob, job_id, populate_existing=True)

    def list_for_brand(self, brand_id: str, limit: int = 20) -> list[CrawlJob]:
        result = self.session.execute(
            select(CrawlJob)
            .where(CrawlJob.brand_id == brand_id)
            .order_by(CrawlJob.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def find_in_flight(self, brand_id: str, url: str) -> CrawlJob | None:
        """Most recent pending/processing job for (brand, url) created inside the cooldown window."""
        cutoff = self.clock() - timedelta(seconds=self.settings.enqueue_cooldown_seconds)
        result = self.session.execute(
            select(CrawlJob)
            .where(
                CrawlJob.brand_id == brand_id,
                CrawlJob.normalized_url == normalize_url(url),
                CrawlJob.status.in_(IN_FLIGHT_STATUSES),
                CrawlJob.created_at >= cutoff,
            )
            .order_by(CrawlJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def list_stale(self, stale_threshold: int | None = None) -> list[CrawlJob]:
        """Processing jobs whose heartbeat is older than the threshold. Snapshot only."""
        cutoff = self._stale_cutoff(stale_threshold)
        result = self.session.execute(
            select(CrawlJob)
            .where(
                CrawlJob.status == CrawlStatus.PROCESSING,
                CrawlJob.updated_at < cutoff,
            )
            .order_by(CrawlJob.updated_at.asc())
        )
        return list(result.scalars().all())

    def count_by_status(self) -> dict[str, int]:
        rows = self.session.execute(
            select(CrawlJob.status, func.count(CrawlJob.id)).group_by(CrawlJob.status)
        ).all()
        counts = {status.value: 0 for status in CrawlStatus}
        for status, count in rows:
            counts[status.value] = count
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, brand_id: str, workspace_id: str, url: str) -> CrawlJob:
        """Create a pending job, or raise DuplicateJobError if one is already in flight."""
        existing = self.find_in_flight(brand_id, url)
        if existing is not None:
            raise DuplicateJobError(existing)

        now = self.clock()
        job = CrawlJob(
            id=uuid.uuid4(),
            brand_id=brand_id,
            workspace_id=workspace_id,
            url=url,
            normalized_url=normalize_url(url),
            status=CrawlStatus.PENDING,
            progress=0,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        with self._write():
            self.session.add(job)
        logger.info(f"CRAWL_JOB_CREATED run_id={job.id} brand_id={brand_id} url={url}")
        return job

    def claim_batch(
        self,
        worker: WorkerInfo,
        max_jobs: int | None = None,
        stale_threshold: int | None = None,
    ) -> list[CrawlJob]:
        """Claim up to max_jobs pending (or stale, retryable) jobs, oldest first.

        Candidates lost to a concurrent claimant are skipped without error.
        """
        if max_jobs is None:
            max_jobs = self.settings.max_claim_batch
        cutoff = self._stale_cutoff(stale_threshold)

        if max_jobs <= 0:
            return []

        # Commit ends the read transaction before the per-candidate writes.
        with self._write():
            candidates = self.session.execute(
                select(CrawlJob.id, CrawlJob.status)
                .where(or_(CrawlJob.status == CrawlStatus.PENDING, self._stealable(cutoff)))
                .order_by(CrawlJob.created_at.asc())
                .limit(max_jobs)
            ).all()

        claimed = []
        for job_id, observed_status in candidates:
            job = self._try_claim(job_id, observed_status, worker, cutoff)
            if job is not None:
                claimed.append(job)
        return claimed

    def heartbeat(self, job_id: uuid.UUID, claim_token: str, progress: int) -> bool:
        """Record progress and liveness. False means the caller no longer owns the job."""
        progress = max(0, min(100, int(progress)))
        with self._write():
            result = self.session.execute(
                update(CrawlJob)
                .where(
                    CrawlJob.id == job_id,
                    CrawlJob.status == CrawlStatus.PROCESSING,
                    CrawlJob.claim_token == claim_token,
                )
                .values(
                    progress=case((CrawlJob.progress > progress, CrawlJob.progress), else_=progress),
                    updated_at=self.clock(),
                )
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            logger.warning(f"Heartbeat write matched no row for run_id={job_id} progress={progress}; ownership lost")
            return False
        logger.debug(f"CRAWL_JOB_HEARTBEAT run_id={job_id} progress={progress}")
        return True

    def finalize(
        self,
        job_id: uuid.UUID,
        claim_token: str,
        outcome: Outcome,
        worker_info: dict[str, Any] | None = None,
    ) -> bool:
        """Move an owned processing job to its terminal state. False means someone else already did.

        worker_info, when given, replaces the claim-time worker info (the processor
        adds run timings to it).
        """
        now = self.clock()
        values: dict[str, Any] = {
            "finished_at": now,
            "updated_at": now,
            "claim_token": None,
        }
        if isinstance(outcome, Completed):
            values.update(status=CrawlStatus.COMPLETED, progress=100, result=outcome.result)
        else:
            values.update(
                status=CrawlStatus.FAILED,
                error_message=_truncate(outcome.error_message),
                error_code=outcome.error_code,
            )
        if worker_info is not None:
            values["worker_info"] = worker_info

        with self._write():
            result = self.session.execute(
                update(CrawlJob)
                .where(
                    CrawlJob.id == job_id,
                    CrawlJob.status == CrawlStatus.PROCESSING,
                    CrawlJob.claim_token == claim_token,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            logger.warning(f"Finalize skipped for run_id={job_id}: job was reaped or finalized elsewhere")
            return False
        return True

    def mark_stale(
        self,
        job_id: uuid.UUID,
        stale_threshold: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> CrawlStatus | None:
        """Requeue or fail a stale job in one statement.

        Returns the job's new status, or None when the job is no longer
        processing-and-stale (a heartbeat landed, or it was finalized).
        """
        threshold = self.settings.stale_threshold_seconds if stale_threshold is None else stale_threshold
        policy = retry_policy or RetryPolicy(self.settings.max_retries)
        now = self.clock()
        cutoff = now - timedelta(seconds=threshold)

        columns = CrawlJob.__table__.c
        requeue = CrawlJob.retry_count < policy.max_retries
        message = str(StaleTimeoutError(threshold))

        with self._write():
            result = self.session.execute(
                update(CrawlJob)
                .where(
                    CrawlJob.id == job_id,
                    CrawlJob.status == CrawlStatus.PROCESSING,
                    CrawlJob.updated_at < cutoff,
                )
                .values(
                    status=case(
                        (requeue, literal(CrawlStatus.PENDING, columns.status.type)),
                        else_=literal(CrawlStatus.FAILED, columns.status.type),
                    ),
                    retry_count=case((requeue, CrawlJob.retry_count + 1), else_=CrawlJob.retry_count),
                    progress=case((requeue, 0), else_=CrawlJob.progress),
                    finished_at=case((requeue, null()), else_=literal(now, columns.finished_at.type)),
                    error_message=case((requeue, null()), else_=literal(message, columns.error_message.type)),
                    error_code=case(
                        (requeue, null()),
                        else_=literal(CrawlErrorCode.STALE_JOB_TIMEOUT, columns.error_code.type),
                    ),
                    claim_token=None,
                    updated_at=now,
                )
                .returning(CrawlJob.status)
                .execution_options(synchronize_session=False)
            )
            new_status = result.scalar_one_or_none()

        if new_status is None:
            logger.info(f"Stale mark skipped for run_id={job_id}: heartbeat resumed or job finished")
            return None
        logger.warning(f"CRAWL_JOB_REAPED run_id={job_id} new_status={new_status.value} threshold={threshold}s")
        return new_status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _write(self):
        """Commit the enclosed statements, or roll back so the session stays usable."""
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _stale_cutoff(self, stale_threshold: int | None) -> datetime:
        threshold = self.settings.stale_threshold_seconds if stale_threshold is None else stale_threshold
        return self.clock() - timedelta(seconds=threshold)

    def _stealable(self, cutoff: datetime):
        return and_(
            CrawlJob.status == CrawlStatus.PROCESSING,
            CrawlJob.updated_at < cutoff,
            CrawlJob.retry_count < self.settings.max_retries,
        )

    def _try_claim(
        self,
        job_id: uuid.UUID,
        observed_status: CrawlStatus,
        worker: WorkerInfo,
        cutoff: datetime,
    ) -> CrawlJob | None:
        now = self.clock()
        conditions = [CrawlJob.id == job_id, CrawlJob.status == observed_status]
        values: dict[str, Any] = {
            "status": CrawlStatus.PROCESSING,
            "started_at": now,
            "updated_at": now,
            "progress": 0,
            "claim_token": uuid.uuid4().hex,
            "worker_info": {**worker.model_dump(), "claimed_at": now.isoformat()},
        }
        if observed_status == CrawlStatus.PROCESSING:
            # Taking over a silent worker's job counts as a retry.
            conditions.append(self._stealable(cutoff))
            values["retry_count"] = CrawlJob.retry_count + 1

        with self._write():
            claimed_id = self.session.execute(
                update(CrawlJob)
                .where(*conditions)
                .values(**values)
                .returning(CrawlJob.id)
                .execution_options(synchronize_session=False)
            ).scalar_one_or_none()

        if claimed_id is None:
            logger.debug(f"Claim conflict on run_id={job_id}: taken by another worker")
            return None

        job = self.get(claimed_id)
        logger.info(
            f"CRAWL_JOB_CLAIMED run_id={job_id} worker_id={worker.worker_id} "
            f"from={observed_status.value} retry_count={job.retry_count}"
        )
        return job
