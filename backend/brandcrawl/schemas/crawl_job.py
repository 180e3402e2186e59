"""Pydantic schemas for crawl jobs: typed per-status projections and API payloads."""

from __future__ import annotations

import os
import socket
import uuid
from datetime import datetime
from typing import Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from brandcrawl.models.crawl_job import CrawlJob, CrawlStatus


class WorkerInfo(BaseModel):
    """Identity of a claimant, stored on the row for debugging."""

    worker_id: str
    pid: int
    hostname: str

    @classmethod
    def current(cls) -> "WorkerInfo":
        pid = os.getpid()
        hostname = socket.gethostname()
        return cls(worker_id=f"worker-{hostname}-{pid}-{uuid.uuid4().hex[:8]}", pid=pid, hostname=hostname)


# ---------------------------------------------------------------------------
# Per-status job states. Only CompletedJob carries a result.
# ---------------------------------------------------------------------------


class _JobStateBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    brand_id: str
    workspace_id: str
    url: str
    progress: int = 0
    created_at: datetime
    updated_at: datetime
    retry_count: int = 0


class PendingJob(_JobStateBase):
    status: Literal[CrawlStatus.PENDING] = CrawlStatus.PENDING


class ProcessingJob(_JobStateBase):
    status: Literal[CrawlStatus.PROCESSING] = CrawlStatus.PROCESSING
    started_at: datetime
    worker_info: dict[str, Any] | None = None
    claim_token: str


class CompletedJob(_JobStateBase):
    status: Literal[CrawlStatus.COMPLETED] = CrawlStatus.COMPLETED
    started_at: datetime | None = None
    finished_at: datetime
    result: dict[str, Any]


class FailedJob(_JobStateBase):
    status: Literal[CrawlStatus.FAILED] = CrawlStatus.FAILED
    started_at: datetime | None = None
    finished_at: datetime
    error_message: str
    error_code: str | None = None


CrawlJobState = Union[PendingJob, ProcessingJob, CompletedJob, FailedJob]

_STATE_MODELS: dict[CrawlStatus, type[_JobStateBase]] = {
    CrawlStatus.PENDING: PendingJob,
    CrawlStatus.PROCESSING: ProcessingJob,
    CrawlStatus.COMPLETED: CompletedJob,
    CrawlStatus.FAILED: FailedJob,
}


def to_job_state(job: CrawlJob) -> CrawlJobState:
    """Project a row onto the state model matching its status."""
    return _STATE_MODELS[CrawlStatus(job.status)].model_validate(job)


# ---------------------------------------------------------------------------
# API payloads (camelCase on the wire)
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CrawlStartRequest(_CamelModel):
    """Body of POST /api/crawl/start; accepts brandId or brand_id. Field checks happen in the enqueue service."""

    url: str | None = None
    brand_id: str | None = None
    workspace_id: str | None = None


class CrawlStartResponse(_CamelModel):
    run_id: UUID
    status: CrawlStatus
    poll_url: str


class CrawlStatusResponse(_CamelModel):
    """Read-only projection for polling clients."""

    id: UUID
    status: CrawlStatus
    progress: int
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None
    error_code: str | None = None
    result: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: CrawlJob) -> "CrawlStatusResponse":
        state = to_job_state(job)
        payload: dict[str, Any] = {
            "id": state.id,
            "status": state.status,
            "progress": state.progress,
            "started_at": getattr(state, "started_at", None),
            "finished_at": getattr(state, "finished_at", None),
        }
        if isinstance(state, CompletedJob):
            payload["result"] = state.result
        elif isinstance(state, FailedJob):
            payload["error_message"] = state.error_message
            payload["error_code"] = state.error_code
        return cls(**payload)


class ProcessJobsResponse(_CamelModel):
    """Summary of one scheduler tick."""

    success: bool
    message: str
    timestamp: datetime
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    lost: int = 0
    reaped: int = 0
    requeued: int = 0
