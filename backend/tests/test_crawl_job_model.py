"""Tests for the crawl job model, state projections and settings."""
import pytest
from pydantic import ValidationError

from brandcrawl.config import Settings
from brandcrawl.models.crawl_job import CrawlStatus
from brandcrawl.schemas.crawl_job import (
    CompletedJob,
    CrawlStatusResponse,
    FailedJob,
    PendingJob,
    ProcessingJob,
    WorkerInfo,
    to_job_state,
)
from brandcrawl.services.job_store import Completed, Failed


def test_terminal_statuses() -> None:
    assert CrawlStatus.COMPLETED.is_terminal
    assert CrawlStatus.FAILED.is_terminal
    assert not CrawlStatus.PENDING.is_terminal
    assert not CrawlStatus.PROCESSING.is_terminal


def test_projection_follows_status(store, make_processing_job) -> None:
    """Each status projects onto its own state model; only completed jobs carry a result."""
    pending = store.insert("brand-1", "ws-1", "https://pending.test")
    assert isinstance(to_job_state(pending), PendingJob)

    running = make_processing_job("https://running.test")
    assert isinstance(running, ProcessingJob)
    assert running.claim_token

    store.finalize(running.id, running.claim_token, Completed({"brandName": "Acme"}))
    completed = to_job_state(store.get(running.id))
    assert isinstance(completed, CompletedJob)
    assert completed.result == {"brandName": "Acme"}
    assert not hasattr(completed, "error_message")

    failing = make_processing_job("https://failing.test")
    store.finalize(failing.id, failing.claim_token, Failed("boom"))
    failed = to_job_state(store.get(failing.id))
    assert isinstance(failed, FailedJob)
    assert failed.error_message == "boom"
    assert not hasattr(failed, "result")


def test_job_states_are_immutable(make_processing_job) -> None:
    job = make_processing_job()
    with pytest.raises(ValidationError):
        job.progress = 50


def test_status_response_hides_claim_bookkeeping(store, make_processing_job) -> None:
    job = make_processing_job()
    payload = CrawlStatusResponse.from_job(store.get(job.id)).model_dump(by_alias=True)

    assert payload["status"] == CrawlStatus.PROCESSING
    assert payload["startedAt"] is not None
    assert payload["result"] is None
    assert "claimToken" not in payload
    assert "workerInfo" not in payload


def test_worker_info_identity() -> None:
    info = WorkerInfo.current()
    assert info.worker_id.startswith(f"worker-{info.hostname}-{info.pid}-")
    assert WorkerInfo.current().worker_id != info.worker_id


def test_heartbeat_interval_is_capped_by_threshold() -> None:
    assert Settings(stale_threshold_seconds=600).effective_heartbeat_interval == 200
    assert Settings(stale_threshold_seconds=600, heartbeat_interval_seconds=30).effective_heartbeat_interval == 30
    assert Settings(stale_threshold_seconds=600, heartbeat_interval_seconds=900).effective_heartbeat_interval == 200
