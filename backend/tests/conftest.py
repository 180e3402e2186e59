"""Pytest configuration and fixtures."""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Generator

# Point the app at a throwaway SQLite file before brandcrawl builds its engine.
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), f'brandcrawl_test_{os.getpid()}.db')}",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from brandcrawl.config import Settings, get_settings  # noqa: E402
from brandcrawl.dependencies.cron import get_pipeline  # noqa: E402
from brandcrawl.main import app  # noqa: E402
from brandcrawl.models.base import Base, SessionLocal, engine, get_db, get_session_factory  # noqa: E402
from brandcrawl.pipelines.base import BaseBrandPipeline  # noqa: E402
from brandcrawl.schemas.crawl_job import ProcessingJob, WorkerInfo, to_job_state  # noqa: E402
from brandcrawl.services.job_store import CrawlJobStore  # noqa: E402

CRON_SECRET = "test-cron-secret"


class FakeClock:
    """Manually advanced UTC clock for staleness tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class StaticPipeline(BaseBrandPipeline):
    """Reports a few progress steps and returns a canned brand kit."""

    name = "static"

    def __init__(self, steps=(20, 50, 95), brand_kit=None, settings=None):
        super().__init__(settings)
        self.steps = steps
        self.brand_kit = brand_kit or {"brandName": "Acme", "colors": {"primary": "#112233"}}
        self.seen: list = []

    async def extract(self, job, progress):
        self.seen.append(job.id)
        for step in self.steps:
            await progress(step, f"step {step}")
        return dict(self.brand_kit)


class FailingPipeline(BaseBrandPipeline):
    """Fails after the first progress report."""

    name = "failing"

    def __init__(self, message="Failed to fetch https://acme.test: connection refused", settings=None):
        super().__init__(settings)
        self.message = message

    async def extract(self, job, progress):
        await progress(20, "Crawling website...")
        raise RuntimeError(self.message)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        cron_secret=CRON_SECRET,
        stale_threshold_seconds=600,
        max_claim_batch=5,
        max_retries=2,
        enqueue_cooldown_seconds=300,
    )


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db):
    return SessionLocal


@pytest.fixture
def store(db: Session, settings: Settings, clock: FakeClock) -> CrawlJobStore:
    return CrawlJobStore(db, settings, clock)


@pytest.fixture
def worker() -> WorkerInfo:
    return WorkerInfo.current()


@pytest.fixture
def make_processing_job(store: CrawlJobStore, worker: WorkerInfo):
    """Insert a job and claim it, returning its ProcessingJob state."""

    def _make(url: str = "https://acme.test", brand_id: str = "brand-1") -> ProcessingJob:
        job = store.insert(brand_id, "ws-1", url)
        claimed = [j for j in store.claim_batch(worker, max_jobs=10) if j.id == job.id]
        assert claimed, "job was not claimed"
        return to_job_state(claimed[0])

    return _make


@pytest.fixture
def pipeline() -> StaticPipeline:
    return StaticPipeline()


@pytest.fixture(scope="function")
def client(db, settings, pipeline) -> Generator[TestClient, None, None]:
    """Create a test client with database, settings and pipeline overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: SessionLocal
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
