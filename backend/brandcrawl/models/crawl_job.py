"""One row per "crawl this brand's website" request."""

import enum

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Enum, Index, Integer, String, Text

from brandcrawl.models.base import Base, UUIDMixin, utcnow


class CrawlStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlStatus.COMPLETED, CrawlStatus.FAILED)


class CrawlErrorCode:
    CRAWL_ERROR = "CRAWL_ERROR"
    STALE_JOB_TIMEOUT = "STALE_JOB_TIMEOUT"
    WORKER_INTERRUPTED = "WORKER_INTERRUPTED"


crawl_status_type = Enum(
    CrawlStatus,
    name="crawl_status",
    native_enum=False,
    create_constraint=True,
    length=20,
    values_callable=lambda statuses: [s.value for s in statuses],
)


class CrawlJob(UUIDMixin, Base):
    __tablename__ = "crawl_jobs"

    # Tenant scoping
    brand_id = Column(String(255), nullable=False, index=True)
    workspace_id = Column(String(255), nullable=False)

    # Target
    url = Column(Text, nullable=False)
    normalized_url = Column(String(2048), nullable=False)

    # State
    status = Column(crawl_status_type, nullable=False, default=CrawlStatus.PENDING)
    progress = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    error_code = Column(String(50))
    result = Column(JSON)

    # Timestamps; updated_at doubles as the heartbeat
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Claim bookkeeping (never exposed to clients)
    worker_info = Column(JSON)
    claim_token = Column(String(64))
    retry_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_crawl_jobs_status_updated", "status", "updated_at"),
        Index("idx_crawl_jobs_status_created", "status", "created_at"),
        Index("idx_crawl_jobs_inflight", "brand_id", "normalized_url", "status"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_crawl_jobs_progress_range"),
    )

    def __repr__(self) -> str:
        return f"<CrawlJob {self.id} {self.status.value if self.status else None} {self.url}>"
