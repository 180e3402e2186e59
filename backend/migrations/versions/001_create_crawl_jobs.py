"""Crawl job queue — crawl_jobs table and its claim/reaper/dedup indexes.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "crawl_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", sa.String(255), nullable=False, index=True),
        sa.Column("workspace_id", sa.String(255), nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("normalized_url", sa.String(2048), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "processing", "completed", "failed",
                name="crawl_status", native_enum=False, create_constraint=True, length=20,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("progress", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text),
        sa.Column("error_code", sa.String(50)),
        sa.Column("result", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("worker_info", postgresql.JSONB),
        sa.Column("claim_token", sa.String(64)),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_crawl_jobs_progress_range"),
    )
    # Claim scan (pending, oldest first) and reaper scan (processing, stale heartbeat)
    op.create_index("idx_crawl_jobs_status_created", "crawl_jobs", ["status", "created_at"])
    op.create_index("idx_crawl_jobs_status_updated", "crawl_jobs", ["status", "updated_at"])
    # In-flight dedup lookup
    op.create_index("idx_crawl_jobs_inflight", "crawl_jobs", ["brand_id", "normalized_url", "status"])


def downgrade() -> None:
    op.drop_index("idx_crawl_jobs_inflight", table_name="crawl_jobs")
    op.drop_index("idx_crawl_jobs_status_updated", table_name="crawl_jobs")
    op.drop_index("idx_crawl_jobs_status_created", table_name="crawl_jobs")
    op.drop_table("crawl_jobs")
