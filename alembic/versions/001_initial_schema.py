"""Initial schema: ingestion jobs, content variants, and tags.

Creates the ``pg_trgm`` extension (used for relevance-sorted search) and
the four tables of the ingestion pipeline.  ``ingestion_jobs.owner_id``
carries no foreign key; account storage lives outside this schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the ingestion tables and their indexes."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    op.create_table(
        "ingestion_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("canonical_url", sa.Text(), nullable=False),
        sa.Column("canonical_hash", sa.String(64), nullable=False),
        # Lifecycle
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column(
            "refetch_requested",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("refetch_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fetch_error", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("fetch_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        # Denormalised for list views
        sa.Column("title", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("excerpt", sa.Text(), nullable=False, server_default=sa.text("''")),
        # Timing
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "owner_id", "canonical_hash", name="uq_ingestion_jobs_owner_hash"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'fetching', 'success', 'failed')",
            name="ck_ingestion_jobs_status",
        ),
    )
    op.create_index("ix_ingestion_jobs_owner_id", "ingestion_jobs", ["owner_id"])
    op.create_index(
        "idx_ingestion_jobs_status_created", "ingestion_jobs", ["status", "created_at"]
    )
    # Claim scans pending rows and refetch requests oldest first.
    op.create_index(
        "idx_ingestion_jobs_claimable",
        "ingestion_jobs",
        ["created_at"],
        postgresql_where=sa.text("status = 'pending' OR refetch_requested"),
    )

    op.create_table(
        "content_variants",
        sa.Column(
            "job_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingestion_jobs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("content_full", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("content_search", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("content_bytes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index(
        "idx_content_variants_search_trgm",
        "content_variants",
        ["content_search"],
        postgresql_using="gin",
        postgresql_ops={"content_search": "gin_trgm_ops"},
    )

    op.create_table(
        "tags",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("normalized_name", sa.Text(), nullable=False, unique=True),
    )

    op.create_table(
        "job_tags",
        sa.Column(
            "job_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingestion_jobs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("idx_job_tags_tag_id", "job_tags", ["tag_id"])


def downgrade() -> None:
    """Drop the ingestion tables."""
    op.drop_index("idx_job_tags_tag_id", table_name="job_tags")
    op.drop_table("job_tags")
    op.drop_table("tags")
    op.drop_index("idx_content_variants_search_trgm", table_name="content_variants")
    op.drop_table("content_variants")
    op.drop_index("idx_ingestion_jobs_claimable", table_name="ingestion_jobs")
    op.drop_index("idx_ingestion_jobs_status_created", table_name="ingestion_jobs")
    op.drop_index("ix_ingestion_jobs_owner_id", table_name="ingestion_jobs")
    op.drop_table("ingestion_jobs")
