"""SQLAlchemy ORM models for ingestion jobs and their extracted content.

``IngestionJob`` is one submitted URL belonging to one account, together
with its fetch lifecycle.  ``ContentVariant`` holds the text variants
produced by the readability extractor once a job has succeeded.

Lifecycle::

    pending ──claim──▶ fetching ──▶ success
                           │
                           └──────▶ failed

``success`` and ``failed`` return to ``fetching`` only when a refetch has
been requested explicitly.  All transitions go through
:class:`altpocket.ingest.job_queue.JobQueue`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from altpocket.core.models.base import Base, OwnedMixin, utcnow


class JobStatus:
    """Allowed values of ``ingestion_jobs.status``."""

    PENDING = "pending"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILED = "failed"

    ALL: frozenset[str] = frozenset({PENDING, FETCHING, SUCCESS, FAILED})


class IngestionJob(OwnedMixin, Base):
    """A bookmarked URL and the state of fetching it.

    Attributes:
        id: UUID primary key.
        owner_id: Account that submitted the URL.
        url: URL exactly as submitted.
        canonical_url: Canonical form used for deduplication.
        canonical_hash: Hex SHA-256 of ``canonical_url``; unique per owner.
        status: Lifecycle state, see :class:`JobStatus`.
        refetch_requested: Set externally to re-admit a finished job.
        refetch_requested_at: When the latest refetch was requested.
        fetch_error: Classified failure reason; empty unless ``failed``.
        fetch_attempts: Number of times the job has been claimed.
        title: Page title from the latest successful fetch.
        excerpt: Up to 200 bytes of the latest extracted text.
        created_at: Submission timestamp; claim order is oldest first.
        last_attempt_at: When the job was last claimed.
        fetched_at: When the job last reached ``success``.
    """

    __tablename__ = "ingestion_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    canonical_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    canonical_hash: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default=JobStatus.PENDING,
        server_default=sa.text("'pending'"),
    )
    refetch_requested: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.false(),
    )
    refetch_requested_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    fetch_error: Mapped[str] = mapped_column(
        sa.Text,
        nullable=False,
        default="",
        server_default=sa.text("''"),
    )
    fetch_attempts: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        default=0,
        server_default=sa.text("0"),
    )

    # Denormalised for list views
    title: Mapped[str] = mapped_column(
        sa.Text,
        nullable=False,
        default="",
        server_default=sa.text("''"),
    )
    excerpt: Mapped[str] = mapped_column(
        sa.Text,
        nullable=False,
        default="",
        server_default=sa.text("''"),
    )

    # Timing
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    fetched_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "owner_id", "canonical_hash", name="uq_ingestion_jobs_owner_hash"
        ),
        sa.Index("idx_ingestion_jobs_status_created", "status", "created_at"),
        sa.CheckConstraint(
            "status IN ({})".format(
                ", ".join(f"'{value}'" for value in sorted(JobStatus.ALL))
            ),
            name="ck_ingestion_jobs_status",
        ),
    )


class ContentVariant(Base):
    """Extracted text of a successfully fetched job.

    One row per job, overwritten on every successful (re)fetch.

    Attributes:
        job_id: Primary key and FK to ``ingestion_jobs.id``.
        content_full: Article text, at most the configured full limit in bytes.
        content_search: Whitespace-normalised prefix of ``content_full`` for
            full-text search, at most the configured search limit in bytes.
        content_bytes: UTF-8 byte length of ``content_full``.
        updated_at: When the row was last written.
    """

    __tablename__ = "content_variants"

    job_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("ingestion_jobs.id", ondelete="CASCADE"),
        primary_key=True,
    )
    content_full: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    content_search: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    content_bytes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )
