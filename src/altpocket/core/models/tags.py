"""SQLAlchemy ORM models for tags attached to ingestion jobs.

Tags are global (shared across accounts) and keyed by their normalised
name; ``job_tags`` links them to jobs.  Links are written only when a job
is first created; re-submitting an equivalent URL never changes its tags.
"""

from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from altpocket.core.models.base import Base


class Tag(Base):
    """A user-visible label.

    Attributes:
        id: UUID primary key.
        name: Display name (last written spelling).
        normalized_name: NFKC-lowercased key; unique.
    """

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    normalized_name: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)


class JobTag(Base):
    """Association between an ingestion job and a tag."""

    __tablename__ = "job_tags"

    job_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("ingestion_jobs.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (sa.Index("idx_job_tags_tag_id", "tag_id"),)
