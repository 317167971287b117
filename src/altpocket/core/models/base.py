"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- OwnedMixin: owner_id column scoping a row to one account
- utcnow(): timezone-aware "now" used for application-side timestamps

Column types are the generic ``Uuid`` / ``DateTime(timezone=True)`` so the
same metadata creates a native-UUID PostgreSQL schema in production and an
in-memory SQLite schema in unit tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base for all altpocket models."""

    type_annotation_map = {
        uuid.UUID: sa.Uuid(),
        datetime: sa.DateTime(timezone=True),
    }


class OwnedMixin:
    """Adds an owner_id column identifying the submitting account.

    The accounts table lives outside the ingestion schema, so there is no
    foreign key here.  Queries that serve a user must always filter by
    owner_id to keep one account's bookmarks invisible to another.
    """

    owner_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        nullable=False,
        index=True,
    )
