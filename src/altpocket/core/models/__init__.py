"""SQLAlchemy ORM models for altpocket.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do `from altpocket.core.models import IngestionJob`
   without knowing which sub-module a model lives in.
"""

from __future__ import annotations

from altpocket.core.models.base import Base, OwnedMixin, utcnow
from altpocket.core.models.ingestion import ContentVariant, IngestionJob, JobStatus
from altpocket.core.models.tags import JobTag, Tag

__all__ = [
    # Base
    "Base",
    "OwnedMixin",
    "utcnow",
    # Ingestion
    "IngestionJob",
    "ContentVariant",
    "JobStatus",
    # Tags
    "Tag",
    "JobTag",
]
