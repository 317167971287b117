"""Bookmark item service: the request-layer view of ingestion jobs.

Submission and refetch requests go through :class:`JobQueue` so that the
queue stays the only writer of job lifecycle state.  Read paths
(:meth:`ItemService.get_item`, :meth:`ItemService.list_items`, tag listings)
and deletion take the caller's ``AsyncSession`` so that transaction
management remains with the calling layer.

Usage::

    from altpocket.core.database import AsyncSessionLocal
    from altpocket.core.item_service import ItemService
    from altpocket.ingest.job_queue import JobQueue

    service = ItemService(JobQueue(AsyncSessionLocal))
    job_id, created = await service.create_item(owner_id, url, ["python"])
    async with AsyncSessionLocal() as db:
        rows, pagination = await service.list_items(db, owner_id, q="asyncio")
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import delete, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from altpocket.core.exceptions import JobNotFoundError
from altpocket.core.models import ContentVariant, IngestionJob, JobTag, Tag
from altpocket.core.tags import normalize_tag, normalize_tags
from altpocket.ingest.canonical import canonicalize_url
from altpocket.ingest.job_queue import JobQueue

logger = structlog.get_logger(__name__)

DEFAULT_PER_PAGE: int = 30
SUGGEST_LIMIT: int = 20


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TagInfo:
    """A tag as shown to users, optionally with a per-owner usage count."""

    id: uuid.UUID
    name: str
    normalized_name: str
    count: int = 0


@dataclass
class ItemRow:
    """One entry of an item listing."""

    id: uuid.UUID
    url: str
    canonical_url: str
    title: str
    excerpt: str
    status: str
    fetch_error: str
    refetch_requested: bool
    created_at: datetime
    fetched_at: datetime | None = None
    tags: list[TagInfo] = field(default_factory=list)


@dataclass
class ItemDetail(ItemRow):
    """An item together with its full extracted text."""

    content_full: str = ""


@dataclass(frozen=True)
class Pagination:
    """Page metadata returned alongside a listing."""

    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.per_page else 0


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ItemService:
    """Composes canonicalization, tag normalisation and the job queue.

    Args:
        queue: Job queue used for every lifecycle write.
    """

    def __init__(self, queue: JobQueue) -> None:
        self._queue = queue

    # ------------------------------------------------------------------
    # Writes through the queue
    # ------------------------------------------------------------------

    async def create_item(
        self,
        owner_id: uuid.UUID,
        url: str,
        tags: Iterable[str] = (),
    ) -> tuple[uuid.UUID, bool]:
        """Submit *url* for ingestion on behalf of *owner_id*.

        Returns:
            ``(job_id, created)``.  Re-submitting a URL that canonicalizes to
            one the owner already saved returns that job with
            ``created=False``.

        Raises:
            InvalidURLError: The URL cannot be canonicalized.
            StoreError: The job store failed.
        """
        canonical = canonicalize_url(url)
        tag_names = normalize_tags(tags)
        job_id, created = await self._queue.create(
            owner_id,
            url.strip(),
            canonical.url,
            canonical.hash,
            tag_names,
        )
        if created:
            logger.info(
                "items.create",
                job_id=str(job_id),
                owner_id=str(owner_id),
                canonical_url=canonical.url,
                tags=len(tag_names),
            )
        else:
            logger.info(
                "duplicate_noop",
                job_id=str(job_id),
                owner_id=str(owner_id),
                canonical_hash=canonical.hash,
            )
        return job_id, created

    async def request_refetch(self, owner_id: uuid.UUID, job_id: uuid.UUID) -> None:
        """Ask for *job_id* to be fetched again on a later worker tick.

        Raises:
            JobNotFoundError: The job does not exist or belongs to someone else.
        """
        await self._queue.request_refetch(owner_id, job_id)
        logger.info("items.refetch_requested", job_id=str(job_id), owner_id=str(owner_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_item(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        job_id: uuid.UUID,
    ) -> ItemDetail | None:
        """Return the owner's item with its full text and tags, or ``None``."""
        result = await db.execute(
            select(IngestionJob, ContentVariant.content_full)
            .outerjoin(ContentVariant, ContentVariant.job_id == IngestionJob.id)
            .where(IngestionJob.id == job_id, IngestionJob.owner_id == owner_id)
        )
        row = result.first()
        if row is None:
            return None
        job, content_full = row
        tags = await self._tags_for(db, [job.id])
        return ItemDetail(
            **_row_fields(job),
            tags=tags.get(job.id, []),
            content_full=content_full or "",
        )

    async def list_items(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        q: str = "",
        tag: str = "",
        sort: str = "",
    ) -> tuple[list[ItemRow], Pagination]:
        """Return one page of the owner's items, newest first.

        Args:
            db: Active async database session.
            owner_id: Account whose items are listed.
            page: 1-based page number.  Values below 1 are treated as 1.
            per_page: Page size.  Non-positive values fall back to 30.
            q: Case-insensitive substring matched against title, excerpt,
                searchable content, canonical URL and tag names.
            tag: Only items carrying this tag (normalised before matching).
            sort: ``"relevance"`` orders matches by trigram similarity to *q*
                on PostgreSQL.  Any other value, or no *q*, sorts newest
                first.

        Returns:
            ``(rows, pagination)``.
        """
        if page < 1:
            page = 1
        if per_page <= 0:
            per_page = DEFAULT_PER_PAGE
        q = q.strip()

        matching = (
            select(IngestionJob.id)
            .outerjoin(ContentVariant, ContentVariant.job_id == IngestionJob.id)
            .outerjoin(JobTag, JobTag.job_id == IngestionJob.id)
            .outerjoin(Tag, Tag.id == JobTag.tag_id)
            .where(IngestionJob.owner_id == owner_id)
        )
        if q:
            pattern = f"%{q}%"
            matching = matching.where(
                or_(
                    IngestionJob.title.ilike(pattern),
                    IngestionJob.excerpt.ilike(pattern),
                    ContentVariant.content_search.ilike(pattern),
                    IngestionJob.canonical_url.ilike(pattern),
                    Tag.normalized_name.ilike(pattern),
                )
            )
        if tag:
            matching = matching.where(Tag.normalized_name == normalize_tag(tag))
        matching_ids = matching.distinct().subquery()

        total = await db.scalar(select(func.count()).select_from(matching_ids)) or 0

        stmt = (
            select(IngestionJob)
            .where(IngestionJob.id.in_(select(matching_ids.c.id)))
            .limit(per_page)
            .offset((page - 1) * per_page)
        )
        use_relevance = (
            sort == "relevance" and bool(q) and db.get_bind().dialect.name == "postgresql"
        )
        if use_relevance:
            stmt = stmt.outerjoin(
                ContentVariant, ContentVariant.job_id == IngestionJob.id
            ).order_by(_relevance_score(q).desc(), IngestionJob.created_at.desc())
        else:
            stmt = stmt.order_by(IngestionJob.created_at.desc())

        jobs = list((await db.scalars(stmt)).all())
        tags = await self._tags_for(db, [job.id for job in jobs])
        rows = [ItemRow(**_row_fields(job), tags=tags.get(job.id, [])) for job in jobs]
        return rows, Pagination(page=page, per_page=per_page, total=total)

    async def list_tags(self, db: AsyncSession, owner_id: uuid.UUID) -> list[TagInfo]:
        """Return the tags on the owner's items with per-owner usage counts."""
        result = await db.execute(
            select(Tag.id, Tag.name, Tag.normalized_name, func.count(JobTag.job_id))
            .join(JobTag, JobTag.tag_id == Tag.id)
            .join(IngestionJob, IngestionJob.id == JobTag.job_id)
            .where(IngestionJob.owner_id == owner_id)
            .group_by(Tag.id, Tag.name, Tag.normalized_name)
            .order_by(Tag.normalized_name)
        )
        return [
            TagInfo(id=tag_id, name=name, normalized_name=norm, count=count)
            for tag_id, name, norm, count in result.all()
        ]

    async def suggest_tags(self, db: AsyncSession, q: str) -> list[TagInfo]:
        """Return up to 20 tags whose normalised name contains *q*."""
        result = await db.execute(
            select(Tag.id, Tag.name, Tag.normalized_name)
            .where(Tag.normalized_name.ilike(f"%{normalize_tag(q)}%"))
            .order_by(Tag.normalized_name)
            .limit(SUGGEST_LIMIT)
        )
        return [
            TagInfo(id=tag_id, name=name, normalized_name=norm)
            for tag_id, name, norm in result.all()
        ]

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_item(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        job_id: uuid.UUID,
    ) -> None:
        """Delete the owner's item, its content, its tag links and orphan tags.

        The operation is committed inside this method.

        Raises:
            JobNotFoundError: No such job belongs to the owner.  Nothing is
                deleted.
        """
        owned = exists().where(
            IngestionJob.id == job_id, IngestionJob.owner_id == owner_id
        )
        no_sync = {"synchronize_session": False}
        await db.execute(
            delete(ContentVariant).where(ContentVariant.job_id == job_id, owned),
            execution_options=no_sync,
        )
        await db.execute(
            delete(JobTag).where(JobTag.job_id == job_id, owned),
            execution_options=no_sync,
        )
        result = await db.execute(
            delete(IngestionJob).where(
                IngestionJob.id == job_id, IngestionJob.owner_id == owner_id
            ),
            execution_options=no_sync,
        )
        if not result.rowcount:
            await db.rollback()
            raise JobNotFoundError(str(job_id))

        orphans = await db.execute(
            delete(Tag).where(~exists().where(JobTag.tag_id == Tag.id).correlate(Tag)),
            execution_options=no_sync,
        )
        await db.commit()

        logger.info(
            "items.delete",
            job_id=str(job_id),
            owner_id=str(owner_id),
            orphan_tags_removed=orphans.rowcount or 0,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _tags_for(
        self,
        db: AsyncSession,
        job_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[TagInfo]]:
        if not job_ids:
            return {}
        result = await db.execute(
            select(JobTag.job_id, Tag.id, Tag.name, Tag.normalized_name)
            .join(Tag, Tag.id == JobTag.tag_id)
            .where(JobTag.job_id.in_(job_ids))
            .order_by(Tag.normalized_name)
        )
        by_job: dict[uuid.UUID, list[TagInfo]] = {}
        for job_id, tag_id, name, norm in result.all():
            by_job.setdefault(job_id, []).append(
                TagInfo(id=tag_id, name=name, normalized_name=norm)
            )
        return by_job


def _row_fields(job: IngestionJob) -> dict[str, object]:
    return {
        "id": job.id,
        "url": job.url,
        "canonical_url": job.canonical_url,
        "title": job.title,
        "excerpt": job.excerpt,
        "status": job.status,
        "fetch_error": job.fetch_error,
        "refetch_requested": job.refetch_requested,
        "created_at": job.created_at,
        "fetched_at": job.fetched_at,
    }


def _relevance_score(q: str):  # type: ignore[no-untyped-def]
    """pg_trgm similarity of *q* to the searchable fields of a job."""
    tag_score = (
        select(func.coalesce(func.max(func.similarity(Tag.normalized_name, q)), 0.0))
        .join(JobTag, JobTag.tag_id == Tag.id)
        .where(JobTag.job_id == IngestionJob.id)
        .scalar_subquery()
    )
    return (
        func.similarity(IngestionJob.title, q)
        + func.similarity(IngestionJob.excerpt, q)
        + func.coalesce(func.similarity(ContentVariant.content_search, q), 0.0)
        + func.similarity(IngestionJob.canonical_url, q)
        + tag_score
    )
