"""Persistent ingestion job queue with atomic, non-overlapping claims.

:class:`JobQueue` owns every state transition of an ``ingestion_jobs`` row.
Worker code receives immutable :class:`ClaimedJob` snapshots and reports
outcomes back through :meth:`JobQueue.record_success` and
:meth:`JobQueue.record_failure`; it never touches rows directly.

Claim semantics:
    :meth:`JobQueue.claim` selects eligible rows oldest-first with
    ``SELECT ... FOR UPDATE SKIP LOCKED`` and flips them to ``fetching`` in
    the same transaction.  A row locked by another in-flight claim is
    invisible to this one instead of blocking it, so concurrent workers (in
    one process or many) partition the eligible set with no overlap.

Refetch requests during an attempt:
    A refetch requested while a job is ``fetching`` is kept: the outcome
    methods clear ``refetch_requested`` only when the request predates the
    current attempt (``refetch_requested_at <= last_attempt_at``), so the
    job is re-admitted by the next claim whatever this attempt's outcome.

Error policy:
    SQLAlchemy errors are re-raised as :class:`StoreError`.  Nothing is
    retried here; the worker loop decides what a failed store call means.

Every method opens and commits its own transaction from the session factory
passed to the constructor.  ``ON CONFLICT`` statements are built with the
PostgreSQL dialect in production and the SQLite dialect in unit tests.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from altpocket.core.exceptions import JobNotFoundError, StoreError
from altpocket.core.models import (
    ContentVariant,
    IngestionJob,
    JobStatus,
    JobTag,
    Tag,
    utcnow,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClaimedJob:
    """Snapshot of a job handed to a worker by :meth:`JobQueue.claim`.

    Attributes:
        id: Job UUID.
        owner_id: Owning account UUID.
        url: URL as submitted (this is what gets fetched).
        refetch_requested: Whether this attempt was triggered by a refetch
            request rather than a first fetch.
        attempt: Value of ``fetch_attempts`` after this claim.
    """

    id: uuid.UUID
    owner_id: uuid.UUID
    url: str
    refetch_requested: bool
    attempt: int


def _insert_for(session: AsyncSession, table):  # type: ignore[no-untyped-def]
    """Return a dialect-specific INSERT supporting ``on_conflict_*``."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def _refetch_after_outcome():  # type: ignore[no-untyped-def]
    """SQL expression for ``refetch_requested`` once an attempt finishes."""
    return case(
        (
            and_(
                IngestionJob.refetch_requested.is_(True),
                IngestionJob.refetch_requested_at.is_not(None),
                IngestionJob.last_attempt_at.is_not(None),
                IngestionJob.refetch_requested_at > IngestionJob.last_attempt_at,
            ),
            True,
        ),
        else_=False,
    )


class JobQueue:
    """Claim manager over the ``ingestion_jobs`` table.

    Args:
        session_factory: Factory producing ``AsyncSession`` objects, normally
            :data:`altpocket.core.database.AsyncSessionLocal`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        owner_id: uuid.UUID,
        url: str,
        canonical_url: str,
        canonical_hash: str,
        tags: Iterable[str] = (),
    ) -> tuple[uuid.UUID, bool]:
        """Create a pending job, or resolve to the owner's existing equivalent.

        Args:
            owner_id: Submitting account.
            url: URL as submitted.
            canonical_url: Output of canonicalization.
            canonical_hash: Dedup key; unique per owner.
            tags: Normalised, de-duplicated tag names.  Attached only when
                the job is newly created.

        Returns:
            ``(job_id, created)``.  ``created`` is ``False`` when a job with
            the same ``(owner_id, canonical_hash)`` already existed; that
            job's status and tags are left untouched.

        Raises:
            StoreError: On any database failure.
        """
        new_id = uuid.uuid4()
        tag_names = list(tags)
        try:
            async with self._session_factory() as session, session.begin():
                stmt = (
                    _insert_for(session, IngestionJob)
                    .values(
                        id=new_id,
                        owner_id=owner_id,
                        url=url,
                        canonical_url=canonical_url,
                        canonical_hash=canonical_hash,
                        status=JobStatus.PENDING,
                        refetch_requested=False,
                        created_at=utcnow(),
                    )
                    .on_conflict_do_nothing(index_elements=["owner_id", "canonical_hash"])
                )
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    existing = await session.scalar(
                        select(IngestionJob.id).where(
                            IngestionJob.owner_id == owner_id,
                            IngestionJob.canonical_hash == canonical_hash,
                        )
                    )
                    if existing is None:
                        raise StoreError(
                            "Conflicting job vanished before it could be read"
                        )
                    return existing, False

                for name in tag_names:
                    tag_id = await self._upsert_tag(session, name)
                    await session.execute(
                        _insert_for(session, JobTag)
                        .values(job_id=new_id, tag_id=tag_id)
                        .on_conflict_do_nothing()
                    )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create ingestion job: {exc}") from exc

        return new_id, True

    async def _upsert_tag(self, session: AsyncSession, name: str) -> uuid.UUID:
        stmt = _insert_for(session, Tag).values(
            id=uuid.uuid4(), name=name, normalized_name=name
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["normalized_name"],
            set_={"name": stmt.excluded.name},
        )
        await session.execute(stmt)
        tag_id = await session.scalar(select(Tag.id).where(Tag.normalized_name == name))
        if tag_id is None:
            raise StoreError(f"Tag {name!r} vanished after upsert")
        return tag_id

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    async def claim(self, limit: int) -> list[ClaimedJob]:
        """Atomically claim up to *limit* eligible jobs, oldest first.

        Eligible means ``pending``, or any non-``fetching`` job with a
        refetch request.  Claimed jobs move to ``fetching`` with their
        attempt counter incremented and ``last_attempt_at`` stamped.

        Args:
            limit: Maximum number of jobs to claim.  ``<= 0`` claims nothing.

        Returns:
            Snapshots of the claimed jobs in claim order.

        Raises:
            StoreError: On any database failure; nothing is claimed.
        """
        if limit <= 0:
            return []

        eligible = and_(
            IngestionJob.status != JobStatus.FETCHING,
            or_(
                IngestionJob.status == JobStatus.PENDING,
                IngestionJob.refetch_requested.is_(True),
            ),
        )
        stmt = (
            select(
                IngestionJob.id,
                IngestionJob.owner_id,
                IngestionJob.url,
                IngestionJob.refetch_requested,
                IngestionJob.fetch_attempts,
            )
            .where(eligible)
            .order_by(IngestionJob.created_at.asc(), IngestionJob.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        try:
            async with self._session_factory() as session, session.begin():
                rows = (await session.execute(stmt)).all()
                if not rows:
                    return []
                await session.execute(
                    update(IngestionJob)
                    .where(IngestionJob.id.in_([row.id for row in rows]))
                    .values(
                        status=JobStatus.FETCHING,
                        fetch_attempts=IngestionJob.fetch_attempts + 1,
                        last_attempt_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to claim ingestion jobs: {exc}") from exc

        return [
            ClaimedJob(
                id=row.id,
                owner_id=row.owner_id,
                url=row.url,
                refetch_requested=bool(row.refetch_requested),
                attempt=row.fetch_attempts + 1,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    async def record_success(
        self,
        job_id: uuid.UUID,
        title: str,
        excerpt: str,
        content_full: str,
        content_search: str,
        content_bytes: int,
    ) -> None:
        """Mark a job ``success`` and upsert its content variant.

        The job update and the content upsert commit together.

        Raises:
            StoreError: On any database failure; the job keeps its state.
        """
        now = utcnow()
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    update(IngestionJob)
                    .where(IngestionJob.id == job_id)
                    .values(
                        status=JobStatus.SUCCESS,
                        fetch_error="",
                        title=title,
                        excerpt=excerpt,
                        fetched_at=now,
                        refetch_requested=_refetch_after_outcome(),
                    )
                    .execution_options(synchronize_session=False)
                )
                stmt = _insert_for(session, ContentVariant).values(
                    job_id=job_id,
                    content_full=content_full,
                    content_search=content_search,
                    content_bytes=content_bytes,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["job_id"],
                    set_={
                        "content_full": stmt.excluded.content_full,
                        "content_search": stmt.excluded.content_search,
                        "content_bytes": stmt.excluded.content_bytes,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Failed to record success: {exc}", job_id=str(job_id)
            ) from exc

    async def record_failure(self, job_id: uuid.UUID, reason: str) -> None:
        """Mark a job ``failed`` with a classified *reason*.

        Raises:
            StoreError: On any database failure; the job keeps its state.
        """
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    update(IngestionJob)
                    .where(IngestionJob.id == job_id)
                    .values(
                        status=JobStatus.FAILED,
                        fetch_error=reason,
                        refetch_requested=_refetch_after_outcome(),
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Failed to record failure: {exc}", job_id=str(job_id)
            ) from exc

    # ------------------------------------------------------------------
    # Re-admission
    # ------------------------------------------------------------------

    async def request_refetch(self, owner_id: uuid.UUID, job_id: uuid.UUID) -> None:
        """Flag one of the owner's jobs for re-ingestion.

        Raises:
            JobNotFoundError: No job with that id belongs to the owner.
            StoreError: On any database failure.
        """
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(IngestionJob)
                    .where(
                        IngestionJob.id == job_id,
                        IngestionJob.owner_id == owner_id,
                    )
                    .values(refetch_requested=True, refetch_requested_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Failed to request refetch: {exc}", job_id=str(job_id)
            ) from exc
        if result.rowcount == 0:
            raise JobNotFoundError(str(job_id))

    async def requeue_stale(self, older_than: datetime) -> int:
        """Reset jobs stuck in ``fetching`` since before *older_than*.

        Operator recovery for workers that crashed between claiming and
        recording an outcome.  The worker loop never calls this.

        Returns:
            Number of jobs returned to ``pending``.

        Raises:
            StoreError: On any database failure.
        """
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(IngestionJob)
                    .where(
                        IngestionJob.status == JobStatus.FETCHING,
                        IngestionJob.last_attempt_at < older_than,
                    )
                    .values(status=JobStatus.PENDING)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to requeue stale jobs: {exc}") from exc
        logger.info("requeue_stale", requeued=result.rowcount, cutoff=older_than.isoformat())
        return result.rowcount
