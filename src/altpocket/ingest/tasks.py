"""Celery task and async fetch cycle for the ingestion worker.

``fetch_pending_jobs``
    Runs one worker tick: claim a batch of eligible jobs, fetch and extract
    each one with bounded concurrency, and record every outcome.  Celery Beat
    triggers it every ``worker_tick_seconds``.

Task naming convention::

    altpocket.ingest.tasks.<action>

Retry policy:
    The tick is stateful (claimed jobs are already ``fetching``), so
    ``max_retries=0``.  Per-job errors are handled inside the cycle and never
    abort sibling jobs.  A job whose outcome could not be recorded stays
    ``fetching`` until ``scripts/requeue_stale_jobs.py`` resets it.

Database access:
    The cycle runs inside ``asyncio.run()`` using the async session factory;
    ``celery_app`` disposes the engine pool after every task.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from altpocket.config.settings import Settings, get_settings
from altpocket.core.exceptions import IngestionError, StoreError
from altpocket.core.logging_config import tick_id_var
from altpocket.ingest.http_fetcher import Fetcher, build_http_client
from altpocket.ingest.job_queue import ClaimedJob, JobQueue
from altpocket.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

_UNCLASSIFIED_REASON = "fetch_failed"


# ---------------------------------------------------------------------------
# Cycle summary
# ---------------------------------------------------------------------------


@dataclass
class CycleResult:
    """Counts for one worker tick."""

    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    unrecorded: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "claimed": self.claimed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "unrecorded": self.unrecorded,
        }


# ---------------------------------------------------------------------------
# Per-job processing
# ---------------------------------------------------------------------------


async def _process_job(
    queue: JobQueue,
    fetcher: Fetcher,
    job: ClaimedJob,
    semaphore: asyncio.Semaphore,
    fetch_timeout: float,
    result: CycleResult,
) -> None:
    """Fetch one claimed job and record its outcome.

    Never raises: every failure is classified, recorded, and logged.
    """
    job_id = str(job.id)
    async with semaphore:
        try:
            content = await fetcher.fetch(job.url, fetch_timeout)
        except IngestionError as exc:
            reason = exc.reason
            logger.debug("worker_fetch_error_detail", job_id=job_id, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            reason = _UNCLASSIFIED_REASON
            logger.warning(
                "worker_fetch_unexpected_error",
                job_id=job_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            try:
                await queue.record_success(
                    job.id,
                    title=content.title,
                    excerpt=content.excerpt,
                    content_full=content.content_full,
                    content_search=content.content_search,
                    content_bytes=content.content_bytes,
                )
            except StoreError as exc:
                result.unrecorded += 1
                logger.error("worker_db_update_failed", job_id=job_id, error=str(exc))
                return
            result.succeeded += 1
            if job.refetch_requested:
                logger.info("refetch_consumed", job_id=job_id)
            logger.info(
                "worker_fetch_success",
                job_id=job_id,
                attempt=job.attempt,
                content_bytes=content.content_bytes,
            )
            return

        try:
            await queue.record_failure(job.id, reason)
        except StoreError as exc:
            result.unrecorded += 1
            logger.error("worker_db_update_failed", job_id=job_id, error=str(exc))
            return
        result.failed += 1
        logger.info(
            "worker_fetch_failed",
            job_id=job_id,
            reason=reason,
            attempt=job.attempt,
        )


# ---------------------------------------------------------------------------
# One tick
# ---------------------------------------------------------------------------


async def run_fetch_cycle(
    queue: JobQueue,
    fetcher: Fetcher,
    *,
    batch_size: int,
    concurrency: int,
    fetch_timeout: float,
) -> CycleResult:
    """Claim up to *batch_size* jobs and process them concurrently.

    At most *concurrency* fetches are in flight at once.  Each fetch gets
    its own *fetch_timeout* deadline, so a slow page cancels only itself.
    Completion order within the batch is unspecified.

    Args:
        queue: Job queue to claim from and record outcomes to.
        fetcher: Fetch + extract pipeline.
        batch_size: Maximum number of jobs claimed this tick.
        concurrency: Maximum number of simultaneous fetches.
        fetch_timeout: Per-job deadline in seconds.

    Returns:
        A :class:`CycleResult`.  ``claimed == 0`` when nothing was eligible.

    Raises:
        StoreError: The claim itself failed.  No job changed state.
    """
    tick_id_var.set(uuid.uuid4().hex)
    result = CycleResult()

    jobs = await queue.claim(batch_size)
    if not jobs:
        return result
    result.claimed = len(jobs)

    semaphore = asyncio.Semaphore(concurrency)
    await asyncio.gather(
        *(
            _process_job(queue, fetcher, job, semaphore, fetch_timeout, result)
            for job in jobs
        )
    )

    logger.info("worker_cycle_complete", **result.as_dict())
    return result


async def _run_tick(settings: Settings) -> CycleResult:
    """Build the tick's collaborators from *settings* and run one cycle."""
    from altpocket.core.database import AsyncSessionLocal  # noqa: PLC0415

    queue = JobQueue(AsyncSessionLocal)
    async with build_http_client(
        timeout=settings.fetch_timeout_seconds,
        max_redirects=settings.fetch_max_redirects,
    ) as client:
        fetcher = Fetcher(
            client,
            max_bytes=settings.fetch_max_bytes,
            content_full_limit=settings.content_full_limit_bytes,
            content_search_limit=settings.content_search_limit_bytes,
        )
        return await run_fetch_cycle(
            queue,
            fetcher,
            batch_size=settings.claim_batch_size,
            concurrency=settings.fetch_concurrency,
            fetch_timeout=settings.fetch_timeout_seconds,
        )


# ---------------------------------------------------------------------------
# Celery tasks
# ---------------------------------------------------------------------------


@celery_app.task(
    name="altpocket.ingest.tasks.fetch_pending_jobs",
    bind=False,
    acks_late=True,
    max_retries=0,
)
def fetch_pending_jobs() -> dict[str, Any]:
    """Run one ingestion tick.

    A failed claim is logged as ``worker_claim_failed`` and ends the tick;
    the next Beat trigger tries again.

    Returns:
        Dict with the tick's ``status`` and outcome counts.
    """
    settings = get_settings()
    try:
        result = asyncio.run(_run_tick(settings))
    except StoreError as exc:
        logger.error("worker_claim_failed", error=str(exc))
        return {"status": "claim_failed", **CycleResult().as_dict()}

    return {"status": "completed", **result.as_dict()}
