#!/usr/bin/env python
"""Return ingestion jobs abandoned in ``fetching`` to ``pending``.

A worker that crashes between claiming a batch and recording outcomes
leaves its jobs in ``fetching``; claims skip such jobs, so they would
otherwise never be retried.  This script resets every job whose last
attempt started longer ago than the cutoff.

Only run it when no live worker could still be processing those jobs: a
cutoff shorter than a worker tick can hand a job to two workers.

Usage:
    # Reset jobs stuck for longer than STALE_FETCH_MINUTES (default 30)
    python scripts/requeue_stale_jobs.py

    # Custom cutoff, report only
    python scripts/requeue_stale_jobs.py --minutes 120 --dry-run

Environment:
    Requires DATABASE_URL environment variable to be set.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

from sqlalchemy import func, select

# Add project root to path so we can import settings
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from altpocket.config.settings import get_settings
from altpocket.core.logging_config import configure_logging
from altpocket.core.models import IngestionJob, JobStatus, utcnow


async def _count_stale(session_factory, cutoff) -> int:  # type: ignore[no-untyped-def]
    async with session_factory() as session:
        count = await session.scalar(
            select(func.count())
            .select_from(IngestionJob)
            .where(
                IngestionJob.status == JobStatus.FETCHING,
                IngestionJob.last_attempt_at < cutoff,
            )
        )
    return count or 0


async def _run(minutes: int, dry_run: bool) -> int:
    from altpocket.core.database import AsyncSessionLocal, async_engine  # noqa: PLC0415
    from altpocket.ingest.job_queue import JobQueue  # noqa: PLC0415

    cutoff = utcnow() - timedelta(minutes=minutes)
    try:
        if dry_run:
            count = await _count_stale(AsyncSessionLocal, cutoff)
            print(f"{count} job(s) in 'fetching' since before {cutoff:%Y-%m-%d %H:%M:%S} UTC")
            return count
        count = await JobQueue(AsyncSessionLocal).requeue_stale(cutoff)
        print(f"Requeued {count} stale job(s) (cutoff {cutoff:%Y-%m-%d %H:%M:%S} UTC)")
        return count
    finally:
        await async_engine.dispose()


def main() -> None:
    """Main entry point."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Reset ingestion jobs stuck in 'fetching' back to 'pending'"
    )
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.stale_fetch_minutes,
        help=f"Age cutoff in minutes (default: {settings.stale_fetch_minutes})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many jobs would be reset",
    )
    args = parser.parse_args()

    if args.minutes <= 0:
        print("ERROR: --minutes must be positive", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level)
    asyncio.run(_run(args.minutes, args.dry_run))


if __name__ == "__main__":
    main()
