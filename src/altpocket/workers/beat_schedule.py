"""Celery Beat periodic task schedule for altpocket.

Schedule overview:

+---------------------+------------------------------+-----------------------------+
| Task name           | Schedule                     | Purpose                     |
+=====================+==============================+=============================+
| fetch_pending_jobs  | Every ``worker_tick_seconds``| Claim eligible jobs, fetch  |
|                     | (default 60 s)               | and extract them, record    |
|                     |                              | outcomes.                   |
+---------------------+------------------------------+-----------------------------+

Stale ``fetching`` jobs are not reset on a schedule; that is an operator
action (``scripts/requeue_stale_jobs.py``).
"""

from __future__ import annotations

from datetime import timedelta

from altpocket.config.settings import Settings


def build_beat_schedule(settings: Settings) -> dict[str, dict]:  # type: ignore[type-arg]
    """Return the Beat schedule dict for ``celery_app.conf.beat_schedule``."""
    tick = settings.worker_tick_seconds
    return {
        # ------------------------------------------------------------------
        # Ingestion tick
        # ------------------------------------------------------------------
        "fetch_pending_jobs": {
            "task": "altpocket.ingest.tasks.fetch_pending_jobs",
            "schedule": timedelta(seconds=tick),
            "options": {
                "queue": "ingest",
                # A tick that has not started by the next one is redundant.
                "expires": tick,
            },
        },
    }
