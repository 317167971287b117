"""Celery application factory for altpocket.

Configures the broker, result backend, serialization, task routing, and
timezone.  All configuration values are sourced from ``Settings`` so that
no secrets or environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A altpocket.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler that triggers fetch ticks)::

    celery -A altpocket.workers.celery_app beat --loglevel=info

Each worker process runs its ticks independently; concurrent ticks across
processes are safe because claims use ``FOR UPDATE SKIP LOCKED``.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_postrun, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env into os.environ before Settings is read so that the celery CLI
# picks up the same configuration as the scripts.
load_dotenv()

from altpocket.config.settings import get_settings  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "altpocket",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "altpocket.ingest.tasks",
    ],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge only after the task has completed.
    task_acks_late=True,
    # One tick at a time per worker process.
    worker_prefetch_multiplier=1,
    # Tick results are only interesting for a short while.
    result_expires=3_600,
    # A tick is bounded by batch size times the per-fetch deadline; these
    # limits only catch a wedged process.
    task_soft_time_limit=600,
    task_time_limit=900,
    task_routes={
        "altpocket.ingest.tasks.*": {"queue": "ingest"},
    },
    beat_schedule_filename="celerybeat-schedule",
)

# Import and apply the Beat schedule after the app is configured.
from altpocket.workers.beat_schedule import build_beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = build_beat_schedule(settings)


# ---------------------------------------------------------------------------
# Per-process setup: logging and engine disposal on fork
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _init_worker_process(**kwargs: object) -> None:  # noqa: ARG001
    """Configure logging and reset the engine pool in a forked worker.

    The async engine creates connection objects tied to the parent's event
    loop.  After ``fork()``, those connections cannot be reused because the
    child process has a different loop.  Disposing the engine forces fresh
    connections to be created in the child's own event loop when
    ``asyncio.run()`` is called.
    """
    from altpocket.core import database as _db  # noqa: PLC0415
    from altpocket.core.logging_config import configure_logging  # noqa: PLC0415

    configure_logging(settings.log_level)
    _db.async_engine.sync_engine.dispose(close=False)


# ---------------------------------------------------------------------------
# Engine disposal after each task: prevents cross-task event loop errors
# ---------------------------------------------------------------------------
@task_postrun.connect
def _dispose_async_engine_after_task(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the async engine's connection pool after each task completes.

    Prefork workers reuse the same process for many ticks.  Each tick calls
    ``asyncio.run()``, so asyncpg connections left in the pool are bound to
    a loop that no longer exists and would fail with ``RuntimeError: ...
    attached to a different loop`` on the next tick.
    """
    try:
        from altpocket.core import database as _db  # noqa: PLC0415

        _db.async_engine.sync_engine.dispose(close=False)
    except Exception as exc:  # noqa: BLE001
        _logger.warning("engine dispose after task failed: %s", exc)
