"""Celery application factory for Arena Reconciler.

Configures the broker, result backend, serialization and timezone.  All
configuration values are sourced from ``Settings`` so that no secrets or
environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A arena_reconciler.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler)::

    celery -A arena_reconciler.workers.celery_app beat --loglevel=info

Usage (within application code)::

    from arena_reconciler.workers.celery_app import celery_app

    result = celery_app.send_task(
        "arena_reconciler.workers.tasks.backfill_arenas",
        kwargs={"limit": 200, "dry_run": True},
    )
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_postrun, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Workers are started outside uvicorn, so load .env into os.environ first.
load_dotenv()

from arena_reconciler.config.settings import get_settings  # noqa: E402
from arena_reconciler.core.logging_config import configure_logging  # noqa: E402

settings = get_settings()
configure_logging(settings.log_level)

#: The global Celery application instance.
#: Import this object wherever tasks need to be sent or inspected.
celery_app = Celery(
    "arena_reconciler",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["arena_reconciler.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # Serialization: all task arguments and return values must be
    # JSON-serializable.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge only after completion; a crashed backfill is safe to rerun.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Result expiry: keep task results for 24 hours for status polling.
    result_expires=86_400,
    # A backfill of max_limit projects is bounded; these are a safety net.
    task_soft_time_limit=1_800,
    task_time_limit=3_600,
    beat_schedule_filename="celerybeat-schedule",
)

# Import and apply the Beat schedule after the app is configured.
from arena_reconciler.workers.beat_schedule import build_beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = build_beat_schedule(settings.backfill_schedule_enabled)


# ---------------------------------------------------------------------------
# Engine disposal on fork: prevents "attached to a different loop" errors
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _dispose_engines_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the SQLAlchemy engine after Celery forks a worker process.

    The async engine creates connection objects tied to the parent's event
    loop.  After ``fork()``, those connections cannot be reused because the
    child process has a different loop.
    """
    from arena_reconciler.core import database as _db  # noqa: PLC0415

    _db.async_engine.sync_engine.dispose(close=False)


# ---------------------------------------------------------------------------
# Engine disposal after each task: prevents cross-task event loop errors
# ---------------------------------------------------------------------------
@task_postrun.connect
def _dispose_async_engine_after_task(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the async engine's connection pool after each task completes.

    Every task body runs its coroutine with ``asyncio.run()``, which creates
    and then destroys an event loop.  asyncpg connections left in the pool
    are bound to that dead loop, so the next task must start with a clean
    pool.
    """
    try:
        from arena_reconciler.core import database as _db  # noqa: PLC0415

        _db.async_engine.sync_engine.dispose(close=False)
    except Exception as exc:  # noqa: BLE001
        _logger.debug("engine disposal after task failed: %s", exc)
