"""Celery Beat periodic task schedule for Arena Reconciler.

This module is imported by ``celery_app.py`` and applied via
``celery_app.conf.beat_schedule``.  Both entries are disabled unless
``BACKFILL_SCHEDULE_ENABLED`` is set: backfills are normally run by an
operator, and the nightly pass is a safety net.

Schedule overview:

+---------------------------+---------------------+-----------------------------+
| Task name                 | Schedule            | Purpose                     |
+===========================+=====================+=============================+
| classify_legacy_arenas    | 02:30 UTC           | Label uncontested unknown-   |
|                           |                     | kind arenas as legacy_ms.    |
+---------------------------+---------------------+-----------------------------+
| backfill_arenas           | 03:00 UTC           | Reconcile eligible projects, |
|                           |                     | one page per chained task.   |
+---------------------------+---------------------+-----------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab


def build_beat_schedule(enabled: bool) -> dict[str, dict]:  # type: ignore[type-arg]
    """Return the Beat schedule, empty when *enabled* is false."""
    if not enabled:
        return {}
    return {
        # ------------------------------------------------------------------
        # Legacy classification runs first so the backfill sees labelled rows
        # ------------------------------------------------------------------
        "classify_legacy_arenas": {
            "task": "arena_reconciler.workers.tasks.classify_legacy_arenas",
            "schedule": crontab(hour=2, minute=30),
            "options": {
                "queue": "celery",
                "expires": 3_600,
            },
        },
        # ------------------------------------------------------------------
        # Nightly backfill: walks every page with the default batch size
        # ------------------------------------------------------------------
        "backfill_arenas": {
            "task": "arena_reconciler.workers.tasks.backfill_arenas",
            "schedule": crontab(hour=3, minute=0),
            "kwargs": {"follow_pages": True},
            "options": {
                "queue": "celery",
                "expires": 3_600,  # discard if not started within 1 hour
            },
        },
    }
