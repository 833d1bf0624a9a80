"""Celery tasks for Arena Reconciler.

- ``backfill_arenas``: runs one backfill pass (optionally a dry run) and
  returns the summary.
- ``classify_legacy_arenas``: labels uncontested unknown-kind arenas as
  ``legacy_ms`` and reports ambiguous projects.

Both are synchronous Celery tasks that bridge to the async services via
``asyncio.run()``.  The async bodies live in ``workers._task_helpers``.

Error handling policy: each task catches all exceptions at the outermost
level, logs them at ERROR level, and returns an ``{"error": ...}`` payload
instead of re-raising.  A failed batch is not retried automatically;
per-project failures are already isolated inside the summary, and the next
invocation picks the remaining projects up again.

Task names must match the references in ``workers/beat_schedule.py``::

    arena_reconciler.workers.tasks.backfill_arenas
    arena_reconciler.workers.tasks.classify_legacy_arenas
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import structlog

from arena_reconciler.workers._task_helpers import (
    run_backfill,
    run_legacy_classification,
)
from arena_reconciler.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)


def _record_task_metrics(task_name: str, status: str, started: float) -> None:
    try:
        from arena_reconciler.api.metrics import (  # noqa: PLC0415
            celery_task_duration_seconds,
            celery_tasks_total,
        )

        celery_tasks_total.labels(task_name=task_name, status=status).inc()
        celery_task_duration_seconds.labels(task_name=task_name).observe(
            time.perf_counter() - started
        )
    except Exception as _metrics_exc:  # noqa: BLE001
        _stdlib_logger.debug("%s: metrics recording failed: %s", task_name, _metrics_exc)


# ---------------------------------------------------------------------------
# Task 1: backfill_arenas
# ---------------------------------------------------------------------------


@celery_app.task(name="arena_reconciler.workers.tasks.backfill_arenas")
def backfill_arenas(
    limit: Optional[int] = None,
    dry_run: bool = False,
    approved_by: Optional[str] = None,
    after: Optional[str] = None,
    follow_pages: bool = False,
) -> dict[str, Any]:
    """Reconcile the next batch of eligible projects.

    Args:
        limit: Maximum number of projects to process.  ``None`` uses
            ``settings.backfill_default_limit``.
        dry_run: Run the identical logic and roll back every write.
        approved_by: Approver UUID recorded as ``created_by`` on new arenas.
        after: ``nextCursor`` returned by the previous page, if any.
        follow_pages: Enqueue the next page with the returned cursor until
            a short page ends the walk.  The nightly Beat entry sets this.

    Returns:
        ``{"dryRun": bool, "summary": {...}}`` on success, or a dict with an
        ``error`` key when the pass could not run at all.
    """
    _task_start = time.perf_counter()
    log = logger.bind(task="backfill_arenas", limit=limit, dry_run=dry_run, after=after)
    log.info("backfill_arenas: starting")

    try:
        result = asyncio.run(
            run_backfill(limit=limit, dry_run=dry_run, approved_by=approved_by, after=after)
        )
    except Exception as exc:
        log.error("backfill_arenas: error", error=str(exc), exc_info=True)
        _record_task_metrics("backfill_arenas", "error", _task_start)
        return {"error": str(exc), "dryRun": dry_run}

    summary = result["summary"]
    log.info(
        "backfill_arenas: complete",
        total_eligible=summary["totalEligible"],
        scanned=summary["scannedCount"],
        created=summary["createdCount"],
        updated=summary["updatedCount"],
        skipped=summary["skippedCount"],
        errors=len(summary["errors"]),
        next_cursor=summary["nextCursor"],
    )
    if not dry_run:
        try:
            from arena_reconciler.api.metrics import record_backfill_summary  # noqa: PLC0415

            record_backfill_summary(summary)
        except Exception as _metrics_exc:  # noqa: BLE001
            _stdlib_logger.debug("backfill_arenas: metrics recording failed: %s", _metrics_exc)

    next_cursor = summary["nextCursor"]
    if follow_pages and next_cursor:
        backfill_arenas.apply_async(
            kwargs={
                "limit": limit,
                "dry_run": dry_run,
                "approved_by": approved_by,
                "after": next_cursor,
                "follow_pages": True,
            }
        )
        log.info("backfill_arenas: next page enqueued", after=next_cursor)
    _record_task_metrics("backfill_arenas", "success", _task_start)
    return result


# ---------------------------------------------------------------------------
# Task 2: classify_legacy_arenas
# ---------------------------------------------------------------------------


@celery_app.task(name="arena_reconciler.workers.tasks.classify_legacy_arenas")
def classify_legacy_arenas(dry_run: bool = False) -> dict[str, Any]:
    """Label uncontested unknown-kind arenas as ``legacy_ms``.

    Args:
        dry_run: Count the rows that would be labelled without writing.

    Returns:
        ``{"dryRun", "classified", "ambiguous"}``, or a dict with an
        ``error`` key on failure.
    """
    _task_start = time.perf_counter()
    log = logger.bind(task="classify_legacy_arenas", dry_run=dry_run)
    log.info("classify_legacy_arenas: starting")

    try:
        result = asyncio.run(run_legacy_classification(dry_run=dry_run))
    except Exception as exc:
        log.error("classify_legacy_arenas: error", error=str(exc), exc_info=True)
        _record_task_metrics("classify_legacy_arenas", "error", _task_start)
        return {"error": str(exc), "dryRun": dry_run}

    log.info(
        "classify_legacy_arenas: complete",
        classified=result["classified"],
        ambiguous_count=len(result["ambiguous"]),
    )
    if not dry_run and result["classified"]:
        try:
            from arena_reconciler.api.metrics import (  # noqa: PLC0415
                arena_legacy_classified_total,
            )

            arena_legacy_classified_total.inc(result["classified"])
        except Exception as _metrics_exc:  # noqa: BLE001
            _stdlib_logger.debug(
                "classify_legacy_arenas: metrics recording failed: %s", _metrics_exc
            )
    _record_task_metrics("classify_legacy_arenas", "success", _task_start)
    return result
