"""Internal async helpers for the Celery tasks.

This module contains the async coroutines used by the synchronous Celery
tasks in ``workers/tasks.py`` and by the operator scripts under
``scripts/``.  They are separated so that they can be unit-tested without
importing the Celery application.

Each helper builds its services over a session factory (the application's
``AsyncSessionLocal`` unless one is passed in) and returns plain
JSON-serialisable dicts.  Celery workers call these via ``asyncio.run()``
from synchronous task bodies, so each invocation gets a fresh event loop
with no pre-existing session.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_reconciler.config.settings import get_settings
from arena_reconciler.core.backfill import BackfillReconciler
from arena_reconciler.core.classifier import LegacyClassifier
from arena_reconciler.core.reconciler import ArenaReconciler


def _default_session_factory() -> async_sessionmaker[AsyncSession]:
    from arena_reconciler.core.database import AsyncSessionLocal  # noqa: PLC0415

    return AsyncSessionLocal


def build_backfill(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> BackfillReconciler:
    """Assemble a :class:`BackfillReconciler` from application settings."""
    settings = get_settings()
    factory = session_factory or _default_session_factory()
    reconciler = ArenaReconciler(factory, slug_suffix=settings.leaderboard_slug_suffix)
    return BackfillReconciler(
        factory,
        reconciler,
        default_limit=settings.backfill_default_limit,
        max_limit=settings.backfill_max_limit,
    )


async def run_backfill(
    limit: Optional[int] = None,
    dry_run: bool = False,
    approved_by: Optional[str] = None,
    after: Optional[str] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> dict[str, Any]:
    """Run one backfill pass and return ``{"dryRun": ..., "summary": {...}}``.

    Args:
        limit: Maximum number of projects to process.
        dry_run: Roll back every per-project transaction.
        approved_by: Approver UUID string recorded on created arenas.
        after: ``nextCursor`` of the previous page.
        session_factory: Override for tests.

    Raises:
        InvalidInputError: If *limit* is out of range or *after* is not a
            cursor.
        ValueError: If *approved_by* is not a UUID.
    """
    approver = uuid.UUID(approved_by) if approved_by else None
    summary = await build_backfill(session_factory).run(
        limit=limit,
        dry_run=dry_run,
        approved_by=approver,
        after=after,
    )
    return {"dryRun": dry_run, "summary": summary.to_dict()}


async def run_legacy_classification(
    dry_run: bool = False,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> dict[str, Any]:
    """Run the bulk legacy classifier in its own transaction.

    Returns:
        ``{"dryRun", "classified", "ambiguous"}`` with project ids as strings.
    """
    factory = session_factory or _default_session_factory()
    async with factory() as session:
        result = await LegacyClassifier(session).classify_all(dry_run=dry_run)
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    return {
        "dryRun": dry_run,
        "classified": result.classified,
        "ambiguous": [str(project_id) for project_id in result.ambiguous],
    }
