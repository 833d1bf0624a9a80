"""Admin routes for arena reconciliation.

``POST /admin/arenas/approve``
    Approve one project's leaderboard: create or update its ms arena.

``POST /admin/arenas/backfill``
    Reconcile a batch of eligible projects, optionally as a dry run.

``POST /admin/arenas/classify-legacy``
    Label uncontested unknown-kind arenas as ``legacy_ms`` and report
    ambiguous projects.

Errors are rendered by the handlers in ``api/errors.py``.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_reconciler.api.dependencies import (
    get_approver_id,
    get_backfill,
    get_reconciler,
    get_session_factory,
)
from arena_reconciler.api.metrics import (
    arena_approval_conflicts_total,
    arena_approvals_total,
    arena_legacy_classified_total,
    record_backfill_summary,
)
from arena_reconciler.core.backfill import BackfillReconciler
from arena_reconciler.core.classifier import LegacyClassifier
from arena_reconciler.core.exceptions import ReconciliationConflictError
from arena_reconciler.core.reconciler import ApprovalRequest, ArenaReconciler
from arena_reconciler.core.schemas.arena import (
    ApproveArenaRequest,
    ApproveArenaResponse,
    BackfillRequest,
    BackfillResponse,
    BackfillSummaryRead,
    ClassifyLegacyRequest,
    ClassifyLegacyResponse,
    ErrorResponse,
)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "invalid_input"},
    404: {"model": ErrorResponse, "description": "project_not_found"},
    409: {"model": ErrorResponse, "description": "not_eligible"},
    500: {"model": ErrorResponse, "description": "reconciliation_conflict"},
}


# ---------------------------------------------------------------------------
# POST /admin/arenas/approve
# ---------------------------------------------------------------------------


@router.post(
    "/approve",
    response_model=ApproveArenaResponse,
    responses=_ERROR_RESPONSES,
)
async def approve_arena(
    payload: ApproveArenaRequest,
    reconciler: Annotated[ArenaReconciler, Depends(get_reconciler)],
    approver_id: Annotated[Optional[uuid.UUID], Depends(get_approver_id)],
) -> ApproveArenaResponse:
    """Approve a project's leaderboard and reconcile its ms arena.

    Creates the arena on first approval; every later approval promotes the
    existing row to ``kind='ms'``, ``status='active'`` and merges the
    supplied dates.

    Args:
        payload: ``{projectId, startsAt?, endsAt?}``.
        reconciler: Injected approval transaction runner.
        approver_id: Identity from the ``X-Approver-Id`` header.

    Returns:
        ``{ok: true, arena, action, attempts}``.
    """
    request = ApprovalRequest(
        project_id=payload.project_id,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        approved_by=approver_id,
    )
    try:
        outcome = await reconciler.approve(request)
    except ReconciliationConflictError:
        arena_approval_conflicts_total.inc()
        raise

    arena_approvals_total.labels(action=outcome.action.value).inc()
    return ApproveArenaResponse(
        arena=outcome.arena,
        action=outcome.action.value,
        attempts=outcome.attempts,
    )


# ---------------------------------------------------------------------------
# POST /admin/arenas/backfill
# ---------------------------------------------------------------------------


@router.post(
    "/backfill",
    response_model=BackfillResponse,
    responses={400: _ERROR_RESPONSES[400]},
)
async def backfill_arenas(
    payload: BackfillRequest,
    backfill: Annotated[BackfillReconciler, Depends(get_backfill)],
    approver_id: Annotated[Optional[uuid.UUID], Depends(get_approver_id)],
) -> BackfillResponse:
    """Reconcile up to ``limit`` eligible projects.

    A full page returns ``summary.nextCursor``; send it back as ``after`` to
    continue behind the last project scanned.  Per-project failures are reported in ``summary.errors`` and do not fail
    the request.  With ``dryRun`` every write is rolled back.
    """
    summary = await backfill.run(
        limit=payload.limit,
        dry_run=payload.dry_run,
        approved_by=approver_id,
        after=payload.after,
    )
    if not payload.dry_run:
        record_backfill_summary(summary.to_dict())
    return BackfillResponse(
        dry_run=payload.dry_run,
        summary=BackfillSummaryRead.model_validate(summary),
    )


# ---------------------------------------------------------------------------
# POST /admin/arenas/classify-legacy
# ---------------------------------------------------------------------------


@router.post("/classify-legacy", response_model=ClassifyLegacyResponse)
async def classify_legacy_arenas(
    payload: ClassifyLegacyRequest,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> ClassifyLegacyResponse:
    """Run the legacy classifier over all unknown-kind arenas."""
    async with session_factory() as session:
        result = await LegacyClassifier(session).classify_all(dry_run=payload.dry_run)
        if payload.dry_run:
            await session.rollback()
        else:
            await session.commit()

    if not payload.dry_run and result.classified:
        arena_legacy_classified_total.inc(result.classified)
    return ClassifyLegacyResponse(
        dry_run=payload.dry_run,
        classified=result.classified,
        ambiguous=result.ambiguous,
    )
