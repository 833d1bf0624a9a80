"""Read surface for downstream consumers.

``GET /projects/{project_id}/current-ms-arena`` returns the arena a project
is currently running, using :func:`live_ms_arena_clause`, the same
predicate every other reader of arena state uses.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena_reconciler.core.arena_store import live_ms_arena_clause
from arena_reconciler.core.database import get_db
from arena_reconciler.core.models.arena import Arena, ArenaKind
from arena_reconciler.core.models.base import utcnow
from arena_reconciler.core.schemas.arena import ArenaRead, CurrentArenaResponse

router = APIRouter()


async def find_current_ms_arena(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> Arena | None:
    """Return the project's live ms arena, preferring ``ms`` over ``legacy_ms``."""
    result = await session.execute(
        select(Arena)
        .where(Arena.project_id == project_id, live_ms_arena_clause(utcnow()))
        .order_by(
            case((Arena.kind == ArenaKind.MS.value, 0), else_=1),
            Arena.updated_at.desc(),
        )
        .limit(1)
    )
    return result.scalars().first()


@router.get("/{project_id}/current-ms-arena", response_model=CurrentArenaResponse)
async def get_current_ms_arena(
    project_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CurrentArenaResponse:
    """Return ``{ok, projectId, arena}``; ``arena`` is null when nothing is live."""
    arena = await find_current_ms_arena(db, project_id)
    return CurrentArenaResponse(
        project_id=project_id,
        arena=ArenaRead.model_validate(arena) if arena is not None else None,
    )
