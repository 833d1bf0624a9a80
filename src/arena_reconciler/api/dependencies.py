"""FastAPI dependency injection providers.

Dependency hierarchy::

    get_session_factory       the async_sessionmaker every unit of work uses
    ├── get_reconciler        ArenaReconciler bound to the session factory
    │   └── get_backfill      BackfillReconciler sharing that reconciler
    get_approver_id           approver identity from the X-Approver-Id header

Tests override ``get_session_factory`` (and ``get_db``) in
``app.dependency_overrides`` to point the whole stack at a test database.

Authentication is handled upstream by the admin gateway, which forwards the
authenticated approver's profile id in ``X-Approver-Id``.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_reconciler.config.settings import Settings, get_settings
from arena_reconciler.core.backfill import BackfillReconciler
from arena_reconciler.core.exceptions import InvalidInputError
from arena_reconciler.core.reconciler import ArenaReconciler


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the application-wide session factory."""
    from arena_reconciler.core.database import AsyncSessionLocal  # noqa: PLC0415

    return AsyncSessionLocal


def get_reconciler(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ArenaReconciler:
    return ArenaReconciler(session_factory, slug_suffix=settings.leaderboard_slug_suffix)


def get_backfill(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    reconciler: Annotated[ArenaReconciler, Depends(get_reconciler)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BackfillReconciler:
    return BackfillReconciler(
        session_factory,
        reconciler,
        default_limit=settings.backfill_default_limit,
        max_limit=settings.backfill_max_limit,
    )


def get_approver_id(
    x_approver_id: Annotated[Optional[str], Header()] = None,
) -> Optional[uuid.UUID]:
    """Parse the approver identity forwarded by the admin gateway.

    Returns:
        The approver's UUID, or ``None`` when the header is absent.

    Raises:
        InvalidInputError: If the header is present but not a UUID.
    """
    if x_approver_id is None or not x_approver_id.strip():
        return None
    try:
        return uuid.UUID(x_approver_id.strip())
    except ValueError as exc:
        raise InvalidInputError(
            f"X-Approver-Id '{x_approver_id}' is not a valid UUID.",
            field="X-Approver-Id",
        ) from exc
