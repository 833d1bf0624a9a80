"""Arena store: the single write path for arena rows.

Every method runs inside the caller's ``AsyncSession`` and never commits;
the caller owns the transaction boundary.  Invariant: at most one ms-family
row (``kind IN ('ms', 'legacy_ms') OR kind IS NULL``) per project.  The
partial unique index ``uq_arenas_project_ms_family`` backs the invariant in
the database, and :meth:`ArenaStore.find_candidate` backs it in application
code by locking the row a writer is about to decide on.

Usage::

    store = ArenaStore(session)
    await store.lock_project(project_id)
    arena = await store.find_candidate(project_id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import and_, case, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from arena_reconciler.core.models.arena import (
    MS_FAMILY_KINDS,
    Arena,
    ArenaKind,
    ArenaStatus,
)
from arena_reconciler.core.models.base import utcnow

_SLUG_FALLBACK_LENGTH = 8


# ---------------------------------------------------------------------------
# Shared predicates
# ---------------------------------------------------------------------------


def ms_family_clause(arena: type[Arena] = Arena) -> ColumnElement[bool]:
    """SQL predicate matching ms-family rows, unknown (``NULL``) included.

    Args:
        arena: The ``Arena`` entity or an alias of it.
    """
    return or_(arena.kind.in_(MS_FAMILY_KINDS), arena.kind.is_(None))


def live_ms_arena_clause(now: datetime) -> ColumnElement[bool]:
    """SQL predicate for the arena downstream readers treat as live.

    Matches exactly what an approval writes: a classified ms-family row with
    ``status='active'`` whose window contains *now*.  Missing bounds are
    open-ended; ``ends_at`` is exclusive.

    Args:
        now: The instant to evaluate the window against.
    """
    return and_(
        Arena.kind.in_(MS_FAMILY_KINDS),
        Arena.status == ArenaStatus.ACTIVE.value,
        or_(Arena.starts_at.is_(None), Arena.starts_at <= now),
        or_(Arena.ends_at.is_(None), Arena.ends_at > now),
    )


# ---------------------------------------------------------------------------
# Write payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ArenaSpec:
    """Column values for a new arena row."""

    project_id: uuid.UUID
    slug: str
    name: str
    kind: ArenaKind = ArenaKind.MS
    status: ArenaStatus = ArenaStatus.ACTIVE
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None


@dataclass
class ArenaPatch:
    """Changes to apply to an existing arena.  ``None`` means leave as is."""

    kind: Optional[ArenaKind] = None
    status: Optional[ArenaStatus] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    def changed_fields(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def is_empty(self) -> bool:
        return not self.changed_fields()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ArenaStore:
    """Reads and writes arena rows inside a caller-supplied transaction.

    Args:
        session: The unit of work every statement runs in.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    async def lock_project(self, project_id: uuid.UUID) -> None:
        """Serialise writers of the same project for the rest of the transaction.

        ``SELECT ... FOR UPDATE`` locks nothing while a project has no arena
        yet, so first-time approvals also take a transaction-scoped advisory
        lock keyed on the project id.  The lock is released on commit or
        rollback.  A no-op on databases without advisory locks.
        """
        if self.dialect_name != "postgresql":
            return
        await self._session.execute(
            sa.text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": str(project_id)},
        )

    async def find_candidate(
        self,
        project_id: uuid.UUID,
        *,
        lock: bool = True,
    ) -> Arena | None:
        """Return the project's ms-family arena, locking it by default.

        When legacy data holds more than one ms-family row, the active one
        wins, then the most recently created.  The row is re-populated from
        the database even if it is already in the session's identity map so a
        second lookup in the same transaction observes concurrent commits.

        Args:
            project_id: The project to look up.
            lock: Acquire ``FOR UPDATE`` on the returned row.

        Returns:
            The candidate arena, or ``None`` if the project has none.
        """
        stmt = (
            select(Arena)
            .where(Arena.project_id == project_id, ms_family_clause())
            .order_by(
                case((Arena.status == ArenaStatus.ACTIVE.value, 0), else_=1),
                Arena.created_at.desc(),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_for_project(self, project_id: uuid.UUID) -> list[Arena]:
        """Return every arena of *project_id*, ms family or not, oldest first."""
        result = await self._session.execute(
            select(Arena)
            .where(Arena.project_id == project_id)
            .order_by(Arena.created_at, Arena.id)
        )
        return list(result.scalars().all())

    async def has_competitor(self, arena: Arena) -> bool:
        """Whether another ms-family row exists for the same project as *arena*."""
        if arena.project_id is None:
            return False
        other = aliased(Arena)
        stmt = select(
            select(other.id)
            .where(
                other.project_id == arena.project_id,
                other.id != arena.id,
                ms_family_clause(other),
            )
            .exists()
        )
        return bool(await self._session.scalar(stmt))

    async def slug_taken(self, slug: str) -> bool:
        result = await self._session.execute(
            select(Arena.id).where(Arena.slug == slug).limit(1)
        )
        return result.first() is not None

    async def generate_unique_slug(
        self,
        project_slug: str,
        suffix: str = "leaderboard",
    ) -> str:
        """Return ``{project_slug}-{suffix}``, or the first free ``-2``, ``-3``, ...

        Existing slugs sharing the base are fetched in one query rather than
        probed one by one.

        Args:
            project_slug: The owning project's slug.
            suffix: Fixed suffix appended to the project slug.

        Returns:
            A slug not currently used by any arena.
        """
        base = f"{project_slug}-{suffix}"
        result = await self._session.execute(
            select(Arena.slug).where(
                or_(
                    Arena.slug == base,
                    Arena.slug.startswith(f"{base}-", autoescape=True),
                )
            )
        )
        taken = set(result.scalars().all())
        if base not in taken:
            return base
        counter = 2
        while f"{base}-{counter}" in taken:
            counter += 1
        return f"{base}-{counter}"

    @staticmethod
    def slug_base_for(project_id: uuid.UUID, project_slug: str | None) -> str:
        """Base slug for a project, falling back to a short id for slugless projects."""
        return project_slug or str(project_id)[:_SLUG_FALLBACK_LENGTH]

    async def create(self, spec: ArenaSpec) -> Arena:
        """Insert a new arena row and flush it.

        Raises:
            sqlalchemy.exc.IntegrityError: When the insert would break the
                one-ms-arena-per-project index or the slug uniqueness.
        """
        now = utcnow()
        arena = Arena(
            id=uuid.uuid4(),
            project_id=spec.project_id,
            slug=spec.slug,
            name=spec.name,
            kind=None if spec.kind is ArenaKind.UNKNOWN else spec.kind.value,
            status=spec.status.value,
            starts_at=spec.starts_at,
            ends_at=spec.ends_at,
            created_by=spec.created_by,
            created_at=now,
            updated_at=now,
        )
        self._session.add(arena)
        await self._session.flush()
        return arena

    async def update(self, arena: Arena, patch: ArenaPatch) -> Arena:
        """Apply *patch* to *arena*, refresh ``updated_at`` and flush.

        An empty patch still bumps ``updated_at``.
        """
        if patch.kind is not None:
            arena.kind = None if patch.kind is ArenaKind.UNKNOWN else patch.kind.value
        if patch.status is not None:
            arena.status = patch.status.value
        if patch.starts_at is not None:
            arena.starts_at = patch.starts_at
        if patch.ends_at is not None:
            arena.ends_at = patch.ends_at
        arena.updated_at = utcnow()
        await self._session.flush()
        return arena
