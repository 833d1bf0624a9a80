"""Arena ORM model.

An arena is the canonical competition / leaderboard record for one project.
Arena Reconciler is the only writer of the ms family of rows.

Kinds:
- ``ms``:        the current leaderboard arena kind.
- ``legacy_ms``: a historical row classified as the project's ms arena.
- ``other``:     unrelated arena types; never touched by the reconciler.
- unknown:       stored as SQL ``NULL``.  Rows that pre-date the ``kind``
                 column.  Treated as ms family by every lookup until the
                 legacy classifier labels them.

At most one ms-family row (``ms``, ``legacy_ms`` or ``NULL``) may exist per
project.  The partial unique index ``uq_arenas_project_ms_family`` enforces
this in the database.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from arena_reconciler.core.models.base import Base, TimestampMixin


class ArenaKind(str, enum.Enum):
    """Classification tag on an arena row."""

    MS = "ms"
    LEGACY_MS = "legacy_ms"
    OTHER = "other"
    UNKNOWN = "unknown"


class ArenaStatus(str, enum.Enum):
    """Arena lifecycle state."""

    DRAFT = "draft"
    ACTIVE = "active"
    ENDED = "ended"


MS_FAMILY_KINDS: tuple[str, ...] = (ArenaKind.MS.value, ArenaKind.LEGACY_MS.value)
"""Stored kinds that, together with ``NULL``, make up the ms family."""

MS_FAMILY_PREDICATE_SQL = "kind IN ('ms', 'legacy_ms') OR kind IS NULL"
"""Raw SQL form of the ms-family predicate, shared by the partial unique
index and the migrations."""


class Arena(Base, TimestampMixin):
    """A competition record attached to a project.

    Attributes:
        id: Unique identifier.
        project_id: Owning project.  Nullable for orphaned historical rows.
        slug: Globally unique URL handle.
        name: Display name, ``"{project name} Leaderboard"`` for ms arenas.
        kind: Stored classification; ``None`` means unknown.
        status: One of ``draft``, ``active``, ``ended``.
        starts_at: Optional start of the live window.
        ends_at: Optional end of the live window (exclusive).
        created_by: Approver who caused the row to be created, when known.
    """

    __tablename__ = "arenas"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'ended')",
            name="ck_arenas_status",
        ),
        sa.CheckConstraint(
            "kind IS NULL OR kind IN ('ms', 'legacy_ms', 'other')",
            name="ck_arenas_kind",
        ),
        sa.Index(
            "uq_arenas_project_ms_family",
            "project_id",
            unique=True,
            postgresql_where=sa.text(MS_FAMILY_PREDICATE_SQL),
            sqlite_where=sa.text(MS_FAMILY_PREDICATE_SQL),
        ),
        sa.Index("ix_arenas_project_id", "project_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    slug: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    kind: Mapped[Optional[str]] = mapped_column(sa.String(20), nullable=True)
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default=ArenaStatus.DRAFT.value,
        server_default=sa.text("'draft'"),
    )
    starts_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)

    @property
    def effective_kind(self) -> ArenaKind:
        """Stored kind as an :class:`ArenaKind`, mapping ``NULL`` to UNKNOWN."""
        if self.kind is None:
            return ArenaKind.UNKNOWN
        return ArenaKind(self.kind)

    @property
    def is_ms_family(self) -> bool:
        return self.kind is None or self.kind in MS_FAMILY_KINDS

    def __repr__(self) -> str:
        return (
            f"<Arena id={self.id} project_id={self.project_id} "
            f"slug={self.slug!r} kind={self.kind!r} status={self.status!r}>"
        )
