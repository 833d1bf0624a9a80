"""Externally-owned project tables read by the eligibility gate.

These rows are written by the admin portal (project onboarding, access
requests, feature unlocks).  Arena Reconciler only ever reads them; they are
mapped here so that the eligibility predicate can be expressed both in Python
and in SQL against the same columns.

Tables:
- ``projects``:              the project itself and its arc activation flags
- ``arc_project_access``:    the project's leaderboard access application
- ``arc_project_features``:  per-project feature unlocks and leaderboard dates
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from arena_reconciler.core.models.base import Base, TimestampMixin, utcnow


class Project(Base):
    """A project that may be granted a leaderboard arena.

    Attributes:
        id: Unique identifier.
        slug: URL-safe project handle, used as the base of the arena slug.
        name: Human-readable project name, used in the arena name.
        arc_active: Whether the project is active in the arc programme.
        arc_access_level: Granted access tier (``'leaderboard'`` for
            leaderboard projects).
        created_at: Creation timestamp; the backfill's primary sort key.
    """

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    slug: Mapped[Optional[str]] = mapped_column(sa.String(200), nullable=True, unique=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    arc_active: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.false(),
    )
    arc_access_level: Mapped[Optional[str]] = mapped_column(sa.String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} slug={self.slug!r}>"


class ProjectAccess(Base, TimestampMixin):
    """A project's application for leaderboard access.

    Only ``application_status == 'approved'`` satisfies the eligibility gate.
    """

    __tablename__ = "arc_project_access"
    __table_args__ = (
        sa.CheckConstraint(
            "application_status IN ('pending', 'approved', 'rejected')",
            name="ck_arc_project_access_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        sa.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    application_status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        default="pending",
        server_default=sa.text("'pending'"),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    approved_by_profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)


class ProjectFeatures(Base, TimestampMixin):
    """Per-project feature unlocks.  One row per project.

    ``leaderboard_start_at`` / ``leaderboard_end_at`` are the dates the
    backfill writes onto the arena; a single approval may override them.
    """

    __tablename__ = "arc_project_features"

    project_id: Mapped[uuid.UUID] = mapped_column(
        sa.ForeignKey("projects.id", ondelete="CASCADE"),
        primary_key=True,
    )
    option2_normal_unlocked: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.false(),
    )
    leaderboard_enabled: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.false(),
    )
    leaderboard_start_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    leaderboard_end_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
