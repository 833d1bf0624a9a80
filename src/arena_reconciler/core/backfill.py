"""Backfill reconciler: applies the approval transaction to every eligible project.

A pass:

  1. counts all eligible projects (``totalEligible``);
  2. selects up to ``limit`` eligible projects whose ms arena is missing or
     not yet correct, ordered by ``(projects.created_at, projects.id)``;
  3. runs :meth:`ArenaReconciler.approve` for each one in its own
     transaction, with the project's leaderboard dates from
     ``arc_project_features`` and ``skip_unchanged=True``.

A project is *correct* when it has an ms-family arena with ``kind='ms'``,
``status='active'`` and, where the features row sets leaderboard dates,
identical dates.  Corrected projects drop out of the scan.

A full page reports ``nextCursor``, the ``(created_at, id)`` key of its last
project.  Passing it back as ``after`` resumes the scan strictly behind that
key, so projects that fail on every run cannot pin later ones out of reach.
A short page reports no cursor: the scan has reached the end of the table.

Failures are isolated per project: they are logged and recorded in the
summary's ``errors`` and never abort the batch.  A dry run executes exactly
the same transactions and rolls each one back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.expression import Exists

from arena_reconciler.core.arena_store import ms_family_clause
from arena_reconciler.core.eligibility import eligibility_clause
from arena_reconciler.core.exceptions import InvalidInputError, PerProjectBackfillError
from arena_reconciler.core.models.arena import Arena, ArenaKind, ArenaStatus
from arena_reconciler.core.models.base import as_utc
from arena_reconciler.core.models.project import Project, ProjectFeatures
from arena_reconciler.core.reconciler import (
    ApprovalAction,
    ApprovalRequest,
    ArenaReconciler,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Summary values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackfillError:
    """One project that failed inside a batch."""

    project_id: uuid.UUID
    slug: Optional[str]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": str(self.project_id),
            "slug": self.slug,
            "message": self.message,
        }


@dataclass
class BackfillSummary:
    """Ephemeral result of one backfill pass.  Never persisted."""

    total_eligible: int = 0
    scanned_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    errors: list[BackfillError] = field(default_factory=list)
    next_cursor: Optional[str] = None

    def record(self, action: ApprovalAction) -> None:
        if action is ApprovalAction.CREATED:
            self.created_count += 1
        elif action is ApprovalAction.UPDATED:
            self.updated_count += 1
        else:
            self.skipped_count += 1

    def to_dict(self) -> dict[str, Any]:
        """Return the summary with the camelCase keys used on the wire."""
        return {
            "totalEligible": self.total_eligible,
            "scannedCount": self.scanned_count,
            "createdCount": self.created_count,
            "updatedCount": self.updated_count,
            "skippedCount": self.skipped_count,
            "errors": [error.to_dict() for error in self.errors],
            "nextCursor": self.next_cursor,
        }


@dataclass(frozen=True)
class BackfillCursor:
    """Keyset position in the ``(projects.created_at, projects.id)`` order.

    Encoded on the wire as ``<ISO-8601 created_at>|<project uuid>``.
    """

    created_at: datetime
    project_id: uuid.UUID

    _SEPARATOR = "|"

    def encode(self) -> str:
        return f"{as_utc(self.created_at).isoformat()}{self._SEPARATOR}{self.project_id}"

    @classmethod
    def decode(cls, value: str) -> BackfillCursor:
        """Parse an encoded cursor.

        Raises:
            InvalidInputError: If *value* is not a cursor this module produced.
        """
        if not isinstance(value, str):
            raise InvalidInputError(f"after must be a string, got {value!r}.", field="after")
        try:
            created_part, id_part = value.rsplit(cls._SEPARATOR, 1)
            created_at = datetime.fromisoformat(created_part)
            project_id = uuid.UUID(id_part)
        except ValueError as exc:
            raise InvalidInputError(
                f"after is not a valid backfill cursor: {value!r}.", field="after"
            ) from exc
        return cls(created_at=as_utc(created_at), project_id=project_id)

    def clause(self):
        """WHERE clause selecting projects strictly after this position."""
        return or_(
            Project.created_at > self.created_at,
            and_(
                Project.created_at == self.created_at,
                Project.id > self.project_id,
            ),
        )


@dataclass(frozen=True)
class BackfillTarget:
    """An eligible project selected for reconciliation."""

    project_id: uuid.UUID
    slug: Optional[str]
    created_at: datetime
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]

    @property
    def cursor(self) -> BackfillCursor:
        return BackfillCursor(created_at=self.created_at, project_id=self.project_id)


# ---------------------------------------------------------------------------
# Scan predicates
# ---------------------------------------------------------------------------


def correct_arena_exists() -> Exists:
    """EXISTS clause for a project whose ms arena already matches the features row.

    Expects ``projects`` joined to ``arc_project_features``.
    """
    return exists().where(
        Arena.project_id == Project.id,
        ms_family_clause(),
        Arena.kind == ArenaKind.MS.value,
        Arena.status == ArenaStatus.ACTIVE.value,
        or_(
            ProjectFeatures.leaderboard_start_at.is_(None),
            Arena.starts_at == ProjectFeatures.leaderboard_start_at,
        ),
        or_(
            ProjectFeatures.leaderboard_end_at.is_(None),
            Arena.ends_at == ProjectFeatures.leaderboard_end_at,
        ),
    )


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class BackfillReconciler:
    """Batch driver over all eligible projects.

    Args:
        session_factory: Factory for the scan session; per-project work goes
            through *reconciler*, which opens its own sessions.
        reconciler: The approval transaction to apply per project.
        default_limit: ``limit`` used when the caller passes ``None``.
        max_limit: Largest accepted ``limit``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reconciler: ArenaReconciler,
        *,
        default_limit: int = 100,
        max_limit: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._reconciler = reconciler
        self._default_limit = default_limit
        self._max_limit = max_limit

    def resolve_limit(self, limit: Optional[int]) -> int:
        """Return the effective batch size.

        Raises:
            InvalidInputError: If *limit* is outside ``1..max_limit``.
        """
        if limit is None:
            return self._default_limit
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidInputError(f"limit must be an integer, got {limit!r}.", field="limit")
        if not 1 <= limit <= self._max_limit:
            raise InvalidInputError(
                f"limit must be between 1 and {self._max_limit}, got {limit}.",
                field="limit",
            )
        return limit

    async def run(
        self,
        limit: Optional[int] = None,
        dry_run: bool = False,
        approved_by: Optional[uuid.UUID] = None,
        after: Optional[str] = None,
    ) -> BackfillSummary:
        """Reconcile up to *limit* eligible projects.

        Args:
            limit: Maximum number of projects to process.
            dry_run: Roll back every per-project transaction.
            approved_by: Identity recorded as ``created_by`` on new arenas.
            after: ``nextCursor`` of a previous page; ``None`` starts from
                the oldest project.

        Returns:
            The :class:`BackfillSummary`.

        Raises:
            InvalidInputError: If *limit* is out of range or *after* is not a
                cursor.
        """
        effective_limit = self.resolve_limit(limit)
        cursor = BackfillCursor.decode(after) if after is not None else None
        log = logger.bind(limit=effective_limit, dry_run=dry_run, after=after)
        log.info("backfill.started")

        total_eligible, targets = await self._scan(effective_limit, cursor)
        summary = BackfillSummary(
            total_eligible=total_eligible,
            scanned_count=len(targets),
        )
        if len(targets) == effective_limit:
            summary.next_cursor = targets[-1].cursor.encode()

        for target in targets:
            try:
                outcome = await self._reconciler.approve(
                    ApprovalRequest(
                        project_id=target.project_id,
                        starts_at=target.starts_at,
                        ends_at=target.ends_at,
                        approved_by=approved_by,
                    ),
                    skip_unchanged=True,
                    dry_run=dry_run,
                )
            except Exception as exc:  # noqa: BLE001
                error = PerProjectBackfillError(target.project_id, target.slug, exc)
                log.warning("backfill.project_failed", **error.to_dict())
                summary.errors.append(
                    BackfillError(
                        project_id=target.project_id,
                        slug=target.slug,
                        message=error.message,
                    )
                )
                continue
            summary.record(outcome.action)

        log.info(
            "backfill.completed",
            total_eligible=summary.total_eligible,
            scanned=summary.scanned_count,
            created=summary.created_count,
            updated=summary.updated_count,
            skipped=summary.skipped_count,
            errors=len(summary.errors),
            next_cursor=summary.next_cursor,
        )
        return summary

    async def _scan(
        self, limit: int, cursor: Optional[BackfillCursor] = None
    ) -> tuple[int, list[BackfillTarget]]:
        """Count eligible projects and pick the next *limit* that need work.

        ``totalEligible`` always counts the whole table; only the page is
        restricted by *cursor*.  The scan session is closed before any
        per-project transaction opens.
        """
        eligible_from = (
            select(Project.id)
            .join(ProjectFeatures, ProjectFeatures.project_id == Project.id)
            .where(eligibility_clause())
        )
        page_filter = and_(eligibility_clause(), ~correct_arena_exists())
        if cursor is not None:
            page_filter = and_(page_filter, cursor.clause())

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(eligible_from.subquery())
            )
            result = await session.execute(
                select(
                    Project.id,
                    Project.slug,
                    Project.created_at,
                    ProjectFeatures.leaderboard_start_at,
                    ProjectFeatures.leaderboard_end_at,
                )
                .join(ProjectFeatures, ProjectFeatures.project_id == Project.id)
                .where(page_filter)
                .order_by(Project.created_at, Project.id)
                .limit(limit)
            )
            targets = [
                BackfillTarget(
                    project_id=row.id,
                    slug=row.slug,
                    created_at=row.created_at,
                    starts_at=row.leaderboard_start_at,
                    ends_at=row.leaderboard_end_at,
                )
                for row in result.all()
            ]
        return int(total or 0), targets
