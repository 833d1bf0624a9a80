"""Legacy classification of arena rows written before the ``kind`` column.

An arena whose stored kind is ``NULL`` (unknown) is the project's ms arena
that was never labelled.  It is classified as ``legacy_ms`` when it belongs
to a project and no other ms-family row competes with it.  Contested rows
stay unknown and are reported, never promoted blindly.

Classification is applied in two places:

- in bulk, by :meth:`LegacyClassifier.classify_all` (Alembic revision 002,
  the ``classify_legacy_arenas`` Celery task and the operator script);
- at read time, by the approval transaction, which treats unknown rows as
  ms family so that an unmigrated row is updated rather than duplicated.

The bulk pass only touches ``NULL``-kind rows, so running it again is a
no-op.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from arena_reconciler.core.arena_store import ms_family_clause
from arena_reconciler.core.models.arena import Arena, ArenaKind
from arena_reconciler.core.models.base import utcnow

logger = structlog.get_logger(__name__)


def normalize_kind(
    stored_kind: str | None,
    *,
    project_id: uuid.UUID | None,
    has_competitor: bool,
) -> ArenaKind:
    """Return the classification an arena row should carry.

    Args:
        stored_kind: The raw ``kind`` column value (``None`` for unknown).
        project_id: The row's project, if any.
        has_competitor: Whether another ms-family row exists for the same
            project.

    Returns:
        ``ArenaKind.LEGACY_MS`` for an uncontested unknown row attached to a
        project; otherwise the stored kind unchanged.
    """
    if stored_kind is None:
        if project_id is not None and not has_competitor:
            return ArenaKind.LEGACY_MS
        return ArenaKind.UNKNOWN
    return ArenaKind(stored_kind)


def _uncontested_unknown_clause() -> ColumnElement[bool]:
    competitor = aliased(Arena)
    contested = (
        select(competitor.id)
        .where(
            competitor.project_id == Arena.project_id,
            competitor.id != Arena.id,
            ms_family_clause(competitor),
        )
        .exists()
    )
    return Arena.kind.is_(None) & Arena.project_id.is_not(None) & ~contested


def ambiguous_projects_query() -> Select:
    """Projects holding more than one ms-family row."""
    return (
        select(Arena.project_id)
        .where(Arena.project_id.is_not(None), ms_family_clause())
        .group_by(Arena.project_id)
        .having(func.count(Arena.id) > 1)
        .order_by(Arena.project_id)
    )


@dataclass
class ClassificationResult:
    """Outcome of a bulk classification pass.

    Attributes:
        classified: Rows labelled ``legacy_ms`` (or that would be, on a dry run).
        ambiguous: Projects left with several ms-family rows; these need an
            operator decision.
        dry_run: Whether the pass only counted.
    """

    classified: int = 0
    ambiguous: list[uuid.UUID] = field(default_factory=list)
    dry_run: bool = False


class LegacyClassifier:
    """Bulk classifier for unknown-kind arena rows.

    Runs in the caller's session and never commits.

    Args:
        session: The unit of work to run in.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def count_classifiable(self) -> int:
        """Number of unknown rows the next :meth:`classify_all` would label."""
        result = await self._session.execute(
            select(func.count(Arena.id)).where(_uncontested_unknown_clause())
        )
        return int(result.scalar_one())

    async def find_ambiguous(self) -> list[uuid.UUID]:
        """Return projects with more than one ms-family row, sorted."""
        result = await self._session.execute(ambiguous_projects_query())
        return list(result.scalars().all())

    async def classify_all(self, *, dry_run: bool = False) -> ClassificationResult:
        """Label every uncontested unknown row as ``legacy_ms``.

        Args:
            dry_run: Count the rows that would be labelled without writing.

        Returns:
            A :class:`ClassificationResult`.
        """
        if dry_run:
            classified = await self.count_classifiable()
        else:
            stmt = (
                update(Arena)
                .where(_uncontested_unknown_clause())
                .values(kind=ArenaKind.LEGACY_MS.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            classified = int(result.rowcount or 0)

        ambiguous = await self.find_ambiguous()
        logger.info(
            "classifier.pass_complete",
            classified=classified,
            ambiguous_count=len(ambiguous),
            dry_run=dry_run,
        )
        if ambiguous:
            logger.warning(
                "classifier.ambiguous_projects",
                project_ids=[str(pid) for pid in ambiguous],
            )
        return ClassificationResult(
            classified=classified,
            ambiguous=ambiguous,
            dry_run=dry_run,
        )
