"""Leaderboard eligibility gate.

A project is eligible for an ms arena when all of the following hold:

- ``projects.arc_active`` is true;
- ``projects.arc_access_level`` is ``'leaderboard'``;
- it has an ``arc_project_access`` row with ``application_status='approved'``;
- its ``arc_project_features`` row has ``option2_normal_unlocked`` and
  ``leaderboard_enabled`` set.

The predicate exists in two forms that must stay in lockstep:
:func:`is_eligible` for one project already loaded in Python, and
:func:`eligibility_clause` for the backfill's set-based scan.  Neither caches
anything; :func:`load_eligibility` re-reads all three rows on every call.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, case, exists, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from arena_reconciler.core.exceptions import ProjectNotFoundError
from arena_reconciler.core.models.project import Project, ProjectAccess, ProjectFeatures

LEADERBOARD_ACCESS_LEVEL = "leaderboard"
APPROVED_STATUS = "approved"


def eligibility_checks(
    project: Project,
    access: Optional[ProjectAccess],
    features: Optional[ProjectFeatures],
) -> dict[str, bool]:
    """Evaluate each eligibility condition separately.

    Missing access or features rows fail the checks that depend on them.

    Returns:
        Ordered mapping of check name to result.
    """
    return {
        "arc_active": bool(project.arc_active),
        "leaderboard_access_level": project.arc_access_level == LEADERBOARD_ACCESS_LEVEL,
        "access_approved": access is not None
        and access.application_status == APPROVED_STATUS,
        "option2_normal_unlocked": features is not None
        and bool(features.option2_normal_unlocked),
        "leaderboard_enabled": features is not None and bool(features.leaderboard_enabled),
    }


def is_eligible(
    project: Project,
    access: Optional[ProjectAccess],
    features: Optional[ProjectFeatures],
) -> bool:
    """Return True when *project* should have an active ms arena."""
    return all(eligibility_checks(project, access, features).values())


def eligibility_clause() -> ColumnElement[bool]:
    """SQL form of :func:`is_eligible`.

    Expects ``projects`` joined to ``arc_project_features`` on ``project_id``.
    """
    approved_access = exists().where(
        ProjectAccess.project_id == Project.id,
        ProjectAccess.application_status == APPROVED_STATUS,
    )
    return and_(
        Project.arc_active.is_(True),
        Project.arc_access_level == LEADERBOARD_ACCESS_LEVEL,
        ProjectFeatures.option2_normal_unlocked.is_(True),
        ProjectFeatures.leaderboard_enabled.is_(True),
        approved_access,
    )


@dataclass(frozen=True)
class EligibilitySnapshot:
    """The three rows the gate reads for one project, as of one transaction."""

    project: Project
    access: Optional[ProjectAccess]
    features: Optional[ProjectFeatures]

    @property
    def checks(self) -> dict[str, bool]:
        return eligibility_checks(self.project, self.access, self.features)

    @property
    def eligible(self) -> bool:
        return all(self.checks.values())

    @property
    def failed_checks(self) -> list[str]:
        return [name for name, passed in self.checks.items() if not passed]


async def load_eligibility(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> EligibilitySnapshot:
    """Read the project, its access row and its features row.

    When a project has several access rows, an approved one is preferred,
    then the most recent.

    Args:
        session: The unit of work to read in.
        project_id: The project to evaluate.

    Returns:
        An :class:`EligibilitySnapshot`.

    Raises:
        ProjectNotFoundError: If the project does not exist.
    """
    project = await session.get(Project, project_id, populate_existing=True)
    if project is None:
        raise ProjectNotFoundError(project_id)

    access_result = await session.execute(
        select(ProjectAccess)
        .where(ProjectAccess.project_id == project_id)
        .order_by(
            case((ProjectAccess.application_status == APPROVED_STATUS, 0), else_=1),
            ProjectAccess.created_at.desc(),
        )
        .limit(1)
    )
    access = access_result.scalars().first()
    features = await session.get(ProjectFeatures, project_id, populate_existing=True)
    return EligibilitySnapshot(project=project, access=access, features=features)
