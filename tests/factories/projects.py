"""Factory Boy factories for project and arena rows.

Usage in tests::

    from tests.factories.projects import ProjectFactory, ArenaFactory

    # Build a dict (no DB write)
    project_data = ProjectFactory.build()

    # Build with overrides
    legacy_data = ArenaFactory.build(project_id=project.id, kind=None)
"""

from __future__ import annotations

import datetime
import uuid

import factory

_EPOCH = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


class ProjectFactory(factory.Factory):
    """Factory for Project model dicts.

    Defaults describe a project that passes the project-level eligibility
    checks.  ``created_at`` increases by one minute per instance so that the
    backfill's ordering is deterministic.
    """

    class Meta:
        model = dict

    id = factory.LazyFunction(uuid.uuid4)
    slug = factory.Sequence(lambda n: f"project-{n}")
    name = factory.Sequence(lambda n: f"Project {n}")
    arc_active = True
    arc_access_level = "leaderboard"
    created_at = factory.Sequence(lambda n: _EPOCH + datetime.timedelta(minutes=n))


class ProjectAccessFactory(factory.Factory):
    """Factory for ProjectAccess model dicts (approved by default)."""

    class Meta:
        model = dict

    id = factory.LazyFunction(uuid.uuid4)
    project_id = None
    application_status = "approved"
    approved_at = factory.LazyFunction(lambda: _EPOCH)
    approved_by_profile_id = None


class ProjectFeaturesFactory(factory.Factory):
    """Factory for ProjectFeatures model dicts with both unlocks set."""

    class Meta:
        model = dict

    project_id = None
    option2_normal_unlocked = True
    leaderboard_enabled = True
    leaderboard_start_at = None
    leaderboard_end_at = None


class ArenaFactory(factory.Factory):
    """Factory for Arena model dicts.

    Pass ``kind=None`` for an unclassified (pre-migration) row.
    """

    class Meta:
        model = dict

    id = factory.LazyFunction(uuid.uuid4)
    project_id = None
    slug = factory.Sequence(lambda n: f"arena-{n}")
    name = factory.Sequence(lambda n: f"Arena {n}")
    kind = "ms"
    status = "active"
    starts_at = None
    ends_at = None
    created_by = None
    created_at = factory.Sequence(lambda n: _EPOCH + datetime.timedelta(minutes=n))
    updated_at = factory.SelfAttribute("created_at")
