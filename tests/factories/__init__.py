"""Factory Boy model factories for test data generation.

Available factories
-------------------
ProjectFactory              - project dict passing the project-level checks
ProjectAccessFactory        - approved leaderboard access application dict
ProjectFeaturesFactory      - features dict with both unlocks set
ArenaFactory                - arena dict (``kind=None`` for legacy rows)
"""

from __future__ import annotations

from tests.factories.projects import (
    ArenaFactory,
    ProjectAccessFactory,
    ProjectFactory,
    ProjectFeaturesFactory,
)

__all__ = [
    "ArenaFactory",
    "ProjectAccessFactory",
    "ProjectFactory",
    "ProjectFeaturesFactory",
]
