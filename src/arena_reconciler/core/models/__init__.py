"""SQLAlchemy ORM models for Arena Reconciler.

All models are imported here so that:
1. Alembic can discover them via Base.metadata.
2. Application code can do `from arena_reconciler.core.models import Arena`
   without knowing which sub-module a model lives in.
3. SQLAlchemy's relationship resolution finds all mapper targets at
   import time, avoiding "mapper not yet configured" errors.
"""

from __future__ import annotations

from arena_reconciler.core.models.base import Base, TimestampMixin, as_utc, utcnow
from arena_reconciler.core.models.arena import (
    MS_FAMILY_KINDS,
    MS_FAMILY_PREDICATE_SQL,
    Arena,
    ArenaKind,
    ArenaStatus,
)
from arena_reconciler.core.models.project import (
    Project,
    ProjectAccess,
    ProjectFeatures,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "as_utc",
    "utcnow",
    # Arenas
    "Arena",
    "ArenaKind",
    "ArenaStatus",
    "MS_FAMILY_KINDS",
    "MS_FAMILY_PREDICATE_SQL",
    # Projects (external)
    "Project",
    "ProjectAccess",
    "ProjectFeatures",
]
