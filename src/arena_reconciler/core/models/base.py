"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- TimestampMixin: created_at / updated_at columns with server-side defaults
- utcnow: the timezone-aware clock used for every application-side timestamp
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base for all Arena Reconciler models."""

    # Native UUID on PostgreSQL, CHAR(32) elsewhere.
    type_annotation_map = {
        uuid.UUID: sa.Uuid(as_uuid=True),
        datetime: sa.DateTime(timezone=True),
    }


class TimestampMixin:
    """Adds created_at and updated_at columns.

    Values are assigned application-side on INSERT and UPDATE so the ORM
    never has to re-fetch them after a flush; the server default covers rows
    written by raw SQL (migrations, manual fixes).
    """

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
        onupdate=utcnow,
    )


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise *value* to an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.  Some drivers (SQLite)
    hand back naive values for ``timestamptz`` columns, so every comparison
    between stored and supplied timestamps goes through this helper.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
