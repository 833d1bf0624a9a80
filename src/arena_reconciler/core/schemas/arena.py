"""Pydantic request/response schemas for the arena admin and read surfaces.

Request bodies are accepted in camelCase (``projectId``, ``startsAt``,
``dryRun``) as sent by the admin portal; snake_case field names are accepted
too.  Responses are serialised in camelCase.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    field_validator,
)
from pydantic.alias_generators import to_camel

from arena_reconciler.core.models.arena import ArenaKind

_DATE_ONLY_LENGTH = len("2025-03-01")

_RESPONSE_CONFIG = ConfigDict(
    from_attributes=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


def _parse_calendar_date(value: Any) -> Any:
    """Turn a bare ``YYYY-MM-DD`` string into midnight UTC.

    Full ISO-8601 timestamps and ``None`` are passed through unchanged for
    pydantic's own datetime parsing.
    """
    if isinstance(value, str) and len(value) == _DATE_ONLY_LENGTH:
        try:
            parsed = date.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"'{value}' is not a valid date") from exc
        return datetime.combine(parsed, time(), tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ApproveArenaRequest(BaseModel):
    """Payload for ``POST /admin/arenas/approve``.

    Attributes:
        project_id: The project whose leaderboard request is being approved.
        starts_at: Optional start of the leaderboard window.  A bare date is
            read as midnight UTC.
        ends_at: Optional end of the leaderboard window.  Must be after
            ``starts_at`` when both are given.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_id: uuid.UUID = Field(..., alias="projectId")
    starts_at: Optional[datetime] = Field(default=None, alias="startsAt")
    ends_at: Optional[datetime] = Field(default=None, alias="endsAt")

    @field_validator("starts_at", "ends_at", mode="before")
    @classmethod
    def _accept_calendar_dates(cls, value: Any) -> Any:
        return _parse_calendar_date(value)


class BackfillRequest(BaseModel):
    """Payload for ``POST /admin/arenas/backfill``.

    Attributes:
        limit: Maximum number of projects to process in this invocation.
            Falls back to the configured default when omitted.  Only a JSON
            integer is accepted; range checks happen in the backfill service
            so the bound follows settings.
        after: ``nextCursor`` from the previous page.
        dry_run: Run the full decision logic but roll back every write.
    """

    model_config = ConfigDict(populate_by_name=True)

    limit: Optional[StrictInt] = Field(default=None)
    after: Optional[str] = Field(default=None)
    dry_run: bool = Field(default=False, alias="dryRun")


class ClassifyLegacyRequest(BaseModel):
    """Payload for ``POST /admin/arenas/classify-legacy``."""

    model_config = ConfigDict(populate_by_name=True)

    dry_run: bool = Field(default=False, alias="dryRun")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ArenaRead(BaseModel):
    """Serialised arena row.

    ``kind`` is reported as ``"unknown"`` for rows whose stored kind is
    ``NULL``.
    """

    model_config = _RESPONSE_CONFIG

    id: uuid.UUID
    project_id: Optional[uuid.UUID]
    slug: str
    name: str
    kind: ArenaKind
    status: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    created_by: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime

    @field_validator("kind", mode="before")
    @classmethod
    def _null_kind_is_unknown(cls, value: Any) -> Any:
        return ArenaKind.UNKNOWN if value is None else value


class ApproveArenaResponse(BaseModel):
    """Successful approval result."""

    model_config = _RESPONSE_CONFIG

    ok: bool = True
    arena: ArenaRead
    action: str
    attempts: int = 1


class BackfillErrorRead(BaseModel):
    """One failed project inside a backfill batch."""

    model_config = _RESPONSE_CONFIG

    project_id: uuid.UUID
    slug: Optional[str]
    message: str


class BackfillSummaryRead(BaseModel):
    """Counts reported by a backfill pass."""

    model_config = _RESPONSE_CONFIG

    total_eligible: int
    scanned_count: int
    created_count: int
    updated_count: int
    skipped_count: int
    errors: list[BackfillErrorRead] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class BackfillResponse(BaseModel):
    """Envelope for ``POST /admin/arenas/backfill``."""

    model_config = _RESPONSE_CONFIG

    ok: bool = True
    dry_run: bool
    summary: BackfillSummaryRead


class ClassifyLegacyResponse(BaseModel):
    """Envelope for ``POST /admin/arenas/classify-legacy``.

    Attributes:
        classified: Number of unknown-kind rows labelled (or that would be
            labelled, on a dry run) as ``legacy_ms``.
        ambiguous: Projects holding more than one ms-family row.  These are
            never promoted automatically.
    """

    model_config = _RESPONSE_CONFIG

    ok: bool = True
    dry_run: bool
    classified: int
    ambiguous: list[uuid.UUID] = Field(default_factory=list)


class CurrentArenaResponse(BaseModel):
    """Envelope for ``GET /projects/{project_id}/current-ms-arena``."""

    model_config = _RESPONSE_CONFIG

    ok: bool = True
    project_id: uuid.UUID
    arena: Optional[ArenaRead] = None


class ErrorResponse(BaseModel):
    """Body returned for every rejected or failed request."""

    ok: bool = False
    code: str
    message: str
