"""Pydantic schemas for Arena Reconciler request and response payloads."""

from __future__ import annotations

from arena_reconciler.core.schemas.arena import (
    ApproveArenaRequest,
    ApproveArenaResponse,
    ArenaRead,
    BackfillErrorRead,
    BackfillRequest,
    BackfillResponse,
    BackfillSummaryRead,
    ClassifyLegacyRequest,
    ClassifyLegacyResponse,
    CurrentArenaResponse,
    ErrorResponse,
)

__all__ = [
    "ApproveArenaRequest",
    "ApproveArenaResponse",
    "ArenaRead",
    "BackfillErrorRead",
    "BackfillRequest",
    "BackfillResponse",
    "BackfillSummaryRead",
    "ClassifyLegacyRequest",
    "ClassifyLegacyResponse",
    "CurrentArenaResponse",
    "ErrorResponse",
]
