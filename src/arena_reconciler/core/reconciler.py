"""Approval transaction: race-safe find-or-create/update of a project's ms arena.

One approval is one unit of work:

  1. Re-read the eligibility rows; reject ineligible or unknown projects.
  2. Take the per-project lock and select the ms-family candidate
     ``FOR UPDATE`` (unknown-kind rows included).
  3. Candidate found: promote it to ``kind='ms'``, ``status='active'`` and
     merge any supplied dates.
  4. No candidate: look once more immediately before inserting, then insert
     a fresh ``ms`` arena under a unique slug.
  5. Commit (or roll back, on a dry run).

Arenas of other kinds on the same project are never read or written.

A unique-constraint violation during step 3/4 (a concurrent writer that got
past the lock, e.g. a bulk migration) is retried exactly once, in a fresh
transaction, as update-only.  If that fails too the approval raises
:class:`~arena_reconciler.core.exceptions.ReconciliationConflictError`.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_reconciler.core.arena_store import ArenaPatch, ArenaSpec, ArenaStore
from arena_reconciler.core.classifier import normalize_kind
from arena_reconciler.core.eligibility import EligibilitySnapshot, load_eligibility
from arena_reconciler.core.exceptions import (
    InvalidInputError,
    NotEligibleError,
    ReconciliationConflictError,
)
from arena_reconciler.core.models.arena import Arena, ArenaKind, ArenaStatus
from arena_reconciler.core.models.base import as_utc
from arena_reconciler.core.schemas.arena import ArenaRead

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2


class ApprovalAction(str, enum.Enum):
    """What an approval did to the ms arena."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Request / outcome values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalRequest:
    """A single approval of a project's leaderboard.

    Attributes:
        project_id: The project being approved.
        starts_at: Start of the window to write, if supplied.
        ends_at: End of the window to write, if supplied.
        approved_by: Approver identity, recorded as ``created_by`` on insert.
    """

    project_id: uuid.UUID
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None

    def validated(self) -> ApprovalRequest:
        """Return a copy with a UUID project id and UTC dates.

        Raises:
            InvalidInputError: If the project id is not a UUID or the window
                ends before it starts.
        """
        project_id = self.project_id
        if not isinstance(project_id, uuid.UUID):
            try:
                project_id = uuid.UUID(str(project_id))
            except ValueError as exc:
                raise InvalidInputError(
                    f"'{self.project_id}' is not a valid project id.",
                    field="projectId",
                ) from exc

        starts_at = as_utc(self.starts_at)
        ends_at = as_utc(self.ends_at)
        _check_window(project_id, starts_at, ends_at)
        return replace(self, project_id=project_id, starts_at=starts_at, ends_at=ends_at)


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of one approval.

    Attributes:
        arena: The arena as written (or as it would be written, on a dry run).
        action: Whether the arena was created, updated or left unchanged.
        attempts: Number of transactions used (1, or 2 after a conflict retry).
        previous_kind: Classification the row carried before this approval,
            ``None`` when the arena was created.
        dry_run: Whether the transaction was rolled back.
    """

    arena: ArenaRead
    action: ApprovalAction
    attempts: int = 1
    previous_kind: Optional[ArenaKind] = None
    dry_run: bool = False


def _check_window(
    project_id: uuid.UUID,
    starts_at: Optional[datetime],
    ends_at: Optional[datetime],
) -> None:
    if starts_at is not None and ends_at is not None and as_utc(ends_at) <= as_utc(starts_at):
        raise InvalidInputError(
            f"endsAt ({ends_at.isoformat()}) must be after startsAt ({starts_at.isoformat()}).",
            project_id=project_id,
            field="endsAt",
        )


def _same_instant(stored: Optional[datetime], supplied: datetime) -> bool:
    return stored is not None and as_utc(stored) == as_utc(supplied)


def build_patch(arena: Arena, request: ApprovalRequest) -> ArenaPatch:
    """Compute the changes an approval makes to an existing ms-family arena.

    Dates are merged only where the request supplies them; existing values
    are otherwise preserved.

    Raises:
        InvalidInputError: If merging the supplied dates into the stored ones
            yields a window that ends before it starts.
    """
    patch = ArenaPatch()
    if arena.kind != ArenaKind.MS.value:
        patch.kind = ArenaKind.MS
    if arena.status != ArenaStatus.ACTIVE.value:
        patch.status = ArenaStatus.ACTIVE
    if request.starts_at is not None and not _same_instant(arena.starts_at, request.starts_at):
        patch.starts_at = request.starts_at
    if request.ends_at is not None and not _same_instant(arena.ends_at, request.ends_at):
        patch.ends_at = request.ends_at

    merged_start = patch.starts_at or arena.starts_at
    merged_end = patch.ends_at or arena.ends_at
    _check_window(request.project_id, merged_start, merged_end)
    return patch


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class ArenaReconciler:
    """Runs approval transactions against the arena store.

    Each call opens its own sessions from *session_factory*; nothing is
    shared between approvals.

    Args:
        session_factory: Factory for the per-approval units of work.
        slug_suffix: Suffix for new arena slugs (``{project-slug}-{suffix}``).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        slug_suffix: str = "leaderboard",
    ) -> None:
        self._session_factory = session_factory
        self._slug_suffix = slug_suffix

    async def approve(
        self,
        request: ApprovalRequest,
        *,
        skip_unchanged: bool = False,
        dry_run: bool = False,
    ) -> ApprovalOutcome:
        """Make *request.project_id* have exactly one active ms arena.

        Args:
            request: The approval to apply.
            skip_unchanged: Issue no write when the existing arena already
                matches (reported as ``skipped``).  Single approvals leave
                this off so that every approval refreshes ``updated_at``.
            dry_run: Run the identical logic and roll back instead of
                committing.

        Returns:
            The :class:`ApprovalOutcome`.

        Raises:
            InvalidInputError: Malformed project id or dates.
            ProjectNotFoundError: The project does not exist.
            NotEligibleError: The project fails the eligibility gate.
            ReconciliationConflictError: The uniqueness conflict persisted
                through the single retry.
        """
        request = request.validated()
        log = logger.bind(project_id=str(request.project_id), dry_run=dry_run)

        try:
            return await self._run_unit(
                request,
                attempt=1,
                allow_insert=True,
                skip_unchanged=skip_unchanged,
                dry_run=dry_run,
            )
        except IntegrityError as exc:
            log.warning(
                "arena.approve.integrity_conflict",
                attempt=1,
                error=str(exc.orig),
            )

        try:
            return await self._run_unit(
                request,
                attempt=MAX_ATTEMPTS,
                allow_insert=False,
                skip_unchanged=skip_unchanged,
                dry_run=dry_run,
            )
        except IntegrityError as exc:
            raise self._conflict(
                request.project_id,
                operation="update",
                observed_state=f"unique constraint still violated on retry: {exc.orig}",
            ) from exc

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def _run_unit(
        self,
        request: ApprovalRequest,
        *,
        attempt: int,
        allow_insert: bool,
        skip_unchanged: bool,
        dry_run: bool,
    ) -> ApprovalOutcome:
        async with self._session_factory() as session:
            try:
                outcome = await self._decide_and_write(
                    session,
                    request,
                    attempt=attempt,
                    allow_insert=allow_insert,
                    skip_unchanged=skip_unchanged,
                    dry_run=dry_run,
                )
                if dry_run:
                    await session.rollback()
                else:
                    await session.commit()
            except Exception:
                await session.rollback()
                raise
        return outcome

    async def _decide_and_write(
        self,
        session: AsyncSession,
        request: ApprovalRequest,
        *,
        attempt: int,
        allow_insert: bool,
        skip_unchanged: bool,
        dry_run: bool,
    ) -> ApprovalOutcome:
        snapshot = await load_eligibility(session, request.project_id)
        if not snapshot.eligible:
            raise NotEligibleError(request.project_id, snapshot.failed_checks)

        store = ArenaStore(session)
        await store.lock_project(request.project_id)
        candidate = await store.find_candidate(request.project_id)

        if candidate is None and allow_insert:
            # Closes the window between any pre-flight check and the insert.
            candidate = await store.find_candidate(request.project_id)
            if candidate is not None:
                logger.info(
                    "arena.approve.double_check_hit",
                    project_id=str(request.project_id),
                    arena_id=str(candidate.id),
                )

        if candidate is None:
            if not allow_insert:
                raise self._conflict(
                    request.project_id,
                    operation="update",
                    observed_state=(
                        "insert hit a uniqueness conflict but no ms-family arena "
                        "is visible on re-read"
                    ),
                )
            return await self._insert(
                store, snapshot, request, attempt=attempt, dry_run=dry_run
            )

        return await self._update(
            store,
            candidate,
            request,
            attempt=attempt,
            skip_unchanged=skip_unchanged,
            dry_run=dry_run,
        )

    async def _insert(
        self,
        store: ArenaStore,
        snapshot: EligibilitySnapshot,
        request: ApprovalRequest,
        *,
        attempt: int,
        dry_run: bool,
    ) -> ApprovalOutcome:
        project = snapshot.project
        slug = await store.generate_unique_slug(
            store.slug_base_for(project.id, project.slug),
            self._slug_suffix,
        )
        arena = await store.create(
            ArenaSpec(
                project_id=project.id,
                slug=slug,
                name=f"{project.name} Leaderboard",
                kind=ArenaKind.MS,
                status=ArenaStatus.ACTIVE,
                starts_at=request.starts_at,
                ends_at=request.ends_at,
                created_by=request.approved_by,
            )
        )
        logger.info(
            "arena.created",
            project_id=str(project.id),
            arena_id=str(arena.id),
            slug=slug,
            attempt=attempt,
            dry_run=dry_run,
        )
        return ApprovalOutcome(
            arena=ArenaRead.model_validate(arena),
            action=ApprovalAction.CREATED,
            attempts=attempt,
            dry_run=dry_run,
        )

    async def _update(
        self,
        store: ArenaStore,
        candidate: Arena,
        request: ApprovalRequest,
        *,
        attempt: int,
        skip_unchanged: bool,
        dry_run: bool,
    ) -> ApprovalOutcome:
        previous_kind = normalize_kind(
            candidate.kind,
            project_id=candidate.project_id,
            has_competitor=await store.has_competitor(candidate),
        )
        patch = build_patch(candidate, request)

        if patch.is_empty() and skip_unchanged:
            logger.debug(
                "arena.unchanged",
                project_id=str(request.project_id),
                arena_id=str(candidate.id),
            )
            return ApprovalOutcome(
                arena=ArenaRead.model_validate(candidate),
                action=ApprovalAction.SKIPPED,
                attempts=attempt,
                previous_kind=previous_kind,
                dry_run=dry_run,
            )

        arena = await store.update(candidate, patch)
        logger.info(
            "arena.updated",
            project_id=str(request.project_id),
            arena_id=str(arena.id),
            previous_kind=previous_kind.value,
            changed=patch.changed_fields(),
            attempt=attempt,
            dry_run=dry_run,
        )
        return ApprovalOutcome(
            arena=ArenaRead.model_validate(arena),
            action=ApprovalAction.UPDATED,
            attempts=attempt,
            previous_kind=previous_kind,
            dry_run=dry_run,
        )

    @staticmethod
    def _conflict(
        project_id: uuid.UUID,
        *,
        operation: str,
        observed_state: str,
    ) -> ReconciliationConflictError:
        error = ReconciliationConflictError(project_id, operation, observed_state)
        logger.error("arena.approve.conflict", **error.to_dict())
        return error
