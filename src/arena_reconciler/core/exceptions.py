"""Application-wide exception hierarchy for Arena Reconciler.

All custom exceptions subclass ``ArenaReconcilerError``, enabling
consistent error handling and structured logging across the application.
Every exception carries a stable ``code`` (surfaced verbatim in HTTP error
bodies) and enough context to reproduce the failure without reading logs.

Hierarchy::

    ArenaReconcilerError
    ├── InvalidInputError              (invalid_input)
    │   └── ProjectNotFoundError       (project_not_found)
    ├── NotEligibleError               (not_eligible)
    ├── ReconciliationConflictError    (reconciliation_conflict)
    └── PerProjectBackfillError        (backfill_project_failed)
"""

from __future__ import annotations

import uuid
from typing import Any


class ArenaReconcilerError(Exception):
    """Base class for all Arena Reconciler exceptions.

    Args:
        message: Human-readable description of the failure.
        project_id: Project the failure relates to, when known.
    """

    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        project_id: uuid.UUID | str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.project_id = str(project_id) if project_id is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Return the structured context used for logging and error bodies."""
        context: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.project_id is not None:
            context["project_id"] = self.project_id
        return context


# ---------------------------------------------------------------------------
# Rejected requests (user-correctable, never retried)
# ---------------------------------------------------------------------------


class InvalidInputError(ArenaReconcilerError):
    """Raised for malformed identifiers, dates, or out-of-range parameters.

    Args:
        message: Description of what was wrong with the input.
        project_id: Project the input referred to, when known.
        field: Name of the offending input field.
    """

    code = "invalid_input"

    def __init__(
        self,
        message: str,
        project_id: uuid.UUID | str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, project_id=project_id)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        context = super().to_dict()
        if self.field is not None:
            context["field"] = self.field
        return context


class ProjectNotFoundError(InvalidInputError):
    """Raised when the referenced project does not exist."""

    code = "project_not_found"

    def __init__(self, project_id: uuid.UUID | str) -> None:
        super().__init__(
            f"Project '{project_id}' not found.",
            project_id=project_id,
            field="projectId",
        )


class NotEligibleError(ArenaReconcilerError):
    """Raised when a project does not pass the leaderboard eligibility gate.

    Args:
        project_id: The project that was rejected.
        failed_checks: Names of the individual eligibility checks that failed
            (e.g. ``["access_approved", "leaderboard_enabled"]``).
    """

    code = "not_eligible"

    def __init__(
        self,
        project_id: uuid.UUID | str,
        failed_checks: list[str] | None = None,
    ) -> None:
        checks = list(failed_checks or [])
        message = f"Project '{project_id}' is not eligible for a leaderboard arena"
        if checks:
            message += f" (failed: {', '.join(checks)})"
        super().__init__(message, project_id=project_id)
        self.failed_checks = checks

    def to_dict(self) -> dict[str, Any]:
        context = super().to_dict()
        context["failed_checks"] = self.failed_checks
        return context


# ---------------------------------------------------------------------------
# Write-path failures
# ---------------------------------------------------------------------------


class ReconciliationConflictError(ArenaReconcilerError):
    """Raised when the one-arena-per-project invariant is still violated after
    the single bounded retry.

    This is fatal: it signals an invariant or classifier gap that requires
    operator attention and must never be swallowed.

    Args:
        project_id: The project whose arena could not be reconciled.
        operation: The write that was being attempted (``"insert"`` or
            ``"update"``).
        observed_state: What the transaction saw when it gave up.
    """

    code = "reconciliation_conflict"

    def __init__(
        self,
        project_id: uuid.UUID | str,
        operation: str,
        observed_state: str,
    ) -> None:
        super().__init__(
            f"Could not reconcile arena for project '{project_id}' "
            f"during {operation}: {observed_state}",
            project_id=project_id,
        )
        self.operation = operation
        self.observed_state = observed_state

    def to_dict(self) -> dict[str, Any]:
        context = super().to_dict()
        context["operation"] = self.operation
        context["observed_state"] = self.observed_state
        return context


class PerProjectBackfillError(ArenaReconcilerError):
    """Wraps a failure of one project inside a backfill batch.

    Only ever recorded in the batch summary; never propagated to abort the
    batch.

    Args:
        project_id: The project that failed.
        slug: The project's slug (for operator readability).
        cause: The underlying exception.
    """

    code = "backfill_project_failed"

    def __init__(
        self,
        project_id: uuid.UUID | str,
        slug: str | None,
        cause: BaseException,
    ) -> None:
        if isinstance(cause, ArenaReconcilerError):
            message = cause.message
        else:
            message = f"Unexpected error: {cause}"
        super().__init__(message, project_id=project_id)
        self.slug = slug
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        context = super().to_dict()
        context["slug"] = self.slug
        context["cause"] = type(self.cause).__name__
        return context
