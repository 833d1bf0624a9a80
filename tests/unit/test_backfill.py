"""Unit tests for core/backfill.py: the batch reconciler.

Tests cover:
- A pass creates one ms arena per eligible project and reports counts.
- One bad project is recorded in ``errors`` without aborting the batch.
- Ineligible projects are neither counted nor touched.
- Legacy rows are promoted; correct arenas drop out of the scan.
- A dry run reports exactly what a real run does and writes nothing.
- ``limit`` pages through the backlog in ``(created_at, id)`` order.
- ``limit`` validation.
- ``nextCursor`` paging moves past projects that fail on every run.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from arena_reconciler.core.backfill import (
    BackfillCursor,
    BackfillReconciler,
    BackfillSummary,
)
from arena_reconciler.core.exceptions import InvalidInputError
from arena_reconciler.core.models import as_utc
from arena_reconciler.core.reconciler import ApprovalAction

_JUNE_1 = datetime(2025, 6, 1, tzinfo=timezone.utc)
_JULY_1 = datetime(2025, 7, 1, tzinfo=timezone.utc)


async def _seed_batch(make_project, count: int, **kwargs):
    return [await make_project(**kwargs) for _ in range(count)]


class TestBackfillPass:
    async def test_ten_projects_one_failure(self, backfill, make_project, fetch_arenas) -> None:
        """Nine projects get an arena; the one with an inverted window is reported."""
        projects = await _seed_batch(
            make_project, 9, leaderboard_start_at=_JUNE_1, leaderboard_end_at=_JULY_1
        )
        broken = await make_project(
            slug="broken", leaderboard_start_at=_JULY_1, leaderboard_end_at=_JUNE_1
        )
        await make_project(arc_active=False)

        summary = await backfill.run(limit=50)

        assert summary.total_eligible == 10
        assert summary.scanned_count == 10
        assert summary.created_count == 9
        assert summary.updated_count == 0
        assert summary.skipped_count == 0
        assert len(summary.errors) == 1
        error = summary.errors[0]
        assert error.project_id == broken.id
        assert error.slug == "broken"
        assert "endsAt" in error.message

        for project in projects:
            (arena,) = await fetch_arenas(project.id)
            assert arena.kind == "ms"
            assert arena.status == "active"
            assert as_utc(arena.starts_at) == _JUNE_1
            assert as_utc(arena.ends_at) == _JULY_1
        assert await fetch_arenas(broken.id) == []

    async def test_second_pass_only_rescans_failures(self, backfill, make_project) -> None:
        await _seed_batch(make_project, 3)
        await make_project(leaderboard_start_at=_JULY_1, leaderboard_end_at=_JUNE_1)

        await backfill.run()
        second = await backfill.run()

        assert second.total_eligible == 4
        assert second.scanned_count == 1
        assert second.created_count == 0
        assert len(second.errors) == 1

    async def test_ineligible_projects_untouched(
        self, backfill, make_project, make_arena, fetch_arenas
    ) -> None:
        ineligible = await make_project(option2_normal_unlocked=False)
        await make_arena(ineligible.id, kind=None, status="draft")

        summary = await backfill.run()

        assert summary.total_eligible == 0
        assert summary.scanned_count == 0
        (arena,) = await fetch_arenas(ineligible.id)
        assert arena.kind is None
        assert arena.status == "draft"

    async def test_promotes_legacy_and_skips_correct(
        self, backfill, make_project, make_arena, fetch_arenas
    ) -> None:
        legacy_project = await make_project()
        legacy = await make_arena(legacy_project.id, kind=None, status="draft")
        correct_project = await make_project()
        await make_arena(correct_project.id, kind="ms", status="active")

        summary = await backfill.run()

        assert summary.total_eligible == 2
        assert summary.scanned_count == 1
        assert summary.updated_count == 1
        (arena,) = await fetch_arenas(legacy_project.id)
        assert arena.id == legacy.id
        assert arena.kind == "ms"
        assert arena.status == "active"

    async def test_dates_drift_is_corrected(
        self, backfill, make_project, make_arena, fetch_arenas
    ) -> None:
        project = await make_project(leaderboard_start_at=_JUNE_1, leaderboard_end_at=_JULY_1)
        await make_arena(project.id, kind="ms", status="active", starts_at=_JUNE_1)

        summary = await backfill.run()

        assert summary.updated_count == 1
        (arena,) = await fetch_arenas(project.id)
        assert as_utc(arena.ends_at) == _JULY_1

    async def test_approver_recorded_on_created_arenas(
        self, backfill, make_project, fetch_arenas
    ) -> None:
        project = await make_project()
        approver = uuid.uuid4()

        await backfill.run(approved_by=approver)

        (arena,) = await fetch_arenas(project.id)
        assert arena.created_by == approver


class TestDryRun:
    async def test_dry_run_matches_real_run(
        self, backfill, make_project, make_arena, fetch_arenas
    ) -> None:
        projects = await _seed_batch(make_project, 3)
        await make_arena(projects[0].id, kind=None, status="draft")
        await make_project(leaderboard_start_at=_JULY_1, leaderboard_end_at=_JUNE_1)

        dry = await backfill.run(dry_run=True)

        assert [arena.kind for arena in await fetch_arenas(projects[0].id)] == [None]
        assert await fetch_arenas(projects[1].id) == []

        real = await backfill.run()

        assert dry.to_dict() == real.to_dict()
        assert (dry.created_count, dry.updated_count, len(dry.errors)) == (2, 1, 1)


class TestLimit:
    async def test_limit_pages_in_creation_order(self, backfill, make_project) -> None:
        projects = await _seed_batch(make_project, 5)
        order = [project.id for project in projects]

        first = await backfill.run(limit=2)
        second = await backfill.run(limit=2)
        third = await backfill.run(limit=2)
        fourth = await backfill.run(limit=2)

        assert [s.scanned_count for s in (first, second, third, fourth)] == [2, 2, 1, 0]
        assert all(s.total_eligible == 5 for s in (first, second, third, fourth))
        assert first.created_count + second.created_count + third.created_count == len(order)

    async def test_limit_selects_oldest_projects_first(
        self, backfill, make_project, fetch_arenas
    ) -> None:
        oldest, middle, newest = await _seed_batch(make_project, 3)

        await backfill.run(limit=1)

        assert len(await fetch_arenas(oldest.id)) == 1
        assert await fetch_arenas(middle.id) == []
        assert await fetch_arenas(newest.id) == []

    @pytest.mark.parametrize("limit", [0, -1, 501, True, "10", 2.5])
    def test_invalid_limit_rejected(self, backfill, limit) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            backfill.resolve_limit(limit)

        assert exc_info.value.field == "limit"

    def test_default_and_boundary_limits(self, backfill) -> None:
        assert backfill.resolve_limit(None) == 100
        assert backfill.resolve_limit(1) == 1
        assert backfill.resolve_limit(500) == 500


class TestErrorIsolation:
    async def test_unexpected_exception_recorded(self, session_factory, make_project) -> None:
        failing, succeeding = await _seed_batch(make_project, 2)
        reconciler = MagicMock()
        reconciler.approve = AsyncMock(
            side_effect=[RuntimeError("boom"), MagicMock(action=ApprovalAction.CREATED)]
        )

        summary = await BackfillReconciler(session_factory, reconciler).run()

        assert reconciler.approve.await_count == 2
        assert summary.created_count == 1
        assert summary.to_dict()["errors"] == [
            {
                "projectId": str(failing.id),
                "slug": failing.slug,
                "message": "Unexpected error: boom",
            }
        ]

    def test_summary_wire_format(self) -> None:
        summary = BackfillSummary(total_eligible=3, scanned_count=2)
        summary.record(ApprovalAction.CREATED)
        summary.record(ApprovalAction.SKIPPED)

        assert summary.to_dict() == {
            "totalEligible": 3,
            "scannedCount": 2,
            "createdCount": 1,
            "updatedCount": 0,
            "skippedCount": 1,
            "errors": [],
            "nextCursor": None,
        }


class TestCursorPaging:
    async def test_failing_oldest_project_does_not_block_later_pages(
        self, backfill, make_project, fetch_arenas
    ) -> None:
        broken = await make_project(leaderboard_start_at=_JULY_1, leaderboard_end_at=_JUNE_1)
        healthy = await make_project()

        first = await backfill.run(limit=1)
        restarted = await backfill.run(limit=1)

        assert [e.project_id for e in first.errors] == [broken.id]
        assert [e.project_id for e in restarted.errors] == [broken.id]
        assert await fetch_arenas(healthy.id) == []

        second = await backfill.run(limit=1, after=first.next_cursor)

        assert second.scanned_count == 1
        assert second.created_count == 1
        assert second.errors == []
        assert len(await fetch_arenas(healthy.id)) == 1

    async def test_cursor_walks_the_whole_table(self, backfill, make_project) -> None:
        for _ in range(3):
            await make_project(leaderboard_start_at=_JULY_1, leaderboard_end_at=_JUNE_1)
        await _seed_batch(make_project, 2)

        pages = []
        cursor = None
        while True:
            page = await backfill.run(limit=2, after=cursor)
            pages.append(page)
            cursor = page.next_cursor
            if cursor is None:
                break

        assert [p.scanned_count for p in pages] == [2, 2, 1]
        assert sum(len(p.errors) for p in pages) == 3
        assert sum(p.created_count for p in pages) == 2

    async def test_short_page_has_no_cursor(self, backfill, make_project) -> None:
        await _seed_batch(make_project, 2)

        full = await backfill.run(limit=2, dry_run=True)
        short = await backfill.run(limit=3, dry_run=True)

        assert full.next_cursor is not None
        assert short.next_cursor is None

    async def test_cursor_names_last_scanned_project(self, backfill, make_project) -> None:
        first, second = await _seed_batch(make_project, 2)

        summary = await backfill.run(limit=2, dry_run=True)

        cursor = BackfillCursor.decode(summary.next_cursor)
        assert cursor.project_id == second.id
        assert cursor.created_at == as_utc(second.created_at)
        assert cursor.project_id != first.id

    async def test_total_eligible_ignores_cursor(self, backfill, make_project) -> None:
        projects = await _seed_batch(make_project, 3)
        after = BackfillCursor(projects[-1].created_at, projects[-1].id).encode()

        summary = await backfill.run(after=after)

        assert summary.total_eligible == 3
        assert summary.scanned_count == 0
        assert summary.next_cursor is None

    @pytest.mark.parametrize(
        "after", ["", "garbage", "2024-01-01T00:00:00+00:00", "2024-01-01|not-a-uuid"]
    )
    async def test_malformed_cursor_rejected(self, backfill, after) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            await backfill.run(after=after)

        assert exc_info.value.field == "after"

    def test_cursor_round_trip_normalises_to_utc(self) -> None:
        project_id = uuid.uuid4()
        naive = datetime(2024, 1, 1, 12, 30)

        decoded = BackfillCursor.decode(BackfillCursor(naive, project_id).encode())

        assert decoded.created_at == datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)
        assert decoded.project_id == project_id
