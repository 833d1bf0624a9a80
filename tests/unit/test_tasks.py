"""Unit tests for the Celery surface: beat schedule, task helpers and task bodies.

The async helpers in ``workers/_task_helpers.py`` accept a session factory
override, so they run against the per-test SQLite database.  Task bodies are
called synchronously with the helpers patched out.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from arena_reconciler.core.exceptions import InvalidInputError
from arena_reconciler.workers._task_helpers import run_backfill, run_legacy_classification
from arena_reconciler.workers.beat_schedule import build_beat_schedule
from arena_reconciler.workers.celery_app import celery_app
from arena_reconciler.workers.tasks import backfill_arenas, classify_legacy_arenas


def _summary_payload(next_cursor=None) -> dict:
    return {
        "dryRun": False,
        "summary": {
            "totalEligible": 2,
            "scannedCount": 2,
            "createdCount": 2,
            "updatedCount": 0,
            "skippedCount": 0,
            "errors": [],
            "nextCursor": next_cursor,
        },
    }


class TestBeatSchedule:
    def test_disabled_schedule_is_empty(self) -> None:
        assert build_beat_schedule(False) == {}

    def test_enabled_schedule_references_registered_tasks(self) -> None:
        schedule = build_beat_schedule(True)

        assert set(schedule) == {"classify_legacy_arenas", "backfill_arenas"}
        for entry in schedule.values():
            assert entry["task"] in celery_app.tasks

    def test_nightly_backfill_follows_pages(self) -> None:
        schedule = build_beat_schedule(True)

        assert schedule["backfill_arenas"]["kwargs"] == {"follow_pages": True}


class TestTaskHelpers:
    async def test_run_backfill_returns_wire_summary(
        self, session_factory, make_project, fetch_arenas
    ) -> None:
        project = await make_project()

        result = await run_backfill(limit=10, session_factory=session_factory)

        assert result["dryRun"] is False
        assert result["summary"]["createdCount"] == 1
        assert result["summary"]["totalEligible"] == 1
        assert len(await fetch_arenas(project.id)) == 1

    async def test_run_backfill_dry_run(self, session_factory, make_project, fetch_arenas) -> None:
        project = await make_project()

        result = await run_backfill(dry_run=True, session_factory=session_factory)

        assert result["dryRun"] is True
        assert result["summary"]["createdCount"] == 1
        assert await fetch_arenas(project.id) == []

    async def test_run_backfill_resumes_after_cursor(
        self, session_factory, make_project, fetch_arenas
    ) -> None:
        first_project, second_project = [await make_project() for _ in range(2)]

        first = await run_backfill(limit=1, session_factory=session_factory)
        second = await run_backfill(
            limit=1,
            after=first["summary"]["nextCursor"],
            session_factory=session_factory,
        )

        assert first["summary"]["nextCursor"] is not None
        assert second["summary"]["createdCount"] == 1
        assert len(await fetch_arenas(first_project.id)) == 1
        assert len(await fetch_arenas(second_project.id)) == 1

    async def test_run_backfill_rejects_bad_limit(self, session_factory) -> None:
        with pytest.raises(InvalidInputError):
            await run_backfill(limit=0, session_factory=session_factory)

    async def test_run_backfill_rejects_bad_approver(self, session_factory) -> None:
        with pytest.raises(ValueError):
            await run_backfill(approved_by="not-a-uuid", session_factory=session_factory)

    async def test_run_legacy_classification(
        self, session_factory, make_project, make_arena, fetch_arenas
    ) -> None:
        project = await make_project()
        await make_arena(project.id, kind=None)

        result = await run_legacy_classification(session_factory=session_factory)

        assert result == {"dryRun": False, "classified": 1, "ambiguous": []}
        (arena,) = await fetch_arenas(project.id)
        assert arena.kind == "legacy_ms"


class TestTaskBodies:
    def test_backfill_task_returns_helper_result(self) -> None:
        payload = {
            "dryRun": True,
            "summary": {
                "totalEligible": 1,
                "scannedCount": 1,
                "createdCount": 1,
                "updatedCount": 0,
                "skippedCount": 0,
                "errors": [],
                "nextCursor": None,
            },
        }
        helper = AsyncMock(return_value=payload)

        with patch("arena_reconciler.workers.tasks.run_backfill", helper):
            result = backfill_arenas(limit=5, dry_run=True)

        assert result == payload
        helper.assert_awaited_once_with(limit=5, dry_run=True, approved_by=None, after=None)

    def test_backfill_task_forwards_cursor(self) -> None:
        helper = AsyncMock(side_effect=RuntimeError("stop"))

        with patch("arena_reconciler.workers.tasks.run_backfill", helper):
            backfill_arenas(limit=2, after="cursor-token")

        helper.assert_awaited_once_with(
            limit=2, dry_run=False, approved_by=None, after="cursor-token"
        )

    def test_follow_pages_enqueues_next_page(self) -> None:
        payload = _summary_payload(next_cursor="2024-01-01T00:02:00+00:00|cursor-id")
        helper = AsyncMock(return_value=payload)

        with (
            patch("arena_reconciler.workers.tasks.run_backfill", helper),
            patch.object(backfill_arenas, "apply_async") as enqueue,
        ):
            backfill_arenas(limit=2, follow_pages=True)

        enqueue.assert_called_once_with(
            kwargs={
                "limit": 2,
                "dry_run": False,
                "approved_by": None,
                "after": "2024-01-01T00:02:00+00:00|cursor-id",
                "follow_pages": True,
            }
        )

    @pytest.mark.parametrize(
        ("follow_pages", "next_cursor"),
        [(True, None), (False, "2024-01-01T00:02:00+00:00|cursor-id")],
    )
    def test_no_next_page_enqueued(self, follow_pages, next_cursor) -> None:
        helper = AsyncMock(return_value=_summary_payload(next_cursor=next_cursor))

        with (
            patch("arena_reconciler.workers.tasks.run_backfill", helper),
            patch.object(backfill_arenas, "apply_async") as enqueue,
        ):
            backfill_arenas(follow_pages=follow_pages)

        enqueue.assert_not_called()

    def test_backfill_task_reports_failure(self) -> None:
        helper = AsyncMock(side_effect=RuntimeError("database unavailable"))

        with patch("arena_reconciler.workers.tasks.run_backfill", helper):
            result = backfill_arenas()

        assert result == {"error": "database unavailable", "dryRun": False}

    def test_classify_task_returns_helper_result(self) -> None:
        payload = {"dryRun": False, "classified": 2, "ambiguous": []}
        helper = AsyncMock(return_value=payload)

        with patch("arena_reconciler.workers.tasks.run_legacy_classification", helper):
            result = classify_legacy_arenas()

        assert result == payload
        helper.assert_awaited_once_with(dry_run=False)
