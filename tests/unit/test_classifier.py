"""Unit tests for core/classifier.py: legacy classification of unknown-kind arenas.

Tests cover:
- normalize_kind() for every stored kind and competitor situation.
- classify_all() labels uncontested unknown rows as legacy_ms.
- Contested and orphaned unknown rows stay unknown; contested projects are
  reported as ambiguous.
- Rows of other kinds are never touched.
- A second pass is a no-op; a dry run counts without writing.
"""

from __future__ import annotations

import uuid

import pytest

from arena_reconciler.core.classifier import LegacyClassifier, normalize_kind
from arena_reconciler.core.models import Arena, ArenaKind


class TestNormalizeKind:
    @pytest.mark.parametrize(
        ("stored", "has_project", "has_competitor", "expected"),
        [
            (None, True, False, ArenaKind.LEGACY_MS),
            (None, True, True, ArenaKind.UNKNOWN),
            (None, False, False, ArenaKind.UNKNOWN),
            ("ms", True, False, ArenaKind.MS),
            ("legacy_ms", True, True, ArenaKind.LEGACY_MS),
            ("other", True, False, ArenaKind.OTHER),
        ],
    )
    def test_classification(self, stored, has_project, has_competitor, expected) -> None:
        project_id = uuid.uuid4() if has_project else None

        assert (
            normalize_kind(stored, project_id=project_id, has_competitor=has_competitor)
            is expected
        )


class TestClassifyAll:
    async def test_labels_uncontested_unknown_rows(
        self, session_factory, make_project, make_arena, fetch_arenas
    ) -> None:
        project = await make_project()
        legacy = await make_arena(project.id, kind=None, status="draft")
        other = await make_arena(project.id, kind="other")

        async with session_factory() as session:
            result = await LegacyClassifier(session).classify_all()
            await session.commit()

        assert result.classified == 1
        assert result.ambiguous == []
        rows = {arena.id: arena for arena in await fetch_arenas(project.id)}
        assert rows[legacy.id].kind == "legacy_ms"
        assert rows[legacy.id].status == "draft"
        assert rows[other.id].kind == "other"

    async def test_second_pass_is_noop(self, session_factory, make_project, make_arena) -> None:
        project = await make_project()
        await make_arena(project.id, kind=None)

        async with session_factory() as session:
            first = await LegacyClassifier(session).classify_all()
            await session.commit()
        async with session_factory() as session:
            second = await LegacyClassifier(session).classify_all()
            await session.commit()

        assert first.classified == 1
        assert second.classified == 0

    async def test_dry_run_counts_without_writing(
        self, session_factory, make_project, make_arena, fetch_arenas
    ) -> None:
        project = await make_project()
        await make_arena(project.id, kind=None)

        async with session_factory() as session:
            result = await LegacyClassifier(session).classify_all(dry_run=True)
            await session.rollback()

        assert result.classified == 1
        assert result.dry_run is True
        (arena,) = await fetch_arenas(project.id)
        assert arena.kind is None

    async def test_orphaned_unknown_row_stays_unknown(self, session_factory, make_arena) -> None:
        orphan = await make_arena(None, kind=None)

        async with session_factory() as session:
            result = await LegacyClassifier(session).classify_all()
            await session.commit()

        assert result.classified == 0
        async with session_factory() as session:
            reloaded = await session.get(Arena, orphan.id)
        assert reloaded is not None
        assert reloaded.kind is None


class TestAmbiguousProjects:
    """Projects with several ms-family rows can only exist before revision 002."""

    async def test_two_unknown_rows_are_reported_not_promoted(
        self, legacy_schema, session_factory, make_project, make_arena, fetch_arenas
    ) -> None:
        project = await make_project()
        await make_arena(project.id, kind=None)
        await make_arena(project.id, kind=None)

        async with session_factory() as session:
            result = await LegacyClassifier(session).classify_all()
            await session.commit()

        assert result.classified == 0
        assert result.ambiguous == [project.id]
        assert [arena.kind for arena in await fetch_arenas(project.id)] == [None, None]

    async def test_unknown_row_beside_ms_row_is_contested(
        self, legacy_schema, session_factory, make_project, make_arena, fetch_arenas
    ) -> None:
        contested = await make_project()
        clean = await make_project()
        await make_arena(contested.id, kind="ms")
        await make_arena(contested.id, kind=None)
        await make_arena(clean.id, kind=None)

        async with session_factory() as session:
            classifier = LegacyClassifier(session)
            assert await classifier.count_classifiable() == 1
            result = await classifier.classify_all()
            await session.commit()

        assert result.classified == 1
        assert result.ambiguous == [contested.id]
        assert sorted(
            (arena.kind or "") for arena in await fetch_arenas(contested.id)
        ) == ["", "ms"]
        assert [arena.kind for arena in await fetch_arenas(clean.id)] == ["legacy_ms"]
