"""Add arenas.kind, classify legacy rows and enforce one ms arena per project.

Steps:

1. Add the nullable ``kind`` column.  Every existing row starts as unknown
   (``NULL``).
2. Label uncontested unknown rows (attached to a project, no other
   ms-family row for that project) as ``legacy_ms``.  Rows already carrying
   a kind are never touched, so the statement is safe to re-run.
3. Refuse to continue while any project still holds more than one
   ms-family row.  Those need an operator decision; promoting them blindly
   could merge unrelated arenas.
4. Create the partial unique index ``uq_arenas_project_ms_family`` and the
   ``status`` / ``kind`` check constraints.

Revision ID: 002
Revises: 001
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

_MS_FAMILY = "kind IN ('ms', 'legacy_ms') OR kind IS NULL"

_CLASSIFY_LEGACY_SQL = """
UPDATE arenas
   SET kind = 'legacy_ms', updated_at = CURRENT_TIMESTAMP
 WHERE kind IS NULL
   AND project_id IS NOT NULL
   AND NOT EXISTS (
       SELECT 1
         FROM arenas AS competitor
        WHERE competitor.project_id = arenas.project_id
          AND competitor.id <> arenas.id
          AND (competitor.kind IN ('ms', 'legacy_ms') OR competitor.kind IS NULL)
   )
"""

_AMBIGUOUS_SQL = f"""
SELECT project_id
  FROM arenas
 WHERE project_id IS NOT NULL
   AND ({_MS_FAMILY})
 GROUP BY project_id
HAVING COUNT(*) > 1
"""


def upgrade() -> None:
    with op.batch_alter_table("arenas") as batch_op:
        batch_op.add_column(sa.Column("kind", sa.String(20), nullable=True))

    op.execute(_CLASSIFY_LEGACY_SQL)

    ambiguous = [
        str(row[0]) for row in op.get_bind().execute(sa.text(_AMBIGUOUS_SQL)).fetchall()
    ]
    if ambiguous:
        raise RuntimeError(
            "Cannot create uq_arenas_project_ms_family: these projects hold more "
            "than one unclassified or ms arena and must be resolved by hand: "
            + ", ".join(ambiguous)
        )

    with op.batch_alter_table("arenas") as batch_op:
        batch_op.create_check_constraint(
            "ck_arenas_status", "status IN ('draft', 'active', 'ended')"
        )
        batch_op.create_check_constraint(
            "ck_arenas_kind", "kind IS NULL OR kind IN ('ms', 'legacy_ms', 'other')"
        )

    op.create_index(
        "uq_arenas_project_ms_family",
        "arenas",
        ["project_id"],
        unique=True,
        postgresql_where=sa.text(_MS_FAMILY),
        sqlite_where=sa.text(_MS_FAMILY),
    )


def downgrade() -> None:
    op.drop_index("uq_arenas_project_ms_family", table_name="arenas")
    with op.batch_alter_table("arenas") as batch_op:
        batch_op.drop_constraint("ck_arenas_kind", type_="check")
        batch_op.drop_constraint("ck_arenas_status", type_="check")
        batch_op.drop_column("kind")
