"""Initial schema: projects, access, features and arenas.

Creates the externally-owned project tables the eligibility gate reads and
the ``arenas`` table as it existed before classification: no ``kind``
column and no uniqueness guarantee per project.  Revision 002 adds both.

Revision ID: 001
Revises:
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(200), nullable=True, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("arc_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("arc_access_level", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "arc_project_access",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "application_status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_profile_id", sa.Uuid(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "application_status IN ('pending', 'approved', 'rejected')",
            name="ck_arc_project_access_status",
        ),
    )
    op.create_index(
        "ix_arc_project_access_project_id", "arc_project_access", ["project_id"]
    )

    op.create_table(
        "arc_project_features",
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "option2_normal_unlocked", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "leaderboard_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("leaderboard_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("leaderboard_end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "arenas",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_arenas_project_id", "arenas", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_arenas_project_id", table_name="arenas")
    op.drop_table("arenas")
    op.drop_table("arc_project_features")
    op.drop_index("ix_arc_project_access_project_id", table_name="arc_project_access")
    op.drop_table("arc_project_access")
    op.drop_table("projects")
