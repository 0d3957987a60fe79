"""Cached analyses and daily usage counters."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20250301_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cached_analyses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("activity_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("prompt_version", sa.String(length=50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("user_id", "activity_id", name="uq_cached_analyses_user_activity"),
    )
    op.create_index(
        "ix_cached_analyses_user_id",
        "cached_analyses",
        ["user_id"],
        unique=False,
    )

    op.create_table(
        "usage_counters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(length=128), nullable=False, unique=True),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reset_key", sa.String(length=10), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )


def downgrade() -> None:
    op.drop_table("usage_counters")
    op.drop_index("ix_cached_analyses_user_id", table_name="cached_analyses")
    op.drop_table("cached_analyses")
