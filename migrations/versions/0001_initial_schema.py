"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Circles and membership, per-user alignment inputs, and the circle engine's
own state (per-day records and streak summaries).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # --- circles (+ cache entry columns) ---
    op.create_table(
        "circles",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("coach_id", sa.String(128), nullable=True),
        sa.Column("member_ids", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.Column("cached_avg_alignment", sa.Integer(), nullable=True),
        sa.Column("cached_alignment_change", sa.Integer(), nullable=True),
        sa.Column("cached_member_alignments", sa.JSON(), nullable=True),
        sa.Column("cached_at", sa.Date(), nullable=True),
        sa.Column("cached_at_timestamp", sa.DateTime(timezone=True), nullable=True),
    )

    # --- circle_members ---
    op.create_table(
        "circle_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "circle_id", sa.String(128),
            sa.ForeignKey("circles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        _timestamp("created_at"),
        sa.UniqueConstraint("circle_id", "user_id", name="uq_circle_member"),
    )
    op.create_index("ix_circle_members_circle_id", "circle_members", ["circle_id"])
    op.create_index("ix_circle_members_user_id", "circle_members", ["user_id"])

    # --- user_alignments ---
    op.create_table(
        "user_alignments",
        sa.Column("id", sa.String(160), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("did_morning_checkin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("did_log_meals", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("did_log_workout", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("did_interact_with_circle", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_active_goal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("alignment_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fully_aligned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("streak_on_this_day", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_user_alignments_user_id", "user_alignments", ["user_id"])
    op.create_index("ix_user_alignments_date", "user_alignments", ["date"])

    # --- user_alignment_summaries ---
    op.create_table(
        "user_alignment_summaries",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_aligned_date", sa.Date(), nullable=True),
        _timestamp("updated_at"),
    )

    # --- circle_alignment_days (write-once for past dates) ---
    op.create_table(
        "circle_alignment_days",
        sa.Column("id", sa.String(160), primary_key=True),
        sa.Column("circle_id", sa.String(128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("fraction_fully_aligned", sa.Float(), nullable=False, server_default="0"),
        sa.Column("num_fully_aligned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_members", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("kept", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_circle_alignment_days_circle_id", "circle_alignment_days", ["circle_id"])
    op.create_index("ix_circle_alignment_days_date", "circle_alignment_days", ["date"])

    # --- circle_alignment_summaries ---
    op.create_table(
        "circle_alignment_summaries",
        sa.Column("circle_id", sa.String(128), primary_key=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_kept_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("circle_alignment_summaries")
    op.drop_index("ix_circle_alignment_days_date", table_name="circle_alignment_days")
    op.drop_index("ix_circle_alignment_days_circle_id", table_name="circle_alignment_days")
    op.drop_table("circle_alignment_days")
    op.drop_table("user_alignment_summaries")
    op.drop_index("ix_user_alignments_date", table_name="user_alignments")
    op.drop_index("ix_user_alignments_user_id", table_name="user_alignments")
    op.drop_table("user_alignments")
    op.drop_index("ix_circle_members_user_id", table_name="circle_members")
    op.drop_index("ix_circle_members_circle_id", table_name="circle_members")
    op.drop_table("circle_members")
    op.drop_table("circles")
