"""
UserAlignment and UserAlignmentSummary, the per-user inputs to the circle engine.

Written by the check-in subsystem; read-only here.

user_alignments: one row per (user, calendar day), id "{user_id}_{YYYY-MM-DD}".
  alignment_score is 0, 25, 50, 75 or 100 (one quarter per daily behavior);
  fully_aligned is alignment_score == 100. Rows for elapsed days are final,
  today's row changes as the user checks in.

user_alignment_summaries: one row per user with the personal streak shown
  next to each member in the circle view.
"""
from datetime import datetime, date
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from circle_stats.db.base import Base


class UserAlignment(Base):
    __tablename__ = "user_alignments"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)

    did_morning_checkin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    did_log_meals: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    did_log_workout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    did_interact_with_circle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_active_goal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    alignment_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fully_aligned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    streak_on_this_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class UserAlignmentSummary(Base):
    __tablename__ = "user_alignment_summaries"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_aligned_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
