"""
CircleAlignmentDay and CircleAlignmentSummary, the state owned by the circle engine.

circle_alignment_days: one row per (circle, calendar day), id
  "{circle_id}_{YYYY-MM-DD}". Written lazily the first time a past day is
  read, then never updated: elapsed member rows cannot change, so the value
  is deterministic and a duplicate write from a racing request is harmless.
  Today's value is always recomputed and never stored.

circle_alignment_summaries: one row per circle holding the circle streak.
  `version` is bumped on every write; updates are conditional on the version
  that was read so a lost race applies nothing.
"""
from datetime import datetime, date
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from circle_stats.db.base import Base


class CircleAlignmentDay(Base):
    __tablename__ = "circle_alignment_days"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    circle_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    fraction_fully_aligned: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="0.0–1.0"
    )
    num_fully_aligned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_members: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Member count excluding the coach"
    )
    kept: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CircleAlignmentSummary(Base):
    __tablename__ = "circle_alignment_summaries"

    circle_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_kept_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
