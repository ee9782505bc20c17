"""
Circle and CircleMember: accountability groups and their membership.

Both are owned by the circle admin flows. The stats engine only reads them,
except for the cache entry columns on `circles`:

  cached_avg_alignment       today's rounded member average
  cached_alignment_change    avg today - avg yesterday
  cached_member_alignments   JSON {user_id: {"alignment_score", "current_streak"}}
  cached_at                  calendar day the entry was computed
  cached_at_timestamp        instant the entry was computed (TTL check)

The five columns form a single entry: written together, cleared together.
"""
from datetime import datetime, date
from typing import Any, Optional

from sqlalchemy import JSON, String, DateTime, Date, Integer, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from circle_stats.db.base import Base


class CircleRole:
    MEMBER = "member"
    COACH = "coach"


class Circle(Base):
    __tablename__ = "circles"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    coach_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True,
        comment="Excluded from every aggregate; shown in the member display map only",
    )
    member_ids: Mapped[Optional[list[str]]] = mapped_column(
        JSON, nullable=True,
        comment="Denormalized member list (excludes coach), maintained by admin flows",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    cached_avg_alignment: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cached_alignment_change: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cached_member_alignments: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    cached_at: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    cached_at_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class CircleMember(Base):
    __tablename__ = "circle_members"
    __table_args__ = (
        UniqueConstraint("circle_id", "user_id", name="uq_circle_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    circle_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("circles.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CircleRole.MEMBER,
        comment='"member" or "coach"',
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
