"""
Stats cache: basic stats stored on the circle row.

Freshness
---------
A cache hit needs all of:
  1. cached_at == today                        (stats from yesterday are never served)
  2. now - cached_at_timestamp <= TTL (5 min)  (backstop for a missed invalidation)
  3. avg, change and member map all present

The streak is never served from the entry: on a hit it is read from the
persisted circle summary, which has its own once-a-day write rule.

Writes and invalidation
-----------------------
The cache is an optimization, not a source of truth. Failing to write or to
clear it is logged and swallowed; the next read simply recomputes, and the TTL
bounds how long a missed invalidation can serve stale numbers.

Whoever writes a member's alignment row must call `invalidate_user_circles`
afterwards. That is the primary invalidation path.

Public API
----------
get_cached_stats(db, circle_id, today, now)              -> BasicStats | None
write_stats_cache(db, circle_id, stats, today, now)      -> bool
write_stats_cache_detached(session_factory, circle_id, stats, today, now)
invalidate_circle_cache(db, circle_id)                   -> bool
invalidate_user_circles(db, user_id)                     -> list[str]
get_stats_with_cache(db, circle_id, coach_id, defer, today, now) -> BasicStats
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from circle_stats.core.config import settings
from circle_stats.models.circle import Circle
from circle_stats.services import alignment_dates
from circle_stats.services.alignment_dates import as_utc
from circle_stats.services.circle_stats_service import BasicStats, get_basic_stats
from circle_stats.services.daily_stats import MemberAlignment
from circle_stats.services.membership import NOT_GIVEN, CoachArg, get_circle_ids_for_user
from circle_stats.services.streak import read_circle_streak

logger = logging.getLogger(__name__)

# (circle_id, stats, computed_on, computed_at): the entry is stamped with the
# day and instant the stats were computed, not when the write happens to run.
CacheWriter = Callable[[str, BasicStats, date, datetime], None]

_CLEARED_ENTRY = {
    Circle.cached_avg_alignment: None,
    Circle.cached_alignment_change: None,
    Circle.cached_member_alignments: None,
    Circle.cached_at: None,
    Circle.cached_at_timestamp: None,
}


def cache_ttl() -> timedelta:
    return timedelta(seconds=settings.STATS_CACHE_TTL_SECONDS)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def get_cached_stats(
    db: Session,
    circle_id: str,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Optional[BasicStats]:
    current_day = today or alignment_dates.today()
    moment = now or alignment_dates.utcnow()

    circle = (
        db.query(Circle)
        .filter(Circle.id == circle_id)
        .populate_existing()
        .first()
    )
    if circle is None:
        return None

    if circle.cached_at != current_day:
        return None
    if circle.cached_at_timestamp is None:
        return None
    if moment - as_utc(circle.cached_at_timestamp) > cache_ttl():
        return None
    if (
        circle.cached_avg_alignment is None
        or circle.cached_alignment_change is None
        or circle.cached_member_alignments is None
    ):
        return None

    return BasicStats(
        avg_alignment=circle.cached_avg_alignment,
        alignment_change=circle.cached_alignment_change,
        circle_streak=read_circle_streak(db, circle_id),
        member_alignments={
            uid: MemberAlignment.from_dict(value)
            for uid, value in circle.cached_member_alignments.items()
        },
        from_cache=True,
    )


# ---------------------------------------------------------------------------
# Write / invalidate (never raise)
# ---------------------------------------------------------------------------

def write_stats_cache(
    db: Session,
    circle_id: str,
    stats: BasicStats,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Store the entry as one UPDATE. Returns False on failure."""
    entry = {
        Circle.cached_avg_alignment: stats.avg_alignment,
        Circle.cached_alignment_change: stats.alignment_change,
        Circle.cached_member_alignments: {
            uid: ma.to_dict() for uid, ma in stats.member_alignments.items()
        },
        Circle.cached_at: today or alignment_dates.today(),
        Circle.cached_at_timestamp: now or alignment_dates.utcnow(),
    }
    try:
        db.query(Circle).filter(Circle.id == circle_id).update(
            entry, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to update stats cache for circle %s", circle_id, exc_info=True)
        return False
    return True


def write_stats_cache_detached(
    session_factory: sessionmaker,
    circle_id: str,
    stats: BasicStats,
    today: date,
    now: datetime,
) -> None:
    """Background-task variant: runs after the request session is gone."""
    db = session_factory()
    try:
        write_stats_cache(db, circle_id, stats, today=today, now=now)
    finally:
        db.close()


def invalidate_circle_cache(db: Session, circle_id: str) -> bool:
    try:
        db.query(Circle).filter(Circle.id == circle_id).update(
            _CLEARED_ENTRY, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            "Failed to invalidate stats cache for circle %s (TTL will expire it)",
            circle_id, exc_info=True,
        )
        return False
    return True


def invalidate_user_circles(db: Session, user_id: str) -> list[str]:
    """Clear the cache of every circle the user belongs to. Returns the circle ids cleared."""
    try:
        circle_ids = get_circle_ids_for_user(db, user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to look up circles of user %s", user_id, exc_info=True)
        return []
    return [cid for cid in circle_ids if invalidate_circle_cache(db, cid)]


# ---------------------------------------------------------------------------
# Read-through
# ---------------------------------------------------------------------------

def get_stats_with_cache(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
    defer: Optional[CacheWriter] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> BasicStats:
    """
    Serve basic stats from the cache, or compute them.

    On a miss the fresh stats are returned right away; the cache write is
    handed to `defer` (e.g. a background task) when given, otherwise it runs
    inline. Either way a failed write does not affect the result.
    """
    current_day = today or alignment_dates.today()
    moment = now or alignment_dates.utcnow()

    cached = get_cached_stats(db, circle_id, today=current_day, now=moment)
    if cached is not None:
        return cached

    fresh = get_basic_stats(db, circle_id, coach_id, today=current_day)
    if defer is not None:
        defer(circle_id, fresh, current_day, moment)
    else:
        write_stats_cache(db, circle_id, fresh, today=current_day, now=moment)
    return fresh
