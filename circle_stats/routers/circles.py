"""
Circles router: alignment stats for one accountability circle.

GET  /circles/{circle_id}/stats               basic stats, cache-checked (fast path)
GET  /circles/{circle_id}/stats/full          basic + percentile + 30-day history
GET  /circles/{circle_id}/stats/tab           percentile + paginated history (lazy load)
GET  /circles/{circle_id}/history             contribution history only
GET  /circles/{circle_id}/percentile          percentile only
GET  /circles/{circle_id}/streak              evaluate and return the circle streak
POST /circles/{circle_id}/cache/invalidate    drop the cached basic stats
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from circle_stats.core.config import settings
from circle_stats.core.errors import CircleNotFoundError, StatsUnavailableError
from circle_stats.db.base import get_db, get_session_factory
from circle_stats.models.circle import Circle
from circle_stats.schemas.circle_stats import (
    BasicStatsResponse,
    CacheInvalidationResponse,
    ContributionDayResponse,
    ContributionHistoryResponse,
    FullStatsResponse,
    MemberAlignmentResponse,
    MemberRowResponse,
    PercentileResponse,
    StatsTabResponse,
    StreakResponse,
)
from circle_stats.schemas.common import (
    NOT_FOUND_RESPONSE,
    UNAVAILABLE_RESPONSE,
    VALIDATION_RESPONSE,
)
from circle_stats.services.alignment_dates import date_key, to_date
from circle_stats.services.circle_stats_service import (
    BasicStats,
    get_full_stats,
    get_stats_tab_data,
    sort_member_rows,
)
from circle_stats.services.contribution_history import (
    ContributionDay,
    compute_contribution_history,
)
from circle_stats.services.daily_stats import MemberAlignment
from circle_stats.services.percentile import compute_percentile
from circle_stats.services.stats_cache import (
    CacheWriter,
    get_stats_with_cache,
    invalidate_circle_cache,
    write_stats_cache_detached,
)
from circle_stats.services.streak import get_circle_streak

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/circles", tags=["circles"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _store_guard(circle_id: str, operation: str) -> Iterator[None]:
    """A failed store read fails the whole request; never a partial number."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store error during %s for circle %s: %s", operation, circle_id, exc)
        raise StatsUnavailableError(circle_id, operation) from exc


def _get_circle_or_404(db: Session, circle_id: str, operation: str) -> Circle:
    with _store_guard(circle_id, operation):
        circle = db.query(Circle).filter(Circle.id == circle_id).first()
    if circle is None:
        raise CircleNotFoundError(circle_id)
    return circle


def _deferred_cache_writer(
    background_tasks: BackgroundTasks,
    session_factory: sessionmaker,
) -> CacheWriter:
    def _defer(circle_id: str, stats: BasicStats, computed_on: date, computed_at: datetime) -> None:
        background_tasks.add_task(
            write_stats_cache_detached,
            session_factory,
            circle_id,
            stats,
            computed_on,
            computed_at,
        )
    return _defer


def _members_to_response(
    member_alignments: dict[str, MemberAlignment],
) -> dict[str, MemberAlignmentResponse]:
    return {
        uid: MemberAlignmentResponse(
            alignment_score=ma.alignment_score,
            current_streak=ma.current_streak,
        )
        for uid, ma in member_alignments.items()
    }


def _history_to_response(history: list[ContributionDay]) -> list[ContributionDayResponse]:
    return [
        ContributionDayResponse(date=date_key(d.day), completion_rate=d.completion_rate)
        for d in history
    ]


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/stats
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/stats",
    response_model=BasicStatsResponse,
    summary="Basic circle stats (cached)",
    responses={
        200: {"description": "Today's average, change, streak and member display map."},
        404: NOT_FOUND_RESPONSE,
        422: VALIDATION_RESPONSE,
        503: UNAVAILABLE_RESPONSE,
    },
)
def circle_stats(
    circle_id: str,
    background_tasks: BackgroundTasks,
    include_members: bool = Query(
        default=False,
        description="Also return display-ordered member rows (coach first).",
    ),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Serve basic stats from the circle's cache entry when it was computed
    today and less than `STATS_CACHE_TTL_SECONDS` ago; otherwise compute them,
    return immediately and refresh the cache in the background.

    The streak is always read fresh, never from the cache entry.
    """
    circle = _get_circle_or_404(db, circle_id, "basic_stats")
    coach_id = circle.coach_id or None

    with _store_guard(circle_id, "basic_stats"):
        stats = get_stats_with_cache(
            db,
            circle_id,
            coach_id,
            defer=_deferred_cache_writer(background_tasks, session_factory),
        )

    members = None
    if include_members:
        members = [
            MemberRowResponse(
                user_id=row.user_id,
                role=row.role,
                alignment_score=row.alignment_score,
                current_streak=row.current_streak,
            )
            for row in sort_member_rows(stats.member_alignments, coach_id)
        ]

    return BasicStatsResponse(
        circle_id=circle_id,
        avg_alignment=stats.avg_alignment,
        alignment_change=stats.alignment_change,
        circle_streak=stats.circle_streak,
        from_cache=stats.from_cache,
        member_alignments=_members_to_response(stats.member_alignments),
        members=members,
    )


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/stats/full
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/stats/full",
    response_model=FullStatsResponse,
    summary="Full circle stats (expensive)",
    responses={
        200: {"description": "Basic stats plus percentile and 30-day history."},
        404: NOT_FOUND_RESPONSE,
        422: VALIDATION_RESPONSE,
        503: UNAVAILABLE_RESPONSE,
    },
)
def circle_stats_full(circle_id: str, db: Session = Depends(get_db)):
    """
    Everything at once. The percentile scans every circle, so prefer
    `/stats` for the first paint and `/stats/tab` for the rest.
    """
    _get_circle_or_404(db, circle_id, "full_stats")
    with _store_guard(circle_id, "full_stats"):
        stats = get_full_stats(db, circle_id)

    return FullStatsResponse(
        circle_id=circle_id,
        avg_alignment=stats.avg_alignment,
        alignment_change=stats.alignment_change,
        top_percentile=stats.top_percentile,
        circle_streak=stats.circle_streak,
        contribution_history=_history_to_response(stats.contribution_history),
        member_alignments=_members_to_response(stats.member_alignments),
    )


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/stats/tab
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/stats/tab",
    response_model=StatsTabResponse,
    summary="Stats tab: percentile + paginated contribution history",
    responses={
        200: {"description": "Percentile (first page only) and a page of history."},
        404: NOT_FOUND_RESPONSE,
        422: VALIDATION_RESPONSE,
        503: UNAVAILABLE_RESPONSE,
    },
)
def circle_stats_tab(
    circle_id: str,
    offset: int = Query(default=0, ge=0, description="Days to skip back from today."),
    limit: int = Query(
        default=settings.HISTORY_DEFAULT_DAYS, ge=1, le=366, description="Days per page."
    ),
    db: Session = Depends(get_db),
):
    """
    First page (`offset=0`): percentile and the most recent `limit` days.
    Later pages: history only, `top_percentile` is 0.

    History never extends before the circle's creation date.
    """
    circle = _get_circle_or_404(db, circle_id, "stats_tab")
    created_on = to_date(circle.created_at)

    with _store_guard(circle_id, "stats_tab"):
        tab = get_stats_tab_data(db, circle_id, created_on, offset=offset, limit=limit)

    return StatsTabResponse(
        circle_id=circle_id,
        top_percentile=tab.top_percentile,
        contribution_history=_history_to_response(tab.contribution_history),
        circle_created_at=date_key(created_on) if created_on else None,
        has_more=tab.has_more,
    )


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/history
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/history",
    response_model=ContributionHistoryResponse,
    summary="Contribution history",
    responses={
        200: {"description": "Daily completion rate, oldest first."},
        404: NOT_FOUND_RESPONSE,
        422: VALIDATION_RESPONSE,
        503: UNAVAILABLE_RESPONSE,
    },
)
def circle_history(
    circle_id: str,
    days: int = Query(default=settings.HISTORY_DEFAULT_DAYS, ge=1, le=366),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    circle = _get_circle_or_404(db, circle_id, "history")
    with _store_guard(circle_id, "history"):
        history = compute_contribution_history(
            db,
            circle_id,
            days,
            circle.coach_id or None,
            offset,
            circle.created_at,
        )
    return ContributionHistoryResponse(
        circle_id=circle_id,
        offset=offset,
        days=_history_to_response(history),
    )


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/percentile
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/percentile",
    response_model=PercentileResponse,
    summary="Rank among all circles",
    responses={404: NOT_FOUND_RESPONSE, 503: UNAVAILABLE_RESPONSE},
)
def circle_percentile(circle_id: str, db: Session = Depends(get_db)):
    """Full scan of all circles. Not for the first paint."""
    _get_circle_or_404(db, circle_id, "percentile")
    with _store_guard(circle_id, "percentile"):
        percentile = compute_percentile(db, circle_id)
    return PercentileResponse(circle_id=circle_id, top_percentile=percentile)


# ---------------------------------------------------------------------------
# GET /circles/{circle_id}/streak
# ---------------------------------------------------------------------------

@router.get(
    "/{circle_id}/streak",
    response_model=StreakResponse,
    summary="Circle streak",
    responses={404: NOT_FOUND_RESPONSE, 503: UNAVAILABLE_RESPONSE},
)
def circle_streak(circle_id: str, db: Session = Depends(get_db)):
    """Evaluate today's streak transition (at most once a day) and return it."""
    circle = _get_circle_or_404(db, circle_id, "streak")
    with _store_guard(circle_id, "streak"):
        streak = get_circle_streak(db, circle_id, circle.coach_id or None)
    return StreakResponse(
        circle_id=circle_id,
        current_streak=streak.current_streak,
        last_kept_date=date_key(streak.last_kept_date) if streak.last_kept_date else None,
    )


# ---------------------------------------------------------------------------
# POST /circles/{circle_id}/cache/invalidate
# ---------------------------------------------------------------------------

@router.post(
    "/{circle_id}/cache/invalidate",
    response_model=CacheInvalidationResponse,
    summary="Drop the cached basic stats",
    responses={404: NOT_FOUND_RESPONSE, 503: UNAVAILABLE_RESPONSE},
)
def circle_cache_invalidate(circle_id: str, db: Session = Depends(get_db)):
    """
    The next `/stats` read recomputes. A failed invalidation is logged and
    reported as an empty list; the TTL still bounds staleness.
    """
    _get_circle_or_404(db, circle_id, "cache_invalidate")
    cleared = invalidate_circle_cache(db, circle_id)
    return CacheInvalidationResponse(invalidated_circle_ids=[circle_id] if cleared else [])
