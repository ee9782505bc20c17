"""
Circle stats composition.

basic     daily stats + streak evaluation. Cheap; what the stats cache fronts.
full      basic + percentile + 30-day contribution history. Expensive, never
          cached as a whole.
stats tab percentile + paginated history for the lazily loaded Stats tab.
          offset > 0 is a "load more" page: history only, percentile 0.

The coach is resolved once per call and passed down so no layer looks it
up again.

Public API
----------
get_basic_stats(db, circle_id, coach_id, today)                       -> BasicStats
get_full_stats(db, circle_id, today)                                  -> FullStats
get_stats_tab_data(db, circle_id, circle_created_at, offset, limit)   -> StatsTab
sort_member_rows(member_alignments, coach_id)                         -> list[MemberRow]
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from circle_stats.core.config import settings
from circle_stats.models.circle import CircleRole
from circle_stats.services.contribution_history import (
    ContributionDay,
    compute_contribution_history,
)
from circle_stats.services.daily_stats import MemberAlignment, compute_daily_stats
from circle_stats.services.membership import (
    NOT_GIVEN,
    CoachArg,
    get_all_user_ids,
    resolve_coach_id,
)
from circle_stats.services.percentile import compute_percentile
from circle_stats.services.streak import get_circle_streak


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class BasicStats:
    avg_alignment: int
    alignment_change: int
    circle_streak: int
    member_alignments: dict[str, MemberAlignment] = field(default_factory=dict)
    from_cache: bool = False


@dataclass
class FullStats:
    avg_alignment: int
    alignment_change: int
    top_percentile: int
    circle_streak: int
    contribution_history: list[ContributionDay]
    member_alignments: dict[str, MemberAlignment]


@dataclass
class StatsTab:
    top_percentile: int
    contribution_history: list[ContributionDay]
    has_more: bool


@dataclass
class MemberRow:
    user_id: str
    role: str
    alignment_score: int
    current_streak: int


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def get_basic_stats(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
    today: Optional[date] = None,
) -> BasicStats:
    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    all_user_ids = get_all_user_ids(db, circle_id, actual_coach_id)

    daily = compute_daily_stats(db, circle_id, actual_coach_id, all_user_ids, today=today)
    streak = get_circle_streak(db, circle_id, actual_coach_id, today=today)

    return BasicStats(
        avg_alignment=daily.avg_today,
        alignment_change=daily.change,
        circle_streak=streak.current_streak,
        member_alignments=daily.member_alignments,
    )


def get_full_stats(
    db: Session,
    circle_id: str,
    today: Optional[date] = None,
) -> FullStats:
    coach_id = resolve_coach_id(db, circle_id, NOT_GIVEN)
    basic = get_basic_stats(db, circle_id, coach_id, today=today)

    percentile = compute_percentile(db, circle_id, today=today)
    history = compute_contribution_history(
        db, circle_id, settings.HISTORY_DEFAULT_DAYS, coach_id, today=today
    )

    return FullStats(
        avg_alignment=basic.avg_alignment,
        alignment_change=basic.alignment_change,
        top_percentile=percentile,
        circle_streak=basic.circle_streak,
        contribution_history=history,
        member_alignments=basic.member_alignments,
    )


def get_stats_tab_data(
    db: Session,
    circle_id: str,
    circle_created_at: Union[date, datetime, str, None] = None,
    offset: int = 0,
    limit: Optional[int] = None,
    today: Optional[date] = None,
) -> StatsTab:
    limit = settings.HISTORY_DEFAULT_DAYS if limit is None else limit
    coach_id = resolve_coach_id(db, circle_id, NOT_GIVEN)

    history = compute_contribution_history(
        db, circle_id, limit, coach_id, offset, circle_created_at, today=today
    )
    # "Load more" pages only need the timeline.
    percentile = 0 if offset > 0 else compute_percentile(db, circle_id, today=today)

    return StatsTab(
        top_percentile=percentile,
        contribution_history=history,
        has_more=len(history) == limit and circle_created_at is not None,
    )


def sort_member_rows(
    member_alignments: dict[str, MemberAlignment],
    coach_id: Optional[str],
) -> list[MemberRow]:
    """Coach first, then score desc, streak desc, user id."""
    rows = [
        MemberRow(
            user_id=uid,
            role=CircleRole.COACH if uid == coach_id else CircleRole.MEMBER,
            alignment_score=ma.alignment_score,
            current_streak=ma.current_streak,
        )
        for uid, ma in member_alignments.items()
    ]
    rows.sort(key=lambda r: (
        r.role != CircleRole.COACH,
        -r.alignment_score,
        -r.current_streak,
        r.user_id,
    ))
    return rows
