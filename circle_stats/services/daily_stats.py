"""
Daily stats aggregator for today's circle average and the change from yesterday.

Averages
--------
avg_today     = round(sum(today scores of regular members) / member count)
avg_yesterday = round(sum(yesterday scores of regular members) / member count)
change        = avg_today - avg_yesterday   (integer, may be negative)

Rounding is half-up on each average independently. A member without a row
for the day scores 0. The coach never enters a sum or a denominator.

Display map
-----------
member_alignments covers every user of the circle, coach included, with
today's score and the personal streak from the user summary. It is the only
output where the coach appears.

Public API
----------
compute_daily_stats(db, circle_id, coach_id, all_user_ids, today) -> DailyStats
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from circle_stats.services.alignment_dates import round_half_up, yesterday
from circle_stats.services import alignment_dates
from circle_stats.services.alignment_store import (
    get_user_alignment_summaries,
    get_user_alignments_for_date,
    score_of,
)
from circle_stats.services.membership import (
    NOT_GIVEN,
    CoachArg,
    get_all_user_ids,
    get_member_ids,
    resolve_coach_id,
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class MemberAlignment:
    alignment_score: int
    current_streak: int

    def to_dict(self) -> dict[str, int]:
        return {
            "alignment_score": self.alignment_score,
            "current_streak": self.current_streak,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemberAlignment":
        return cls(
            alignment_score=int(data.get("alignment_score") or 0),
            current_streak=int(data.get("current_streak") or 0),
        )


@dataclass
class DailyStats:
    avg_today: int = 0
    avg_yesterday: int = 0
    change: int = 0
    member_alignments: dict[str, MemberAlignment] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def average_score(scores: list[int], member_count: int) -> int:
    """Rounded mean; 0 for an empty circle."""
    if member_count == 0:
        return 0
    return round_half_up(sum(scores) / member_count)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def compute_daily_stats(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
    all_user_ids: Optional[list[str]] = None,
    today: Optional[date] = None,
) -> DailyStats:
    day = today or alignment_dates.today()
    prev_day = yesterday(day)

    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    member_ids = get_member_ids(db, circle_id, actual_coach_id)
    if not member_ids:
        return DailyStats()

    display_ids = (
        all_user_ids
        if all_user_ids is not None
        else get_all_user_ids(db, circle_id, actual_coach_id)
    )

    # Today: everyone (the display map needs the coach too).
    # Yesterday: regular members only, it only feeds the average.
    today_rows = get_user_alignments_for_date(db, display_ids, day)
    missing = [uid for uid in member_ids if uid not in today_rows]
    if missing:
        today_rows.update(get_user_alignments_for_date(db, missing, day))
    yesterday_rows = get_user_alignments_for_date(db, member_ids, prev_day)
    summaries = get_user_alignment_summaries(db, display_ids)

    member_alignments: dict[str, MemberAlignment] = {}
    for uid in display_ids:
        summary = summaries.get(uid)
        member_alignments[uid] = MemberAlignment(
            alignment_score=score_of(today_rows.get(uid)),
            current_streak=(summary.current_streak or 0) if summary is not None else 0,
        )

    avg_today = average_score(
        [score_of(today_rows.get(uid)) for uid in member_ids], len(member_ids)
    )
    avg_yesterday = average_score(
        [score_of(yesterday_rows.get(uid)) for uid in member_ids], len(member_ids)
    )

    return DailyStats(
        avg_today=avg_today,
        avg_yesterday=avg_yesterday,
        change=avg_today - avg_yesterday,
        member_alignments=member_alignments,
    )
