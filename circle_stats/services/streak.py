"""
Circle streak engine: consecutive kept days, evaluated at most once a day.

Transition (today = T, yesterday = Y)
-------------------------------------
  last_kept_date == T            → no-op, already evaluated today
  today kept,  last_kept == Y    → streak + 1, last_kept = T
  today kept,  otherwise         → streak = 1, last_kept = T
  today not kept, last_kept == Y → unchanged (grace: yesterday's streak stays
                                   visible for the rest of today)
  today not kept, otherwise      → streak = 0

"Kept" is today's circle day from contribution_history (always recomputed).
A not-kept day leaves last_kept_date alone, so later calls on the same day
re-evaluate; once a member completes and the day becomes kept, the streak
advances on the next call.

Concurrency
-----------
The read-modify-write is guarded by `version`: the UPDATE only applies if the
version read is still current. The loser of a race applies nothing and returns
the winner's row instead of retrying, so two simultaneous first requests of
the day cannot both increment. A missing summary row is created with an
INSERT; a duplicate insert is handled the same way.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circle_stats.models.circle_alignment import CircleAlignmentSummary
from circle_stats.services import alignment_dates
from circle_stats.services.alignment_dates import yesterday
from circle_stats.services.contribution_history import get_or_compute_alignment_day
from circle_stats.services.membership import NOT_GIVEN, CoachArg

logger = logging.getLogger(__name__)


@dataclass
class CircleStreak:
    circle_id: str
    current_streak: int = 0
    last_kept_date: Optional[date] = None

    @classmethod
    def from_row(cls, row: CircleAlignmentSummary) -> "CircleStreak":
        return cls(
            circle_id=row.circle_id,
            current_streak=row.current_streak or 0,
            last_kept_date=row.last_kept_date,
        )


def advance_streak(
    current_streak: int,
    last_kept_date: Optional[date],
    kept: bool,
    today: date,
) -> tuple[int, Optional[date]]:
    """Apply one evaluation. Returns (current_streak, last_kept_date)."""
    prev_day = yesterday(today)
    if last_kept_date == today:
        return current_streak, last_kept_date

    if kept:
        if last_kept_date == prev_day:
            return current_streak + 1, today
        return 1, today

    if last_kept_date != prev_day:
        return 0, last_kept_date
    return current_streak, last_kept_date


def _load_summary(db: Session, circle_id: str) -> Optional[CircleAlignmentSummary]:
    return (
        db.query(CircleAlignmentSummary)
        .filter(CircleAlignmentSummary.circle_id == circle_id)
        .populate_existing()
        .first()
    )


def read_circle_streak(db: Session, circle_id: str) -> int:
    """Persisted streak value, no evaluation."""
    value = (
        db.query(CircleAlignmentSummary.current_streak)
        .filter(CircleAlignmentSummary.circle_id == circle_id)
        .scalar()
    )
    return value or 0


def _persisted(db: Session, circle_id: str) -> CircleStreak:
    row = _load_summary(db, circle_id)
    return CircleStreak.from_row(row) if row is not None else CircleStreak(circle_id)


def get_circle_streak(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
    today: Optional[date] = None,
) -> CircleStreak:
    current = today or alignment_dates.today()

    row = _load_summary(db, circle_id)
    if row is not None:
        state = CircleStreak.from_row(row)
        read_version: Optional[int] = row.version
    else:
        state = CircleStreak(circle_id)
        read_version = None

    if state.last_kept_date == current:
        return state

    day = get_or_compute_alignment_day(db, circle_id, current, coach_id, today=current)
    streak, last_kept = advance_streak(
        state.current_streak, state.last_kept_date, day.kept, current
    )
    result = CircleStreak(circle_id, streak, last_kept)

    if read_version is None:
        db.add(CircleAlignmentSummary(
            circle_id=circle_id,
            current_streak=streak,
            last_kept_date=last_kept,
            version=1,
        ))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Streak for circle %s created concurrently; keeping theirs", circle_id)
            return _persisted(db, circle_id)
        return result

    outcome = db.execute(
        update(CircleAlignmentSummary)
        .where(
            CircleAlignmentSummary.circle_id == circle_id,
            CircleAlignmentSummary.version == read_version,
        )
        .values(
            current_streak=streak,
            last_kept_date=last_kept,
            version=read_version + 1,
            updated_at=alignment_dates.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if outcome.rowcount == 0:
        logger.info("Streak for circle %s updated concurrently; keeping theirs", circle_id)
        return _persisted(db, circle_id)
    return result
