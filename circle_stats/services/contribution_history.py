"""
Contribution history, the per-day completion rate of a circle.

A circle day
------------
    fraction_fully_aligned = fully aligned regular members / regular members
    kept                   = fraction_fully_aligned >= KEPT_FRACTION_THRESHOLD (0.5)

An empty circle has fraction 0 and is not kept.

Persistence rule
----------------
Today is still moving (members keep checking in), so today is always recomputed
and never stored; neither is any later day. Only a strictly past day is read from
`circle_alignment_days` when present, otherwise computed once and stored for
good. Past member rows cannot change, so two requests racing to store the
same day store the same values; the loser's IntegrityError is ignored.

History window
--------------
For `days` and `offset` the window is [today - offset - days + 1, today - offset],
walked newest to oldest, clipped to today (a negative offset adds no future
days) and cut at the circle's creation date, then returned oldest first. Days are processed HISTORY_DAY_BATCH_SIZE at a time: one read
for the stored days of the batch, then one batched alignment read per day
that still needs computing. The coach and the member list are resolved once
per call.

Public API
----------
get_or_compute_alignment_day(db, circle_id, day, coach_id, today)   -> AlignmentDay
compute_contribution_history(db, circle_id, days, coach_id, offset,
                             circle_created_at, today)               -> list[ContributionDay]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circle_stats.core.config import settings
from circle_stats.models.circle_alignment import CircleAlignmentDay
from circle_stats.services import alignment_dates
from circle_stats.services.alignment_dates import (
    circle_day_doc_id,
    date_key,
    days_back,
    round_half_up,
    to_date,
)
from circle_stats.services.alignment_store import (
    chunked,
    get_user_alignments_for_date,
    is_fully_aligned,
)
from circle_stats.services.membership import (
    NOT_GIVEN,
    CoachArg,
    get_member_ids,
    resolve_coach_id,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class AlignmentDay:
    circle_id: str
    day: date
    fraction_fully_aligned: float
    num_fully_aligned: int
    total_members: int
    kept: bool

    @classmethod
    def from_row(cls, row: CircleAlignmentDay) -> "AlignmentDay":
        return cls(
            circle_id=row.circle_id,
            day=row.day,
            fraction_fully_aligned=row.fraction_fully_aligned,
            num_fully_aligned=row.num_fully_aligned,
            total_members=row.total_members,
            kept=row.kept,
        )

    def to_row(self) -> CircleAlignmentDay:
        return CircleAlignmentDay(
            id=circle_day_doc_id(self.circle_id, self.day),
            circle_id=self.circle_id,
            day=self.day,
            fraction_fully_aligned=self.fraction_fully_aligned,
            num_fully_aligned=self.num_fully_aligned,
            total_members=self.total_members,
            kept=self.kept,
        )

    @property
    def completion_rate(self) -> int:
        return round_half_up(self.fraction_fully_aligned * 100)


@dataclass
class ContributionDay:
    day: date
    completion_rate: int     # 0–100

    def to_dict(self) -> dict:
        return {"date": date_key(self.day), "completion_rate": self.completion_rate}


# ---------------------------------------------------------------------------
# Core: single day (pure computation, no writes)
# ---------------------------------------------------------------------------

def compute_alignment_day(
    db: Session,
    circle_id: str,
    day: date,
    member_ids: list[str],
) -> AlignmentDay:
    total = len(member_ids)
    if total == 0:
        return AlignmentDay(circle_id, day, 0.0, 0, 0, False)

    alignments = get_user_alignments_for_date(db, member_ids, day)
    num_fully_aligned = sum(1 for uid in member_ids if is_fully_aligned(alignments.get(uid)))
    fraction = num_fully_aligned / total
    return AlignmentDay(
        circle_id=circle_id,
        day=day,
        fraction_fully_aligned=fraction,
        num_fully_aligned=num_fully_aligned,
        total_members=total,
        kept=fraction >= settings.KEPT_FRACTION_THRESHOLD,
    )


# ---------------------------------------------------------------------------
# Persistence: write-once for past days
# ---------------------------------------------------------------------------

def _load_stored_days(
    db: Session,
    circle_id: str,
    days: list[date],
) -> dict[date, AlignmentDay]:
    if not days:
        return {}
    doc_ids = [circle_day_doc_id(circle_id, d) for d in days]
    rows = db.query(CircleAlignmentDay).filter(CircleAlignmentDay.id.in_(doc_ids)).all()
    return {row.day: AlignmentDay.from_row(row) for row in rows}


def _store_days(db: Session, computed: list[AlignmentDay]) -> None:
    """Insert past days. A day already stored by a concurrent request is skipped."""
    if not computed:
        return
    db.add_all([d.to_row() for d in computed])
    try:
        db.commit()
        return
    except IntegrityError:
        db.rollback()

    # Someone else stored part of the batch first: insert the rest one by one.
    for item in computed:
        db.add(item.to_row())
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.debug(
                "Circle day %s already stored",
                circle_day_doc_id(item.circle_id, item.day),
            )


# ---------------------------------------------------------------------------
# Public: single day
# ---------------------------------------------------------------------------

def get_or_compute_alignment_day(
    db: Session,
    circle_id: str,
    day: date,
    coach_id: CoachArg = NOT_GIVEN,
    today: Optional[date] = None,
) -> AlignmentDay:
    current = today or alignment_dates.today()

    if day < current:
        stored = _load_stored_days(db, circle_id, [day])
        if day in stored:
            return stored[day]

    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    member_ids = get_member_ids(db, circle_id, actual_coach_id)
    result = compute_alignment_day(db, circle_id, day, member_ids)

    if day < current:
        _store_days(db, [result])
    return result


# ---------------------------------------------------------------------------
# Public: history window
# ---------------------------------------------------------------------------

def compute_contribution_history(
    db: Session,
    circle_id: str,
    days: Optional[int] = None,
    coach_id: CoachArg = NOT_GIVEN,
    offset: int = 0,
    circle_created_at: Union[date, datetime, str, None] = None,
    today: Optional[date] = None,
) -> list[ContributionDay]:
    current = today or alignment_dates.today()
    days = settings.HISTORY_DEFAULT_DAYS if days is None else days
    created_on = to_date(circle_created_at)

    window: list[date] = []
    for d in days_back(current, offset, days):
        # A negative offset reaches past today; those days have no data yet.
        if d > current:
            continue
        if created_on is not None and d < created_on:
            break
        window.append(d)
    if not window:
        return []

    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    member_ids: Optional[list[str]] = None

    history: list[ContributionDay] = []
    for batch in chunked(window, settings.HISTORY_DAY_BATCH_SIZE):
        stored = _load_stored_days(db, circle_id, [d for d in batch if d < current])

        to_store: list[AlignmentDay] = []
        for d in batch:
            result = stored.get(d)
            if result is None:
                if member_ids is None:
                    member_ids = get_member_ids(db, circle_id, actual_coach_id)
                result = compute_alignment_day(db, circle_id, d, member_ids)
                if d < current:
                    to_store.append(result)
            history.append(ContributionDay(day=d, completion_rate=result.completion_rate))

        _store_days(db, to_store)

    # Oldest first
    history.reverse()
    return history
