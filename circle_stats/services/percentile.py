"""
Percentile ranker. Where a circle stands among all circles today.

Every circle's unrounded average of today's scores over its regular members
(0 for a circle with no members) is sorted descending. The target's 1-based
rank becomes "top N%":

    percentile = max(1, ceil(rank / total_circles * 100))

Ties keep circle-id order. No circles at all, or an unknown target, is
reported as 100.

This is a full scan of circles, memberships and today's alignment rows
(three bulk reads, no per-circle round trips). It must stay off the cached
fast path; the HTTP layer only serves it from the lazy-loaded stats tab and
the full-stats endpoint.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from circle_stats.models.circle import Circle, CircleMember
from circle_stats.services import alignment_dates
from circle_stats.services.alignment_store import get_user_alignments_for_date, score_of

logger = logging.getLogger(__name__)


@dataclass
class CircleAverage:
    circle_id: str
    avg_alignment: float


def rank_circles(
    db: Session,
    today: Optional[date] = None,
) -> list[CircleAverage]:
    """All circles, best average first."""
    day = today or alignment_dates.today()

    circles = db.query(Circle.id, Circle.coach_id).order_by(Circle.id).all()
    if not circles:
        return []
    coach_by_circle = {c.id: (c.coach_id or None) for c in circles}

    members_by_circle: dict[str, list[str]] = defaultdict(list)
    rows = (
        db.query(CircleMember.circle_id, CircleMember.user_id)
        .order_by(CircleMember.id)
        .all()
    )
    for row in rows:
        if row.circle_id in coach_by_circle and row.user_id != coach_by_circle[row.circle_id]:
            members_by_circle[row.circle_id].append(row.user_id)

    all_members = {uid for uids in members_by_circle.values() for uid in uids}
    alignments = get_user_alignments_for_date(db, sorted(all_members), day)

    averages: list[CircleAverage] = []
    for circle in circles:
        member_ids = members_by_circle.get(circle.id, [])
        if not member_ids:
            averages.append(CircleAverage(circle.id, 0.0))
            continue
        total = sum(score_of(alignments.get(uid)) for uid in member_ids)
        averages.append(CircleAverage(circle.id, total / len(member_ids)))

    averages.sort(key=lambda a: a.avg_alignment, reverse=True)
    return averages


def percentile_from_rank(rank: int, total: int) -> int:
    if rank <= 0 or total <= 0:
        return 100
    return max(1, math.ceil(rank * 100 / total))


def compute_percentile(
    db: Session,
    circle_id: str,
    today: Optional[date] = None,
) -> int:
    ranking = rank_circles(db, today)
    if not ranking:
        return 100

    rank = next(
        (i for i, entry in enumerate(ranking, start=1) if entry.circle_id == circle_id),
        0,
    )
    if rank == 0:
        logger.info("Percentile requested for unknown circle %s", circle_id)
    return percentile_from_rank(rank, len(ranking))
