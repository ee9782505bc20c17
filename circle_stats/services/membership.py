"""
Membership resolver.

Reads `circles.coach_id` and `circle_members` fresh on every call; caching
happens one level up, on the stats entry. An unknown circle has no coach and
no members.

Functions that need the coach accept an already-resolved `coach_id`. Because
`None` is a legitimate value ("this circle has no coach"), "not supplied" is
spelled NOT_GIVEN.
"""
from __future__ import annotations

from typing import Optional, Union

from sqlalchemy.orm import Session

from circle_stats.models.circle import Circle, CircleMember


class _NotGiven:
    def __repr__(self) -> str:
        return "NOT_GIVEN"


NOT_GIVEN = _NotGiven()

CoachArg = Union[Optional[str], _NotGiven]


def get_coach_id(db: Session, circle_id: str) -> Optional[str]:
    coach_id = (
        db.query(Circle.coach_id)
        .filter(Circle.id == circle_id)
        .scalar()
    )
    return coach_id or None


def resolve_coach_id(db: Session, circle_id: str, coach_id: CoachArg) -> Optional[str]:
    if isinstance(coach_id, _NotGiven):
        return get_coach_id(db, circle_id)
    return coach_id


def _membership_user_ids(db: Session, circle_id: str) -> list[str]:
    rows = (
        db.query(CircleMember.user_id)
        .filter(CircleMember.circle_id == circle_id)
        .order_by(CircleMember.id)
        .all()
    )
    return [r.user_id for r in rows]


def get_all_user_ids(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
) -> list[str]:
    """
    Every user in the circle, coach included. Display purposes only.
    A coach without a membership row is appended at the end.
    """
    user_ids = _membership_user_ids(db, circle_id)
    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    if actual_coach_id and actual_coach_id not in user_ids:
        user_ids.append(actual_coach_id)
    return user_ids


def get_member_ids(
    db: Session,
    circle_id: str,
    coach_id: CoachArg = NOT_GIVEN,
) -> list[str]:
    """Regular members only. This is the population for every aggregate."""
    actual_coach_id = resolve_coach_id(db, circle_id, coach_id)
    return [
        uid for uid in _membership_user_ids(db, circle_id)
        if uid != actual_coach_id
    ]


def get_circle_ids_for_user(db: Session, user_id: str) -> list[str]:
    rows = (
        db.query(CircleMember.circle_id)
        .filter(CircleMember.user_id == user_id)
        .order_by(CircleMember.id)
        .all()
    )
    return [r.circle_id for r in rows]
