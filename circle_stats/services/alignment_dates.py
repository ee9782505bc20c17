"""
Calendar helpers shared by the circle engine.

A "day" is a UTC calendar date. Document ids are deterministic composite
strings so the same (owner, day) pair always maps to the same row:

  user alignment   "{user_id}_{YYYY-MM-DD}"
  circle day       "{circle_id}_{YYYY-MM-DD}"
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def today() -> date:
    return utcnow().date()


def yesterday(day: Optional[date] = None) -> date:
    return (day or today()) - timedelta(days=1)


def date_key(day: date) -> str:
    return day.isoformat()


def alignment_doc_id(user_id: str, day: date) -> str:
    return f"{user_id}_{date_key(day)}"


def circle_day_doc_id(circle_id: str, day: date) -> str:
    return f"{circle_id}_{date_key(day)}"


def days_back(end: date, offset: int, days: int) -> list[date]:
    """
    Dates in the window [end - offset - days + 1, end - offset], newest first.
    """
    return [end - timedelta(days=i) for i in range(offset, offset + days)]


def to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Normalize a creation timestamp to a UTC calendar date.

    Accepts a date, an aware/naive datetime (naive is taken as UTC) or an
    ISO-8601 string. Returns None for None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (62.5 -> 63)."""
    return int(
        Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
