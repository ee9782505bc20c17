"""
Batched reads of per-user alignment rows.

Ids are fetched in chunks of ALIGNMENT_FETCH_CHUNK_SIZE (one `IN` query per
chunk, chunks run sequentially) so a large circle never turns into a single
unbounded query. Results are keyed by user id; a user with no row maps to
None, which callers treat as a zero score.

Store errors propagate. A partial map would produce a wrong average.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Iterator, Optional, TypeVar

from sqlalchemy.orm import Session

from circle_stats.core.config import settings
from circle_stats.models.user_alignment import UserAlignment, UserAlignmentSummary
from circle_stats.services.alignment_dates import alignment_doc_id

T = TypeVar("T")


def chunked(items: list[T], size: Optional[int] = None) -> Iterator[list[T]]:
    size = size or settings.ALIGNMENT_FETCH_CHUNK_SIZE
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _unique(user_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(user_ids))


def get_user_alignments_for_date(
    db: Session,
    user_ids: Iterable[str],
    day: date,
) -> dict[str, Optional[UserAlignment]]:
    """Return {user_id: UserAlignment | None} for one calendar day."""
    ids = _unique(user_ids)
    alignments: dict[str, Optional[UserAlignment]] = {uid: None for uid in ids}
    if not ids:
        return alignments

    by_doc_id = {alignment_doc_id(uid, day): uid for uid in ids}
    for chunk in chunked(list(by_doc_id)):
        rows = db.query(UserAlignment).filter(UserAlignment.id.in_(chunk)).all()
        for row in rows:
            alignments[by_doc_id[row.id]] = row
    return alignments


def get_user_alignment_summaries(
    db: Session,
    user_ids: Iterable[str],
) -> dict[str, Optional[UserAlignmentSummary]]:
    """Return {user_id: UserAlignmentSummary | None}."""
    ids = _unique(user_ids)
    summaries: dict[str, Optional[UserAlignmentSummary]] = {uid: None for uid in ids}
    for chunk in chunked(ids):
        rows = (
            db.query(UserAlignmentSummary)
            .filter(UserAlignmentSummary.user_id.in_(chunk))
            .all()
        )
        for row in rows:
            summaries[row.user_id] = row
    return summaries


def score_of(alignment: Optional[UserAlignment]) -> int:
    return alignment.alignment_score if alignment is not None else 0


def is_fully_aligned(alignment: Optional[UserAlignment]) -> bool:
    return bool(alignment is not None and alignment.fully_aligned)
