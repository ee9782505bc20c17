"""
Alignment router, the hook the check-in subsystem calls.

POST /alignment/{user_id}/changed: a member's alignment row was written;
                                    drop the stats cache of their circles.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from circle_stats.db.base import get_db
from circle_stats.schemas.circle_stats import CacheInvalidationResponse
from circle_stats.services.stats_cache import invalidate_user_circles

router = APIRouter(prefix="/alignment", tags=["alignment"])


@router.post(
    "/{user_id}/changed",
    response_model=CacheInvalidationResponse,
    summary="Invalidate circle stats after a member's alignment changed",
    responses={
        200: {"description": "Circles whose cached stats were cleared."},
    },
)
def alignment_changed(user_id: str, db: Session = Depends(get_db)):
    """
    Call after every write to a user's alignment row so the circle view
    shows the new score on the next read instead of waiting for the TTL.

    Never fails on cache errors: a circle whose cache could not be cleared
    is simply absent from the response.
    """
    return CacheInvalidationResponse(
        invalidated_circle_ids=invalidate_user_circles(db, user_id),
    )
