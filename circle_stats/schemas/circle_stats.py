"""
Circle stats schemas.

GET  /circles/{circle_id}/stats            → BasicStatsResponse
GET  /circles/{circle_id}/stats/full       → FullStatsResponse
GET  /circles/{circle_id}/stats/tab        → StatsTabResponse
GET  /circles/{circle_id}/history          → ContributionHistoryResponse
GET  /circles/{circle_id}/percentile       → PercentileResponse
GET  /circles/{circle_id}/streak           → StreakResponse
POST /circles/{circle_id}/cache/invalidate → CacheInvalidationResponse
POST /alignment/{user_id}/changed          → CacheInvalidationResponse
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MemberAlignmentResponse(BaseModel):
    alignment_score: int = Field(description="Today's score: 0, 25, 50, 75 or 100.")
    current_streak: int = Field(description="The user's personal streak.")


class MemberRowResponse(BaseModel):
    """One row of the member list, in display order."""
    user_id: str
    role: str = Field(description='"coach" or "member"')
    alignment_score: int
    current_streak: int


class ContributionDayResponse(BaseModel):
    date: str = Field(description="ISO date.")
    completion_rate: int = Field(
        description="Percent of regular members fully aligned that day. Range: 0–100."
    )


class BasicStatsResponse(BaseModel):
    """Fast stats for the circle page. Served from the cache when fresh."""
    model_config = ConfigDict(from_attributes=True)

    circle_id: str
    avg_alignment: int = Field(description="Today's rounded member average (coach excluded).")
    alignment_change: int = Field(description="avg today - avg yesterday.")
    circle_streak: int = Field(description="Consecutive kept days.")
    from_cache: bool
    member_alignments: dict[str, MemberAlignmentResponse] = Field(
        description="Per-user display data, coach included."
    )
    members: Optional[list[MemberRowResponse]] = Field(
        default=None,
        description="Display-ordered rows (coach first). Only with include_members=true.",
    )


class FullStatsResponse(BaseModel):
    circle_id: str
    avg_alignment: int
    alignment_change: int
    top_percentile: int = Field(description='Rank among all circles as "top N%".', examples=[10])
    circle_streak: int
    contribution_history: list[ContributionDayResponse] = Field(description="Oldest first.")
    member_alignments: dict[str, MemberAlignmentResponse]


class StatsTabResponse(BaseModel):
    circle_id: str
    top_percentile: int = Field(description="0 on load-more pages (offset > 0).")
    contribution_history: list[ContributionDayResponse]
    circle_created_at: Optional[str] = None
    has_more: bool = Field(description="True when another page may exist before this one.")


class ContributionHistoryResponse(BaseModel):
    circle_id: str
    offset: int
    days: list[ContributionDayResponse] = Field(description="Oldest first.")


class PercentileResponse(BaseModel):
    circle_id: str
    top_percentile: int


class StreakResponse(BaseModel):
    circle_id: str
    current_streak: int
    last_kept_date: Optional[str] = None


class CacheInvalidationResponse(BaseModel):
    invalidated_circle_ids: list[str]
