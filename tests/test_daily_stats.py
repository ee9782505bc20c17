"""
Tests for the membership resolver and the daily stats aggregator.

Covered:
  - coach excluded from the member population, included in the display list
  - averages = round-half-up(sum / members), missing rows score 0
  - change = avg today - avg yesterday
  - coach score never moves any average (differential check)
  - empty circle → zeros, no division by zero
  - batched reads across the 30-id chunk boundary
"""
from __future__ import annotations

from datetime import date, timedelta

import pytest

from circle_stats.services.alignment_dates import round_half_up
from circle_stats.services.alignment_store import chunked, get_user_alignments_for_date
from circle_stats.services.daily_stats import average_score, compute_daily_stats
from circle_stats.services.membership import (
    NOT_GIVEN,
    get_all_user_ids,
    get_circle_ids_for_user,
    get_coach_id,
    get_member_ids,
)

TODAY = date(2090, 6, 15)
YESTERDAY = TODAY - timedelta(days=1)


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

class TestMembership:
    def test_coach_is_resolved_from_circle(self, db, make_circle):
        cid = make_circle(members=("a", "b"), coach_id="coach")
        assert get_coach_id(db, cid) == "coach"

    def test_members_exclude_coach(self, db, make_circle):
        cid = make_circle(members=("a", "b"), coach_id="coach")
        assert get_member_ids(db, cid) == ["a", "b"]

    def test_all_user_ids_include_coach(self, db, make_circle):
        cid = make_circle(members=("a", "b"), coach_id="coach")
        assert set(get_all_user_ids(db, cid)) == {"a", "b", "coach"}

    def test_explicit_none_coach_skips_lookup(self, db, make_circle):
        cid = make_circle(members=("a",), coach_id="coach")
        # Caller says "no coach": the coach's membership row counts as a member.
        assert set(get_member_ids(db, cid, None)) == {"a", "coach"}

    def test_unknown_circle_has_no_members(self, db):
        assert get_coach_id(db, "nope") is None
        assert get_member_ids(db, "nope") == []
        assert get_all_user_ids(db, "nope") == []

    def test_circle_ids_for_user(self, db, make_circle):
        c1 = make_circle(members=("shared", "x"))
        c2 = make_circle(members=("shared",))
        make_circle(members=("other",))
        assert get_circle_ids_for_user(db, "shared") == [c1, c2]

    def test_not_given_repr(self):
        assert repr(NOT_GIVEN) == "NOT_GIVEN"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    @pytest.mark.parametrize("value,expected", [
        (62.5, 63), (62.4, 62), (0.5, 1), (12.5, 13), (100.0, 100), (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_average_score_empty(self):
        assert average_score([], 0) == 0

    def test_chunked_sizes(self):
        chunks = list(chunked(list(range(65)), 30))
        assert [len(c) for c in chunks] == [30, 30, 5]


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class TestDailyStats:
    def test_example_scenario(self, db, make_circle, set_alignment):
        members = ("m1", "m2", "m3", "m4")
        cid = make_circle(members=members, coach_id="coach")
        for uid, t, y in zip(members, (100, 75, 50, 25), (100, 100, 50, 0)):
            set_alignment(uid, TODAY, t)
            set_alignment(uid, YESTERDAY, y)

        stats = compute_daily_stats(db, cid, today=TODAY)

        assert stats.avg_today == 63       # round(250 / 4)
        assert stats.avg_yesterday == 63
        assert stats.change == 0

    def test_missing_rows_count_as_zero(self, db, make_circle, set_alignment):
        cid = make_circle(members=("a", "b", "c"))
        set_alignment("a", TODAY, 75)

        stats = compute_daily_stats(db, cid, today=TODAY)

        assert stats.avg_today == 25
        assert stats.avg_yesterday == 0
        assert stats.change == 25
        assert stats.member_alignments["b"].alignment_score == 0

    def test_negative_change(self, db, make_circle, set_alignment):
        cid = make_circle(members=("a", "b"))
        set_alignment("a", YESTERDAY, 100)
        set_alignment("b", YESTERDAY, 100)
        set_alignment("a", TODAY, 50)

        stats = compute_daily_stats(db, cid, today=TODAY)

        assert stats.avg_today == 25
        assert stats.avg_yesterday == 100
        assert stats.change == -75

    def test_empty_circle_is_all_zero(self, db, make_circle):
        cid = make_circle(members=(), coach_id="coach")
        stats = compute_daily_stats(db, cid, today=TODAY)
        assert (stats.avg_today, stats.avg_yesterday, stats.change) == (0, 0, 0)
        assert stats.member_alignments == {}

    def test_unknown_circle_is_all_zero(self, db):
        stats = compute_daily_stats(db, "missing", today=TODAY)
        assert stats.avg_today == 0
        assert stats.member_alignments == {}

    def test_display_map_includes_coach_and_streaks(
        self, db, make_circle, set_alignment, set_user_streak
    ):
        cid = make_circle(members=("a",), coach_id="coach")
        set_alignment("coach", TODAY, 100)
        set_alignment("a", TODAY, 50)
        set_user_streak("coach", 9)
        set_user_streak("a", 2)

        stats = compute_daily_stats(db, cid, today=TODAY)

        assert stats.member_alignments["coach"].alignment_score == 100
        assert stats.member_alignments["coach"].current_streak == 9
        assert stats.member_alignments["a"].current_streak == 2
        assert stats.avg_today == 50

    def test_coach_score_never_moves_averages(self, db, make_circle, set_alignment):
        cid = make_circle(members=("a", "b"), coach_id="coach")
        set_alignment("a", TODAY, 100)
        set_alignment("b", TODAY, 50)
        set_alignment("a", YESTERDAY, 25)

        set_alignment("coach", TODAY, 0)
        set_alignment("coach", YESTERDAY, 0)
        low = compute_daily_stats(db, cid, today=TODAY)

        set_alignment("coach", TODAY, 100)
        set_alignment("coach", YESTERDAY, 100)
        high = compute_daily_stats(db, cid, today=TODAY)

        assert (low.avg_today, low.avg_yesterday, low.change) == (
            high.avg_today, high.avg_yesterday, high.change
        )
        assert low.member_alignments["coach"].alignment_score == 0
        assert high.member_alignments["coach"].alignment_score == 100

    def test_precomputed_user_list_is_used_for_display(self, db, make_circle, set_alignment):
        cid = make_circle(members=("a", "b"))
        set_alignment("a", TODAY, 100)

        stats = compute_daily_stats(db, cid, None, ["a"], today=TODAY)

        assert set(stats.member_alignments) == {"a"}
        # The average still covers every member.
        assert stats.avg_today == 50

    def test_large_circle_crosses_chunk_boundary(self, db, make_circle, set_alignment):
        members = tuple(f"user-{i:02d}" for i in range(45))
        cid = make_circle(members=members)
        for uid in members[::3]:       # 15 of 45 members at 100
            set_alignment(uid, TODAY, 100)

        rows = get_user_alignments_for_date(db, list(members), TODAY)
        assert len(rows) == 45
        assert sum(1 for r in rows.values() if r is not None) == 15

        stats = compute_daily_stats(db, cid, today=TODAY)
        assert stats.avg_today == 33       # round(1500 / 45) = round(33.33)
