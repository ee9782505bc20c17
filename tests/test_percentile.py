"""
Tests for the percentile ranker.

Covered:
  - "top N%" arithmetic, never below 1
  - ranking by unrounded member average, coach excluded
  - ties keep circle-id order
  - no circles / unknown circle → 100
"""
from __future__ import annotations

from datetime import date

import pytest

from circle_stats.services.percentile import (
    compute_percentile,
    percentile_from_rank,
    rank_circles,
)

TODAY = date(2090, 6, 15)


class TestPercentileFromRank:
    @pytest.mark.parametrize("rank,total,expected", [
        (1, 10, 10),
        (1, 3, 34),
        (2, 3, 67),
        (3, 3, 100),
        (1, 1, 100),
        (1, 1000, 1),
        (7, 10, 70),
        (0, 10, 100),
        (1, 0, 100),
    ])
    def test_values(self, rank, total, expected):
        assert percentile_from_rank(rank, total) == expected


class TestComputePercentile:
    def test_no_circles(self, db):
        assert compute_percentile(db, "anything", today=TODAY) == 100

    def test_unknown_circle(self, db, make_circle):
        make_circle(members=("a",))
        assert compute_percentile(db, "missing", today=TODAY) == 100

    def test_best_of_four_is_top_25(self, db, make_circle, set_alignment):
        ids = []
        for score in (100, 75, 50, 25):
            uid = f"user-{score}"
            ids.append(make_circle(members=(uid,)))
            set_alignment(uid, TODAY, score)

        assert [compute_percentile(db, cid, today=TODAY) for cid in ids] == [25, 50, 75, 100]

    def test_ranks_by_unrounded_average(self, db, make_circle, set_alignment):
        # a: 100 / 3 members, b: 75 / 2 members.
        a = make_circle(members=("a1", "a2", "a3"))
        b = make_circle(members=("b1", "b2"))
        set_alignment("a1", TODAY, 100)      # 33.33
        set_alignment("b1", TODAY, 75)       # 37.5

        ranking = rank_circles(db, TODAY)

        assert [r.circle_id for r in ranking] == [b, a]
        assert ranking[0].avg_alignment == 37.5
        assert ranking[1].avg_alignment == pytest.approx(100 / 3)

    def test_coach_excluded_from_ranking(self, db, make_circle, set_alignment):
        coached = make_circle(members=("a",), coach_id="coach")
        plain = make_circle(members=("b",))
        set_alignment("a", TODAY, 50)
        set_alignment("coach", TODAY, 100)
        set_alignment("b", TODAY, 75)

        assert compute_percentile(db, plain, today=TODAY) == 50
        assert compute_percentile(db, coached, today=TODAY) == 100

    def test_ties_keep_circle_id_order(self, db, make_circle):
        first = make_circle(members=("a",), circle_id="circle-a")
        second = make_circle(members=("b",), circle_id="circle-b")

        assert compute_percentile(db, first, today=TODAY) == 50
        assert compute_percentile(db, second, today=TODAY) == 100

    def test_empty_circle_averages_zero(self, db, make_circle, set_alignment):
        empty = make_circle(members=(), coach_id="coach", circle_id="circle-a")
        active = make_circle(members=("b",), circle_id="circle-b")
        set_alignment("b", TODAY, 25)

        ranking = rank_circles(db, TODAY)

        assert [(r.circle_id, r.avg_alignment) for r in ranking] == [
            (active, 25.0),
            (empty, 0.0),
        ]

    def test_other_days_do_not_count(self, db, make_circle, set_alignment):
        a = make_circle(members=("a",), circle_id="circle-a")
        b = make_circle(members=("b",), circle_id="circle-b")
        set_alignment("a", date(2090, 6, 14), 100)
        set_alignment("b", TODAY, 25)

        assert compute_percentile(db, b, today=TODAY) == 50
        assert compute_percentile(db, a, today=TODAY) == 100
