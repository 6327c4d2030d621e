"""
tests/test_rank.py — Rank Ladder Tests
=======================================
"""

from __future__ import annotations

import pytest

from pullquest.engine.rank import next_rank, rank_of, rank_progress, xp_to_next


class TestRankOf:
    @pytest.mark.parametrize("xp,rank", [
        (0, "Code Novice"),
        (99, "Code Novice"),
        (100, "Code Apprentice"),
        (499, "Code Apprentice"),
        (500, "Code Contributor"),
        (1499, "Code Contributor"),
        (1500, "Code Master"),
        (3000, "Code Expert"),
        (4999, "Code Expert"),
        (5000, "Open Source Legend"),
        (1_000_000, "Open Source Legend"),
    ])
    def test_thresholds_are_inclusive_lower_bounds(self, xp, rank):
        assert rank_of(xp) == rank

    def test_negative_xp_is_clamped(self):
        assert rank_of(-50) == "Code Novice"


class TestXpToNext:
    def test_distance_to_next_threshold(self):
        assert xp_to_next(0) == 100
        assert xp_to_next(150) == 350
        assert xp_to_next(4999) == 1

    def test_terminal_rank_has_zero(self):
        assert xp_to_next(5000) == 0
        assert next_rank(7000) is None

    def test_negative_xp_counts_from_zero(self):
        assert xp_to_next(-10) == 100


class TestRankProgress:
    def test_progress_summary(self):
        assert rank_progress(600) == {
            "rank": "Code Contributor",
            "xp": 600,
            "xp_to_next": 900,
            "next_rank": "Code Master",
        }

    def test_progress_at_top(self):
        progress = rank_progress(5000)
        assert progress["next_rank"] is None
        assert progress["xp_to_next"] == 0
