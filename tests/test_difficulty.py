"""Tests for difficulty.py: hysteresis, one-step moves, clamping."""

from __future__ import annotations

from aptitude_prep.config import EngineConfig
from aptitude_prep.difficulty import lower_difficulty, raise_difficulty, select_next

CONFIG = EngineConfig()


class TestSteps:
    def test_raise_clamps_at_hard(self):
        assert raise_difficulty("easy") == "medium"
        assert raise_difficulty("medium") == "hard"
        assert raise_difficulty("hard") == "hard"

    def test_lower_clamps_at_easy(self):
        assert lower_difficulty("hard") == "medium"
        assert lower_difficulty("medium") == "easy"
        assert lower_difficulty("easy") == "easy"


class TestSelectNext:
    def test_insufficient_samples_stays(self):
        assert select_next(0.99, "medium", samples=2, high_streak=5, config=CONFIG) == "medium"
        assert select_next(0.01, "medium", samples=0, high_streak=0, config=CONFIG) == "medium"

    def test_promotes_after_streak(self):
        assert select_next(0.9, "medium", samples=5, high_streak=2, config=CONFIG) == "hard"

    def test_single_high_estimate_does_not_promote(self):
        assert select_next(0.9, "medium", samples=3, high_streak=1, config=CONFIG) == "medium"

    def test_demotes_one_step(self):
        assert select_next(0.1, "hard", samples=5, high_streak=0, config=CONFIG) == "medium"

    def test_thresholds_are_inclusive(self):
        assert select_next(0.75, "easy", samples=5, high_streak=2, config=CONFIG) == "medium"
        assert select_next(0.35, "medium", samples=5, high_streak=0, config=CONFIG) == "easy"

    def test_middle_band_stays(self):
        assert select_next(0.5, "medium", samples=10, high_streak=0, config=CONFIG) == "medium"

    def test_constant_streams_converge(self):
        tier = "easy"
        for _ in range(10):
            tier = select_next(0.95, tier, samples=10, high_streak=10, config=CONFIG)
            assert tier in ("easy", "medium", "hard")
        assert tier == "hard"
        for _ in range(10):
            tier = select_next(0.05, tier, samples=10, high_streak=0, config=CONFIG)
        assert tier == "easy"
