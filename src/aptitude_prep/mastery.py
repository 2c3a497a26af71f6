"""Recency-weighted, difficulty-adjusted mastery estimation."""

from __future__ import annotations

from collections.abc import Sequence

from .config import EngineConfig, load_config
from .errors import ValidationError
from .models import INITIAL_MASTERY, AdaptiveState, Difficulty

NEUTRAL_MASTERY = INITIAL_MASTERY


def weighted_mastery(
    accuracy: Sequence[float],
    difficulties: Sequence[Difficulty],
    config: EngineConfig,
) -> float:
    """Mastery from an accuracy window and its aligned difficulty history.

    Entry i of n has recency weight w_i = decay ** (n - 1 - i), so the newest
    answer weighs 1. With c_i in {0, 1}:

        num = k * prior + sum(w_i * c_i * reward[tier_i])
        den = k + sum(w_i * (c_i * reward[tier_i] + (1 - c_i) * penalty[tier_i]))

    where k is ``prior_strength``. An empty window returns the prior.
    """
    if len(accuracy) != len(difficulties):
        raise ValidationError("accuracy window and difficulty history differ in length")
    n = len(accuracy)
    numerator = config.prior_strength * NEUTRAL_MASTERY
    denominator = config.prior_strength
    for index, (outcome, tier) in enumerate(zip(accuracy, difficulties)):
        weight = config.recency_decay ** (n - 1 - index)
        correct = max(0.0, min(1.0, float(outcome)))
        gain = weight * correct * config.reward[tier]
        numerator += gain
        denominator += gain + weight * (1.0 - correct) * config.penalty[tier]

    if denominator <= 0:
        return NEUTRAL_MASTERY
    return max(0.0, min(1.0, numerator / denominator))


def estimate(state: AdaptiveState, config: EngineConfig | None = None) -> float:
    """Current mastery for a state; pure in (recent_accuracy, recent_difficulties).

    Below ``min_samples`` the window says too little and the neutral prior is returned.
    """
    cfg = config or load_config()
    if state.samples < cfg.min_samples:
        return NEUTRAL_MASTERY
    return weighted_mastery(state.recent_accuracy, state.recent_difficulties, cfg)


def consecutive_high_estimates(state: AdaptiveState, config: EngineConfig | None = None) -> int:
    """Count trailing window prefixes whose estimate reaches the upper threshold.

    Prefixes shorter than ``min_samples`` never count. This is the hysteresis
    streak the selector requires before promoting.
    """
    cfg = config or load_config()
    accuracy = state.recent_accuracy
    difficulties = state.recent_difficulties
    streak = 0
    for end in range(len(accuracy), 0, -1):
        if end < cfg.min_samples:
            break
        if weighted_mastery(accuracy[:end], difficulties[:end], cfg) < cfg.upper_threshold:
            break
        streak += 1
    return streak


__all__ = [
    "NEUTRAL_MASTERY",
    "consecutive_high_estimates",
    "estimate",
    "weighted_mastery",
]
