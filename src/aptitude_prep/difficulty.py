"""Difficulty selector: three tiers, one step at a time."""

from __future__ import annotations

from .config import EngineConfig, load_config
from .models import DIFFICULTIES, Difficulty


def raise_difficulty(current: Difficulty) -> Difficulty:
    index = DIFFICULTIES.index(current)
    return DIFFICULTIES[min(index + 1, len(DIFFICULTIES) - 1)]


def lower_difficulty(current: Difficulty) -> Difficulty:
    index = DIFFICULTIES.index(current)
    return DIFFICULTIES[max(index - 1, 0)]


def select_next(
    mastery_score: float,
    current_difficulty: Difficulty,
    *,
    samples: int,
    high_streak: int,
    config: EngineConfig | None = None,
) -> Difficulty:
    """Pick the next tier.

    - fewer than ``min_samples`` observations: stay
    - mastery >= upper threshold for ``promote_after`` consecutive estimates: up
    - mastery <= lower threshold: down
    - otherwise stay
    """
    cfg = config or load_config()
    if samples < cfg.min_samples:
        return current_difficulty
    if mastery_score >= cfg.upper_threshold and high_streak >= cfg.promote_after:
        return raise_difficulty(current_difficulty)
    if mastery_score <= cfg.lower_threshold:
        return lower_difficulty(current_difficulty)
    return current_difficulty


__all__ = ["lower_difficulty", "raise_difficulty", "select_next"]
