"""Per-answer pipeline: record, re-estimate mastery, select the next tier."""

from __future__ import annotations

from dataclasses import dataclass, replace

from loguru import logger

from .config import EngineConfig, load_config
from .difficulty import select_next
from .mastery import consecutive_high_estimates, estimate
from .models import AdaptiveAnalytics, AdaptiveState, Difficulty, Observation
from .recorder import record


@dataclass(slots=True)
class AdaptiveUpdate:
    state: AdaptiveState
    previous_difficulty: Difficulty
    mastery_before: float
    mastery_after: float

    @property
    def transitioned(self) -> bool:
        return self.state.current_difficulty != self.previous_difficulty


def apply_observation(
    state: AdaptiveState,
    observation: Observation,
    config: EngineConfig | None = None,
) -> AdaptiveUpdate:
    """Fold one observation into a state. Raises ValidationError on bad input."""
    cfg = config or load_config()
    recorded = record(state, observation, cfg)
    mastery = estimate(recorded, cfg)
    next_difficulty = select_next(
        mastery,
        state.current_difficulty,
        samples=recorded.samples,
        high_streak=consecutive_high_estimates(recorded, cfg),
        config=cfg,
    )
    updated = replace(recorded, mastery_score=mastery, current_difficulty=next_difficulty)

    if next_difficulty != state.current_difficulty:
        logger.info(
            f"Difficulty {state.current_difficulty} -> {next_difficulty} for "
            f"{state.user_id}/{state.category_id} (mastery {mastery:.2f})"
        )
    else:
        logger.debug(f"Mastery {state.mastery_score:.2f} -> {mastery:.2f} for {state.user_id}/{state.category_id}")

    return AdaptiveUpdate(
        state=updated,
        previous_difficulty=state.current_difficulty,
        mastery_before=state.mastery_score,
        mastery_after=mastery,
    )


def snapshot(state: AdaptiveState) -> AdaptiveAnalytics:
    """Analytics view of a state; ``recent_accuracy`` is the window mean as a rounded percentage."""
    window = state.recent_accuracy
    recent = round(sum(window) / len(window) * 100) if window else 0
    return AdaptiveAnalytics(
        mastery_score=round(state.mastery_score, 4),
        current_difficulty=state.current_difficulty,
        recent_accuracy=int(recent),
        questions_answered=state.questions_answered,
    )


__all__ = ["AdaptiveUpdate", "apply_observation", "snapshot"]
