"""Observation recorder: bounded accuracy window and running time average."""

from __future__ import annotations

import math
from dataclasses import replace

from .config import EngineConfig, load_config
from .errors import ValidationError
from .models import DIFFICULTIES, AdaptiveState, Observation


def validate_observation(observation: Observation) -> None:
    """Raise ValidationError when an observation cannot be recorded."""
    if not isinstance(observation.correct, bool):
        raise ValidationError(f"correct must be a boolean, got {observation.correct!r}")
    time_seconds = observation.time_seconds
    if isinstance(time_seconds, bool) or not isinstance(time_seconds, (int, float)):
        raise ValidationError(f"time_seconds must be a number, got {time_seconds!r}")
    if not math.isfinite(time_seconds) or time_seconds < 0:
        raise ValidationError(f"time_seconds must be a finite non-negative number, got {time_seconds}")
    if observation.difficulty not in DIFFICULTIES:
        raise ValidationError(f"Unknown difficulty tier: {observation.difficulty!r}")


def blend_time(
    avg_time_seconds: float,
    time_seconds: float,
    previous_count: int,
    config: EngineConfig,
) -> float:
    if previous_count <= 0:
        return float(time_seconds)
    if config.time_blend == "ewma":
        return config.time_decay * avg_time_seconds + (1 - config.time_decay) * time_seconds
    return avg_time_seconds + (time_seconds - avg_time_seconds) / (previous_count + 1)


def record(
    state: AdaptiveState,
    observation: Observation,
    config: EngineConfig | None = None,
) -> AdaptiveState:
    """Return a new state with the observation appended; the input is untouched.

    The accuracy window keeps the newest ``window_size`` entries, evicting the
    oldest first. ``recent_difficulties`` is kept aligned with it.
    """
    validate_observation(observation)
    if len(state.recent_difficulties) != len(state.recent_accuracy):
        raise ValidationError(
            f"Difficulty history for {state.user_id}/{state.category_id} does not match its accuracy window"
        )
    cfg = config or load_config()

    accuracy = [*state.recent_accuracy, 1.0 if observation.correct else 0.0]
    difficulties = [*state.recent_difficulties, observation.difficulty]
    if len(accuracy) > cfg.window_size:
        accuracy = accuracy[-cfg.window_size:]
        difficulties = difficulties[-cfg.window_size:]

    return replace(
        state,
        recent_accuracy=accuracy,
        recent_difficulties=difficulties,
        avg_time_seconds=blend_time(
            state.avg_time_seconds,
            float(observation.time_seconds),
            state.questions_answered,
            cfg,
        ),
        questions_answered=state.questions_answered + 1,
    )


__all__ = ["blend_time", "record", "validate_observation"]
