"""Engine tuning: YAML loader with environment override for the file path."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger

from .errors import ValidationError
from .models import DIFFICULTIES, Difficulty

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_CONFIG_FILE = DATA_DIR / "adaptive.yaml"
CONFIG_FILE = Path(os.environ.get("APTITUDE_PREP_CONFIG_PATH", DEFAULT_CONFIG_FILE))

TimeBlend = Literal["mean", "ewma"]
TIME_BLENDS: tuple[TimeBlend, ...] = ("mean", "ewma")


def _default_reward() -> dict[Difficulty, float]:
    return {"easy": 0.8, "medium": 1.0, "hard": 1.25}


def _default_penalty() -> dict[Difficulty, float]:
    return {"easy": 1.25, "medium": 1.0, "hard": 0.8}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    # Observation recorder
    window_size: int = 15
    time_blend: TimeBlend = "mean"
    time_decay: float = 0.8  # weight kept by the previous average under ewma

    # Mastery estimator
    recency_decay: float = 0.85
    prior_strength: float = 1.0
    reward: dict[Difficulty, float] = field(default_factory=_default_reward)
    penalty: dict[Difficulty, float] = field(default_factory=_default_penalty)

    # Difficulty selector
    upper_threshold: float = 0.75
    lower_threshold: float = 0.35
    promote_after: int = 2
    min_samples: int = 3

    # Recommendations (accuracies are percentages)
    weak_topic_accuracy: float = 50.0
    max_avg_time_seconds: float = 120.0
    decline_threshold: float = 10.0
    thrashing_ratio: float = 0.5
    min_questions_for_thrashing: int = 4

    # Learner recommendations across recent sessions
    learner_window_days: int = 7
    learner_weak_topic_accuracy: float = 60.0
    learner_strong_topic_accuracy: float = 80.0
    learner_max_weak_topics: int = 2
    learner_min_sessions: int = 3
    learner_max_avg_time_seconds: float = 90.0
    max_learner_recommendations: int = 5

    # Practice service
    max_conflict_retries: int = 3

    def __post_init__(self) -> None:
        if self.window_size < 1:
            raise ValidationError("window_size must be at least 1")
        if self.time_blend not in TIME_BLENDS:
            raise ValidationError(f"Unsupported time_blend: {self.time_blend}")
        if not 0.0 <= self.time_decay < 1.0:
            raise ValidationError("time_decay must be in [0, 1)")
        if not 0.0 < self.recency_decay <= 1.0:
            raise ValidationError("recency_decay must be in (0, 1]")
        if self.prior_strength < 0:
            raise ValidationError("prior_strength must not be negative")
        if not 0.0 <= self.lower_threshold < self.upper_threshold <= 1.0:
            raise ValidationError("thresholds must satisfy 0 <= lower < upper <= 1")
        if self.promote_after < 1 or self.min_samples < 0:
            raise ValidationError("promote_after must be >= 1 and min_samples >= 0")
        if self.max_conflict_retries < 1:
            raise ValidationError("max_conflict_retries must be at least 1")
        if self.learner_window_days < 1 or self.max_learner_recommendations < 1:
            raise ValidationError("learner_window_days and max_learner_recommendations must be at least 1")
        if self.learner_weak_topic_accuracy > self.learner_strong_topic_accuracy:
            raise ValidationError("learner_weak_topic_accuracy must not exceed learner_strong_topic_accuracy")
        for name in ("reward", "penalty"):
            weights = getattr(self, name)
            if set(weights) != set(DIFFICULTIES):
                raise ValidationError(f"{name} must define exactly {', '.join(DIFFICULTIES)}")
            if any(value <= 0 for value in weights.values()):
                raise ValidationError(f"{name} weights must be positive")


_config_cache: EngineConfig | None = None


def config_from_mapping(raw: dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a parsed YAML mapping, rejecting unknown keys."""
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValidationError(f"Unknown engine settings: {', '.join(unknown)}")
    values = dict(raw)
    for name in ("reward", "penalty"):
        if name in values:
            if not isinstance(values[name], dict):
                raise ValidationError(f"{name} must be a mapping of difficulty to weight")
            values[name] = {str(k).strip().lower(): float(v) for k, v in values[name].items()}
    try:
        return EngineConfig(**values)
    except TypeError as exc:
        raise ValidationError(f"Invalid engine settings: {exc}") from exc


def load_config(path: Path | None = None) -> EngineConfig:
    """Read engine settings from YAML. Cached in memory for the default path."""
    global _config_cache
    if _config_cache is not None and path is None:
        return _config_cache

    file_path = path or CONFIG_FILE
    if not file_path.exists():
        logger.warning(f"Engine config {file_path} not found, using defaults")
        config = EngineConfig()
    else:
        with open(file_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValidationError(f"Engine config must be a mapping in {file_path}")
        config = config_from_mapping(raw)
        logger.debug(f"Loaded engine config from {file_path}")

    if path is None:
        _config_cache = config
    return config


def clear_cache() -> None:
    """Clear the in-memory engine config cache."""
    global _config_cache
    _config_cache = None


__all__ = [
    "CONFIG_FILE",
    "EngineConfig",
    "TIME_BLENDS",
    "TimeBlend",
    "clear_cache",
    "config_from_mapping",
    "load_config",
]
