"""Aptitude Prep: adaptive practice with mastery tracking and session analytics."""

from .engine import AdaptiveUpdate, apply_observation, snapshot
from .errors import ConflictError, InsufficientDataError, NotFoundError, PracticeError, ValidationError
from .models import AdaptiveAnalytics, AdaptiveState, Observation, Recommendation, SessionStats

__all__ = [
    "AdaptiveAnalytics",
    "AdaptiveState",
    "AdaptiveUpdate",
    "ConflictError",
    "InsufficientDataError",
    "NotFoundError",
    "Observation",
    "PracticeError",
    "Recommendation",
    "SessionStats",
    "ValidationError",
    "apply_observation",
    "snapshot",
]
