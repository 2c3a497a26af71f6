"""Error taxonomy for the adaptive practice engine and its persistence layer."""

from __future__ import annotations


class PracticeError(Exception):
    """Base class for recoverable practice errors."""


class ValidationError(PracticeError, ValueError):
    """Malformed observation or request; raised before any state changes."""


class InsufficientDataError(PracticeError):
    """Not enough history to act on.

    The estimator and selector degrade to neutral values instead of raising
    this; callers that need a hard signal may raise it themselves.
    """


class ConflictError(PracticeError):
    """Adaptive state was written by someone else since it was loaded."""

    def __init__(self, user_id: str, category_id: str, expected: int, actual: int | None) -> None:
        self.user_id = user_id
        self.category_id = category_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Adaptive state for {user_id}/{category_id} changed "
            f"(expected version {expected}, found {actual})"
        )


class NotFoundError(PracticeError, LookupError):
    """Unknown session, question or category."""


__all__ = [
    "ConflictError",
    "InsufficientDataError",
    "NotFoundError",
    "PracticeError",
    "ValidationError",
]
