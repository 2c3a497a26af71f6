from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, cast

Difficulty = Literal["easy", "medium", "hard"]
QuestionType = Literal["mcq", "true_false", "fill_blank"]
RecommendationType = Literal["practice", "time_management", "consistency", "difficulty"]
Priority = Literal["high", "medium", "low"]
SessionStatus = Literal["active", "completed"]

DIFFICULTIES: tuple[Difficulty, ...] = ("easy", "medium", "hard")
QUESTION_TYPES: tuple[QuestionType, ...] = ("mcq", "true_false", "fill_blank")
PRIORITIES: tuple[Priority, ...] = ("high", "medium", "low")

INITIAL_MASTERY = 0.50
INITIAL_DIFFICULTY: Difficulty = "medium"


@dataclass(slots=True)
class AdaptiveState:
    """Mastery tracking for one (user, category) pair."""

    user_id: str
    category_id: str
    mastery_score: float = INITIAL_MASTERY
    current_difficulty: Difficulty = INITIAL_DIFFICULTY
    recent_accuracy: list[float] = field(default_factory=list)
    recent_difficulties: list[Difficulty] = field(default_factory=list)
    avg_time_seconds: float = 0.0
    questions_answered: int = 0
    version: int = 0
    updated_at: str = ""

    @classmethod
    def initial(cls, user_id: str, category_id: str) -> AdaptiveState:
        return cls(user_id=user_id, category_id=category_id)

    @property
    def samples(self) -> int:
        return len(self.recent_accuracy)


@dataclass(slots=True)
class Observation:
    """One answered question."""

    correct: bool
    time_seconds: float
    difficulty: Difficulty
    topic: str | None = None
    question_id: str | None = None
    answered_at: str | None = None


@dataclass(frozen=True, slots=True)
class ListOptions:
    """Options stored as an ordered array of choice texts."""

    choices: tuple[str, ...]

    def labelled(self) -> list[tuple[str, str]]:
        return [(chr(ord("A") + index), text) for index, text in enumerate(self.choices)]

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "list", "options": list(self.choices)}


@dataclass(frozen=True, slots=True)
class KeyedOptions:
    """Options stored as a mapping of key (e.g. ``"A"``) to choice text."""

    choices: dict[str, str]

    def labelled(self) -> list[tuple[str, str]]:
        return list(self.choices.items())

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "keyed", "options": dict(self.choices)}


QuestionOptions = ListOptions | KeyedOptions


@dataclass(frozen=True, slots=True)
class AdaptiveQuestion:
    id: str
    text: str
    type: QuestionType
    options: QuestionOptions
    correct_answer: str
    difficulty: Difficulty
    subcategory_id: str
    subcategory_name: str
    category_id: str
    category_name: str
    explanation: str = ""
    marks: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Client-facing shape; never includes the correct answer."""
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "options": self.options.to_dict(),
            "difficulty": self.difficulty,
            "subcategory": {
                "id": self.subcategory_id,
                "name": self.subcategory_name,
                "category": {"id": self.category_id, "name": self.category_name},
            },
        }


@dataclass(slots=True)
class AdaptiveAnalytics:
    mastery_score: float
    current_difficulty: Difficulty
    recent_accuracy: int
    questions_answered: int


@dataclass(slots=True)
class SessionStats:
    avg_accuracy: float = 0.0
    avg_time_seconds: float = 0.0
    improvement_rate: float = 0.0
    difficulty_transitions: int = 0
    session_duration_seconds: float = 0.0
    topic_wise_accuracy: dict[str, float] = field(default_factory=dict)
    total_questions: int = 0
    correct_questions: int = 0


@dataclass(frozen=True, slots=True)
class Recommendation:
    type: RecommendationType
    title: str
    description: str
    priority: Priority
    action_url: str


@dataclass(slots=True)
class PracticeSession:
    id: int
    user_id: str
    category_id: str
    selected_subcategories: list[str]
    status: SessionStatus
    started_at: str
    ended_at: str | None


@dataclass(slots=True)
class MetricRecord:
    """One answered question as written to the metrics log."""

    session_id: int
    user_id: str
    question_id: str | None
    subcategory_id: str | None
    topic: str | None
    is_correct: bool
    time_taken_seconds: float
    difficulty: Difficulty
    previous_difficulty: Difficulty
    mastery_score_before: float
    mastery_score_after: float


@dataclass(slots=True)
class Category:
    id: str
    name: str
    slug: str


def ensure_difficulty(value: str) -> Difficulty:
    """Normalise and validate a difficulty tier string."""

    normalized = str(value).strip().lower()
    if normalized not in DIFFICULTIES:
        raise ValueError(f"Unsupported difficulty: {value}")
    return cast(Difficulty, normalized)


def ensure_question_type(value: str) -> QuestionType:
    normalized = str(value).strip().lower()
    if normalized not in QUESTION_TYPES:
        raise ValueError(f"Unsupported question type: {value}")
    return cast(QuestionType, normalized)


__all__ = [
    "AdaptiveAnalytics",
    "AdaptiveQuestion",
    "AdaptiveState",
    "Category",
    "DIFFICULTIES",
    "Difficulty",
    "ensure_difficulty",
    "ensure_question_type",
    "INITIAL_DIFFICULTY",
    "INITIAL_MASTERY",
    "KeyedOptions",
    "ListOptions",
    "MetricRecord",
    "Observation",
    "PracticeSession",
    "PRIORITIES",
    "Priority",
    "QUESTION_TYPES",
    "QuestionOptions",
    "QuestionType",
    "Recommendation",
    "RecommendationType",
    "SessionStats",
    "SessionStatus",
]
