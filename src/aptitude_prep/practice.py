"""Practice service: sessions, answer submission and summaries over the adaptive engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from loguru import logger

from .analytics import aggregate
from .config import EngineConfig, load_config
from .db import now_iso
from .engine import AdaptiveUpdate, apply_observation, snapshot
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    AdaptiveAnalytics,
    AdaptiveQuestion,
    AdaptiveState,
    MetricRecord,
    Observation,
    PracticeSession,
    Recommendation,
    SessionStats,
)
from .practice_db import (
    bulk_initialize,
    create_session,
    end_session as close_session,
    fetch_question,
    get_all_states,
    get_answered_question_ids,
    get_category,
    get_question,
    get_recent_sessions,
    get_session,
    get_session_observations,
    list_categories,
    load_state,
    save_answer,
)
from .questions import check_answer
from .recommendations import classify_mastery, generate, generate_for_learner


@dataclass
class SessionStart:
    session: PracticeSession
    analytics: AdaptiveAnalytics
    question: AdaptiveQuestion | None
    exhausted: bool


@dataclass
class SubmitResult:
    state: AdaptiveState
    analytics: AdaptiveAnalytics
    is_correct: bool
    correct_answer: str
    explanation: str
    next_question: AdaptiveQuestion | None
    exhausted: bool


@dataclass
class SessionSummary:
    session: PracticeSession
    stats: SessionStats
    recommendations: list[Recommendation] = field(default_factory=list)


@dataclass
class CategoryMastery:
    category_id: str
    name: str
    analytics: AdaptiveAnalytics


@dataclass
class LearnerOverview:
    user_id: str
    categories: list[CategoryMastery]
    strengths: list[str]
    weaknesses: list[str]
    mastery_levels: dict[str, float] = field(default_factory=dict)
    recommendations: list[Recommendation] = field(default_factory=list)
    total_sessions: int = 0


def _require_user(user_id: str) -> str:
    cleaned = str(user_id or "").strip()
    if not cleaned:
        raise ValidationError("user_id is required")
    return cleaned


def get_owned_session(user_id: str, session_id: int) -> PracticeSession:
    session = get_session(session_id)
    # Sessions of other users are reported as missing
    if session is None or session.user_id != user_id:
        raise NotFoundError(f"Session {session_id} not found")
    return session


def initialize_categories(user_id: str, category_ids: list[str]) -> list[AdaptiveState]:
    """Create default adaptive state for each category; existing progress is kept."""
    user_id = _require_user(user_id)
    if not category_ids:
        raise ValidationError("category_ids must not be empty")
    for category_id in category_ids:
        if get_category(category_id) is None:
            raise NotFoundError(f"Category {category_id} not found")
    states = bulk_initialize(user_id, category_ids)
    logger.info(f"Initialized {len(states)} categories for {user_id}")
    return states


def start_session(user_id: str, category_id: str, subcategory_ids: list[str] | None = None) -> SessionStart:
    user_id = _require_user(user_id)
    if get_category(category_id) is None:
        raise NotFoundError(f"Category {category_id} not found")
    session = create_session(user_id, category_id, subcategory_ids or [])
    state = load_state(user_id, category_id)
    question = fetch_question(category_id, session.selected_subcategories, state.current_difficulty)
    logger.info(f"Started session {session.id} for {user_id} in {category_id} at {state.current_difficulty}")
    return SessionStart(
        session=session,
        analytics=snapshot(state),
        question=question,
        exhausted=question is None,
    )


def next_question(user_id: str, session_id: int) -> AdaptiveQuestion | None:
    session = get_owned_session(_require_user(user_id), session_id)
    state = load_state(session.user_id, session.category_id)
    return fetch_question(
        session.category_id,
        session.selected_subcategories,
        state.current_difficulty,
        get_answered_question_ids(session.id),
    )


def _apply_with_retry(
    session: PracticeSession,
    question: AdaptiveQuestion,
    observation: Observation,
    config: EngineConfig,
) -> AdaptiveUpdate:
    retries = 0
    while True:
        state = load_state(session.user_id, session.category_id)
        update = apply_observation(state, observation, config)
        metric = MetricRecord(
            session_id=session.id,
            user_id=session.user_id,
            question_id=question.id,
            subcategory_id=question.subcategory_id,
            topic=question.subcategory_name,
            is_correct=observation.correct,
            time_taken_seconds=float(observation.time_seconds),
            difficulty=question.difficulty,
            previous_difficulty=update.previous_difficulty,
            mastery_score_before=update.mastery_before,
            mastery_score_after=update.mastery_after,
        )
        try:
            saved = save_answer(update.state, state.version, metric)
        except ConflictError as exc:
            if retries >= config.max_conflict_retries:
                logger.warning(f"Giving up after {retries} retries: {exc}")
                raise
            retries += 1
            logger.warning(f"Retrying answer for {session.user_id}/{session.category_id} ({retries}): {exc}")
            continue
        return AdaptiveUpdate(
            state=saved,
            previous_difficulty=update.previous_difficulty,
            mastery_before=update.mastery_before,
            mastery_after=update.mastery_after,
        )


def submit_answer(
    user_id: str,
    category_id: str | None,
    session_id: int,
    question_id: str,
    answer: str,
    time_seconds: float,
    config: EngineConfig | None = None,
) -> SubmitResult:
    """Grade an answer, fold it into the adaptive state and pick the next question.

    ``category_id`` of None means the session's own category. The new state and
    the metrics row are saved together. Raises ValidationError for bad input,
    NotFoundError for unknown sessions or questions and ConflictError when
    concurrent writers exhaust the retries.
    """
    cfg = config or load_config()
    user_id = _require_user(user_id)
    session = get_owned_session(user_id, session_id)
    if session.status != "active":
        raise ValidationError(f"Session {session_id} has already ended")
    if category_id is not None and session.category_id != category_id:
        raise ValidationError(f"Session {session_id} belongs to category {session.category_id}")
    question = get_question(question_id)
    if question is None or question.category_id != session.category_id:
        raise NotFoundError(f"Question {question_id} not found")

    is_correct = check_answer(question, answer)
    observation = Observation(
        correct=is_correct,
        time_seconds=time_seconds,
        difficulty=question.difficulty,
        topic=question.subcategory_name,
        question_id=question.id,
    )
    update = _apply_with_retry(session, question, observation, cfg)

    upcoming = fetch_question(
        session.category_id,
        session.selected_subcategories,
        update.state.current_difficulty,
        get_answered_question_ids(session.id),
    )
    return SubmitResult(
        state=update.state,
        analytics=snapshot(update.state),
        is_correct=is_correct,
        correct_answer=question.correct_answer,
        explanation=question.explanation,
        next_question=upcoming,
        exhausted=upcoming is None,
    )


def end_session(user_id: str, session_id: int) -> PracticeSession:
    session = get_owned_session(_require_user(user_id), session_id)
    ended = close_session(session.id)
    if ended is None:
        raise NotFoundError(f"Session {session_id} not found")
    logger.info(f"Ended session {session_id} for {session.user_id}")
    return ended


def get_session_summary(
    user_id: str,
    session_id: int,
    config: EngineConfig | None = None,
) -> SessionSummary:
    session = get_owned_session(_require_user(user_id), session_id)
    stats = aggregate(get_session_observations(session.id))
    return SessionSummary(
        session=session,
        stats=stats,
        recommendations=generate(stats, config),
    )


def recent_session_stats(
    user_id: str,
    category_id: str | None = None,
    config: EngineConfig | None = None,
    now: datetime | None = None,
) -> list[SessionStats]:
    """Stats of the learner's answered sessions within the recent window, newest first."""
    cfg = config or load_config()
    moment = now or datetime.now(timezone.utc)
    since = now_iso(moment - timedelta(days=cfg.learner_window_days))
    result = []
    for session in get_recent_sessions(user_id, since, category_id):
        observations = get_session_observations(session.id)
        if observations:
            result.append(aggregate(observations))
    return result


def learner_overview(
    user_id: str,
    category_id: str | None = None,
    config: EngineConfig | None = None,
    now: datetime | None = None,
) -> LearnerOverview:
    """Mastery per started category plus recommendations from recent sessions.

    ``category_id`` narrows both the mastery levels and the sessions considered.
    """
    cfg = config or load_config()
    user_id = _require_user(user_id)
    if category_id is not None and get_category(category_id) is None:
        raise NotFoundError(f"Category {category_id} not found")
    names = {category.id: category.name for category in list_categories()}
    categories = [
        CategoryMastery(
            category_id=state.category_id,
            name=names.get(state.category_id, state.category_id),
            analytics=snapshot(state),
        )
        for state in get_all_states(user_id, category_id)
    ]
    mastery_levels = {entry.name: entry.analytics.mastery_score for entry in categories}
    strengths, weaknesses = classify_mastery(mastery_levels)
    sessions = recent_session_stats(user_id, category_id, cfg, now)
    return LearnerOverview(
        user_id=user_id,
        categories=categories,
        strengths=strengths,
        weaknesses=weaknesses,
        mastery_levels=mastery_levels,
        recommendations=generate_for_learner(sessions, cfg),
        total_sessions=len(sessions),
    )


__all__ = [
    "CategoryMastery",
    "LearnerOverview",
    "SessionStart",
    "SessionSummary",
    "SubmitResult",
    "end_session",
    "get_owned_session",
    "get_session_summary",
    "initialize_categories",
    "learner_overview",
    "next_question",
    "recent_session_stats",
    "start_session",
    "submit_answer",
]
