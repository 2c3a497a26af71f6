"""Rule-based recommendations derived from session statistics."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .config import EngineConfig, load_config
from .models import PRIORITIES, Recommendation, SessionStats

# Cross-category mastery bands for the learner overview
STRENGTH_MASTERY = 0.8
WEAKNESS_MASTERY = 0.4

# The index page lists the categories and starts practice from there
PRACTICE_URL = "/"
DASHBOARD_URL = "/"


def _practice(stats: SessionStats, config: EngineConfig) -> Recommendation | None:
    weak = sorted(
        (
            (accuracy, topic)
            for topic, accuracy in stats.topic_wise_accuracy.items()
            if accuracy < config.weak_topic_accuracy
        ),
    )
    if not weak:
        return None
    topics = [topic for _, topic in weak]
    names = ", ".join(topics)
    return Recommendation(
        type="practice",
        title=f"Practice {names}",
        description=(
            f"Your accuracy in {names} is below {config.weak_topic_accuracy:.0f}%. "
            "Focused practice on these topics will lift your overall score."
        ),
        priority="high",
        action_url=PRACTICE_URL,
    )


def _time_management(stats: SessionStats, config: EngineConfig) -> Recommendation | None:
    if stats.avg_time_seconds <= config.max_avg_time_seconds:
        return None
    return Recommendation(
        type="time_management",
        title="Improve Time Management",
        description=(
            f"You averaged {stats.avg_time_seconds:.0f} seconds per question. "
            f"Aim for under {config.max_avg_time_seconds:.0f} seconds while keeping accuracy."
        ),
        priority="medium",
        action_url=PRACTICE_URL,
    )


def _consistency(stats: SessionStats, config: EngineConfig) -> Recommendation | None:
    if stats.improvement_rate >= -config.decline_threshold:
        return None
    return Recommendation(
        type="consistency",
        title="Stay Consistent",
        description=(
            f"Your accuracy dropped {abs(stats.improvement_rate):.0f} points during the session. "
            "Shorter, regular sessions help you keep focus."
        ),
        priority="medium",
        action_url=DASHBOARD_URL,
    )


def _difficulty(stats: SessionStats, config: EngineConfig) -> Recommendation | None:
    if stats.total_questions < config.min_questions_for_thrashing:
        return None
    if stats.difficulty_transitions / stats.total_questions <= config.thrashing_ratio:
        return None
    return Recommendation(
        type="difficulty",
        title="Settle Your Starting Level",
        description=(
            f"Difficulty changed {stats.difficulty_transitions} times in {stats.total_questions} questions. "
            "Starting closer to your level gives steadier practice."
        ),
        priority="low",
        action_url=PRACTICE_URL,
    )


_RULES = (_practice, _time_management, _consistency, _difficulty)


def _start_journey() -> Recommendation:
    return Recommendation(
        type="practice",
        title="Start Your Practice Journey",
        description="Answer a few adaptive questions so we can find your strengths.",
        priority="high",
        action_url=PRACTICE_URL,
    )


def topic_averages(sessions: Sequence[SessionStats]) -> dict[str, float]:
    """Mean of each topic's per-session accuracy over the sessions it appears in."""
    totals: dict[str, list[float]] = {}
    for stats in sessions:
        for topic, accuracy in stats.topic_wise_accuracy.items():
            totals.setdefault(topic, []).append(float(accuracy))
    return {topic: sum(values) / len(values) for topic, values in totals.items()}


def generate_for_learner(
    sessions: Sequence[SessionStats],
    config: EngineConfig | None = None,
) -> list[Recommendation]:
    """Recommendations from a learner's recent sessions, capped at ``max_learner_recommendations``.

    Weak topics come first (weakest first), then a challenge in the strongest
    topic, a practice-habit nudge and a pacing hint. Without any session the
    learner is pointed at a first practice session.
    """
    cfg = config or load_config()
    result: list[Recommendation] = []
    if sessions:
        averages = topic_averages(sessions)
        weak = sorted(
            (accuracy, topic)
            for topic, accuracy in averages.items()
            if accuracy < cfg.learner_weak_topic_accuracy
        )
        for _, topic in weak[: cfg.learner_max_weak_topics]:
            result.append(
                Recommendation(
                    type="practice",
                    title=f"Practice {topic}",
                    description=(
                        f"Your accuracy in {topic} is below {cfg.learner_weak_topic_accuracy:.0f}%. "
                        "Daily practice will help improve this area."
                    ),
                    priority="high",
                    action_url=PRACTICE_URL,
                )
            )

        strong = sorted(
            (-accuracy, topic)
            for topic, accuracy in averages.items()
            if accuracy > cfg.learner_strong_topic_accuracy
        )
        if strong and len(result) < 3:
            topic = strong[0][1]
            result.append(
                Recommendation(
                    type="difficulty",
                    title=f"Challenge Yourself in {topic}",
                    description=(
                        f"You're excelling at {topic}! Try harder questions to push your limits."
                    ),
                    priority="medium",
                    action_url=PRACTICE_URL,
                )
            )

        if len(sessions) < cfg.learner_min_sessions:
            result.append(
                Recommendation(
                    type="consistency",
                    title="Build a Practice Habit",
                    description=(
                        f"Try to practice at least {cfg.learner_min_sessions} times per week "
                        "for better retention and improvement."
                    ),
                    priority="high",
                    action_url=DASHBOARD_URL,
                )
            )

        mean_time = sum(stats.avg_time_seconds for stats in sessions) / len(sessions)
        if mean_time > cfg.learner_max_avg_time_seconds:
            result.append(
                Recommendation(
                    type="time_management",
                    title="Improve Time Management",
                    description=(
                        f"You're averaging over {cfg.learner_max_avg_time_seconds:.0f} seconds per question. "
                        "Practice answering more quickly while maintaining accuracy."
                    ),
                    priority="medium",
                    action_url=PRACTICE_URL,
                )
            )

    if not result:
        result.append(_start_journey())
    return result[: cfg.max_learner_recommendations]


def generate(stats: SessionStats, config: EngineConfig | None = None) -> list[Recommendation]:
    """Recommendations ordered high to low priority, at most one per type."""
    cfg = config or load_config()
    if stats.total_questions == 0:
        return [_start_journey()]

    seen: set[str] = set()
    result: list[Recommendation] = []
    for rule in _RULES:
        recommendation = rule(stats, cfg)
        if recommendation is None or recommendation.type in seen:
            continue
        seen.add(recommendation.type)
        result.append(recommendation)
    result.sort(key=lambda rec: PRIORITIES.index(rec.priority))
    return result


def classify_mastery(levels: Mapping[str, float]) -> tuple[list[str], list[str]]:
    """Split category names into (strengths, weaknesses) by mastery band."""
    strengths = sorted(name for name, mastery in levels.items() if mastery >= STRENGTH_MASTERY)
    weaknesses = sorted(name for name, mastery in levels.items() if mastery < WEAKNESS_MASTERY)
    return strengths, weaknesses


__all__ = [
    "DASHBOARD_URL",
    "PRACTICE_URL",
    "STRENGTH_MASTERY",
    "WEAKNESS_MASTERY",
    "classify_mastery",
    "generate",
    "generate_for_learner",
    "topic_averages",
]
