"""Session analytics: pure aggregation over one session's observations."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from .models import Observation, SessionStats


def _accuracy(observations: Sequence[Observation]) -> float:
    if not observations:
        return 0.0
    return sum(1 for obs in observations if obs.correct) / len(observations) * 100


def improvement_rate(observations: Sequence[Observation]) -> float:
    """Second-half accuracy minus first-half accuracy, in percentage points."""
    if len(observations) < 2:
        return 0.0
    mid = len(observations) // 2
    return _accuracy(observations[mid:]) - _accuracy(observations[:mid])


def count_transitions(observations: Sequence[Observation]) -> int:
    return sum(
        1
        for previous, current in zip(observations, observations[1:])
        if previous.difficulty != current.difficulty
    )


def topic_accuracy(observations: Sequence[Observation]) -> dict[str, float]:
    totals: dict[str, list[int]] = {}
    for obs in observations:
        if not obs.topic:
            continue
        counts = totals.setdefault(obs.topic, [0, 0])
        counts[1] += 1
        if obs.correct:
            counts[0] += 1
    return {topic: correct / total * 100 for topic, (correct, total) in totals.items()}


def session_duration(observations: Sequence[Observation]) -> float:
    """Seconds from the first answer to the end of the last one.

    Without timestamps on every observation, falls back to the summed answer times.
    """
    if not observations:
        return 0.0
    stamps = [obs.answered_at for obs in observations]
    if all(stamps):
        start = datetime.fromisoformat(str(stamps[0]))
        end = datetime.fromisoformat(str(stamps[-1]))
        elapsed = max(0.0, (end - start).total_seconds())
        return elapsed + float(observations[-1].time_seconds)
    return float(sum(obs.time_seconds for obs in observations))


def aggregate(observations: Sequence[Observation]) -> SessionStats:
    """Summarise a session. An empty sequence yields zeroed stats."""
    if not observations:
        return SessionStats()

    total = len(observations)
    correct = sum(1 for obs in observations if obs.correct)
    return SessionStats(
        avg_accuracy=correct / total * 100,
        avg_time_seconds=sum(obs.time_seconds for obs in observations) / total,
        improvement_rate=improvement_rate(observations),
        difficulty_transitions=count_transitions(observations),
        session_duration_seconds=session_duration(observations),
        topic_wise_accuracy=topic_accuracy(observations),
        total_questions=total,
        correct_questions=correct,
    )


__all__ = [
    "aggregate",
    "count_transitions",
    "improvement_rate",
    "session_duration",
    "topic_accuracy",
]
