"""Tests for recommendations.py: session rules, learner rules, ordering and de-duplication."""

from __future__ import annotations

from aptitude_prep.config import EngineConfig
from aptitude_prep.models import SessionStats
from aptitude_prep.recommendations import classify_mastery, generate, generate_for_learner, topic_averages

CONFIG = EngineConfig()


def _stats(**overrides) -> SessionStats:
    values = dict(
        avg_accuracy=70.0,
        avg_time_seconds=40.0,
        improvement_rate=0.0,
        difficulty_transitions=0,
        session_duration_seconds=400.0,
        topic_wise_accuracy={},
        total_questions=10,
        correct_questions=7,
    )
    values.update(overrides)
    return SessionStats(**values)


class TestGenerate:
    def test_weak_topic_gets_practice_entry(self):
        stats = _stats(topic_wise_accuracy={"Percentages": 30.0, "Series": 90.0})
        recs = generate(stats, CONFIG)
        practice = [rec for rec in recs if rec.type == "practice"]
        assert len(practice) == 1
        assert "Percentages" in practice[0].title
        assert "Series" not in practice[0].title
        assert "Series" not in practice[0].description

    def test_multiple_weak_topics_share_one_entry(self):
        stats = _stats(topic_wise_accuracy={"A": 40.0, "B": 20.0, "C": 80.0})
        practice = [rec for rec in generate(stats, CONFIG) if rec.type == "practice"]
        assert len(practice) == 1
        assert practice[0].title == "Practice B, A"

    def test_healthy_session_has_none(self):
        assert generate(_stats(topic_wise_accuracy={"A": 80.0}), CONFIG) == []

    def test_slow_answers(self):
        recs = generate(_stats(avg_time_seconds=150.0), CONFIG)
        assert [rec.type for rec in recs] == ["time_management"]
        assert recs[0].priority == "medium"

    def test_declining_accuracy(self):
        recs = generate(_stats(improvement_rate=-25.0), CONFIG)
        assert [rec.type for rec in recs] == ["consistency"]

    def test_thrashing_difficulty(self):
        recs = generate(_stats(difficulty_transitions=7, total_questions=10), CONFIG)
        assert [rec.type for rec in recs] == ["difficulty"]
        assert recs[0].priority == "low"

    def test_sorted_by_priority_and_unique(self):
        stats = _stats(
            topic_wise_accuracy={"A": 10.0},
            avg_time_seconds=200.0,
            improvement_rate=-40.0,
            difficulty_transitions=8,
        )
        recs = generate(stats, CONFIG)
        order = {"high": 0, "medium": 1, "low": 2}
        assert [order[rec.priority] for rec in recs] == sorted(order[rec.priority] for rec in recs)
        assert len({rec.type for rec in recs}) == len(recs) == 4
        assert recs[0].type == "practice"
        assert recs[-1].type == "difficulty"

    def test_empty_session_suggests_starting(self):
        recs = generate(SessionStats(), CONFIG)
        assert len(recs) == 1
        assert recs[0].type == "practice"
        assert recs[0].priority == "high"


class TestGenerateForLearner:
    def test_no_sessions_suggests_starting(self):
        recs = generate_for_learner([], CONFIG)
        assert [rec.title for rec in recs] == ["Start Your Practice Journey"]

    def test_topic_averages_span_sessions(self):
        sessions = [
            _stats(topic_wise_accuracy={"A": 40.0}),
            _stats(topic_wise_accuracy={"A": 80.0, "B": 100.0}),
        ]
        assert topic_averages(sessions) == {"A": 60.0, "B": 100.0}

    def test_weak_topics_weakest_first_and_capped(self):
        sessions = [_stats(topic_wise_accuracy={"C": 50.0, "A": 10.0, "B": 30.0})] * 3
        recs = generate_for_learner(sessions, CONFIG)
        assert [rec.title for rec in recs] == ["Practice A", "Practice B"]
        assert all(rec.priority == "high" for rec in recs)

    def test_boundaries_are_strict(self):
        sessions = [_stats(topic_wise_accuracy={"A": 60.0, "B": 80.0})] * 3
        assert [rec.title for rec in generate_for_learner(sessions, CONFIG)] == ["Start Your Practice Journey"]

    def test_strongest_topic_is_challenged(self):
        sessions = [_stats(topic_wise_accuracy={"A": 85.0, "B": 95.0})] * 3
        (rec,) = generate_for_learner(sessions, CONFIG)
        assert rec.title == "Challenge Yourself in B"
        assert rec.type == "difficulty"
        assert rec.priority == "medium"

    def test_few_sessions_build_a_habit(self):
        recs = generate_for_learner([_stats(), _stats()], CONFIG)
        assert [(rec.type, rec.priority) for rec in recs] == [("consistency", "high")]
        assert recs[0].title == "Build a Practice Habit"

    def test_mean_session_time(self):
        slow = [_stats(avg_time_seconds=60.0), _stats(avg_time_seconds=130.0), _stats(avg_time_seconds=100.0)]
        assert [rec.type for rec in generate_for_learner(slow, CONFIG)] == ["time_management"]
        steady = [_stats(avg_time_seconds=60.0), _stats(avg_time_seconds=110.0), _stats(avg_time_seconds=90.0)]
        assert [rec.title for rec in generate_for_learner(steady, CONFIG)] == ["Start Your Practice Journey"]

    def test_all_rules_together(self):
        session = _stats(topic_wise_accuracy={"A": 10.0, "B": 20.0, "C": 45.0, "D": 90.0}, avg_time_seconds=120.0)
        recs = generate_for_learner([session], CONFIG)
        assert [rec.title for rec in recs] == [
            "Practice A",
            "Practice B",
            "Challenge Yourself in D",
            "Build a Practice Habit",
            "Improve Time Management",
        ]

    def test_capped_by_config(self):
        session = _stats(topic_wise_accuracy={"A": 10.0, "B": 20.0, "D": 90.0}, avg_time_seconds=120.0)
        recs = generate_for_learner([session], EngineConfig(max_learner_recommendations=3))
        assert len(recs) == 3

    def test_links_point_at_served_page(self):
        session = _stats(topic_wise_accuracy={"A": 10.0, "D": 90.0}, avg_time_seconds=120.0)
        assert {rec.action_url for rec in generate_for_learner([session], CONFIG)} == {"/"}


class TestClassifyMastery:
    def test_bands(self):
        strengths, weaknesses = classify_mastery({"Quant": 0.85, "Logic": 0.3, "Verbal": 0.6, "DI": 0.8})
        assert strengths == ["DI", "Quant"]
        assert weaknesses == ["Logic"]
