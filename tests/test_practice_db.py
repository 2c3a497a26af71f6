"""Tests for practice_db.py: versioned state, sessions, metrics, question lookups."""

from __future__ import annotations

import sqlite3
from dataclasses import replace

import pytest

from aptitude_prep.errors import ConflictError
from aptitude_prep.models import MetricRecord


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    """Use a temp file DB for each test."""
    from aptitude_prep import db
    db_path = tmp_path / "test.db"
    db.DB_PATH = db_path
    db.init_db()
    from aptitude_prep.questions import QUESTIONS_FILE, seed_question_bank
    seed_question_bank(QUESTIONS_FILE)
    yield
    if db_path.exists():
        db_path.unlink()


from aptitude_prep.db import connect, init_db  # noqa: E402
from aptitude_prep.practice_db import (  # noqa: E402
    bulk_initialize,
    create_session,
    end_session,
    fetch_candidate_questions,
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
    record_metric,
    save_answer,
    save_state,
)


def _record(session_id: int, question_id: str, correct: bool, difficulty: str = "medium", topic: str = "Percentages") -> MetricRecord:
    return MetricRecord(
        session_id=session_id,
        user_id="u1",
        question_id=question_id,
        subcategory_id="quant-percentages",
        topic=topic,
        is_correct=correct,
        time_taken_seconds=12.5,
        difficulty=difficulty,  # type: ignore[arg-type]
        previous_difficulty="medium",
        mastery_score_before=0.5,
        mastery_score_after=0.55,
    )


def _metric(session_id: int, question_id: str, correct: bool, difficulty: str = "medium") -> int:
    return record_metric(_record(session_id, question_id, correct, difficulty))


class TestSchema:
    def test_adaptive_state_columns_are_declared(self):
        with connect() as conn:
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(adaptive_state)")}
        assert {"recent_difficulties_json", "questions_answered", "version"} <= columns

    def test_init_is_repeatable(self):
        save_state(load_state("u1", "quantitative"), 0)
        init_db()
        assert load_state("u1", "quantitative").version == 1


class TestAdaptiveState:
    def test_missing_state_loads_defaults(self):
        state = load_state("u1", "quantitative")
        assert state.mastery_score == 0.5
        assert state.current_difficulty == "medium"
        assert state.recent_accuracy == []
        assert state.avg_time_seconds == 0.0
        assert state.version == 0

    def test_first_save_inserts(self):
        state = load_state("u1", "quantitative")
        saved = save_state(replace(state, recent_accuracy=[1.0], recent_difficulties=["easy"]), 0)
        assert saved.version == 1
        reloaded = load_state("u1", "quantitative")
        assert reloaded.recent_accuracy == [1.0]
        assert reloaded.recent_difficulties == ["easy"]
        assert reloaded.version == 1

    def test_save_bumps_version(self):
        saved = save_state(load_state("u1", "quantitative"), 0)
        again = save_state(replace(saved, mastery_score=0.7, current_difficulty="hard"), saved.version)
        assert again.version == 2
        reloaded = load_state("u1", "quantitative")
        assert reloaded.mastery_score == pytest.approx(0.7)
        assert reloaded.current_difficulty == "hard"

    def test_stale_update_conflicts(self):
        base = save_state(load_state("u1", "quantitative"), 0)
        save_state(replace(base, mastery_score=0.6), base.version)
        with pytest.raises(ConflictError) as excinfo:
            save_state(replace(base, mastery_score=0.9), base.version)
        assert excinfo.value.expected == 1
        assert excinfo.value.actual == 2
        assert load_state("u1", "quantitative").mastery_score == pytest.approx(0.6)

    def test_concurrent_first_insert_conflicts(self):
        fresh = load_state("u1", "quantitative")
        save_state(fresh, 0)
        with pytest.raises(ConflictError):
            save_state(fresh, 0)

    def test_get_all_states(self):
        save_state(load_state("u1", "quantitative"), 0)
        save_state(load_state("u1", "logical"), 0)
        save_state(load_state("u2", "logical"), 0)
        assert [state.category_id for state in get_all_states("u1")] == ["logical", "quantitative"]


class TestSaveAnswer:
    def test_writes_state_and_metric(self):
        session = create_session("u1", "quantitative")
        state = replace(
            load_state("u1", "quantitative"),
            recent_accuracy=[1.0],
            recent_difficulties=["medium"],
            questions_answered=1,
        )
        saved = save_answer(state, 0, _record(session.id, "pct-003", True))
        assert saved.version == 1
        assert load_state("u1", "quantitative").questions_answered == 1
        assert get_answered_question_ids(session.id) == {"pct-003"}

    def test_failed_metric_leaves_state_untouched(self):
        base = save_state(load_state("u1", "quantitative"), 0)
        with pytest.raises(sqlite3.IntegrityError):
            save_answer(
                replace(base, mastery_score=0.9, questions_answered=1),
                base.version,
                _record(999, "pct-003", True),
            )
        reloaded = load_state("u1", "quantitative")
        assert reloaded.version == base.version
        assert reloaded.mastery_score == pytest.approx(0.5)
        assert reloaded.questions_answered == 0

    def test_failed_metric_undoes_first_insert(self):
        with pytest.raises(sqlite3.IntegrityError):
            save_answer(load_state("u1", "quantitative"), 0, _record(999, "pct-003", True))
        assert load_state("u1", "quantitative").version == 0
        assert get_all_states("u1") == []

    def test_conflict_records_no_metric(self):
        session = create_session("u1", "quantitative")
        base = save_state(load_state("u1", "quantitative"), 0)
        save_state(replace(base, mastery_score=0.6), base.version)
        with pytest.raises(ConflictError):
            save_answer(replace(base, mastery_score=0.9), base.version, _record(session.id, "pct-003", True))
        assert get_session_observations(session.id) == []


class TestBulkInitialize:
    def test_creates_defaults(self):
        states = bulk_initialize("u1", ["quantitative", "logical"])
        assert [state.category_id for state in states] == ["quantitative", "logical"]
        assert all(state.version == 1 and state.mastery_score == 0.5 for state in states)

    def test_is_idempotent_and_keeps_progress(self):
        bulk_initialize("u1", ["quantitative"])
        state = load_state("u1", "quantitative")
        save_state(replace(state, mastery_score=0.9, questions_answered=12), state.version)
        states = bulk_initialize("u1", ["quantitative", "quantitative", "logical"])
        assert len(states) == 2
        kept = load_state("u1", "quantitative")
        assert kept.mastery_score == pytest.approx(0.9)
        assert kept.questions_answered == 12


class TestSessions:
    def test_create_and_get(self):
        session = create_session("u1", "quantitative", ["quant-percentages"])
        fetched = get_session(session.id)
        assert fetched is not None
        assert fetched.user_id == "u1"
        assert fetched.selected_subcategories == ["quant-percentages"]
        assert fetched.status == "active"
        assert fetched.ended_at is None

    def test_end(self):
        session = create_session("u1", "quantitative")
        ended = end_session(session.id)
        assert ended is not None
        assert ended.status == "completed"
        assert ended.ended_at is not None

    def test_recent_sessions_newest_first(self):
        old = create_session("u1", "quantitative")
        with connect() as conn:
            conn.execute(
                "UPDATE practice_sessions SET started_at = ? WHERE id = ?",
                ("2020-01-01T00:00:00+00:00", old.id),
            )
        logical = create_session("u1", "logical")
        quant = create_session("u1", "quantitative")
        create_session("u2", "quantitative")
        since = "2021-01-01T00:00:00+00:00"
        assert [session.id for session in get_recent_sessions("u1", since)] == [quant.id, logical.id]
        assert [session.id for session in get_recent_sessions("u1", since, "quantitative")] == [quant.id]

    def test_missing(self):
        assert get_session(999) is None


class TestMetrics:
    def test_observations_in_order(self):
        session = create_session("u1", "quantitative")
        _metric(session.id, "pct-001", True, "easy")
        _metric(session.id, "pct-003", False, "medium")
        observations = get_session_observations(session.id)
        assert [obs.question_id for obs in observations] == ["pct-001", "pct-003"]
        assert [obs.correct for obs in observations] == [True, False]
        assert observations[0].difficulty == "easy"
        assert observations[0].topic == "Percentages"
        assert observations[0].answered_at

    def test_answered_ids_scoped_to_session(self):
        first = create_session("u1", "quantitative")
        second = create_session("u1", "quantitative")
        _metric(first.id, "pct-001", True)
        assert get_answered_question_ids(first.id) == {"pct-001"}
        assert get_answered_question_ids(second.id) == set()


class TestQuestions:
    def test_categories(self):
        assert {category.id for category in list_categories()} >= {"quantitative", "logical"}
        assert get_category("quantitative").name == "Quantitative Aptitude"
        assert get_category("nope") is None

    def test_get_question_joins_names(self):
        question = get_question("pct-003")
        assert question is not None
        assert question.category_id == "quantitative"
        assert question.subcategory_name == "Percentages"
        assert question.options.labelled()[0] == ("A", "28%")

    def test_candidates_filtered_by_subcategory(self):
        questions = fetch_candidate_questions("quantitative", ["quant-time-work"])
        assert questions
        assert all(question.subcategory_id == "quant-time-work" for question in questions)

    def test_fetch_question_excludes_answered(self):
        pool = fetch_candidate_questions("logical", ["logic-series"])
        answered = {question.id for question in pool if question.difficulty == "hard"}
        chosen = fetch_question("logical", ["logic-series"], "hard", answered)
        assert chosen is not None
        assert chosen.id not in answered
        assert chosen.difficulty == "medium"

    def test_fetch_question_exhausted(self):
        pool = fetch_candidate_questions("logical", ["logic-series"])
        assert fetch_question("logical", ["logic-series"], "easy", {q.id for q in pool}) is None
