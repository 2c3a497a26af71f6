"""Database operations for adaptive state, practice sessions, answer metrics and questions."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

from .db import _open_connection, now_iso
from .errors import ConflictError
from .models import (
    INITIAL_DIFFICULTY,
    INITIAL_MASTERY,
    AdaptiveQuestion,
    AdaptiveState,
    Category,
    Difficulty,
    MetricRecord,
    Observation,
    PracticeSession,
    ensure_difficulty,
    ensure_question_type,
)
from .questions import choose_question, parse_options


# ── Adaptive state ────────────────────────────────────────────────────────────


def load_state(user_id: str, category_id: str) -> AdaptiveState:
    """Return the stored state, or the default state when none exists yet."""
    with _open_connection() as conn:
        row = conn.execute(
            "SELECT * FROM adaptive_state WHERE user_id = ? AND category_id = ?",
            (user_id, category_id),
        ).fetchone()
    if row is None:
        return AdaptiveState.initial(user_id, category_id)
    return _row_to_state(row)


def get_all_states(user_id: str, category_id: str | None = None) -> list[AdaptiveState]:
    query = "SELECT * FROM adaptive_state WHERE user_id = ?"
    params: list[Any] = [user_id]
    if category_id is not None:
        query += " AND category_id = ?"
        params.append(category_id)
    with _open_connection() as conn:
        rows = conn.execute(f"{query} ORDER BY category_id", params).fetchall()
    return [_row_to_state(row) for row in rows]


def save_state(state: AdaptiveState, expected_version: int) -> AdaptiveState:
    """Persist ``state`` if the stored version still equals ``expected_version``.

    Version 0 means "never saved": the row is inserted. Returns the state with
    its new version; raises ConflictError when another writer got there first.
    """
    timestamp = now_iso()
    with _open_connection() as conn:
        _write_state(conn, state, expected_version, timestamp)
        conn.commit()
    return replace(state, version=expected_version + 1, updated_at=timestamp)


def save_answer(state: AdaptiveState, expected_version: int, metric: MetricRecord) -> AdaptiveState:
    """Persist the new state and its metrics row in one transaction.

    Either both are written or neither is; a version conflict or a failed
    metric insert leaves the stored state untouched.
    """
    timestamp = now_iso()
    with _open_connection() as conn:
        _write_state(conn, state, expected_version, timestamp)
        _insert_metric(conn, metric, timestamp)
        conn.commit()
    return replace(state, version=expected_version + 1, updated_at=timestamp)


def bulk_initialize(user_id: str, category_ids: Iterable[str]) -> list[AdaptiveState]:
    """Create default states for categories the user has not started.

    Existing rows are left untouched. Returns the states for every requested category.
    """
    ids = list(dict.fromkeys(category_ids))
    timestamp = now_iso()
    with _open_connection() as conn:
        conn.executemany(
            """
            INSERT OR IGNORE INTO adaptive_state (
                user_id, category_id, mastery_score, current_difficulty,
                recent_accuracy_json, recent_difficulties_json, avg_time_seconds,
                questions_answered, version, updated_at
            ) VALUES (?, ?, ?, ?, '[]', '[]', 0, 0, 1, ?)
            """,
            [(user_id, category_id, INITIAL_MASTERY, INITIAL_DIFFICULTY, timestamp) for category_id in ids],
        )
        conn.commit()
    return [load_state(user_id, category_id) for category_id in ids]


def _write_state(
    conn: sqlite3.Connection,
    state: AdaptiveState,
    expected_version: int,
    timestamp: str,
) -> None:
    accuracy_json = json.dumps([float(value) for value in state.recent_accuracy])
    difficulties_json = json.dumps(list(state.recent_difficulties))
    if expected_version == 0:
        try:
            conn.execute(
                """
                INSERT INTO adaptive_state (
                    user_id, category_id, mastery_score, current_difficulty,
                    recent_accuracy_json, recent_difficulties_json, avg_time_seconds,
                    questions_answered, version, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                """,
                (
                    state.user_id,
                    state.category_id,
                    state.mastery_score,
                    state.current_difficulty,
                    accuracy_json,
                    difficulties_json,
                    state.avg_time_seconds,
                    state.questions_answered,
                    timestamp,
                ),
            )
        except sqlite3.IntegrityError as exc:
            actual = _current_version(conn, state.user_id, state.category_id)
            raise ConflictError(state.user_id, state.category_id, expected_version, actual) from exc
        return

    cursor = conn.execute(
        """
        UPDATE adaptive_state SET
            mastery_score = ?,
            current_difficulty = ?,
            recent_accuracy_json = ?,
            recent_difficulties_json = ?,
            avg_time_seconds = ?,
            questions_answered = ?,
            version = version + 1,
            updated_at = ?
        WHERE user_id = ? AND category_id = ? AND version = ?
        """,
        (
            state.mastery_score,
            state.current_difficulty,
            accuracy_json,
            difficulties_json,
            state.avg_time_seconds,
            state.questions_answered,
            timestamp,
            state.user_id,
            state.category_id,
            expected_version,
        ),
    )
    if cursor.rowcount == 0:
        actual = _current_version(conn, state.user_id, state.category_id)
        raise ConflictError(state.user_id, state.category_id, expected_version, actual)


def _current_version(conn: sqlite3.Connection, user_id: str, category_id: str) -> int | None:
    row = conn.execute(
        "SELECT version FROM adaptive_state WHERE user_id = ? AND category_id = ?",
        (user_id, category_id),
    ).fetchone()
    return int(row["version"]) if row else None


def _row_to_state(row: Any) -> AdaptiveState:
    return AdaptiveState(
        user_id=str(row["user_id"]),
        category_id=str(row["category_id"]),
        mastery_score=float(row["mastery_score"]),
        current_difficulty=ensure_difficulty(row["current_difficulty"]),
        recent_accuracy=[float(value) for value in json.loads(row["recent_accuracy_json"] or "[]")],
        recent_difficulties=[
            ensure_difficulty(value) for value in json.loads(row["recent_difficulties_json"] or "[]")
        ],
        avg_time_seconds=float(row["avg_time_seconds"]),
        questions_answered=int(row["questions_answered"]),
        version=int(row["version"]),
        updated_at=str(row["updated_at"]),
    )


# ── Session CRUD ──────────────────────────────────────────────────────────────


def create_session(user_id: str, category_id: str, subcategory_ids: Sequence[str] = ()) -> PracticeSession:
    timestamp = now_iso()
    with _open_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO practice_sessions (user_id, category_id, subcategories_json, status, started_at)
            VALUES (?, ?, ?, 'active', ?)
            """,
            (user_id, category_id, json.dumps(list(subcategory_ids)), timestamp),
        )
        conn.commit()
        session_id = int(cursor.lastrowid)
    return PracticeSession(
        id=session_id,
        user_id=user_id,
        category_id=category_id,
        selected_subcategories=list(subcategory_ids),
        status="active",
        started_at=timestamp,
        ended_at=None,
    )


def get_session(session_id: int) -> PracticeSession | None:
    with _open_connection() as conn:
        row = conn.execute(
            "SELECT * FROM practice_sessions WHERE id = ?", (session_id,)
        ).fetchone()
    if row is None:
        return None
    return _row_to_session(row)


def end_session(session_id: int) -> PracticeSession | None:
    timestamp = now_iso()
    with _open_connection() as conn:
        conn.execute(
            """
            UPDATE practice_sessions SET ended_at = ?, status = 'completed'
            WHERE id = ? AND status = 'active'
            """,
            (timestamp, session_id),
        )
        conn.commit()
    return get_session(session_id)


def get_recent_sessions(user_id: str, since: str, category_id: str | None = None) -> list[PracticeSession]:
    """Sessions the user started at or after ``since`` (ISO timestamp), newest first."""
    query = "SELECT * FROM practice_sessions WHERE user_id = ? AND started_at >= ?"
    params: list[Any] = [user_id, since]
    if category_id is not None:
        query += " AND category_id = ?"
        params.append(category_id)
    with _open_connection() as conn:
        rows = conn.execute(f"{query} ORDER BY started_at DESC, id DESC", params).fetchall()
    return [_row_to_session(row) for row in rows]


def _row_to_session(row: Any) -> PracticeSession:
    status = str(row["status"])
    return PracticeSession(
        id=int(row["id"]),
        user_id=str(row["user_id"]),
        category_id=str(row["category_id"]),
        selected_subcategories=[str(value) for value in json.loads(row["subcategories_json"] or "[]")],
        status="completed" if status == "completed" else "active",
        started_at=str(row["started_at"]),
        ended_at=str(row["ended_at"]) if row["ended_at"] else None,
    )


# ── Answer metrics ────────────────────────────────────────────────────────────


def record_metric(metric: MetricRecord) -> int:
    with _open_connection() as conn:
        metric_id = _insert_metric(conn, metric, now_iso())
        conn.commit()
    return metric_id


def _insert_metric(conn: sqlite3.Connection, metric: MetricRecord, timestamp: str) -> int:
    cursor = conn.execute(
        """
        INSERT INTO user_metrics (
            session_id, user_id, question_id, subcategory_id, topic, is_correct,
            time_taken_seconds, difficulty, previous_difficulty,
            mastery_score_before, mastery_score_after, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            metric.session_id,
            metric.user_id,
            metric.question_id,
            metric.subcategory_id,
            metric.topic,
            1 if metric.is_correct else 0,
            metric.time_taken_seconds,
            metric.difficulty,
            metric.previous_difficulty,
            metric.mastery_score_before,
            metric.mastery_score_after,
            timestamp,
        ),
    )
    return int(cursor.lastrowid)


def get_session_observations(session_id: int) -> list[Observation]:
    """Answers recorded in a session, oldest first."""
    with _open_connection() as conn:
        rows = conn.execute(
            """
            SELECT is_correct, time_taken_seconds, difficulty, topic, question_id, created_at
            FROM user_metrics
            WHERE session_id = ?
            ORDER BY id
            """,
            (session_id,),
        ).fetchall()
    return [
        Observation(
            correct=bool(row["is_correct"]),
            time_seconds=float(row["time_taken_seconds"]),
            difficulty=ensure_difficulty(row["difficulty"]),
            topic=row["topic"],
            question_id=row["question_id"],
            answered_at=row["created_at"],
        )
        for row in rows
    ]


def get_answered_question_ids(session_id: int) -> set[str]:
    with _open_connection() as conn:
        rows = conn.execute(
            "SELECT DISTINCT question_id FROM user_metrics WHERE session_id = ? AND question_id IS NOT NULL",
            (session_id,),
        ).fetchall()
    return {str(row["question_id"]) for row in rows}


# ── Questions & categories ────────────────────────────────────────────────────


_QUESTION_SELECT = """
    SELECT q.*, s.name AS subcategory_name, s.category_id AS category_id, c.name AS category_name
    FROM questions q
    JOIN subcategories s ON s.id = q.subcategory_id
    JOIN categories c ON c.id = s.category_id
"""


def get_question(question_id: str) -> AdaptiveQuestion | None:
    with _open_connection() as conn:
        row = conn.execute(f"{_QUESTION_SELECT} WHERE q.id = ?", (question_id,)).fetchone()
    if row is None:
        return None
    return _row_to_question(row)


def fetch_candidate_questions(
    category_id: str,
    subcategory_ids: Sequence[str] = (),
) -> list[AdaptiveQuestion]:
    """All questions in a category, optionally narrowed to some subcategories."""
    query = f"{_QUESTION_SELECT} WHERE s.category_id = ?"
    params: list[Any] = [category_id]
    if subcategory_ids:
        placeholders = ", ".join("?" for _ in subcategory_ids)
        query += f" AND q.subcategory_id IN ({placeholders})"
        params.extend(subcategory_ids)
    query += " ORDER BY q.id"
    with _open_connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_question(row) for row in rows]


def fetch_question(
    category_id: str,
    subcategory_ids: Sequence[str],
    difficulty: Difficulty,
    exclude_ids: Iterable[str] = (),
) -> AdaptiveQuestion | None:
    """Next question at ``difficulty`` or the nearest fallback tier; None when exhausted."""
    candidates = fetch_candidate_questions(category_id, subcategory_ids)
    return choose_question(candidates, difficulty, exclude_ids)


def list_categories() -> list[Category]:
    with _open_connection() as conn:
        rows = conn.execute("SELECT id, name, slug FROM categories ORDER BY name").fetchall()
    return [Category(id=str(row["id"]), name=str(row["name"]), slug=str(row["slug"])) for row in rows]


def get_category(category_id: str) -> Category | None:
    with _open_connection() as conn:
        row = conn.execute(
            "SELECT id, name, slug FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
    if row is None:
        return None
    return Category(id=str(row["id"]), name=str(row["name"]), slug=str(row["slug"]))


def _row_to_question(row: Any) -> AdaptiveQuestion:
    return AdaptiveQuestion(
        id=str(row["id"]),
        text=str(row["question_text"]),
        type=ensure_question_type(row["question_type"]),
        options=parse_options(row["options_json"]),
        correct_answer=str(row["correct_answer"]),
        difficulty=ensure_difficulty(row["difficulty"]),
        subcategory_id=str(row["subcategory_id"]),
        subcategory_name=str(row["subcategory_name"]),
        category_id=str(row["category_id"]),
        category_name=str(row["category_name"]),
        explanation=str(row["explanation"] or ""),
        marks=int(row["marks"]),
    )


__all__ = [
    "bulk_initialize",
    "create_session",
    "end_session",
    "fetch_candidate_questions",
    "fetch_question",
    "get_all_states",
    "get_answered_question_ids",
    "get_category",
    "get_question",
    "get_recent_sessions",
    "get_session",
    "get_session_observations",
    "list_categories",
    "load_state",
    "record_metric",
    "save_answer",
    "save_state",
]
