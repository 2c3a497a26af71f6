from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from loguru import logger

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "aptitude_prep.db"
DB_PATH = Path(os.environ.get("APTITUDE_PREP_DB_PATH", DEFAULT_DB_PATH))


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection with foreign keys enforced."""

    connection = _open_connection()
    try:
        yield connection
        connection.commit()
    finally:
        connection.close()


def _open_connection() -> sqlite3.Connection:
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(db_path)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    return connection


def now_iso(value: datetime | None = None) -> str:
    """Return the current UTC timestamp (seconds precision) as ISO 8601."""

    moment = value or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="seconds")


def init_db() -> None:
    """Initialise the database schema if tables are missing."""

    with connect() as connection:
        _create_tables(connection)
    logger.debug(f"Database ready at {DB_PATH}")


def _create_tables(connection: sqlite3.Connection) -> None:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL
        )
        """
    )
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS subcategories (
            id TEXT PRIMARY KEY,
            category_id TEXT NOT NULL,
            name TEXT NOT NULL,
            slug TEXT NOT NULL,
            FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE CASCADE
        )
        """
    )
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS questions (
            id TEXT PRIMARY KEY,
            subcategory_id TEXT NOT NULL,
            question_text TEXT NOT NULL,
            question_type TEXT NOT NULL DEFAULT 'mcq',
            options_json TEXT NOT NULL DEFAULT '[]',
            correct_answer TEXT NOT NULL,
            explanation TEXT NOT NULL DEFAULT '',
            marks INTEGER NOT NULL DEFAULT 1,
            difficulty TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(subcategory_id) REFERENCES subcategories(id) ON DELETE CASCADE,
            CHECK(difficulty IN ('easy','medium','hard')),
            CHECK(question_type IN ('mcq','true_false','fill_blank'))
        )
        """
    )
    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_questions_subcategory ON questions(subcategory_id, difficulty)"
    )
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS adaptive_state (
            user_id TEXT NOT NULL,
            category_id TEXT NOT NULL,
            mastery_score REAL NOT NULL DEFAULT 0.5,
            current_difficulty TEXT NOT NULL DEFAULT 'medium',
            recent_accuracy_json TEXT NOT NULL DEFAULT '[]',
            recent_difficulties_json TEXT NOT NULL DEFAULT '[]',
            avg_time_seconds REAL NOT NULL DEFAULT 0,
            questions_answered INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL,
            PRIMARY KEY(user_id, category_id),
            CHECK(current_difficulty IN ('easy','medium','hard'))
        )
        """
    )
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS practice_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            category_id TEXT NOT NULL,
            subcategories_json TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'active',
            started_at TEXT NOT NULL,
            ended_at TEXT
        )
        """
    )
    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_practice_sessions_user ON practice_sessions(user_id, started_at)"
    )
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS user_metrics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id INTEGER NOT NULL REFERENCES practice_sessions(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            question_id TEXT,
            subcategory_id TEXT,
            topic TEXT,
            is_correct INTEGER NOT NULL,
            time_taken_seconds REAL NOT NULL,
            difficulty TEXT NOT NULL,
            previous_difficulty TEXT NOT NULL,
            mastery_score_before REAL NOT NULL,
            mastery_score_after REAL NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_user_metrics_session ON user_metrics(session_id, id)"
    )


__all__ = ["DB_PATH", "connect", "init_db", "now_iso"]
