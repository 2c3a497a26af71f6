"""Question bank: YAML loader, option encodings, answer checking and tier fallback."""

from __future__ import annotations

import json
import random
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from .db import _open_connection, now_iso
from .errors import ValidationError
from .models import (
    AdaptiveQuestion,
    Difficulty,
    KeyedOptions,
    ListOptions,
    QuestionOptions,
    ensure_difficulty,
    ensure_question_type,
)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
QUESTIONS_FILE = DATA_DIR / "questions.yaml"

LEGACY_OPTION_COLUMNS: tuple[str, ...] = ("option a", "option b", "option c", "option d", "option e")
_NON_OPTION_KEYS = {"correct_answer", "explanation"}


# ── Option encodings ─────────────────────────────────────────────────────────


def options_from_columns(row: Mapping[str, Any]) -> ListOptions:
    """Build list options from legacy ``option a`` .. ``option e`` columns."""
    return ListOptions(tuple(str(row[col]) for col in LEGACY_OPTION_COLUMNS if row.get(col)))


def parse_options(raw: Any) -> QuestionOptions:
    """Resolve any stored option encoding into the tagged union.

    Accepted shapes: a list of strings, ``{"options": [...]}``, a keyed map
    such as ``{"A": "...", "B": "..."}``, the serialised
    ``{"kind": ..., "options": ...}`` form, or ``None`` for no options.
    """
    if raw is None:
        return ListOptions(())
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Options are not valid JSON: {exc}") from exc
        return parse_options(raw)
    if isinstance(raw, (list, tuple)):
        return ListOptions(tuple(str(item) for item in raw))
    if isinstance(raw, dict):
        kind = raw.get("kind")
        if kind == "list":
            return ListOptions(tuple(str(item) for item in raw.get("options", [])))
        if kind == "keyed":
            return KeyedOptions({str(k): str(v) for k, v in dict(raw.get("options", {})).items()})
        if isinstance(raw.get("options"), list):
            return ListOptions(tuple(str(item) for item in raw["options"]))
        if any(col in raw for col in LEGACY_OPTION_COLUMNS):
            return options_from_columns(raw)
        return KeyedOptions({str(k): str(v) for k, v in raw.items() if k not in _NON_OPTION_KEYS})
    raise ValidationError(f"Unsupported options encoding: {type(raw).__name__}")


def _normalize(value: str) -> str:
    return " ".join(str(value).split()).casefold()


def resolve_choice(options: QuestionOptions, value: str) -> str:
    """Map a key, letter or ``option x`` reference to its choice text.

    Values that do not name a key are returned unchanged.
    """
    needle = _normalize(value)
    if needle.startswith("option "):
        needle = needle[len("option "):]
    for key, text in options.labelled():
        if needle == _normalize(key):
            return text
    return value


def check_answer(question: AdaptiveQuestion, answer: str) -> bool:
    if not str(answer).strip():
        return False
    expected = _normalize(resolve_choice(question.options, question.correct_answer))
    given = _normalize(resolve_choice(question.options, answer))
    return given == expected


# ── Tier fallback ────────────────────────────────────────────────────────────


def fallback_order(difficulty: Difficulty) -> list[Difficulty]:
    order: list[Difficulty] = []
    for tier in (difficulty, "medium", "easy", "hard"):
        if tier not in order:
            order.append(tier)
    return order


def choose_question(
    candidates: Sequence[AdaptiveQuestion],
    difficulty: Difficulty,
    exclude_ids: Iterable[str] = (),
    rng: random.Random | None = None,
) -> AdaptiveQuestion | None:
    """Pick an unanswered question, preferring ``difficulty`` then medium, easy, hard.

    Returns None when every candidate has been answered.
    """
    chooser = rng or random
    excluded = set(exclude_ids)
    available = [q for q in candidates if q.id not in excluded]
    for tier in fallback_order(difficulty):
        pool = [q for q in available if q.difficulty == tier]
        if pool:
            if tier != difficulty:
                logger.debug(f"No {difficulty} questions left, falling back to {tier}")
            return chooser.choice(pool)
    return None


# ── YAML bank ────────────────────────────────────────────────────────────────


def load_question_bank(path: Path | None = None) -> list[dict[str, Any]]:
    """Parse the YAML question bank into a list of category mappings."""
    file_path = path or QUESTIONS_FILE
    with open(file_path) as f:
        raw = yaml.safe_load(f) or []
    if not isinstance(raw, list):
        raise ValidationError(f"Question bank must be a list of categories in {file_path}")
    for entry in raw:
        if not isinstance(entry, dict) or "id" not in entry or "name" not in entry:
            raise ValidationError(f"Every category needs an id and a name in {file_path}")
    return raw


def seed_question_bank(path: Path | None = None) -> int:
    """Upsert categories, subcategories and questions. Returns the question count."""
    bank = load_question_bank(path)
    timestamp = now_iso()
    seeded = 0
    with _open_connection() as conn:
        for category in bank:
            category_id = str(category["id"])
            conn.execute(
                """
                INSERT INTO categories (id, name, slug, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, slug = excluded.slug
                """,
                (category_id, category["name"], category.get("slug", category_id), timestamp),
            )
            for subcategory in category.get("subcategories", []):
                subcategory_id = str(subcategory["id"])
                conn.execute(
                    """
                    INSERT INTO subcategories (id, category_id, name, slug) VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        category_id = excluded.category_id, name = excluded.name, slug = excluded.slug
                    """,
                    (subcategory_id, category_id, subcategory["name"], subcategory.get("slug", subcategory_id)),
                )
                for question in subcategory.get("questions", []):
                    _upsert_question(conn, subcategory_id, question, timestamp)
                    seeded += 1
        conn.commit()
    logger.info(f"Seeded {seeded} questions across {len(bank)} categories")
    return seeded


def _upsert_question(conn: Any, subcategory_id: str, question: Mapping[str, Any], timestamp: str) -> None:
    try:
        difficulty = ensure_difficulty(question.get("difficulty", "medium"))
        question_type = ensure_question_type(question.get("type", "mcq"))
    except ValueError as exc:
        raise ValidationError(f"Question {question.get('id')}: {exc}") from exc
    options = parse_options(question.get("options"))
    conn.execute(
        """
        INSERT INTO questions (
            id, subcategory_id, question_text, question_type, options_json,
            correct_answer, explanation, marks, difficulty, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            subcategory_id = excluded.subcategory_id,
            question_text = excluded.question_text,
            question_type = excluded.question_type,
            options_json = excluded.options_json,
            correct_answer = excluded.correct_answer,
            explanation = excluded.explanation,
            marks = excluded.marks,
            difficulty = excluded.difficulty
        """,
        (
            str(question["id"]),
            subcategory_id,
            question["text"],
            question_type,
            json.dumps(options.to_dict()),
            str(question["correct_answer"]),
            question.get("explanation", ""),
            int(question.get("marks", 1)),
            difficulty,
            timestamp,
        ),
    )


__all__ = [
    "LEGACY_OPTION_COLUMNS",
    "QUESTIONS_FILE",
    "check_answer",
    "choose_question",
    "fallback_order",
    "load_question_bank",
    "options_from_columns",
    "parse_options",
    "resolve_choice",
    "seed_question_bank",
]
