"""FastAPI routes for adaptive practice: JSON API plus the session summary page."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from starlette.responses import Response

from . import practice
from .engine import snapshot
from .models import AdaptiveAnalytics, AdaptiveQuestion, PracticeSession, Recommendation, SessionStats

router = APIRouter()

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
TEMPLATES_DIR = PROJECT_ROOT / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


class InitializeRequest(BaseModel):
    user_id: str
    category_ids: list[str]


class StartSessionRequest(BaseModel):
    user_id: str
    category_id: str
    subcategory_ids: list[str] = Field(default_factory=list)


class AnswerRequest(BaseModel):
    user_id: str
    session_id: int
    question_id: str
    answer: str
    time_seconds: float


class EndSessionRequest(BaseModel):
    user_id: str


def _question_payload(question: AdaptiveQuestion | None) -> dict[str, Any] | None:
    return question.to_dict() if question is not None else None


def _analytics_payload(analytics: AdaptiveAnalytics) -> dict[str, Any]:
    return asdict(analytics)


def _session_payload(session: PracticeSession) -> dict[str, Any]:
    return asdict(session)


def _stats_payload(stats: SessionStats) -> dict[str, Any]:
    payload = asdict(stats)
    for key in ("avg_accuracy", "avg_time_seconds", "improvement_rate", "session_duration_seconds"):
        payload[key] = round(payload[key], 2)
    payload["topic_wise_accuracy"] = {
        topic: round(accuracy, 2) for topic, accuracy in stats.topic_wise_accuracy.items()
    }
    return payload


def _recommendations_payload(recommendations: list[Recommendation]) -> list[dict[str, Any]]:
    return [asdict(rec) for rec in recommendations]


# ── JSON API ──────────────────────────────────────────────────────────────────


@router.post("/api/adaptive/initialize")
async def initialize(body: InitializeRequest) -> dict[str, Any]:
    states = practice.initialize_categories(body.user_id, body.category_ids)
    return {
        "user_id": body.user_id,
        "categories": [
            {"category_id": state.category_id, **asdict(snapshot(state))}
            for state in states
        ],
    }


@router.post("/api/adaptive/sessions")
async def start_session(body: StartSessionRequest) -> dict[str, Any]:
    started = practice.start_session(body.user_id, body.category_id, body.subcategory_ids)
    return {
        "session": _session_payload(started.session),
        "analytics": _analytics_payload(started.analytics),
        "question": _question_payload(started.question),
        "exhausted": started.exhausted,
    }


@router.post("/api/adaptive/answer")
async def submit_answer(body: AnswerRequest) -> dict[str, Any]:
    result = practice.submit_answer(
        body.user_id,
        None,
        body.session_id,
        body.question_id,
        body.answer,
        body.time_seconds,
    )
    return {
        "is_correct": result.is_correct,
        "correct_answer": result.correct_answer,
        "explanation": result.explanation,
        "analytics": _analytics_payload(result.analytics),
        "next_question": _question_payload(result.next_question),
        "exhausted": result.exhausted,
    }


@router.post("/api/adaptive/sessions/{session_id}/end")
async def end_session(session_id: int, body: EndSessionRequest) -> dict[str, Any]:
    session = practice.end_session(body.user_id, session_id)
    return {"session": _session_payload(session)}


@router.get("/api/adaptive/sessions/{session_id}/summary")
async def session_summary(session_id: int, user_id: str = Query(...)) -> dict[str, Any]:
    summary = practice.get_session_summary(user_id, session_id)
    return {
        "session": _session_payload(summary.session),
        "stats": _stats_payload(summary.stats),
        "recommendations": _recommendations_payload(summary.recommendations),
    }


@router.get("/api/adaptive/overview")
async def overview(user_id: str = Query(...), category_id: str | None = Query(None)) -> dict[str, Any]:
    result = practice.learner_overview(user_id, category_id)
    return {
        "user_id": result.user_id,
        "categories": [
            {"category_id": entry.category_id, "name": entry.name, **asdict(entry.analytics)}
            for entry in result.categories
        ],
        "strengths": result.strengths,
        "weaknesses": result.weaknesses,
        "mastery_levels": {name: round(mastery, 4) for name, mastery in result.mastery_levels.items()},
        "recommendations": _recommendations_payload(result.recommendations),
        "total_sessions": result.total_sessions,
    }


# ── Pages ─────────────────────────────────────────────────────────────────────


@router.get("/practice/{session_id}/summary", response_class=HTMLResponse)
async def summary_page(request: Request, session_id: int, user_id: str = Query(...)) -> Response:
    summary = practice.get_session_summary(user_id, session_id)
    context = {
        "page_title": "Session Summary",
        "session": summary.session,
        "stats": summary.stats,
        "recommendations": summary.recommendations,
    }
    return templates.TemplateResponse(request, "summary.html", context)


__all__ = ["router", "templates"]
