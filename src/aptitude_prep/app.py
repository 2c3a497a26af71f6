from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger
from starlette.responses import Response

from .db import init_db
from .errors import ConflictError, NotFoundError, ValidationError
from .log import configure_logging
from .practice_db import list_categories
from .questions import QUESTIONS_FILE, seed_question_bank
from .routes import router, templates


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    init_db()
    if QUESTIONS_FILE.exists():
        seed_question_bank()
    else:
        logger.warning(f"No question bank at {QUESTIONS_FILE}; starting without questions")
    yield


app = FastAPI(title="Aptitude Prep", lifespan=lifespan)
app.include_router(router)


@app.exception_handler(ValidationError)
async def validation_error_handler(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)


@app.exception_handler(ConflictError)
async def conflict_handler(_: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status.HTTP_409_CONFLICT)


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> Response:
    context = {
        "page_title": "Aptitude Prep",
        "categories": list_categories(),
    }
    return templates.TemplateResponse(request, "index.html", context)


def main() -> None:
    import uvicorn

    uvicorn.run("aptitude_prep.app:app", host="127.0.0.1", port=8000, reload=True)


if __name__ == "__main__":
    main()
