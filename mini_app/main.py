"""
Quiz web API — FastAPI
Run: uvicorn mini_app.main:app --host 0.0.0.0 --port 8080 --reload
"""
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone

from config.settings import settings
from core.analytics_engine import format_report_as_text, report_filename
from core.database import Database
from core.models import Question, ReviewState
from core.quiz_service import QuestionNotFound, QuizError, QuizService

logging.basicConfig(format=settings.LOG_FORMAT, level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def question_payload(q: Question) -> dict:
    """Question as shown to the player: no answer, no explanation."""
    return {
        "id": q.id, "category": q.category, "difficulty": q.difficulty,
        "type": q.type, "code": q.code, "question": q.question,
        "options": q.options, "error_line": q.error_line,
        "rust_book_link": q.rust_book_link, "tags": q.tags,
    }


def state_payload(s: ReviewState) -> dict:
    d = s.to_dict()
    d["accuracy"] = round(s.accuracy, 3)
    return d


class AnswerPayload(BaseModel):
    question_id: str
    answer_index: int


class SettingsPayload(BaseModel):
    dark_mode: Optional[bool] = None
    timed_mode: Optional[bool] = None
    time_per_question: Optional[int] = None
    explanations_enabled: Optional[bool] = None
    sound_enabled: Optional[bool] = None


def create_app(service: QuizService) -> FastAPI:
    app = FastAPI(title="RustLens Quiz", version="1.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"],
                       allow_methods=["*"], allow_headers=["*"])
    app.state.service = service

    @app.get("/api/questions/next")
    async def next_question():
        q = await service.next_question()
        if not q:
            raise HTTPException(404, "question bank is empty")
        return question_payload(q)

    @app.get("/api/questions")
    async def list_questions(category: Optional[str] = None):
        return [question_payload(q) for q in service.questions_by_category(category)]

    @app.post("/api/questions/refresh")
    async def refresh_questions():
        try:
            count = await service.refresh_questions()
        except QuizError as e:
            raise HTTPException(409, str(e))
        return {"success": True, "question_count": count}

    @app.post("/api/answer")
    async def submit_answer(p: AnswerPayload):
        try:
            r = await service.submit_answer(p.question_id, p.answer_index)
        except QuestionNotFound as e:
            raise HTTPException(404, str(e))
        except ValueError as e:
            raise HTTPException(422, str(e))
        return {"correct": r.correct, "correct_index": r.correct_index,
                "explanation": r.explanation, "progress": state_payload(r.state)}

    @app.get("/api/progress/{question_id}")
    async def get_progress(question_id: str):
        try:
            state = await service.get_progress(question_id)
        except QuestionNotFound as e:
            raise HTTPException(404, str(e))
        return state_payload(state) if state else None

    @app.get("/api/stats")
    async def get_stats():
        return (await service.get_stats()).to_dict()

    @app.get("/api/report")
    async def get_report(format: str = "json"):
        if format not in ("json", "text"):
            raise HTTPException(422, "format must be 'json' or 'text'")
        report = await service.generate_report()
        now = datetime.now(timezone.utc)
        headers = {"Content-Disposition":
                   f'attachment; filename="{report_filename(format, now.date())}"'}
        if format == "json":
            return JSONResponse(report, headers=headers)
        return PlainTextResponse(format_report_as_text(report, now), headers=headers)

    @app.get("/api/settings")
    async def get_settings():
        return (await service.get_settings()).to_dict()

    @app.put("/api/settings")
    async def put_settings(p: SettingsPayload):
        try:
            updated = await service.update_settings(p.model_dump(exclude_none=True))
        except ValueError as e:
            raise HTTPException(422, str(e))
        return updated.to_dict()

    @app.on_event("startup")
    async def startup():
        await service.start()

    return app


app = create_app(QuizService(Database(settings.DB_PATH), settings.QUESTIONS_PATH))
