"""
Quiz session service: glue between the store and the scheduling core.

Every answer is a read -> compute -> write of one ReviewState; the core
functions in `core.quiz_engine` never touch storage themselves.
"""
import asyncio
import json
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from core.analytics_engine import analytics
from core.database import Database
from core.models import AppSettings, BundleMetadata, Question, ReviewState, UserStats
from core.quiz_engine import compute_next_state, record_answer, select_next

logger = logging.getLogger(__name__)


class QuizError(Exception):
    pass


class QuestionNotFound(QuizError, KeyError):
    def __init__(self, question_id: str):
        super().__init__(question_id)
        self.question_id = question_id

    def __str__(self):
        return f"question {self.question_id!r} not found"


@dataclass
class AnswerResult:
    question_id: str
    correct: bool
    correct_index: int
    explanation: Optional[str]
    state: ReviewState


def load_bundle(path: str) -> tuple:
    """Read a question bundle file -> (version, [Question]).

    Accepts either `{"version": n, "questions": [...]}` or a bare list (version 1).
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if isinstance(raw, list):
        version, records = 1, raw
    else:
        version, records = int(raw.get("version", 1)), raw.get("questions", [])
    return version, [Question.from_dict(r) for r in records]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizService:
    def __init__(self, db: Database, bundle_path: Optional[str] = None,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.bundle_path = bundle_path
        self.rng = rng or random.Random()
        self.clock = clock
        self._questions: Dict[str, Question] = {}
        self._lock = asyncio.Lock()

    @property
    def questions(self) -> List[Question]:
        return list(self._questions.values())

    @property
    def question_count(self) -> int:
        return len(self._questions)

    async def start(self):
        await self.db.init()
        loaded = await self.db.all_questions()
        if self.bundle_path:
            meta = await self.db.get_metadata()
            version, bundle = load_bundle(self.bundle_path)
            stored_version = meta.question_bundle_version if meta else 0
            if not loaded or version > stored_version:
                await self._seed(version, bundle)
                loaded = await self.db.all_questions()
        self._questions = {q.id: q for q in loaded}
        # materialise defaults on first run
        await self.db.get_stats()
        await self.db.get_settings()
        logger.info(f"quiz service ready with {len(self._questions)} questions")

    async def _seed(self, version: int, bundle: List[Question]):
        n = await self.db.bulk_add_questions(bundle)
        await self.db.update_metadata(BundleMetadata(version, self.clock()))
        logger.info(f"seeded {n} questions from bundle v{version}")

    async def refresh_questions(self) -> int:
        if not self.bundle_path:
            raise QuizError("no question bundle configured")
        version, bundle = load_bundle(self.bundle_path)
        await self._seed(version, bundle)
        self._questions = {q.id: q for q in await self.db.all_questions()}
        return len(self._questions)

    def get_question(self, question_id: str) -> Question:
        q = self._questions.get(question_id)
        if q is None:
            raise QuestionNotFound(question_id)
        return q

    def questions_by_category(self, category: Optional[str] = None) -> List[Question]:
        if category is None:
            return self.questions
        return [q for q in self._questions.values() if q.category == category]

    async def next_question(self, exclude: Optional[str] = None) -> Optional[Question]:
        states = await self.db.all_progress()
        ids = set(self._questions)
        if exclude in ids and len(ids) > 1:
            ids.discard(exclude)
        qid = select_next(ids, states, self.clock(), self.rng)
        return self._questions[qid] if qid is not None else None

    async def submit_answer(self, question_id: str, answer_index: int) -> AnswerResult:
        question = self.get_question(question_id)
        if not 0 <= answer_index < len(question.options):
            raise ValueError(f"answer index {answer_index} out of range for question {question_id}")
        correct = answer_index == question.correct

        async with self._lock:
            now = self.clock()
            prior = await self.db.get_progress(question_id)
            state = compute_next_state(question_id, prior, correct, now)
            await self.db.update_progress(state)

            stats = await self.db.get_stats()
            await self.db.update_stats(record_answer(stats, question.category, correct, now.date()))
            settings = await self.db.get_settings()

        logger.debug(
            f"answer {question_id}: correct={correct} interval={state.interval} "
            f"ease={state.ease_factor:.2f}"
        )
        return AnswerResult(
            question_id=question_id,
            correct=correct,
            correct_index=question.correct,
            explanation=question.explanation if settings.explanations_enabled else None,
            state=state,
        )

    async def due_count(self) -> int:
        due = await self.db.get_questions_for_review(self.clock())
        return sum(1 for qid in due if qid in self._questions)

    async def get_progress(self, question_id: str) -> Optional[ReviewState]:
        self.get_question(question_id)
        return await self.db.get_progress(question_id)

    async def get_stats(self) -> UserStats:
        return await self.db.get_stats()

    async def get_settings(self) -> AppSettings:
        return await self.db.get_settings()

    async def update_settings(self, changes: Dict[str, Any]) -> AppSettings:
        current = await self.db.get_settings()
        updated = current.merged(changes)
        await self.db.update_settings(updated)
        return updated

    async def generate_report(self) -> dict:
        stats = await self.db.get_stats()
        progress = await self.db.all_progress()
        return analytics.generate_report(stats, progress.values(), self.questions)
