from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone

CATEGORIES = [
    "ownership",
    "lifetimes",
    "pattern_matching",
    "error_handling",
    "traits_generics",
    "iterators_closures",
    "async_await",
    "macros",
    "unsafe",
    "std_library",
]

QUESTION_TYPES = [
    "spot_error",
    "fill_blank",
    "will_compile",
    "fix_code",
    "predict_output",
    "idiomatic",
]

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _today() -> str:
    return _now().date().isoformat()

def parse_timestamp(value) -> datetime:
    """ISO string or datetime -> aware UTC datetime. Naive values are taken as UTC."""
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Question:
    id: str
    category: str
    difficulty: int
    type: str
    code: str
    question: str
    options: List[str] = field(default_factory=list)
    correct: int = 0
    explanation: str = ""
    error_line: Optional[int] = None
    rust_book_link: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        required = {"id", "category", "difficulty", "type", "code", "question", "options", "correct"}
        missing = required - set(data.keys())
        if missing:
            raise ValueError(f"question is missing keys: {sorted(missing)}")

        q = cls(
            id=str(data["id"]),
            category=data["category"],
            difficulty=int(data["difficulty"]),
            type=data["type"],
            code=data["code"],
            question=data["question"],
            options=list(data["options"]),
            correct=int(data["correct"]),
            explanation=data.get("explanation") or "",
            error_line=data.get("error_line"),
            rust_book_link=data.get("rust_book_link"),
            tags=list(data.get("tags") or []),
        )
        if q.category not in CATEGORIES:
            raise ValueError(f"question {q.id}: unknown category {q.category!r}")
        if not 1 <= q.difficulty <= 5:
            raise ValueError(f"question {q.id}: difficulty must be in range 1..5")
        if not 0 <= q.correct < len(q.options):
            raise ValueError(f"question {q.id}: correct index out of range")
        return q

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ReviewState:
    """Spaced-repetition state of one question.

    Instances are replaced wholesale after every answer, never patched.
    """

    question_id: str
    attempts: int
    correct_attempts: int
    last_attempted: datetime
    next_review: datetime
    ease_factor: float = 2.5
    interval: int = 0

    @property
    def accuracy(self) -> float:
        # attempts == 0 only happens with malformed stored data; keep it total
        if self.attempts <= 0:
            return 0.0
        return self.correct_attempts / self.attempts

    def is_due(self, now: datetime) -> bool:
        return self.next_review <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "attempts": self.attempts,
            "correct_attempts": self.correct_attempts,
            "last_attempted": self.last_attempted.isoformat(),
            "next_review": self.next_review.isoformat(),
            "ease_factor": self.ease_factor,
            "interval": self.interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewState":
        return cls(
            question_id=str(data["question_id"]),
            attempts=int(data["attempts"]),
            correct_attempts=int(data["correct_attempts"]),
            last_attempted=parse_timestamp(data["last_attempted"]),
            next_review=parse_timestamp(data["next_review"]),
            ease_factor=float(data["ease_factor"]),
            interval=int(data["interval"]),
        )


@dataclass
class CategoryScore:
    attempted: int = 0
    correct: int = 0


def _empty_scores() -> Dict[str, CategoryScore]:
    return {c: CategoryScore() for c in CATEGORIES}


@dataclass
class UserStats:
    total_questions: int = 0
    correct_answers: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_practice_date: str = field(default_factory=_today)
    category_scores: Dict[str, CategoryScore] = field(default_factory=_empty_scores)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_practice_date": self.last_practice_date,
            "category_scores": {
                c: {"attempted": s.attempted, "correct": s.correct}
                for c, s in self.category_scores.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserStats":
        scores = _empty_scores()
        for c, s in (data.get("category_scores") or {}).items():
            scores[c] = CategoryScore(int(s.get("attempted", 0)), int(s.get("correct", 0)))
        return cls(
            total_questions=int(data.get("total_questions", 0)),
            correct_answers=int(data.get("correct_answers", 0)),
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            last_practice_date=data.get("last_practice_date") or _today(),
            category_scores=scores,
        )

    @property
    def last_practice_day(self) -> date:
        return date.fromisoformat(self.last_practice_date)


@dataclass(frozen=True)
class AppSettings:
    dark_mode: bool = True
    timed_mode: bool = False
    time_per_question: int = 60
    explanations_enabled: bool = True
    sound_enabled: bool = False

    MIN_TIME = 10
    MAX_TIME = 300

    def merged(self, changes: Dict[str, Any]) -> "AppSettings":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"unknown settings: {sorted(unknown)}")
        updated = replace(self, **changes)
        if not self.MIN_TIME <= updated.time_per_question <= self.MAX_TIME:
            raise ValueError(
                f"time_per_question must be between {self.MIN_TIME} and {self.MAX_TIME} seconds"
            )
        return updated

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        return cls().merged({k: v for k, v in data.items() if k in {f.name for f in fields(cls)}})


@dataclass
class BundleMetadata:
    question_bundle_version: int = 0
    last_sync: datetime = field(default_factory=_now)
