import json, os, aiosqlite
from typing import Dict, Iterable, List, Optional
from datetime import datetime
from core.models import (
    AppSettings, BundleMetadata, Question, ReviewState, UserStats, parse_timestamp,
)

DB_PATH = os.environ.get("DB_PATH", "data/quiz.db")

STATS_KEY = "user-stats"
SETTINGS_KEY = "app-settings"
METADATA_KEY = "sync-metadata"

CREATE_SQL = """
CREATE TABLE IF NOT EXISTS questions (
    id             TEXT    PRIMARY KEY,
    category       TEXT    NOT NULL,
    difficulty     INTEGER NOT NULL,
    type           TEXT    NOT NULL,
    code           TEXT    DEFAULT '',
    question       TEXT    NOT NULL,
    options        TEXT    DEFAULT '[]',
    correct        INTEGER DEFAULT 0,
    explanation    TEXT    DEFAULT '',
    error_line     INTEGER,
    rust_book_link TEXT,
    tags           TEXT    DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS ix_questions_category   ON questions (category);
CREATE INDEX IF NOT EXISTS ix_questions_difficulty ON questions (difficulty);
CREATE TABLE IF NOT EXISTS progress (
    question_id      TEXT    PRIMARY KEY,
    attempts         INTEGER NOT NULL,
    correct_attempts INTEGER NOT NULL,
    last_attempted   TEXT    NOT NULL,
    next_review      TEXT    NOT NULL,
    ease_factor      REAL    NOT NULL,
    interval         INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_progress_next_review ON progress (next_review);
CREATE TABLE IF NOT EXISTS stats (
    id   TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS settings (
    id   TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS metadata (
    key                     TEXT    PRIMARY KEY,
    question_bundle_version INTEGER NOT NULL,
    last_sync               TEXT    NOT NULL
);
"""

QUESTION_COLUMNS = ("id,category,difficulty,type,code,question,options,correct,"
                    "explanation,error_line,rust_book_link,tags")
PROGRESS_COLUMNS = ("question_id,attempts,correct_attempts,last_attempted,"
                    "next_review,ease_factor,interval")

def _question(r) -> Question:
    return Question(
        id=r[0], category=r[1], difficulty=r[2], type=r[3],
        code=r[4] or "", question=r[5],
        options=json.loads(r[6] or "[]"),
        correct=r[7], explanation=r[8] or "",
        error_line=r[9], rust_book_link=r[10],
        tags=json.loads(r[11] or "[]"),
    )

def _progress(r) -> ReviewState:
    return ReviewState(
        question_id=r[0], attempts=r[1], correct_attempts=r[2],
        last_attempted=parse_timestamp(r[3]),
        next_review=parse_timestamp(r[4]),
        ease_factor=r[5], interval=r[6],
    )

def _stamp(dt: datetime) -> str:
    # UTC ISO strings compare lexicographically in time order
    return parse_timestamp(dt).isoformat()

class Database:
    def __init__(self, path: str = DB_PATH):
        self.path = path
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)

    async def init(self):
        async with aiosqlite.connect(self.path) as d:
            await d.executescript(CREATE_SQL)
            await d.commit()

    # ── questions ────────────────────────────────────────────
    async def bulk_add_questions(self, questions: Iterable[Question]) -> int:
        rows = [
            (q.id, q.category, q.difficulty, q.type, q.code, q.question,
             json.dumps(q.options, ensure_ascii=False), q.correct, q.explanation,
             q.error_line, q.rust_book_link, json.dumps(q.tags, ensure_ascii=False))
            for q in questions
        ]
        async with aiosqlite.connect(self.path) as d:
            await d.executemany(
                f"INSERT OR REPLACE INTO questions ({QUESTION_COLUMNS}) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?,?)",
                rows
            )
            await d.commit()
        return len(rows)

    async def all_questions(self) -> List[Question]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(f"SELECT {QUESTION_COLUMNS} FROM questions ORDER BY id") as c:
                return [_question(r) for r in await c.fetchall()]

    async def get_question(self, qid: str) -> Optional[Question]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(
                f"SELECT {QUESTION_COLUMNS} FROM questions WHERE id=?", (qid,)
            ) as c:
                r = await c.fetchone()
                return _question(r) if r else None

    async def get_questions_by_category(self, category: str) -> List[Question]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(
                f"SELECT {QUESTION_COLUMNS} FROM questions WHERE category=? ORDER BY id",
                (category,)
            ) as c:
                return [_question(r) for r in await c.fetchall()]

    async def all_question_ids(self) -> set:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute("SELECT id FROM questions") as c:
                return {r[0] for r in await c.fetchall()}

    # ── progress ─────────────────────────────────────────────
    async def get_progress(self, qid: str) -> Optional[ReviewState]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(
                f"SELECT {PROGRESS_COLUMNS} FROM progress WHERE question_id=?", (qid,)
            ) as c:
                r = await c.fetchone()
                return _progress(r) if r else None

    async def update_progress(self, state: ReviewState):
        async with aiosqlite.connect(self.path) as d:
            await d.execute(
                f"INSERT OR REPLACE INTO progress ({PROGRESS_COLUMNS}) VALUES (?,?,?,?,?,?,?)",
                (state.question_id, state.attempts, state.correct_attempts,
                 _stamp(state.last_attempted), _stamp(state.next_review),
                 state.ease_factor, state.interval)
            )
            await d.commit()

    async def all_progress(self) -> Dict[str, ReviewState]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(f"SELECT {PROGRESS_COLUMNS} FROM progress ORDER BY question_id") as c:
                return {r[0]: _progress(r) for r in await c.fetchall()}

    async def get_questions_for_review(self, now: datetime) -> List[str]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(
                "SELECT question_id FROM progress WHERE next_review<=? ORDER BY next_review",
                (_stamp(now),)
            ) as c:
                return [r[0] for r in await c.fetchall()]

    # ── stats / settings / metadata ──────────────────────────
    async def _get_blob(self, table: str, key: str) -> Optional[dict]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(f"SELECT data FROM {table} WHERE id=?", (key,)) as c:
                r = await c.fetchone()
                return json.loads(r[0]) if r else None

    async def _put_blob(self, table: str, key: str, data: dict):
        async with aiosqlite.connect(self.path) as d:
            await d.execute(
                f"INSERT OR REPLACE INTO {table} (id,data) VALUES (?,?)",
                (key, json.dumps(data, ensure_ascii=False))
            )
            await d.commit()

    async def get_stats(self) -> UserStats:
        data = await self._get_blob("stats", STATS_KEY)
        if data is None:
            stats = UserStats()
            await self.update_stats(stats)
            return stats
        return UserStats.from_dict(data)

    async def update_stats(self, stats: UserStats):
        await self._put_blob("stats", STATS_KEY, stats.to_dict())

    async def get_settings(self) -> AppSettings:
        data = await self._get_blob("settings", SETTINGS_KEY)
        if data is None:
            s = AppSettings()
            await self.update_settings(s)
            return s
        return AppSettings.from_dict(data)

    async def update_settings(self, s: AppSettings):
        await self._put_blob("settings", SETTINGS_KEY, s.to_dict())

    async def get_metadata(self) -> Optional[BundleMetadata]:
        async with aiosqlite.connect(self.path) as d:
            async with d.execute(
                "SELECT question_bundle_version,last_sync FROM metadata WHERE key=?",
                (METADATA_KEY,)
            ) as c:
                r = await c.fetchone()
                return BundleMetadata(r[0], parse_timestamp(r[1])) if r else None

    async def update_metadata(self, meta: BundleMetadata):
        async with aiosqlite.connect(self.path) as d:
            await d.execute(
                "INSERT OR REPLACE INTO metadata (key,question_bundle_version,last_sync) "
                "VALUES (?,?,?)",
                (METADATA_KEY, meta.question_bundle_version, _stamp(meta.last_sync))
            )
            await d.commit()
