"""Shared pytest fixtures for the RC Practice Zone test suite."""

from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

import pytest

# Ensure src/ is on the path so all service imports resolve.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

MIGRATIONS_SQL_DIR = SRC_DIR / "migrations" / "sql"

from services.exam_models import Question, QuestionState, StoredResult  # noqa: E402


def _apply_migrations(db_path: str) -> None:
    """Run all SQL migration files in order against *db_path*."""
    conn = sqlite3.connect(db_path)
    try:
        sql_files = sorted(MIGRATIONS_SQL_DIR.glob("[0-9][0-9][0-9]_*.sql"))
        for sql_file in sql_files:
            sql = sql_file.read_text(encoding="utf-8")
            conn.executescript(sql)
        # Set schema_version to latest
        conn.execute(
            "INSERT INTO meta(key, value) VALUES('schema_version', ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (str(len(sql_files)),),
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Temporary SQLite DB with all migrations applied.

    Monkeypatches DB_PATH in all storage modules so tests use an isolated DB.
    """
    db_file = str(tmp_path / "test_app.db")
    _apply_migrations(db_file)

    import migrations.migrate as migrate_mod
    import services.kv_store as kv_mod
    import utils.metrics as metrics_mod

    monkeypatch.setattr(migrate_mod, "DB_PATH", Path(db_file))
    monkeypatch.setattr(kv_mod, "DB_PATH", Path(db_file))
    monkeypatch.setattr(metrics_mod, "DB_PATH", Path(db_file))

    # Patch _connect in each module to pick up the new DB_PATH value
    def _patched_connect():
        conn = sqlite3.connect(db_file)
        conn.row_factory = sqlite3.Row
        return conn

    monkeypatch.setattr(kv_mod, "_connect", _patched_connect)
    monkeypatch.setattr(metrics_mod, "_connect", _patched_connect)

    return db_file


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryStorage:
    """Dict-backed document storage; `fail_writes` simulates a full store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise sqlite3.OperationalError("database or disk is full")
        self.writes += 1
        self.data[key] = value


def make_question(index: int = 0, correct: str = "A", options: tuple[str, ...] = ("A", "B", "C", "D")) -> Question:
    return Question(
        id=f"q-{index}",
        question_text=f"Question {index + 1}?",
        options=options,
        correct_answer_text=correct,
        explanation=f"Explanation {index + 1}.",
        difficulty_assessment="CAT-Medium",
        common_pitfalls="Misreading scope.",
    )


def make_questions(count: int) -> list[Question]:
    return [make_question(i) for i in range(count)]


def question_payload(index: int = 0, **overrides) -> dict:
    """Raw question object as the model is asked to return it."""
    base = {
        "questionText": f"What does paragraph {index + 1} imply?",
        "options": ["Alpha", "Beta", "Gamma", "Delta"],
        "correctAnswerText": "Beta",
        "explanation": "Beta follows from the second sentence.",
        "difficultyAssessment": "CAT-Medium (75-85th percentile)",
        "commonPitfalls": "Confusing detail with main idea.",
    }
    base.update(overrides)
    return base


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


def make_result(
    rid: str = "r1",
    date_iso: str = "2026-02-10T12:00:00.000Z",
    passages: tuple[str, ...] = ("Passage one",),
) -> StoredResult:
    """A stored two-question attempt: one correct, one wrong and flagged."""
    return StoredResult(
        id=rid,
        date_iso=date_iso,
        score=2,
        total_possible_score=6,
        time_taken_sec=120,
        correct_count=1,
        incorrect_count=1,
        unattempted_count=0,
        passage_summary=passages[0][:100],
        full_passage="\n\n".join(passages),
        raw_input_passages=passages,
        questions=tuple(make_questions(2)),
        question_states=(
            QuestionState("q-0", "A", False, 70),
            QuestionState("q-1", "B", True, 50),
        ),
        number_of_passages=len(passages),
    )
