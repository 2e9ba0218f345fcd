"""Minimal stability self-check for migrations and the results history document."""

from __future__ import annotations

import sqlite3
import sys
import uuid
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from migrations.migrate import DB_PATH, current_schema_version, latest_migration_version, migrate_to_latest
from services.exam_models import Question, QuestionState
from services.history_store import HistoryStore
from services.kv_store import KeyValueStore
from services.scoring import PassageMeta, build_result


def check_migrations_idempotent() -> None:
    first = migrate_to_latest()
    second = migrate_to_latest()
    latest = latest_migration_version()
    assert second == first, f"migrate_to_latest not idempotent: {first} vs {second}"
    assert second == latest, f"schema version not latest: {second} vs {latest}"

    recorded = current_schema_version()
    assert recorded == latest, f"DB schema_version != latest ({recorded} vs {latest})"


def check_tables() -> None:
    expected_tables = {"meta", "kv_store", "operation_metrics"}
    conn = sqlite3.connect(DB_PATH)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        tables = {str(r[0]) for r in rows}
        missing = expected_tables - tables
        assert not missing, f"missing tables: {sorted(missing)}"
    finally:
        conn.close()


def check_history_round_trip() -> None:
    # A throwaway key keeps the real results document untouched.
    key = f"selfcheck_{uuid.uuid4().hex[:8]}"
    storage = KeyValueStore()
    question = Question(
        id="q-0",
        question_text="Self check?",
        options=("A", "B", "C", "D"),
        correct_answer_text="A",
        explanation="A is right.",
        difficulty_assessment="Easy",
        common_pitfalls="None",
    )
    state = QuestionState(question_id="q-0", selected_option="A", time_spent_on_question=3)
    result = build_result(
        [question],
        [state],
        time_budget=900,
        time_left=897,
        passage_meta=PassageMeta(full_passage="Self check passage", raw_input_passages=("Self check passage",), number_of_passages=1),
    )
    try:
        store = HistoryStore.load(storage, key=key)
        assert store.append(result), f"history write failed: {store.last_error}"
        reloaded = HistoryStore.load(storage, key=key)
        assert len(reloaded) == 1, "history reload lost the appended result"
        assert reloaded.results[0] == result, "history round-trip changed the result"
        assert reloaded.find_duplicate_passage("  Self check passage  ") is not None, "duplicate lookup failed"
    finally:
        storage.delete(key)


def main() -> None:
    check_migrations_idempotent()
    check_tables()
    check_history_round_trip()
    print("self_check: OK")


if __name__ == "__main__":
    main()
