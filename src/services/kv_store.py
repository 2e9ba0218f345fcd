"""Durable key-value documents backed by SQLite."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from migrations.migrate import DB_PATH


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


class KeyValueStore:
    """Maps a constant key to one text document; writes overwrite the whole value."""

    def get(self, key: str) -> str | None:
        with _connect() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key=?", (key,)).fetchone()
        return None if row is None else str(row["value"])

    def set(self, key: str, value: str) -> None:
        """Write *value* under *key*. Raises sqlite3.Error on storage failure."""
        with _connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_store(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (key, value, _now_iso()),
            )

    def delete(self, key: str) -> None:
        with _connect() as conn:
            conn.execute("DELETE FROM kv_store WHERE key=?", (key,))
