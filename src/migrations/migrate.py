"""SQLite schema migration runner for the practice database.

Numbered files in `sql/` (`001_init.sql`, ...) are applied in order; the
applied version lives in `meta.schema_version`. A lock file keeps two app
processes from migrating at once, and an existing database is copied to
`backups/` before anything pending runs.
"""

from __future__ import annotations

import logging
import re
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

LOGGER = logging.getLogger("rc_practice.migrations")

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "app.db"
BACKUPS_DIR = PROJECT_ROOT / "backups"
LOCK_PATH = BACKUPS_DIR / ".migrate.lock"
MIGRATIONS_SQL_DIR = Path(__file__).resolve().parent / "sql"
MAX_BACKUPS = 5

_MIGRATION_NAME_RE = re.compile(r"^(\d{3})_.+\.sql$")


class MigrationError(RuntimeError):
    """Raised when a migration fails and rollback was triggered."""


class MigrationInProgressError(RuntimeError):
    """Raised when a migration lock already exists."""


def _list_migrations() -> list[tuple[int, Path]]:
    found = []
    for path in MIGRATIONS_SQL_DIR.glob("*.sql"):
        match = _MIGRATION_NAME_RE.match(path.name)
        if match:
            found.append((int(match.group(1)), path))
    return sorted(found)


def latest_migration_version() -> int:
    """Highest version number among the shipped SQL files (0 when there are none)."""
    migrations = _list_migrations()
    return migrations[-1][0] if migrations else 0


def _read_schema_version(conn: sqlite3.Connection) -> int:
    has_meta = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name='meta'"
    ).fetchone()
    if has_meta is None:
        return 0
    row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
    try:
        return int(row[0]) if row else 0
    except (TypeError, ValueError):
        return 0


def current_schema_version(db_path: Path | None = None) -> int:
    """Return the schema version recorded in the database; 0 when it does not exist yet."""
    path = Path(db_path) if db_path is not None else DB_PATH
    if not path.exists():
        return 0
    conn = sqlite3.connect(path)
    try:
        return _read_schema_version(conn)
    finally:
        conn.close()


def _versioned_script(sql: str, version: int) -> str:
    # executescript() commits whatever is open first, so the transaction and
    # the version bump have to live inside the script itself.
    return (
        "BEGIN IMMEDIATE;\n"
        f"{sql}\n;\n"
        "INSERT INTO meta(key, value) VALUES('schema_version', "
        f"'{int(version)}') ON CONFLICT(key) DO UPDATE SET value=excluded.value;\n"
        "COMMIT;\n"
    )


def _backup_database() -> Path:
    BACKUPS_DIR.mkdir(parents=True, exist_ok=True)
    target = BACKUPS_DIR / f"app_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.db"
    shutil.copy2(DB_PATH, target)
    LOGGER.info("Backed up %s to %s", DB_PATH, target)
    _prune_backups()
    return target


def _prune_backups(keep: int = MAX_BACKUPS) -> None:
    backups = sorted(BACKUPS_DIR.glob("app_*.db"))
    for stale in backups[: max(0, len(backups) - keep)]:
        stale.unlink(missing_ok=True)


@contextmanager
def _migration_lock() -> Iterator[None]:
    BACKUPS_DIR.mkdir(parents=True, exist_ok=True)
    try:
        LOCK_PATH.touch(exist_ok=False)
    except FileExistsError as e:
        raise MigrationInProgressError("migration in progress") from e
    try:
        yield
    finally:
        LOCK_PATH.unlink(missing_ok=True)


def migrate_to_latest() -> int:
    """
    Run pending SQL migrations and return the final schema version.

    - If the DB does not exist, it is created.
    - If the meta table/version is missing, the current version is 0.
    - An existing DB is copied to backups/ (newest MAX_BACKUPS kept) before
      pending migrations run.

    Raises:
        MigrationInProgressError: Another process holds the lock file.
        MigrationError: A migration failed; its transaction was rolled back.
    """
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    with _migration_lock():
        migrations = _list_migrations()
        if not migrations:
            return 0

        db_existed_before = DB_PATH.exists()
        conn = sqlite3.connect(DB_PATH)
        try:
            current = _read_schema_version(conn)
            pending = [(v, p) for v, p in migrations if v > current]
            if not pending:
                return current

            if db_existed_before:
                _backup_database()
            for version, sql_path in pending:
                try:
                    conn.executescript(_versioned_script(sql_path.read_text(encoding="utf-8"), version))
                except sqlite3.Error as e:
                    if conn.in_transaction:
                        conn.rollback()
                    raise MigrationError(
                        f"Migration failed at {sql_path.name}. Rolled back. "
                        f"Use backups in: {BACKUPS_DIR}"
                    ) from e
                LOGGER.info("Applied migration %s", sql_path.name)
            return pending[-1][0]
        finally:
            conn.close()
