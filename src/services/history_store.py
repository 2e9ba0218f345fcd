"""
Practice history: an append-only list of finished attempts.

The whole collection is persisted as one JSON document under a constant key
and rewritten after every mutation. The in-memory list stays authoritative
when a write fails.
"""

from __future__ import annotations

import calendar
import json
import logging
import sqlite3
from datetime import date, tzinfo
from typing import Iterable, Protocol

from config import RESULTS_STORE_KEY
from services.exam_models import RecordFormatError, StoredResult, parse_iso

LOGGER = logging.getLogger("rc_practice.history")


class DocumentStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


def local_date(date_iso: str, tz: tzinfo | None = None) -> date:
    """Calendar day of *date_iso* in *tz* (the machine's local zone by default)."""
    moment = parse_iso(date_iso)
    return (moment.astimezone(tz) if tz is not None else moment.astimezone()).date()


def local_date_key(date_iso: str, tz: tzinfo | None = None) -> str:
    return local_date(date_iso, tz).strftime("%Y-%m-%d")


def build_calendar_index(results: Iterable[StoredResult], tz: tzinfo | None = None) -> dict[str, list[StoredResult]]:
    """Group results by the local calendar day they were taken on."""
    index: dict[str, list[StoredResult]] = {}
    for result in results:
        index.setdefault(local_date_key(result.date_iso, tz), []).append(result)
    return index


def month_grid(year: int, month: int) -> list[date | None]:
    """Sunday-first month cells: leading `None` padding, then every day of the month."""
    first_weekday, days_in_month = calendar.monthrange(year, month)
    leading = (first_weekday + 1) % 7
    cells: list[date | None] = [None] * leading
    cells.extend(date(year, month, day) for day in range(1, days_in_month + 1))
    return cells


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move a (year, month) pair by *offset* months."""
    zero_based = year * 12 + (month - 1) + offset
    return zero_based // 12, zero_based % 12 + 1


def _decode_document(raw: str | None) -> list[StoredResult]:
    if raw is None or not raw.strip():
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        LOGGER.warning("Stored history is not valid JSON; starting empty: %s", e)
        return []
    if not isinstance(payload, list):
        LOGGER.warning("Stored history is not a list; starting empty.")
        return []
    out: list[StoredResult] = []
    for position, item in enumerate(payload):
        try:
            out.append(StoredResult.from_dict(item))
        except (RecordFormatError, TypeError, ValueError) as e:
            LOGGER.warning("Skipping malformed history entry #%s: %s", position, e)
    return out


class HistoryStore:
    """In-memory history mirrored to a durable document store."""

    def __init__(self, storage: DocumentStorage, results: Iterable[StoredResult] = (), key: str = RESULTS_STORE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._results: list[StoredResult] = list(results)
        self.last_error: str | None = None

    @classmethod
    def load(cls, storage: DocumentStorage, key: str = RESULTS_STORE_KEY) -> HistoryStore:
        """Load the persisted history, degrading to an empty collection on any read problem."""
        try:
            raw = storage.get(key)
        except sqlite3.Error as e:
            LOGGER.warning("Failed to read test results from storage: %s", e)
            raw = None
        return cls(storage, _decode_document(raw), key=key)

    @property
    def results(self) -> tuple[StoredResult, ...]:
        return tuple(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def get(self, result_id: str) -> StoredResult | None:
        for result in self._results:
            if result.id == result_id:
                return result
        return None

    def append(self, result: StoredResult) -> bool:
        """Append and persist the full collection. Returns False if the write failed."""
        self._results.append(result)
        return self._persist()

    def _persist(self) -> bool:
        document = json.dumps([r.to_dict() for r in self._results], ensure_ascii=False)
        try:
            self._storage.set(self._key, document)
        except (sqlite3.Error, OSError) as e:
            self.last_error = f"Error saving test results: {e}. Some data might be too large for storage."
            LOGGER.warning("Failed to save test results: %s", e)
            return False
        self.last_error = None
        return True

    def calendar_index(self, tz: tzinfo | None = None) -> dict[str, list[StoredResult]]:
        return build_calendar_index(self._results, tz)

    def find_duplicate_passage(self, candidate: str) -> StoredResult | None:
        """Return the first stored result holding a raw passage equal to *candidate* once trimmed."""
        needle = candidate.strip()
        for result in self._results:
            for stored_passage in result.raw_input_passages:
                if stored_passage.strip() == needle:
                    return result
        return None
