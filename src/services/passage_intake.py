"""Passage intake: collect N raw passages and guard against re-using past passages."""

from __future__ import annotations

from typing import Any

from config import MAX_PASSAGES
from services.document_processor import PDFProcessor
from services.exam_models import StoredResult
from services.history_store import HistoryStore, local_date


class IntakeValidationError(ValueError):
    """Base class for recoverable passage-entry problems."""


class IncompletePassagesError(IntakeValidationError):
    """Raised when one or more passages are blank."""


class DuplicatePassageError(IntakeValidationError):
    """Raised when a passage matches one stored in a previous attempt."""

    def __init__(self, passage_index: int, passage: str, result: StoredResult) -> None:
        self.passage_index = passage_index
        self.result = result
        self.taken_on = local_date(result.date_iso)
        preview = passage.strip()[:50]
        super().__init__(
            f'Passage {passage_index + 1} ("{preview}...") appears to be a duplicate of a passage from a test '
            f"taken on {self.taken_on.isoformat()}. Please provide a new passage."
        )


def validate_passage_count(number_of_passages: int) -> int:
    try:
        count = int(number_of_passages)
    except (TypeError, ValueError) as e:
        raise IntakeValidationError("Number of passages must be a whole number.") from e
    if not 1 <= count <= MAX_PASSAGES:
        raise IntakeValidationError(f"Number of passages must be between 1 and {MAX_PASSAGES}.")
    return count


class PassageIntake:
    """Holds the passages being typed in, one slot per passage."""

    def __init__(self, number_of_passages: int) -> None:
        self.number_of_passages = validate_passage_count(number_of_passages)
        self._passages: list[str] = [""] * self.number_of_passages
        self.current_index = 0

    @property
    def passages(self) -> tuple[str, ...]:
        return tuple(self._passages)

    def passage(self, index: int) -> str:
        return self._passages[index]

    def set_passage(self, index: int, text: str) -> None:
        if not 0 <= index < self.number_of_passages:
            raise IndexError(f"Passage slot {index + 1} does not exist.")
        self._passages[index] = text or ""

    def load_pdf(self, index: int, uploaded_file: Any, processor: PDFProcessor | None = None) -> str:
        """Fill a slot from an uploaded PDF and return the extracted text."""
        text = (processor or PDFProcessor()).extract_passage(uploaded_file)
        self.set_passage(index, text)
        return text

    def is_complete(self) -> bool:
        return all(p.strip() for p in self._passages)

    def validate(self, history: HistoryStore) -> tuple[str, ...]:
        """
        Check every passage before any generation call is made.

        Returns:
            The raw passages, unchanged.

        Raises:
            IncompletePassagesError: If any passage is blank.
            DuplicatePassageError: On the first passage whose trimmed text
                matches a passage from history.
        """
        return check_passages(self._passages, history)


def check_passages(passages: list[str] | tuple[str, ...], history: HistoryStore) -> tuple[str, ...]:
    if any(not p.strip() for p in passages):
        raise IncompletePassagesError(f"Please ensure all {len(passages)} passages are entered.")
    for index, passage in enumerate(passages):
        match = history.find_duplicate_passage(passage)
        if match is not None:
            raise DuplicatePassageError(index, passage, match)
    return tuple(passages)
