"""Data model shared by the session engine, scoring, history and offline export."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class RecordFormatError(ValueError):
    """Raised when a persisted record cannot be turned back into a model object."""


def _require_str(src: dict[str, Any], key: str) -> str:
    value = src.get(key)
    if not isinstance(value, str):
        raise RecordFormatError(f"Field '{key}' must be a string.")
    return value


def parse_iso(date_iso: str) -> datetime:
    """Parse a stored `dateISO` (trailing `Z` allowed); naive values are taken as UTC."""
    text = date_iso.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _require_iso(src: dict[str, Any], key: str) -> str:
    value = _require_str(src, key)
    try:
        parse_iso(value)
    except ValueError as e:
        raise RecordFormatError(f"Field '{key}' is not an ISO-8601 timestamp.") from e
    return value


def _require_int(src: dict[str, Any], key: str) -> int:
    value = src.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordFormatError(f"Field '{key}' must be a number.")
    return int(value)


@dataclass(frozen=True)
class Question:
    """One multiple-choice question. Immutable once generated."""

    id: str
    question_text: str
    options: tuple[str, ...]
    correct_answer_text: str
    explanation: str
    difficulty_assessment: str
    common_pitfalls: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "questionText": self.question_text,
            "options": list(self.options),
            "correctAnswerText": self.correct_answer_text,
            "explanation": self.explanation,
            "difficultyAssessment": self.difficulty_assessment,
            "commonPitfalls": self.common_pitfalls,
        }

    @classmethod
    def from_dict(cls, src: dict[str, Any]) -> Question:
        if not isinstance(src, dict):
            raise RecordFormatError("Question must be an object.")
        options = src.get("options")
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise RecordFormatError("Field 'options' must be a list of strings.")
        return cls(
            id=_require_str(src, "id"),
            question_text=_require_str(src, "questionText"),
            options=tuple(options),
            correct_answer_text=_require_str(src, "correctAnswerText"),
            explanation=_require_str(src, "explanation"),
            difficulty_assessment=_require_str(src, "difficultyAssessment"),
            common_pitfalls=_require_str(src, "commonPitfalls"),
        )


@dataclass
class QuestionState:
    """Per-question answer, review flag and accumulated seconds."""

    question_id: str
    selected_option: str = ""
    is_marked_for_review: bool = False
    time_spent_on_question: int = 0

    @property
    def is_attempted(self) -> bool:
        return bool(self.selected_option)

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionId": self.question_id,
            "selectedOption": self.selected_option,
            "isMarkedForReview": self.is_marked_for_review,
            "timeSpentOnQuestion": self.time_spent_on_question,
        }

    @classmethod
    def from_dict(cls, src: dict[str, Any]) -> QuestionState:
        if not isinstance(src, dict):
            raise RecordFormatError("Question state must be an object.")
        return cls(
            question_id=_require_str(src, "questionId"),
            selected_option=str(src.get("selectedOption") or ""),
            is_marked_for_review=bool(src.get("isMarkedForReview", False)),
            time_spent_on_question=max(0, int(src.get("timeSpentOnQuestion") or 0)),
        )

    @classmethod
    def fresh(cls, question: Question) -> QuestionState:
        return cls(question_id=question.id)


@dataclass(frozen=True)
class StoredResult:
    """Immutable record of one finished attempt."""

    id: str
    date_iso: str
    score: int
    total_possible_score: int
    time_taken_sec: int
    correct_count: int
    incorrect_count: int
    unattempted_count: int
    passage_summary: str
    full_passage: str
    raw_input_passages: tuple[str, ...]
    questions: tuple[Question, ...]
    question_states: tuple[QuestionState, ...] = field(default_factory=tuple)
    number_of_passages: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dateISO": self.date_iso,
            "score": self.score,
            "totalPossibleScore": self.total_possible_score,
            "timeTakenSec": self.time_taken_sec,
            "correctCount": self.correct_count,
            "incorrectCount": self.incorrect_count,
            "unattemptedCount": self.unattempted_count,
            "passageSummary": self.passage_summary,
            "fullPassage": self.full_passage,
            "rawInputPassages": list(self.raw_input_passages),
            "questions": [q.to_dict() for q in self.questions],
            "questionStates": [s.to_dict() for s in self.question_states],
            "numberOfPassages": self.number_of_passages,
        }

    @classmethod
    def from_dict(cls, src: dict[str, Any]) -> StoredResult:
        if not isinstance(src, dict):
            raise RecordFormatError("Stored result must be an object.")
        raw_passages = src.get("rawInputPassages") or []
        questions = src.get("questions")
        states = src.get("questionStates") or []
        if not isinstance(raw_passages, list) or not isinstance(questions, list) or not isinstance(states, list):
            raise RecordFormatError("Stored result lists are malformed.")
        return cls(
            id=_require_str(src, "id"),
            date_iso=_require_iso(src, "dateISO"),
            score=_require_int(src, "score"),
            total_possible_score=_require_int(src, "totalPossibleScore"),
            time_taken_sec=_require_int(src, "timeTakenSec"),
            correct_count=_require_int(src, "correctCount"),
            incorrect_count=_require_int(src, "incorrectCount"),
            unattempted_count=_require_int(src, "unattemptedCount"),
            passage_summary=str(src.get("passageSummary") or ""),
            full_passage=str(src.get("fullPassage") or ""),
            raw_input_passages=tuple(str(p) for p in raw_passages),
            questions=tuple(Question.from_dict(q) for q in questions),
            question_states=tuple(QuestionState.from_dict(s) for s in states),
            number_of_passages=int(src.get("numberOfPassages") or 1),
        )

    @property
    def question_count(self) -> int:
        return len(self.questions)
