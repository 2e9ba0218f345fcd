"""
Scoring and summary building for finished attempts.

Uniform CAT/GMAT-style marking: every question is scored on its own, with no
partial credit and no floor on the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence
from uuid import uuid4

from config import POINTS_CORRECT, POINTS_INCORRECT, POINTS_UNATTEMPTED
from services.exam_models import Question, QuestionState, StoredResult


class Outcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNATTEMPTED = "unattempted"


OUTCOME_POINTS: dict[Outcome, int] = {
    Outcome.CORRECT: POINTS_CORRECT,
    Outcome.INCORRECT: POINTS_INCORRECT,
    Outcome.UNATTEMPTED: POINTS_UNATTEMPTED,
}


@dataclass(frozen=True)
class PassageMeta:
    """Passage context stored alongside the score."""

    full_passage: str
    raw_input_passages: tuple[str, ...]
    number_of_passages: int


@dataclass(frozen=True)
class ScoreBreakdown:
    score: int
    total_possible_score: int
    correct_count: int
    incorrect_count: int
    unattempted_count: int


def classify(question: Question, state: QuestionState | None) -> Outcome:
    """Classify one answer as correct, incorrect or unattempted."""
    if state is None or not state.selected_option:
        return Outcome.UNATTEMPTED
    if state.selected_option == question.correct_answer_text:
        return Outcome.CORRECT
    return Outcome.INCORRECT


def score_breakdown(questions: Sequence[Question], states: Sequence[QuestionState]) -> ScoreBreakdown:
    """Score every question and tally the outcome counts."""
    counts = {outcome: 0 for outcome in Outcome}
    score = 0
    for index, question in enumerate(questions):
        state = states[index] if index < len(states) else None
        outcome = classify(question, state)
        counts[outcome] += 1
        score += OUTCOME_POINTS[outcome]
    return ScoreBreakdown(
        score=score,
        total_possible_score=POINTS_CORRECT * len(questions),
        correct_count=counts[Outcome.CORRECT],
        incorrect_count=counts[Outcome.INCORRECT],
        unattempted_count=counts[Outcome.UNATTEMPTED],
    )


def summarize_passage(full_passage: str, number_of_passages: int) -> str:
    """Short label for history listings."""
    if number_of_passages > 1:
        return f"{number_of_passages} passages. First: {full_passage[:75]}..."
    suffix = "..." if len(full_passage) > 100 else ""
    return full_passage[:100] + suffix


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC timestamp in the `2026-01-31T08:15:02.123Z` form."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def new_result_id(date_iso: str) -> str:
    return date_iso + uuid4().hex[:7]


def build_result(
    questions: Sequence[Question],
    states: Sequence[QuestionState],
    time_budget: int,
    time_left: int,
    passage_meta: PassageMeta,
    now: datetime | None = None,
) -> StoredResult:
    """
    Build the persistable record for a finished attempt.

    Args:
        questions: Questions in presentation order.
        states: Question states in the same order.
        time_budget: Total seconds allowed.
        time_left: Seconds remaining on the countdown at submission.
        passage_meta: Passage text and raw inputs that seeded the attempt.
        now: Submission moment (defaults to the current UTC time).

    Returns:
        A StoredResult with copies of the question states, so later edits
        to the live session cannot leak into history.
    """
    breakdown = score_breakdown(questions, states)
    date_iso = iso_timestamp(now)
    frozen_states = tuple(
        QuestionState(
            question_id=s.question_id,
            selected_option=s.selected_option,
            is_marked_for_review=s.is_marked_for_review,
            time_spent_on_question=s.time_spent_on_question,
        )
        for s in states
    )
    return StoredResult(
        id=new_result_id(date_iso),
        date_iso=date_iso,
        score=breakdown.score,
        total_possible_score=breakdown.total_possible_score,
        time_taken_sec=max(0, int(time_budget) - int(time_left)),
        correct_count=breakdown.correct_count,
        incorrect_count=breakdown.incorrect_count,
        unattempted_count=breakdown.unattempted_count,
        passage_summary=summarize_passage(passage_meta.full_passage, passage_meta.number_of_passages),
        full_passage=passage_meta.full_passage,
        raw_input_passages=tuple(passage_meta.raw_input_passages),
        questions=tuple(questions),
        question_states=frozen_states,
        number_of_passages=passage_meta.number_of_passages,
    )
