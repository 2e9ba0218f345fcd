"""Tests for scoring, passage summaries and result building."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from conftest import make_question, make_questions
from services.exam_models import QuestionState, RecordFormatError, StoredResult
from services.scoring import (
    Outcome,
    PassageMeta,
    build_result,
    classify,
    iso_timestamp,
    new_result_id,
    score_breakdown,
    summarize_passage,
)


def _states(selections: list[str]) -> list[QuestionState]:
    return [QuestionState(question_id=f"q-{i}", selected_option=s) for i, s in enumerate(selections)]


class TestClassify:
    def test_correct(self):
        assert classify(make_question(), QuestionState("q-0", "A")) == Outcome.CORRECT

    def test_incorrect(self):
        assert classify(make_question(), QuestionState("q-0", "C")) == Outcome.INCORRECT

    def test_empty_selection_is_unattempted(self):
        assert classify(make_question(), QuestionState("q-0", "")) == Outcome.UNATTEMPTED

    def test_missing_state_is_unattempted(self):
        assert classify(make_question(), None) == Outcome.UNATTEMPTED


class TestScoreBreakdown:
    def test_all_correct_fifteen_questions(self):
        breakdown = score_breakdown(make_questions(15), _states(["A"] * 15))
        assert breakdown.score == 45
        assert breakdown.total_possible_score == 45
        assert breakdown.correct_count == 15
        assert breakdown.incorrect_count == 0

    def test_mixed_ten_questions(self):
        # 4 correct, 3 incorrect, 3 skipped: 12 - 3 = 9 of 30
        selections = ["A"] * 4 + ["B"] * 3 + [""] * 3
        breakdown = score_breakdown(make_questions(10), _states(selections))
        assert breakdown.score == 9
        assert breakdown.total_possible_score == 30
        assert (breakdown.correct_count, breakdown.incorrect_count, breakdown.unattempted_count) == (4, 3, 3)

    def test_score_can_go_negative(self):
        breakdown = score_breakdown(make_questions(3), _states(["D", "D", "D"]))
        assert breakdown.score == -3

    def test_counts_always_sum_to_question_count(self):
        selections = ["A", "", "C", "A", ""]
        breakdown = score_breakdown(make_questions(5), _states(selections))
        assert breakdown.correct_count + breakdown.incorrect_count + breakdown.unattempted_count == 5

    def test_short_state_list_treated_as_unattempted(self):
        breakdown = score_breakdown(make_questions(3), _states(["A"]))
        assert breakdown.unattempted_count == 2
        assert breakdown.score == 3


class TestSummarizePassage:
    def test_single_short_passage_unchanged(self):
        assert summarize_passage("Short text.", 1) == "Short text."

    def test_single_long_passage_truncated_at_100(self):
        text = "x" * 150
        assert summarize_passage(text, 1) == "x" * 100 + "..."

    def test_multi_passage_label(self):
        text = "y" * 200
        assert summarize_passage(text, 3) == f"3 passages. First: {'y' * 75}..."


class TestIdsAndTimestamps:
    def test_iso_timestamp_format(self):
        moment = datetime(2026, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc)
        assert iso_timestamp(moment) == "2026-03-04T05:06:07.891Z"

    def test_naive_moment_treated_as_utc(self):
        assert iso_timestamp(datetime(2026, 1, 1, 0, 0, 0)) == "2026-01-01T00:00:00.000Z"

    def test_result_id_is_timestamp_plus_suffix(self):
        date_iso = "2026-03-04T05:06:07.891Z"
        rid = new_result_id(date_iso)
        assert rid.startswith(date_iso)
        assert re.fullmatch(r"[0-9a-f]{7}", rid[len(date_iso):])


class TestBuildResult:
    def _meta(self) -> PassageMeta:
        return PassageMeta(full_passage="Full passage text", raw_input_passages=("raw",), number_of_passages=1)

    def test_fields_populated(self):
        moment = datetime(2026, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
        result = build_result(make_questions(2), _states(["A", "C"]), 900, 600, self._meta(), now=moment)
        assert isinstance(result, StoredResult)
        assert result.date_iso == "2026-05-06T07:08:09.000Z"
        assert result.id.startswith(result.date_iso)
        assert result.score == 2
        assert result.time_taken_sec == 300
        assert result.passage_summary == "Full passage text"
        assert result.raw_input_passages == ("raw",)

    def test_time_taken_never_negative(self):
        result = build_result(make_questions(1), _states([""]), 60, 90, self._meta())
        assert result.time_taken_sec == 0

    def test_round_trip_through_dict(self):
        result = build_result(make_questions(3), _states(["A", "B", ""]), 900, 850, self._meta())
        assert StoredResult.from_dict(result.to_dict()) == result

    def test_dict_uses_camel_case_keys(self):
        payload = build_result(make_questions(1), _states(["A"]), 900, 899, self._meta()).to_dict()
        for key in ("dateISO", "totalPossibleScore", "rawInputPassages", "questionStates", "numberOfPassages"):
            assert key in payload
        assert payload["questions"][0]["correctAnswerText"] == "A"

    def test_unparseable_date_rejected(self):
        payload = build_result(make_questions(1), _states(["A"]), 900, 899, self._meta()).to_dict()
        payload["dateISO"] = "yesterday"
        with pytest.raises(RecordFormatError, match="dateISO"):
            StoredResult.from_dict(payload)
