"""
Top-level practice flow: configuration, passage entry, generation, the live
session and the hand-off to history.

Only one session exists at a time. Starting a new one (fresh generation or a
re-attempt) cancels whatever countdown the previous session still holds.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from services.exam_models import StoredResult
from services.history_store import HistoryStore
from services.llm_service import ConfigurationError
from services.offline_exporter import build_offline_bundle
from services.passage_intake import (
    DuplicatePassageError,
    IncompletePassagesError,
    PassageIntake,
    check_passages,
)
from services.quiz_generator import GeneratedContent, GenerationContractError, QuestionGenerator
from services.session_engine import Clock, ExamSession, Phase, SessionStateError, calculate_total_test_time
from utils.metrics import timed_metric

LOGGER = logging.getLogger("rc_practice.flow")


class Recovery(str, Enum):
    EDIT_PASSAGES = "EDIT_PASSAGES"
    START_OVER = "START_OVER"


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    INCOMPLETE_INPUT = "incomplete_input"
    DUPLICATE_INPUT = "duplicate_input"
    GENERATION_CONTRACT = "generation_contract"
    GENERATION_FAILED = "generation_failed"


@dataclass(frozen=True)
class ErrorNotice:
    """A user-visible failure with its single recovery action."""

    kind: ErrorKind
    message: str
    recovery: Recovery


class PracticeFlow:
    """Drives one user through configure -> passages -> test -> results."""

    def __init__(
        self,
        history: HistoryStore,
        generator: QuestionGenerator | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.history = history
        self._generator = generator
        self._clock = clock
        self._phase = Phase.CONFIGURING
        self.intake: PassageIntake | None = None
        self.session: ExamSession | None = None
        self.notice: ErrorNotice | None = None
        self.persistence_warning: str | None = None
        self.last_result: StoredResult | None = None
        self._offline_bundle: tuple[ExamSession, str] | None = None

    # ---------- Views ----------

    @property
    def phase(self) -> Phase:
        if self._phase == Phase.ERROR:
            return Phase.ERROR
        if self.session is not None:
            return self.session.phase
        return self._phase

    @property
    def time_budget_seconds(self) -> int:
        if self.session is not None:
            return self.session.time_budget_seconds
        count = self.intake.number_of_passages if self.intake is not None else 1
        return calculate_total_test_time(count)

    @property
    def generator(self) -> QuestionGenerator:
        if self._generator is None:
            self._generator = QuestionGenerator()
        return self._generator

    # ---------- Configuration & intake ----------

    def configure(self, number_of_passages: int) -> PassageIntake:
        """Pick the passage count and open the passage-entry step."""
        self._discard_session()
        self.notice = None
        self.intake = PassageIntake(number_of_passages)
        self._phase = Phase.AWAITING_CONTENT
        LOGGER.info(
            "Configured %s passage(s); time budget %ss.",
            self.intake.number_of_passages,
            self.time_budget_seconds,
        )
        return self.intake

    def submit_passages(self, api_key: str, passages: Sequence[str] | None = None) -> bool:
        """
        Validate the passages and generate the question batch.

        Args:
            api_key: OpenAI API key (already resolved from sidebar or env).
            passages: Raw passages; defaults to what the intake holds.

        Returns:
            True when a session is ready for the mode choice. On False,
            `notice` explains the failure and the recovery to offer.
        """
        if self._phase != Phase.AWAITING_CONTENT or self.intake is None:
            raise SessionStateError(f"Cannot submit passages in phase {self.phase.value}.")
        if passages is not None:
            for index, text in enumerate(passages):
                self.intake.set_passage(index, text)
        self.notice = None

        try:
            raw_passages = check_passages(self.intake.passages, self.history)
        except IncompletePassagesError as e:
            self.notice = ErrorNotice(ErrorKind.INCOMPLETE_INPUT, str(e), Recovery.EDIT_PASSAGES)
            return False
        except DuplicatePassageError as e:
            self.intake.current_index = e.passage_index
            self.notice = ErrorNotice(ErrorKind.DUPLICATE_INPUT, str(e), Recovery.EDIT_PASSAGES)
            return False

        try:
            with timed_metric("generation", passages=len(raw_passages)) as meta:
                content = self.generator.generate(raw_passages, api_key)
                meta["questions"] = len(content.questions)
        except ConfigurationError as e:
            return self._fail(ErrorKind.CONFIGURATION, str(e))
        except GenerationContractError as e:
            LOGGER.error("Generated questions failed validation: %s", e)
            return self._fail(ErrorKind.GENERATION_CONTRACT, f"Failed to generate test: {e}")
        except ValueError as e:
            LOGGER.exception("Question generation failed")
            return self._fail(ErrorKind.GENERATION_FAILED, f"Failed to generate test: {e}")

        self._begin_session(content)
        return True

    # ---------- Session ----------

    def start_online_test(self) -> ExamSession:
        session = self._require_session()
        session.start_test()
        return session

    def export_offline_bundle(self) -> str:
        """Render the offline HTML copy of the prepared session, once per session."""
        session = self._require_session()
        if session.phase != Phase.READY_FOR_TEST_MODE_CHOICE:
            raise SessionStateError(f"Cannot export in phase {session.phase.value}.")
        if self._offline_bundle is not None and self._offline_bundle[0] is session:
            return self._offline_bundle[1]
        with timed_metric("export", questions=len(session.questions)):
            page = build_offline_bundle(session.passage_text, session.questions, session.time_budget_seconds)
        self._offline_bundle = (session, page)
        return page

    def pump(self) -> int:
        if self.session is None:
            return 0
        return self.session.pump()

    def submit(self) -> StoredResult:
        # A timeout may already have finished the attempt during the last pump.
        if self.session is None and self._phase == Phase.SUBMITTED and self.last_result is not None:
            return self.last_result
        return self._require_session().submit()

    def reattempt(self, result: StoredResult) -> ExamSession:
        """Start a fresh timed attempt over a stored result's questions."""
        self._discard_session()
        self.notice = None
        self.intake = None
        session = ExamSession.from_stored_result(result, clock=self._clock)
        self._attach(session)
        session.start_test()
        return session

    def recover(self) -> None:
        """Apply the recovery action of the current notice."""
        notice = self.notice
        if notice is None:
            return
        if notice.recovery == Recovery.EDIT_PASSAGES and self.intake is not None:
            self.notice = None
            self._phase = Phase.AWAITING_CONTENT
            return
        self.reset()

    def reset(self) -> None:
        """Drop everything except history and return to configuration."""
        self._discard_session()
        self.intake = None
        self.notice = None
        self.persistence_warning = None
        self._phase = Phase.CONFIGURING

    # ---------- Internals ----------

    def _require_session(self) -> ExamSession:
        if self.session is None:
            raise SessionStateError("No session is active.")
        return self.session

    def _fail(self, kind: ErrorKind, message: str) -> bool:
        self._discard_session()
        self.notice = ErrorNotice(kind, message, Recovery.START_OVER)
        self._phase = Phase.ERROR
        return False

    def _discard_session(self) -> None:
        if self.session is not None:
            self.session.countdown.cancel()
            self.session = None
        self._offline_bundle = None

    def _begin_session(self, content: GeneratedContent) -> None:
        self._discard_session()
        session = ExamSession(
            content.questions,
            passage_text=content.passage_text,
            raw_passage_inputs=content.raw_passages,
            number_of_passages=content.number_of_passages,
            clock=self._clock,
        )
        self._attach(session)

    def _attach(self, session: ExamSession) -> None:
        session.add_submit_listener(self._on_submitted)
        self.session = session
        self._phase = Phase.READY_FOR_TEST_MODE_CHOICE

    def _on_submitted(self, result: StoredResult) -> None:
        # The countdown is already cancelled; the finished session is discarded.
        self.last_result = result
        self.session = None
        self._offline_bundle = None
        self._phase = Phase.SUBMITTED
        with timed_metric("submission", questions=result.question_count, score=result.score):
            saved = self.history.append(result)
        self.persistence_warning = None if saved else self.history.last_error
        LOGGER.info("Submitted attempt %s with score %s/%s.", result.id, result.score, result.total_possible_score)
