"""
Session state machine for a timed reading-comprehension attempt.

The session owns the countdown, the navigation position and every question's
answer, review flag and accumulated time. Time is committed to the question
being left on every boundary crossing (navigation or submission), and both
submission routes (explicit and timeout) go through `_finish()`.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import Callable, Sequence

from config import DEFAULT_TIME_BUDGET_SECONDS, PASSAGE_TIME_BUDGETS, TICK_INTERVAL_SECONDS
from services.exam_models import Question, QuestionState, StoredResult
from services.scoring import PassageMeta, build_result

LOGGER = logging.getLogger("rc_practice.session")

Clock = Callable[[], float]
SubmitListener = Callable[[StoredResult], None]


class SessionStateError(RuntimeError):
    """Raised when an operation is not allowed in the current phase."""


class Phase(str, Enum):
    CONFIGURING = "CONFIGURING"
    AWAITING_CONTENT = "AWAITING_CONTENT"
    READY_FOR_TEST_MODE_CHOICE = "READY_FOR_TEST_MODE_CHOICE"
    TAKING_TEST = "TAKING_TEST"
    SUBMITTED = "SUBMITTED"
    ERROR = "ERROR"


class Direction(str, Enum):
    NEXT = "next"
    PREV = "prev"
    JUMP = "jump"


def calculate_total_test_time(number_of_passages: int) -> int:
    """Return the time budget in seconds for a given passage count."""
    budget = PASSAGE_TIME_BUDGETS.get(number_of_passages)
    if budget is None:
        LOGGER.warning(
            "Unexpected number of passages (%s) for time calculation, defaulting to %ss.",
            number_of_passages,
            DEFAULT_TIME_BUDGET_SECONDS,
        )
        return DEFAULT_TIME_BUDGET_SECONDS
    return budget


class Countdown:
    """Cancellable once-per-second ticker handle owned by a single session.

    The handle does not run on its own: the host calls `owed()` (through
    `ExamSession.pump`) and delivers that many ticks.
    """

    def __init__(self, clock: Clock, interval: float = TICK_INTERVAL_SECONDS) -> None:
        self._clock = clock
        self._interval = float(interval)
        self._started_at: float | None = None
        self._duration_ticks = 0
        self._delivered = 0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def deadline(self) -> float | None:
        if self._started_at is None:
            return None
        return self._started_at + self._duration_ticks * self._interval

    def start(self, duration_ticks: int) -> None:
        if self._active:
            raise SessionStateError("Countdown is already running.")
        self._started_at = self._clock()
        self._duration_ticks = max(0, int(duration_ticks))
        self._delivered = 0
        self._active = True

    def cancel(self) -> None:
        self._active = False

    def record_tick(self) -> None:
        self._delivered += 1

    def owed(self, now: float | None = None) -> int:
        """Whole intervals elapsed since start that have not been delivered yet."""
        if not self._active or self._started_at is None:
            return 0
        now = self._clock() if now is None else now
        elapsed = math.floor(max(0.0, now - self._started_at) / self._interval)
        return max(0, min(elapsed, self._duration_ticks) - self._delivered)


class ExamSession:
    """The single live attempt: questions, per-question state and the countdown."""

    def __init__(
        self,
        questions: Sequence[Question],
        *,
        passage_text: str,
        raw_passage_inputs: Sequence[str],
        number_of_passages: int,
        time_budget_seconds: int | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        if not questions:
            raise ValueError("A session needs at least one question.")
        self.questions: tuple[Question, ...] = tuple(questions)
        self.question_states: list[QuestionState] = [QuestionState.fresh(q) for q in self.questions]
        self.current_index = 0
        self.passage_text = passage_text
        self.raw_passage_inputs: tuple[str, ...] = tuple(raw_passage_inputs)
        self.number_of_passages = number_of_passages
        if time_budget_seconds is None:
            time_budget_seconds = calculate_total_test_time(number_of_passages)
        self.time_budget_seconds = int(time_budget_seconds)
        self.time_left_seconds = self.time_budget_seconds
        self.phase = Phase.READY_FOR_TEST_MODE_CHOICE
        self.result: StoredResult | None = None
        self._clock = clock
        self._countdown = Countdown(clock)
        self._last_switch_at: float | None = None
        self._submit_listeners: list[SubmitListener] = []

    @classmethod
    def from_stored_result(cls, stored: StoredResult, clock: Clock = time.monotonic) -> ExamSession:
        """Fresh attempt over a historical result's questions (selections and time reset)."""
        return cls(
            stored.questions,
            passage_text=stored.full_passage,
            raw_passage_inputs=stored.raw_input_passages,
            number_of_passages=stored.number_of_passages,
            clock=clock,
        )

    # ---------- Read-only views ----------

    @property
    def countdown(self) -> Countdown:
        return self._countdown

    @property
    def is_running(self) -> bool:
        return self.phase == Phase.TAKING_TEST

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def current_state(self) -> QuestionState:
        return self.question_states[self.current_index]

    @property
    def elapsed_seconds(self) -> int:
        return max(0, self.time_budget_seconds - self.time_left_seconds)

    @property
    def answered_count(self) -> int:
        return sum(1 for s in self.question_states if s.selected_option)

    def add_submit_listener(self, listener: SubmitListener) -> None:
        self._submit_listeners.append(listener)

    # ---------- Transitions ----------

    def start_test(self) -> None:
        if self.phase != Phase.READY_FOR_TEST_MODE_CHOICE:
            raise SessionStateError(f"Cannot start a test from phase {self.phase.value}.")
        if self._countdown.active:
            raise SessionStateError("A countdown is already running for this session.")
        self.time_left_seconds = self.time_budget_seconds
        self.phase = Phase.TAKING_TEST
        self._countdown.start(self.time_budget_seconds)
        self._last_switch_at = self._clock()
        if self.time_budget_seconds <= 0:
            self._finish()

    def select_answer(self, option: str) -> None:
        self.pump()
        self._require_taking_test("select an answer")
        if option not in self.current_question.options:
            raise ValueError(f"'{option}' is not an option of question {self.current_index + 1}.")
        self.current_state.selected_option = option

    def toggle_review_flag(self) -> bool:
        self.pump()
        self._require_taking_test("mark for review")
        state = self.current_state
        state.is_marked_for_review = not state.is_marked_for_review
        return state.is_marked_for_review

    def navigate(self, direction: Direction | str, target_index: int | None = None) -> bool:
        """Flush time into the question being left, then move if the target is in bounds.

        Returns True when the position changed.
        """
        direction = Direction(direction)
        self.pump()
        if self.phase == Phase.SUBMITTED:
            return False
        self._require_taking_test("navigate")
        self._flush()

        last = len(self.questions) - 1
        if direction == Direction.NEXT:
            if self.current_index >= last:
                return False
            self.current_index += 1
        elif direction == Direction.PREV:
            if self.current_index <= 0:
                return False
            self.current_index -= 1
        else:
            if target_index is None or not 0 <= target_index <= last or target_index == self.current_index:
                return False
            self.current_index = target_index
        return True

    def tick(self) -> None:
        """One countdown second. Auto-submits when the budget runs out."""
        if self.phase != Phase.TAKING_TEST:
            return
        self._countdown.record_tick()
        self.time_left_seconds = max(0, self.time_left_seconds - 1)
        if self.time_left_seconds == 0:
            LOGGER.info("Time is up; submitting automatically.")
            self._finish()

    def pump(self) -> int:
        """Deliver every tick the countdown owes. Returns the number delivered."""
        if self.phase != Phase.TAKING_TEST:
            return 0
        owed = self._countdown.owed()
        delivered = 0
        for _ in range(owed):
            if self.phase != Phase.TAKING_TEST:
                break
            self.tick()
            delivered += 1
        return delivered

    def submit(self) -> StoredResult:
        self.pump()
        if self.phase == Phase.SUBMITTED and self.result is not None:
            return self.result
        self._require_taking_test("submit")
        return self._finish()

    # ---------- Internals ----------

    def _require_taking_test(self, action: str) -> None:
        if self.phase != Phase.TAKING_TEST:
            raise SessionStateError(f"Cannot {action} in phase {self.phase.value}.")

    def _flush(self) -> None:
        now = self._clock()
        deadline = self._countdown.deadline
        if deadline is not None:
            now = min(now, deadline)
        if self._last_switch_at is None:
            self._last_switch_at = now
            return
        spent = math.floor(max(0.0, now - self._last_switch_at))
        self.current_state.time_spent_on_question += spent
        self._last_switch_at = max(now, self._last_switch_at)

    def _finish(self) -> StoredResult:
        if self.phase != Phase.TAKING_TEST:
            if self.result is None:
                raise SessionStateError(f"Cannot submit from phase {self.phase.value}.")
            return self.result
        self._flush()
        self._countdown.cancel()
        result = build_result(
            self.questions,
            self.question_states,
            self.time_budget_seconds,
            self.time_left_seconds,
            PassageMeta(
                full_passage=self.passage_text,
                raw_input_passages=self.raw_passage_inputs,
                number_of_passages=self.number_of_passages,
            ),
        )
        self.result = result
        self.phase = Phase.SUBMITTED
        for listener in self._submit_listeners:
            listener(result)
        return result
