"""RC Practice Zone main entry point."""

from __future__ import annotations

import html
from datetime import date
from typing import Any

import streamlit as st

from config import (
    MAX_PASSAGES,
    OFFLINE_BUNDLE_FILENAME,
    PAGE_ICON,
    PAGE_TITLE,
    RC_CARD_BG,
    RC_CARD_SHADOW,
    RC_HEADING,
    RC_PRIMARY,
    RC_PRIMARY_HOVER,
    RC_TIMER,
)
from migrations.migrate import (
    BACKUPS_DIR,
    MigrationError,
    MigrationInProgressError,
    migrate_to_latest,
)
from services.analytics import Standing, compare_to_category
from services.exam_models import StoredResult
from services.history_store import HistoryStore, local_date, month_grid, shift_month
from services.kv_store import KeyValueStore
from services.llm_service import resolve_api_key
from services.practice_flow import PracticeFlow, Recovery
from services.scoring import Outcome, classify
from services.session_engine import Direction, ExamSession, Phase, calculate_total_test_time
from utils.formatting import format_points, format_time
from utils.logging_config import configure_logging
from utils.metrics import get_metrics_summary, get_recent_metrics

_MIGRATIONS_DONE = False
LOGGER = configure_logging()

STANDING_ICONS: dict[Standing, str] = {
    Standing.ABOVE_RANGE: "🚀",
    Standing.ABOVE_AVERAGE: "📈",
    Standing.AROUND_AVERAGE: "⚖️",
    Standing.BELOW_AVERAGE: "📉",
    Standing.BELOW_RANGE: "🧭",
    Standing.NOT_AVAILABLE: "ℹ️",
}


def _ensure_migrations_once() -> int:
    global _MIGRATIONS_DONE
    if _MIGRATIONS_DONE and "schema_version" in st.session_state:
        return int(st.session_state["schema_version"])
    try:
        version = migrate_to_latest()
    except MigrationInProgressError:
        if not st.session_state.get("migration_in_progress_notice_shown"):
            st.info("Migration in progress. Please refresh shortly.")
            st.session_state["migration_in_progress_notice_shown"] = True
        return int(st.session_state.get("schema_version", 0))
    except MigrationError as e:
        st.error(f"{e}")
        st.error(f"Recovery: restore from backups in {BACKUPS_DIR}")
        st.stop()
    _MIGRATIONS_DONE = True
    st.session_state["migration_in_progress_notice_shown"] = False
    st.session_state["schema_version"] = version
    return version


def _inject_css() -> None:
    st.markdown(
        f"""
        <style>
        h1, h2, h3 {{ color: {RC_HEADING} !important; }}
        .stButton > button[kind="primary"] {{
            background: {RC_PRIMARY} !important;
            border-color: {RC_PRIMARY} !important;
        }}
        .stButton > button[kind="primary"]:hover {{ background: {RC_PRIMARY_HOVER} !important; }}
        .rc-card {{
            background: {RC_CARD_BG};
            box-shadow: {RC_CARD_SHADOW};
            border-radius: 10px;
            padding: 1rem 1.25rem;
            margin-bottom: 0.75rem;
        }}
        .rc-passage-box {{
            max-height: 65vh;
            overflow-y: auto;
            line-height: 1.7;
            white-space: pre-wrap;
        }}
        .rc-timer {{ color: {RC_TIMER}; font-size: 1.4rem; font-weight: 700; }}
        .rc-review-correct {{ border-left: 4px solid #2E7D32; padding-left: 0.75rem; }}
        .rc-review-incorrect {{ border-left: 4px solid #C62828; padding-left: 0.75rem; }}
        .rc-review-unattempted {{ border-left: 4px solid #9E9E9E; padding-left: 0.75rem; }}
        </style>
        """,
        unsafe_allow_html=True,
    )


# ---------- Session-state helpers ----------


def _flow() -> PracticeFlow:
    if "rc_flow" not in st.session_state:
        history = HistoryStore.load(KeyValueStore())
        st.session_state["rc_flow"] = PracticeFlow(history)
    return st.session_state["rc_flow"]


def _view() -> str:
    return str(st.session_state.get("rc_view") or "flow")


def _set_view(view: str, **extra: Any) -> None:
    st.session_state["rc_view"] = view
    for key, value in extra.items():
        st.session_state[key] = value


def _api_key() -> str:
    return resolve_api_key(str(st.session_state.get("api_key") or ""))


def _passage_html(passage_text: str) -> str:
    return html.escape(passage_text)


# ---------- Sidebar ----------


def _render_sidebar() -> None:
    st.sidebar.markdown(f"### {PAGE_ICON} {PAGE_TITLE}")
    st.sidebar.text_input(
        "OpenAI API Key",
        type="password",
        key="api_key",
        help="Falls back to the OPENAI_API_KEY environment variable when empty.",
    )
    if not _api_key():
        st.sidebar.warning("No API key configured. Question generation is disabled.")

    flow = _flow()
    st.sidebar.caption(f"Saved attempts: {len(flow.history)}")
    if flow.phase != Phase.TAKING_TEST:
        if st.sidebar.button("📅 View Test History", use_container_width=True):
            _set_view("history")
            st.rerun()

    with st.sidebar.expander("Operation metrics"):
        summary = get_metrics_summary()
        if not summary:
            st.caption("No metrics recorded yet.")
        for operation, row in summary.items():
            st.caption(f"{operation}: {row['total']} runs, avg {row['avg_s']}s")
        failures = [m for m in get_recent_metrics(limit=10, operation="generation") if "error" in m["meta"]]
        if failures:
            st.caption(f"Last generation failure: {failures[0]['meta']['error']} at {failures[0]['created_at']}")


# ---------- Configuration & passage entry ----------


def _render_configuration() -> None:
    flow = _flow()
    st.header("Configure Your Practice Test")
    count = st.number_input(
        "How many passages would you like to practice with?",
        min_value=1,
        max_value=MAX_PASSAGES,
        step=1,
        key="rc_passage_count",
    )
    st.caption(f"Test duration: {format_time(calculate_total_test_time(int(count)))} (MM:SS)")
    if st.button("Next: Enter Passages", type="primary"):
        flow.configure(int(count))
        st.rerun()


def _render_passage_entry() -> None:
    flow = _flow()
    intake = flow.intake
    if intake is None:
        flow.reset()
        st.rerun()
        return

    index = intake.current_index
    total = intake.number_of_passages
    st.header(f"Enter Passage {index + 1} of {total}")

    if flow.notice is not None:
        st.error(flow.notice.message)

    text_key = f"rc_passage_text_{index}"
    if text_key not in st.session_state:
        st.session_state[text_key] = intake.passage(index)

    uploaded = st.file_uploader("Or import this passage from a PDF", type=["pdf"], key=f"rc_pdf_{index}")
    if uploaded is not None and st.button("Use PDF text", key=f"rc_use_pdf_{index}"):
        try:
            st.session_state[text_key] = intake.load_pdf(index, uploaded)
            st.rerun()
        except ValueError as e:
            st.error(str(e))

    st.text_area(
        f"Passage {index + 1}",
        key=text_key,
        height=320,
        placeholder=f"Paste passage {index + 1} here...",
    )
    intake.set_passage(index, str(st.session_state.get(text_key) or ""))

    prev_col, next_col, reset_col = st.columns([1, 2, 1])
    if prev_col.button("Previous Passage", disabled=index == 0):
        intake.current_index = index - 1
        st.rerun()
    last = index == total - 1
    if not last and next_col.button("Next Passage", type="primary"):
        if not intake.passage(index).strip():
            st.warning(f"Please enter passage {index + 1} before continuing.")
        else:
            intake.current_index = index + 1
            st.rerun()
    if last and next_col.button("Generate Test", type="primary"):
        with st.spinner("Formatting passages and generating questions..."):
            flow.submit_passages(_api_key())
        _clear_passage_widgets(total)
        st.rerun()
    if reset_col.button("Start Over"):
        _clear_passage_widgets(total)
        flow.reset()
        st.rerun()


def _clear_passage_widgets(total: int) -> None:
    for i in range(total):
        st.session_state.pop(f"rc_passage_text_{i}", None)


def _render_mode_choice() -> None:
    flow = _flow()
    session = flow.session
    if session is None:
        flow.reset()
        st.rerun()
        return
    st.header("Your Test Is Ready")
    st.write(
        f"{len(session.questions)} questions over {session.number_of_passages} passage(s). "
        f"Time allowed: {format_time(session.time_budget_seconds)}."
    )
    online_col, offline_col = st.columns(2)
    with online_col.container(border=True):
        st.markdown("#### 🖥️ Take Test Online")
        st.caption("Results are saved to your history.")
        if st.button("Start Online Test", type="primary", use_container_width=True):
            flow.start_online_test()
            st.rerun()
    with offline_col.container(border=True):
        st.markdown("#### 💾 Download for Offline Use")
        st.caption("A single HTML file with its own timer. Offline results are not saved to history.")
        st.download_button(
            "Download Offline Test",
            data=flow.export_offline_bundle(),
            file_name=OFFLINE_BUNDLE_FILENAME,
            mime="text/html",
            use_container_width=True,
        )


# ---------- Test view ----------


def _answer_key(session: ExamSession, question_id: str) -> str:
    return f"rc_answer_{id(session)}_{question_id}"


def _on_answer_change(session: ExamSession, key: str) -> None:
    choice = st.session_state.get(key)
    session.pump()
    if choice and session.is_running:
        session.select_answer(choice)


@st.fragment(run_every=1)
def _render_timer() -> None:
    flow = _flow()
    flow.pump()
    session = flow.session
    if session is None:
        # Timed out during this pump; redraw the whole page on the results view.
        st.rerun()
        return
    st.markdown(
        f"<div class='rc-timer' role='timer'>Time Left: {format_time(session.time_left_seconds)}</div>",
        unsafe_allow_html=True,
    )


def _palette_label(session: ExamSession, i: int) -> str:
    state = session.question_states[i]
    marks = ""
    if state.selected_option:
        marks += "✓"
    if state.is_marked_for_review:
        marks += "⚑"
    return f"{i + 1}{marks}"


def _render_test() -> None:
    flow = _flow()
    session = flow.session
    if session is None:
        st.rerun()
        return

    passage_col, question_col, panel_col = st.columns([5, 4, 2])

    with passage_col:
        st.subheader("Reading Passage(s)")
        st.markdown(
            f"<div class='rc-card rc-passage-box'>{_passage_html(session.passage_text)}</div>",
            unsafe_allow_html=True,
        )

    with question_col:
        question = session.current_question
        state = session.current_state
        st.subheader(f"Question {session.current_index + 1} of {len(session.questions)}")
        st.markdown(question.question_text)
        key = _answer_key(session, question.id)
        options = list(question.options)
        st.radio(
            "Options",
            options=options,
            key=key,
            index=options.index(state.selected_option) if state.selected_option in options else None,
            label_visibility="collapsed",
            on_change=_on_answer_change,
            args=(session, key),
        )
        status = "Answered" if state.selected_option else "Select an Answer"
        st.caption(status)
        review_label = "Unmark Review" if state.is_marked_for_review else "Mark for Review"
        if st.button(review_label):
            session.pump()
            if session.is_running:
                session.toggle_review_flag()
            st.rerun()
        prev_col, next_col = st.columns(2)
        if prev_col.button("Previous", disabled=session.current_index == 0, use_container_width=True):
            session.navigate(Direction.PREV)
            st.rerun()
        if next_col.button(
            "Next",
            disabled=session.current_index >= len(session.questions) - 1,
            use_container_width=True,
        ):
            session.navigate(Direction.NEXT)
            st.rerun()

    with panel_col:
        _render_timer()
        st.markdown("**Questions**")
        cols = st.columns(4)
        for i in range(len(session.questions)):
            kind = "primary" if i == session.current_index else "secondary"
            if cols[i % 4].button(_palette_label(session, i), key=f"rc_jump_{i}", type=kind):
                session.navigate(Direction.JUMP, target_index=i)
                st.rerun()
        st.caption(f"Answered {session.answered_count} of {len(session.questions)}")
        if st.button("Submit Test", type="primary", use_container_width=True):
            flow.submit()
            st.rerun()


# ---------- Results & review ----------


def _render_analytics_card(result: StoredResult) -> None:
    report = compare_to_category(result.score, result.total_possible_score)
    with st.container(border=True):
        st.markdown(f"#### {STANDING_ICONS[report.standing]} Performance Analysis ({report.category}, {report.section})")
        st.write(report.statement)
        if report.available:
            c1, c2, c3 = st.columns(3)
            c1.metric("Projected score", format_points(report.projected_score))
            c2.metric("Category mean", format_points(report.mean))
            c3.metric("Typical range", f"{format_points(report.lower_bound)} to {format_points(report.upper_bound)}")


def _render_summary(result: StoredResult) -> None:
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Final score", f"{result.score} / {result.total_possible_score}")
    c2.metric("Correct", result.correct_count)
    c3.metric("Incorrect", result.incorrect_count)
    c4.metric("Unattempted", result.unattempted_count)
    c5.metric("Time spent", format_time(result.time_taken_sec))


def _render_answer_review(result: StoredResult) -> None:
    st.subheader("Detailed Answer Review")
    states = {s.question_id: s for s in result.question_states}
    for i, question in enumerate(result.questions):
        state = states.get(question.id)
        outcome = classify(question, state)
        selected = state.selected_option if state is not None else ""
        spent = state.time_spent_on_question if state is not None else 0
        flagged = " ⚑" if state is not None and state.is_marked_for_review else ""
        st.markdown(
            f"<div class='rc-review-{outcome.value}'><strong>Q{i + 1}.{flagged}</strong> "
            f"{html.escape(question.question_text)}</div>",
            unsafe_allow_html=True,
        )
        if outcome == Outcome.UNATTEMPTED:
            st.caption(f"Not attempted. Time spent: {format_time(spent)}")
        elif outcome == Outcome.CORRECT:
            st.success(f"Your answer: {selected} (correct). Time spent: {format_time(spent)}")
        else:
            st.error(f"Your answer: {selected}. Correct answer: {question.correct_answer_text}. Time spent: {format_time(spent)}")
        with st.expander("Explanation"):
            st.markdown(f"**Explanation:** {question.explanation}")
            st.markdown(f"**Difficulty:** {question.difficulty_assessment}")
            st.markdown(f"**Common pitfalls:** {question.common_pitfalls}")


def _render_results() -> None:
    flow = _flow()
    result = flow.last_result
    if result is None:
        flow.reset()
        st.rerun()
        return
    st.header("Test Results")
    if flow.persistence_warning:
        st.warning(flow.persistence_warning)
    _render_summary(result)
    _render_analytics_card(result)
    _render_answer_review(result)
    if st.button("Start New Test", type="primary"):
        flow.reset()
        st.rerun()


# ---------- History ----------


def _render_history() -> None:
    flow = _flow()
    st.header("Test History")
    if st.button("← Back"):
        _set_view("flow")
        st.rerun()

    today = date.today()
    year = int(st.session_state.get("rc_cal_year", today.year))
    month = int(st.session_state.get("rc_cal_month", today.month))
    index = flow.history.calendar_index()

    prev_col, title_col, next_col = st.columns([1, 3, 1])
    if prev_col.button("‹ Prev"):
        year, month = shift_month(year, month, -1)
        _set_view("history", rc_cal_year=year, rc_cal_month=month)
        st.rerun()
    title_col.markdown(f"### {date(year, month, 1).strftime('%B %Y')}")
    if next_col.button("Next ›"):
        year, month = shift_month(year, month, 1)
        _set_view("history", rc_cal_year=year, rc_cal_month=month)
        st.rerun()

    header = st.columns(7)
    for col, name in zip(header, ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]):
        col.caption(name)
    cells = month_grid(year, month)
    for week_start in range(0, len(cells), 7):
        cols = st.columns(7)
        for col, day in zip(cols, cells[week_start : week_start + 7]):
            if day is None:
                continue
            key = day.isoformat()
            taken = len(index.get(key, []))
            label = f"{day.day} ({taken})" if taken else str(day.day)
            if col.button(label, key=f"rc_day_{key}", disabled=not taken, type="primary" if taken else "secondary"):
                _set_view("history", rc_selected_day=key)
                st.rerun()

    selected = st.session_state.get("rc_selected_day")
    if selected:
        st.subheader(f"Tests on {selected}")
        for result in index.get(selected, []):
            with st.container(border=True):
                st.markdown(f"**Score {result.score} / {result.total_possible_score}** · {format_time(result.time_taken_sec)}")
                st.caption(result.passage_summary)
                if st.button("View Details", key=f"rc_detail_{result.id}"):
                    _set_view("archived", rc_archived_id=result.id)
                    st.rerun()


def _render_archived_detail() -> None:
    flow = _flow()
    result = flow.history.get(str(st.session_state.get("rc_archived_id") or ""))
    if result is None:
        _set_view("history")
        st.rerun()
        return
    taken_on = local_date(result.date_iso)
    st.header(f"Test from {taken_on.isoformat()}")
    back_col, retry_col = st.columns(2)
    if back_col.button("← Back to History"):
        _set_view("history")
        st.rerun()
    if retry_col.button("Reattempt This Test", type="primary"):
        flow.reattempt(result)
        _set_view("flow")
        st.rerun()
    _render_summary(result)
    _render_analytics_card(result)
    with st.expander("Passage(s)"):
        st.markdown(
            f"<div class='rc-passage-box'>{_passage_html(result.full_passage)}</div>",
            unsafe_allow_html=True,
        )
    _render_answer_review(result)


# ---------- Errors ----------


def _render_error() -> None:
    flow = _flow()
    notice = flow.notice
    st.header("Something went wrong")
    st.error(notice.message if notice is not None else "An unknown error occurred.")
    label = "Edit Passages" if notice is not None and notice.recovery == Recovery.EDIT_PASSAGES else "Start Over"
    if st.button(label, type="primary"):
        flow.recover()
        st.rerun()


def main() -> None:
    st.set_page_config(page_title=PAGE_TITLE, page_icon=PAGE_ICON, layout="wide")
    _ensure_migrations_once()
    _inject_css()
    _render_sidebar()

    view = _view()
    phase = _flow().phase
    if phase == Phase.TAKING_TEST:
        _render_test()
    elif view == "history":
        _render_history()
    elif view == "archived":
        _render_archived_detail()
    elif phase == Phase.CONFIGURING:
        _render_configuration()
    elif phase == Phase.AWAITING_CONTENT:
        _render_passage_entry()
    elif phase == Phase.READY_FOR_TEST_MODE_CHOICE:
        _render_mode_choice()
    elif phase == Phase.SUBMITTED:
        _render_results()
    else:
        _render_error()


if __name__ == "__main__":
    main()
