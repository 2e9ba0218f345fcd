"""
Offline snapshot export: a single HTML file that replays the session engine.

The bundle embeds the passage, the questions and the time budget as JSON, plus
a resident JavaScript copy of the state machine (`offline_assets/exam_engine.js`).
Scoring weights and the tick interval are injected from `config`, the same
constants `services.scoring` and `services.session_engine` use. Results stay
in the page; nothing is written back to history.
"""

from __future__ import annotations

import html
import json
import re
from pathlib import Path
from string import Template
from typing import Any, Sequence

from config import (
    OFFLINE_BUNDLE_FILENAME,
    OFFLINE_PAGE_TITLE,
    PASSAGE_SEPARATOR,
    POINTS_CORRECT,
    POINTS_INCORRECT,
    POINTS_UNATTEMPTED,
    TICK_INTERVAL_SECONDS,
)
from services.exam_models import Question
from utils.file_utils import ensure_directory_exists, safe_download_name
from utils.formatting import format_time

ASSETS_DIR = Path(__file__).resolve().parent / "offline_assets"
ENGINE_SCRIPT_PATH = ASSETS_DIR / "exam_engine.js"
STYLESHEET_PATH = ASSETS_DIR / "offline.css"

_START_MARKER_RE = re.compile(r"\[START OF PASSAGE (\d+)\]\n?")
_END_MARKER_RE = re.compile(r"\n?\[END OF PASSAGE \d+\]")


_PAGE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>$title</title>
<style>
$styles
</style>
</head>
<body>
<div id="rc-root">
  <header class="rc-header"><h1>$title</h1></header>
  <div id="rc-test">
    <div class="rc-main">
      <div class="rc-passage">
        <h3>Reading Passage(s)</h3>
        <div id="rc-passage"></div>
      </div>
      <div class="rc-question">
        <h3 id="rc-question-heading">Question 1 of $question_count</h3>
        <p id="rc-question-text"></p>
        <fieldset role="radiogroup" style="border:none;padding:0;margin:0">
          <legend class="sr-only">Question options</legend>
          <ul id="rc-options"></ul>
        </fieldset>
        <div class="rc-actions">
          <span id="rc-answer-status">Select an Answer</span>
          <button id="rc-review-btn">Mark for Review</button>
        </div>
        <div class="rc-nav">
          <button id="rc-prev-btn">Previous</button>
          <button id="rc-next-btn">Next</button>
        </div>
      </div>
    </div>
    <div class="rc-panel">
      <h3>Questions</h3>
      <div id="rc-timer" role="timer" aria-live="polite">Time Left: $time_label</div>
      <ul id="rc-palette"></ul>
      <button id="rc-submit-btn">Submit Test</button>
    </div>
  </div>
  <div id="rc-results">
    <div class="rc-summary">
      <h2>Test Results</h2>
      <p>Your Final Score: <span id="rc-final-score">0</span></p>
      <div class="rc-summary-grid">
        <p>Total Questions: <span id="rc-total-questions">0</span></p>
        <p>Correct: <span id="rc-correct">0</span></p>
        <p>Incorrect: <span id="rc-incorrect">0</span></p>
        <p>Unattempted: <span id="rc-unattempted">0</span></p>
        <p>Total Time Spent: <span id="rc-time-spent">00:00</span></p>
      </div>
    </div>
    <h3>Detailed Answer Review:</h3>
    <div id="rc-review"></div>
    <button id="rc-restart-info">Start New Test (Info)</button>
  </div>
</div>
<script type="application/json" id="rc-exam-data">$data</script>
<script>
$engine
</script>
</body>
</html>
"""
)


def passage_to_html(passage_text: str) -> str:
    """Escape passage text and turn the passage markers into headings."""
    text = html.escape(passage_text)
    text = _END_MARKER_RE.sub("", text)
    text = text.replace(PASSAGE_SEPARATOR, "\n")
    text = _START_MARKER_RE.sub(lambda m: f"<hr><h4>START OF PASSAGE {m.group(1)}</h4>", text)
    return text.strip("\n").replace("\n", "<br />")


def engine_config() -> dict[str, Any]:
    """Constants the offline engine must share with the live one."""
    return {
        "points": {
            "correct": POINTS_CORRECT,
            "incorrect": POINTS_INCORRECT,
            "unattempted": POINTS_UNATTEMPTED,
        },
        "tickIntervalSeconds": TICK_INTERVAL_SECONDS,
    }


def _script_safe_json(payload: Any) -> str:
    # `<\/` is a valid JSON escape and keeps the block from closing early.
    return (
        json.dumps(payload, ensure_ascii=False)
        .replace("</", "<\\/")
        .replace("<!--", "<\\u0021--")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def build_offline_bundle(passage_text: str, questions: Sequence[Question], time_budget_seconds: int) -> str:
    """
    Render the self-contained offline test page.

    Args:
        passage_text: Combined, marker-delimited passage text.
        questions: The generated questions, in order.
        time_budget_seconds: Countdown budget for the whole test.

    Returns:
        The HTML document as a string.

    Raises:
        ValueError: If there are no questions to export.
    """
    if not questions:
        raise ValueError("Cannot export an empty test.")
    payload = {
        "config": engine_config(),
        "timeBudgetSeconds": int(time_budget_seconds),
        "passageText": passage_text,
        "passageHtml": passage_to_html(passage_text),
        "questions": [q.to_dict() for q in questions],
    }
    return _PAGE.substitute(
        title=html.escape(OFFLINE_PAGE_TITLE),
        styles=STYLESHEET_PATH.read_text(encoding="utf-8"),
        question_count=len(questions),
        time_label=format_time(int(time_budget_seconds)),
        data=_script_safe_json(payload),
        engine=ENGINE_SCRIPT_PATH.read_text(encoding="utf-8"),
    )


def write_offline_bundle(
    directory: str | Path,
    passage_text: str,
    questions: Sequence[Question],
    time_budget_seconds: int,
    file_name: str = OFFLINE_BUNDLE_FILENAME,
) -> Path:
    """Write the bundle into *directory* and return the file path."""
    target = ensure_directory_exists(directory) / safe_download_name(file_name, OFFLINE_BUNDLE_FILENAME)
    target.write_text(build_offline_bundle(passage_text, questions, time_budget_seconds), encoding="utf-8")
    return target
