"""Tests for the offline HTML snapshot."""

from __future__ import annotations

import json
import re
import shutil
import subprocess

import pytest

import config
from conftest import FakeClock, make_question, make_questions
from services.offline_exporter import (
    ENGINE_SCRIPT_PATH,
    build_offline_bundle,
    engine_config,
    passage_to_html,
    write_offline_bundle,
)
from services.session_engine import Direction, ExamSession
from utils.formatting import format_time

_DATA_RE = re.compile(r'<script type="application/json" id="rc-exam-data">(.*?)</script>', re.DOTALL)

PASSAGES = (
    "[START OF PASSAGE 1]\nFirst paragraph.\nSecond line.\n[END OF PASSAGE 1]"
    "\n\n---\n\n"
    "[START OF PASSAGE 2]\nOther text.\n[END OF PASSAGE 2]"
)


def _embedded(page: str) -> dict:
    match = _DATA_RE.search(page)
    assert match is not None, "exam data block missing"
    return json.loads(match.group(1))


class TestPassageToHtml:
    def test_markers_become_headings(self):
        out = passage_to_html(PASSAGES)
        assert "<h4>START OF PASSAGE 1</h4>" in out
        assert "<h4>START OF PASSAGE 2</h4>" in out
        assert "END OF PASSAGE" not in out
        assert "---" not in out

    def test_line_breaks_preserved(self):
        assert "First paragraph.<br />Second line." in passage_to_html(PASSAGES)

    def test_markup_escaped(self):
        out = passage_to_html("<b>bold</b> & more")
        assert "<b>" not in out
        assert "&lt;b&gt;bold&lt;/b&gt; &amp; more" in out

    def test_dashes_inside_a_passage_kept(self):
        assert "a --- b" in passage_to_html("a --- b")


class TestBuildOfflineBundle:
    def test_embeds_questions_budget_and_passage(self):
        questions = make_questions(5)
        page = build_offline_bundle(PASSAGES, questions, 900)
        data = _embedded(page)
        assert data["timeBudgetSeconds"] == 900
        assert data["passageText"] == PASSAGES
        assert [q["id"] for q in data["questions"]] == [q.id for q in questions]
        assert data["questions"][0]["correctAnswerText"] == "A"

    def test_scoring_constants_shared_with_live_engine(self):
        data = _embedded(build_offline_bundle(PASSAGES, make_questions(1), 900))
        assert data["config"] == engine_config()
        assert data["config"]["points"] == {
            "correct": config.POINTS_CORRECT,
            "incorrect": config.POINTS_INCORRECT,
            "unattempted": config.POINTS_UNATTEMPTED,
        }
        assert data["config"]["tickIntervalSeconds"] == config.TICK_INTERVAL_SECONDS

    def test_initial_timer_label(self):
        page = build_offline_bundle(PASSAGES, make_questions(1), 1440)
        assert "Time Left: 24:00" in page
        assert "Question 1 of 1" in page

    def test_engine_script_inlined(self):
        page = build_offline_bundle(PASSAGES, make_questions(1), 900)
        engine = ENGINE_SCRIPT_PATH.read_text(encoding="utf-8")
        assert engine.strip() in page

    def test_self_contained(self):
        page = build_offline_bundle(PASSAGES, make_questions(2), 900)
        assert "http://" not in page
        assert "https://" not in page
        assert "<script src" not in page
        assert "<link" not in page

    def test_script_breakout_escaped(self):
        nasty = make_question(0, correct="</script><script>alert(1)</script>",
                              options=("</script><script>alert(1)</script>", "<!-- x", "B", "C"))
        page = build_offline_bundle("Passage </script>", [nasty], 900)
        block = _DATA_RE.search(page).group(1)
        assert "</script>" not in block
        assert "<!--" not in block
        data = json.loads(block)
        assert data["questions"][0]["options"][0] == "</script><script>alert(1)</script>"
        assert data["passageText"] == "Passage </script>"

    def test_line_separators_escaped(self):
        question = make_question(0)
        page = build_offline_bundle("one\u2028two\u2029three", [question], 900)
        block = _DATA_RE.search(page).group(1)
        assert "\u2028" not in block and "\u2029" not in block
        assert json.loads(block)["passageText"] == "one\u2028two\u2029three"

    def test_empty_test_rejected(self):
        with pytest.raises(ValueError):
            build_offline_bundle(PASSAGES, [], 900)


class TestWriteOfflineBundle:
    def test_writes_default_file_name(self, tmp_path):
        target = write_offline_bundle(tmp_path / "out", PASSAGES, make_questions(2), 900)
        assert target.name == config.OFFLINE_BUNDLE_FILENAME
        assert target.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")

    def test_directory_parts_stripped_from_name(self, tmp_path):
        target = write_offline_bundle(tmp_path, PASSAGES, make_questions(1), 900, file_name="../../evil.html")
        assert target.parent == tmp_path.resolve()
        assert target.name == "evil.html"


# ──────────────────────────────────────────────────────────────
# Offline engine vs live session engine
# ──────────────────────────────────────────────────────────────

NODE = shutil.which("node")

_ENGINE_RE = re.compile(r"<script>\n(.*?)\n</script>", re.DOTALL)

# Minimal DOM and clock so the inlined engine runs under node. Each step is
# applied through the same handlers the page wires to its buttons.
_NODE_HARNESS = r"""
const fs = require("fs");
const vm = require("vm");
const input = JSON.parse(fs.readFileSync(process.argv[2], "utf8"));

class Node {
  constructor(tag) {
    this.tagName = tag; this.children = []; this.textContent = ""; this.className = "";
    this.style = {}; this.attributes = {}; this.disabled = false;
  }
  set innerHTML(value) { this.children = []; this._html = value; }
  get innerHTML() { return this._html || ""; }
  appendChild(child) { this.children.push(child); return child; }
  setAttribute(name, value) { this.attributes[name] = value; }
}

const byId = {};
const element = (id) => (byId[id] = byId[id] || new Node("div"));
element("rc-exam-data").textContent = input.data;
let ready = null;
let pumpFn = null;
let now = 1000000;

global.document = {
  getElementById: element,
  querySelector: (selector) => element(selector.replace(/^#/, "")),
  createElement: (tag) => new Node(tag),
  addEventListener: (name, fn) => { if (name === "DOMContentLoaded") ready = fn; },
};
global.alert = () => {};
global.setInterval = (fn) => { pumpFn = fn; return 1; };
global.clearInterval = () => { pumpFn = null; };
Date.now = () => now;

vm.runInThisContext(input.engine);
ready();

const optionInput = (value) => element("rc-options").children
  .map((li) => li.children[0].children[0])
  .find((node) => node.value === value);

for (const [action, arg] of input.steps) {
  if (action === "advance") now += arg * 1000;
  else if (action === "select") optionInput(arg).onchange();
  else if (action === "next") element("rc-next-btn").onclick();
  else if (action === "prev") element("rc-prev-btn").onclick();
  else if (action === "jump") element("rc-palette").children[arg].onclick();
  else if (action === "flag") element("rc-review-btn").onclick();
  else if (action === "pump") { if (pumpFn) pumpFn(); }
  else if (action === "submit") element("rc-submit-btn").onclick();
  else throw new Error("unknown step " + action);
}

const seconds = (label) => { const [m, s] = label.split(":").map(Number); return m * 60 + s; };
const [score, total] = element("rc-final-score").textContent.split(" / ").map(Number);
const perQuestion = element("rc-review").children.map((item) => {
  const line = item.children.find((child) => child.textContent.startsWith("Time Spent: "));
  return seconds(line.textContent.slice("Time Spent: ".length));
});
process.stdout.write(JSON.stringify({
  submitted: element("rc-results").style.display === "block",
  score, total,
  correct: Number(element("rc-correct").textContent),
  incorrect: Number(element("rc-incorrect").textContent),
  unattempted: Number(element("rc-unattempted").textContent),
  timeTakenSec: seconds(element("rc-time-spent").textContent.split(" / ")[0]),
  perQuestion,
  timer: element("rc-timer").textContent,
}));
"""

PARITY_SCENARIOS = {
    "explicit_submit": (
        60,
        [
            ("advance", 3), ("select", "A"), ("advance", 2.5), ("next", None),
            ("advance", 4), ("select", "B"), ("flag", None), ("next", None),
            ("advance", 1.5), ("jump", 4), ("select", "A"), ("advance", 6),
            ("prev", None), ("advance", 0.5), ("submit", None),
        ],
    ),
    "timeout_while_idle": (
        10,
        [
            ("advance", 2.5), ("select", "A"), ("next", None),
            ("advance", 2.5), ("select", "C"), ("next", None),
            ("advance", 2.5), ("next", None), ("advance", 2), ("next", None),
            ("advance", 20), ("pump", None),
        ],
    ),
    "timeout_during_navigation": (
        10,
        [("advance", 4), ("select", "A"), ("next", None), ("advance", 7.5), ("next", None)],
    ),
}


def _replay_live(questions, budget: int, steps) -> dict:
    clock = FakeClock()
    session = ExamSession(
        questions,
        passage_text=PASSAGES,
        raw_passage_inputs=("One", "Two"),
        number_of_passages=2,
        time_budget_seconds=budget,
        clock=clock,
    )
    session.start_test()
    for action, arg in steps:
        if action == "advance":
            clock.advance(arg)
        elif action == "select":
            session.select_answer(arg)
        elif action in ("next", "prev"):
            session.navigate(Direction(action))
        elif action == "jump":
            session.navigate(Direction.JUMP, target_index=arg)
        elif action == "flag":
            session.toggle_review_flag()
        elif action == "pump":
            session.pump()
        elif action == "submit":
            session.submit()
    result = session.result
    assert result is not None
    return {
        "submitted": True,
        "score": result.score,
        "total": result.total_possible_score,
        "correct": result.correct_count,
        "incorrect": result.incorrect_count,
        "unattempted": result.unattempted_count,
        "timeTakenSec": result.time_taken_sec,
        "perQuestion": [s.time_spent_on_question for s in result.question_states],
        "timer": f"Time Left: {format_time(session.time_left_seconds)}",
    }


def _replay_offline(questions, budget: int, steps, workdir) -> dict:
    page = build_offline_bundle(PASSAGES, questions, budget)
    harness = workdir / "harness.js"
    harness.write_text(_NODE_HARNESS, encoding="utf-8")
    payload = workdir / "input.json"
    payload.write_text(
        json.dumps({
            "data": _DATA_RE.search(page).group(1),
            "engine": _ENGINE_RE.search(page).group(1),
            "steps": [list(step) for step in steps],
        }),
        encoding="utf-8",
    )
    completed = subprocess.run(
        [NODE, str(harness), str(payload)], capture_output=True, text=True, timeout=60, check=True
    )
    return json.loads(completed.stdout)


@pytest.mark.skipif(NODE is None, reason="node is not installed")
class TestOfflineEngineParity:
    @pytest.mark.parametrize("scenario", sorted(PARITY_SCENARIOS))
    def test_offline_copy_matches_live_engine(self, scenario, tmp_path):
        budget, steps = PARITY_SCENARIOS[scenario]
        questions = make_questions(5)
        live = _replay_live(questions, budget, steps)
        offline = _replay_offline(questions, budget, steps, tmp_path)
        assert offline == live

    def test_scoring_weights_reach_the_page(self, tmp_path):
        # One correct, one incorrect, three unattempted: 3 - 1 + 0.
        steps = [("select", "A"), ("next", None), ("select", "D"), ("submit", None)]
        offline = _replay_offline(make_questions(5), 60, steps, tmp_path)
        assert (offline["score"], offline["total"]) == (2, 15)
        assert (offline["correct"], offline["incorrect"], offline["unattempted"]) == (1, 1, 3)

    def test_timeout_fills_budget(self, tmp_path):
        budget, steps = PARITY_SCENARIOS["timeout_while_idle"]
        offline = _replay_offline(make_questions(5), budget, steps, tmp_path)
        assert offline["submitted"] is True
        assert offline["timeTakenSec"] == budget
        assert offline["timer"] == "Time Left: 00:00"
        assert sum(offline["perQuestion"]) <= budget
