"""
Question generation: reformat passages, request a question batch and validate it.

The batch is all-or-nothing: any malformed item fails the whole operation so
that no partial session is ever created.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Sequence

from config import PASSAGE_SEPARATOR, QUESTIONS_PER_PASSAGE
from services.exam_models import Question
from services.llm_service import QUESTION_WRITER_SYSTEM_PROMPT, LLMProcessor, require_api_key

LOGGER = logging.getLogger("rc_practice.generator")

REQUIRED_TEXT_FIELDS = (
    "questionText",
    "correctAnswerText",
    "explanation",
    "difficultyAssessment",
    "commonPitfalls",
)
OPTIONS_PER_QUESTION = 4

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class GenerationContractError(ValueError):
    """Raised when the generated question batch does not match the expected shape."""


@dataclass(frozen=True)
class GeneratedContent:
    """Everything a session needs from the generation step."""

    passage_text: str
    questions: tuple[Question, ...]
    raw_passages: tuple[str, ...]

    @property
    def number_of_passages(self) -> int:
        return len(self.raw_passages)


def combine_passages(formatted: Sequence[str]) -> str:
    """Join reformatted passages with numbered start/end markers."""
    return PASSAGE_SEPARATOR.join(
        f"[START OF PASSAGE {i + 1}]\n{text}\n[END OF PASSAGE {i + 1}]" for i, text in enumerate(formatted)
    )


def _strip_code_fence(raw: str) -> str:
    """Remove a surrounding markdown code fence (with optional language tag)."""
    text = raw.strip()
    match = _FENCE_RE.match(text)
    if match and match.group(2):
        return match.group(2).strip()
    return text


def _parse_question_array(raw: str, expected_count: int) -> list[Any]:
    text = _strip_code_fence(raw or "")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationContractError(
            f"The response was not valid JSON ({e}). This often means the model's output was not "
            f"perfectly formatted. Response: {text[:500]}"
        ) from e
    if not isinstance(parsed, list) or not parsed or len(parsed) != expected_count:
        got = len(parsed) if isinstance(parsed, list) else 0
        raise GenerationContractError(
            f"Generated questions are not in the expected format or count. Expected {expected_count} "
            f"questions, got {got}. Response: {text[:500]}"
        )
    return parsed


def _is_filled(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validate_question(obj: Any, index: int) -> Question:
    """Turn one raw item into a Question with the deterministic id `q-<index>`."""
    if not isinstance(obj, dict):
        raise GenerationContractError(f"Question {index + 1} is not a JSON object.")
    missing = [name for name in REQUIRED_TEXT_FIELDS if not _is_filled(obj.get(name))]
    if missing:
        raise GenerationContractError(
            f"Question {index + 1} has missing or empty required fields: {', '.join(missing)}."
        )
    options = obj.get("options")
    if (
        not isinstance(options, list)
        or len(options) != OPTIONS_PER_QUESTION
        or not all(_is_filled(opt) for opt in options)
    ):
        raise GenerationContractError(
            f"Question {index + 1} must have an options array of exactly {OPTIONS_PER_QUESTION} non-empty strings."
        )
    if len(set(options)) != len(options):
        raise GenerationContractError(f"Question {index + 1} has duplicate options.")
    if obj["correctAnswerText"] not in options:
        raise GenerationContractError(
            f"Question {index + 1}: correctAnswerText is not one of the provided options."
        )
    return Question(
        id=f"q-{index}",
        question_text=obj["questionText"],
        options=tuple(options),
        correct_answer_text=obj["correctAnswerText"],
        explanation=obj["explanation"],
        difficulty_assessment=obj["difficultyAssessment"],
        common_pitfalls=obj["commonPitfalls"],
    )


def parse_question_batch(raw: str, expected_count: int) -> tuple[Question, ...]:
    """
    Parse and validate a model response holding the question array.

    Raises:
        GenerationContractError: On malformed JSON, wrong item count, or any
            item failing field/shape validation.
    """
    parsed = _parse_question_array(raw, expected_count)
    return tuple(_validate_question(item, i) for i, item in enumerate(parsed))


def build_questions_prompt(combined_passages: str, total_questions: int) -> str:
    return f"""
Based on the provided passage(s), generate EXACTLY {total_questions} multiple-choice questions (MCQs).
These questions should rigorously test critical reading and analytical skills, comparable in style and
difficulty to those found in the CAT and GMAT verbal sections.

Ensure a diverse mix of question types: main idea / primary purpose, inference, specific detail,
application, logical structure, author's tone, vocabulary-in-context, and weaken/strengthen where the
passage presents an argument. Distractors must be plausible and sophisticated; correct answers must be
unambiguously supported by the passage.

YOUR RESPONSE MUST BE A SINGLE, VALID JSON ARRAY OF EXACTLY {total_questions} OBJECTS.
NO OTHER TEXT, MARKDOWN, OR EXPLANATIONS OUTSIDE THIS JSON ARRAY.

Each object MUST have this structure, with every field a non-empty string:
{{
  "questionText": "A clear question related to the passage(s).",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctAnswerText": "The text of the correct option; MUST exactly match one of the four options.",
  "explanation": "Why the correct answer is correct and why the others are not.",
  "difficultyAssessment": "e.g. 'CAT-Medium (75-85th percentile)' or 'GMAT 700+ level'.",
  "commonPitfalls": "Specific traps, e.g. 'Misinterpreting scope'."
}}

"options" must contain EXACTLY FOUR distinct non-empty strings.

Passage(s):
---
{combined_passages}
---
Final reminder: your output must be *only* the valid JSON array described above.
"""


class QuestionGenerator:
    """Generates a validated question batch from raw passages via the LLM."""

    def __init__(self, llm: LLMProcessor | None = None, questions_per_passage: int = QUESTIONS_PER_PASSAGE) -> None:
        self._llm = llm or LLMProcessor()
        self.questions_per_passage = questions_per_passage

    def generate(self, passages: Sequence[str], api_key: str) -> GeneratedContent:
        """
        Reformat every passage, then request and validate the question batch.

        Args:
            passages: Raw passage texts, already checked for blanks and duplicates.
            api_key: OpenAI API key.

        Returns:
            GeneratedContent with the combined passage text and the questions.

        Raises:
            ConfigurationError: If the API key is missing.
            GenerationContractError: If the question batch is malformed.
            ValueError: If the text-generation call itself fails.
        """
        key = require_api_key(api_key)
        raw_passages = tuple(passages)
        formatted = [
            self._llm.reformat_passage(text, index=i, total=len(raw_passages), api_key=key)
            for i, text in enumerate(raw_passages)
        ]
        combined = combine_passages(formatted)
        expected = len(raw_passages) * self.questions_per_passage
        raw = self._llm.invoke(
            QUESTION_WRITER_SYSTEM_PROMPT,
            build_questions_prompt(combined, expected),
            api_key=key,
            temperature=0.4,
        )
        questions = parse_question_batch(raw, expected)
        LOGGER.info("Generated %s questions for %s passage(s).", len(questions), len(raw_passages))
        return GeneratedContent(passage_text=combined, questions=questions, raw_passages=raw_passages)
