"""
LLM orchestration: passage reformatting and raw prompt invocation.
"""

import os

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import API_KEY_ENV, MODEL_TEXT

REFORMAT_SYSTEM_PROMPT = (
    "You are a careful copy editor preparing reading-comprehension passages. "
    "Return only the reformatted passage text, with no commentary."
)

QUESTION_WRITER_SYSTEM_PROMPT = (
    "You are an expert test designer for competitive exams like CAT and GMAT. "
    "Your primary goal is to create challenging and insightful multiple-choice questions "
    "based on provided reading comprehension passages, adhering strictly to the user's "
    "formatting and content requirements."
)


class ConfigurationError(ValueError):
    """Raised when the text-generation credential is missing."""


def resolve_api_key(explicit: str = "") -> str:
    """Return the explicit key if given, else the environment key ("" when neither is set)."""
    key = (explicit or "").strip()
    if key:
        return key
    return os.getenv(API_KEY_ENV, "").strip()


def require_api_key(api_key: str) -> str:
    clean = (api_key or "").strip()
    if not clean:
        raise ConfigurationError(
            f"CRITICAL: {API_KEY_ENV} is not configured. This application requires an API key to "
            f"generate questions. Please set the {API_KEY_ENV} environment variable or enter a key in the sidebar."
        )
    return clean


def _call_llm(system_prompt: str, user_message: str, api_key: str, temperature: float = 0.3) -> str:
    """
    Invoke OpenAI Chat with the given messages.

    Args:
        system_prompt: System message content.
        user_message: User message content.
        api_key: OpenAI API key.
        temperature: Model temperature.

    Returns:
        Assistant response content.

    Raises:
        ConfigurationError: If the API key is missing.
        ValueError: If the key is invalid, quota is insufficient, or the call fails.
    """
    key = require_api_key(api_key)
    try:
        llm = ChatOpenAI(
            model=MODEL_TEXT,
            api_key=key,
            temperature=temperature,
        )
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_message)]
        response = llm.invoke(messages)
        return response.content if response.content else ""
    except Exception as e:
        err_msg = str(e).lower()
        if "invalid" in err_msg or "authentication" in err_msg or "incorrect api key" in err_msg:
            raise ValueError("The API key is invalid. Please check it and try again.") from e
        if "insufficient_quota" in err_msg or "quota" in err_msg or "rate limit" in err_msg:
            raise ValueError("API quota exhausted or too many requests. Please try again later.") from e
        raise ValueError(f"Error while calling the text-generation API: {e!s}") from e


class LLMProcessor:
    """Thin wrapper over the chat model used by the question generator."""

    def invoke(self, system_prompt: str, user_message: str, api_key: str, temperature: float = 0.3) -> str:
        """
        Invoke the LLM with custom system and user messages.

        Args:
            system_prompt: System message.
            user_message: User message.
            api_key: OpenAI API key.
            temperature: Optional temperature.

        Returns:
            Assistant response text.
        """
        return _call_llm(system_prompt, user_message, api_key, temperature)

    def reformat_passage(self, text: str, index: int, total: int, api_key: str) -> str:
        """
        Clean up one raw passage for display.

        Args:
            text: Raw passage as pasted by the user.
            index: 0-based position of the passage.
            total: Number of passages in the test.
            api_key: OpenAI API key.

        Returns:
            Reformatted prose.
        """
        user_message = (
            f"Please reformat the following passage (Passage {index + 1} of {total}) for optimal readability. "
            "Ensure paragraphs are well-defined, remove any redundant spacing or unconventional formatting, "
            "and present it as clean text suitable for a reading comprehension exercise:\n\n"
            f"{text}"
        )
        return _call_llm(REFORMAT_SYSTEM_PROMPT, user_message, api_key, temperature=0.1)
