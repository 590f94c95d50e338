"""
Chunk summarization using an OpenAI-compatible chat model.

This module is the boundary to the external summarization engine. The
engine is given one chunk of text plus length targets and returns plain
summary text; every response shape is normalized here, once.

Key features:
- Lazy loading of the OpenAI client (no API initialization at import time)
- Configurable model and custom endpoints (base_url)
- Length targets are token budgets: the token cap is sent as max_tokens and a
  matching word range, never longer than the chunk itself, goes into the prompt

Important: failures are raised as EngineError; deciding whether a failure
is fatal for a job is left to the caller.
"""

import logging
from typing import Any, Optional, Protocol, Tuple

from ..exceptions import EngineError, ModelLoadError

logger = logging.getLogger(__name__)

# Average English words per model token
WORDS_PER_TOKEN = 0.75


class SummarizationEngine(Protocol):
    """Interface of a chunk summarization engine."""

    def summarize_chunk(self, text: str, max_length: int, min_length: int) -> str: ...


class ChatSummarizer:
    """
    Summarize text chunks with OpenAI chat completions.

    The OpenAI client is created on load_client(), which the model cache
    calls when the summarizer variant is first requested.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: Optional[str] = None):
        """
        Initialize summarizer settings.

        Args:
            api_key: OpenAI API authentication key
            model: Chat model to use
            base_url: Optional custom OpenAI-compatible endpoint
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.client = None

    def load_client(self) -> "ChatSummarizer":
        """
        Lazy load the OpenAI client.

        Raises:
            ModelLoadError: If no API key is configured or the client cannot be created
        """
        if self.client is not None:
            return self

        if not self.api_key:
            raise ModelLoadError(
                "summarization", self.model, "no API key configured", suggestion="Set OPENAI_API_KEY in .env"
            )

        try:
            from openai import OpenAI

            if self.base_url:
                self.client = OpenAI(api_key=self.api_key, base_url=self.base_url)
            else:
                self.client = OpenAI(api_key=self.api_key)
        except Exception as e:
            self.client = None
            raise ModelLoadError("summarization", self.model, str(e)) from e

        logger.info(f"OpenAI client loaded (model: {self.model})")
        return self

    def summarize_chunk(self, text: str, max_length: int, min_length: int) -> str:
        """
        Summarize one chunk of text.

        Args:
            text: Chunk text to summarize
            max_length: Upper bound of the summary length, in tokens
            min_length: Lower bound of the summary length, in tokens

        Returns:
            Summary text

        Raises:
            EngineError: If the call fails or the response carries no text
        """
        if self.client is None:
            self.load_client()

        min_words, max_words = word_budget(text, max_length, min_length)
        prompt = f"""Summarize the following transcript excerpt faithfully.
Write between {min_words} and {max_words} words. Do not add information that is not in the text.

Text:
{text}"""

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a transcript summarizer."},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_length,
            )
        except Exception as e:
            raise EngineError(f"Summarization request failed: {e}") from e

        return _normalize_summary(response)


def word_budget(text: str, max_length: int, min_length: int) -> Tuple[int, int]:
    """
    Translate token targets into a (min_words, max_words) range for the prompt.

    A summary is never asked to be longer than its source, and the minimum
    is at most half of the source words.
    """
    source_words = max(len(text.split()), 1)
    min_words = min(int(min_length * WORDS_PER_TOKEN), max(1, source_words // 2))
    max_words = max(min_words, min(int(max_length * WORDS_PER_TOKEN), source_words))
    return min_words, max_words


def _normalize_summary(response: Any) -> str:
    """Extract summary text from a chat completion, or plain text/dict results."""
    if isinstance(response, str):
        summary = response
    elif isinstance(response, dict):
        summary = response.get("summary_text") or ""
    else:
        try:
            summary = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise EngineError(f"Unexpected summarization result format: {type(response).__name__}") from e

    summary = summary.strip()
    if not summary:
        raise EngineError("Summarization engine returned an empty summary")
    return summary
