"""
Default model loader used by the model cache.
"""

import logging
from typing import Any

from ..config import ConfigManager
from ..models import JobKind, ModelHandle
from .summarizer import ChatSummarizer
from .transcription import WhisperTranscriber

logger = logging.getLogger(__name__)


def load_engine(engine_kind: JobKind, variant: str) -> Any:
    """Create and load the engine for (engine_kind, variant)."""
    if engine_kind == JobKind.TRANSCRIPTION:
        return WhisperTranscriber(model_name=variant).load_model()

    api_key = ConfigManager.get("OPENAI_API_KEY")
    base_url = ConfigManager.get("LLM_API_BASE_URL")
    if base_url == ConfigManager.DEFAULTS["LLM_API_BASE_URL"]:
        base_url = None
    if base_url:
        logger.info(f"Initializing summarizer with custom endpoint: {base_url}, model: {variant}")
    return ChatSummarizer(api_key=api_key, model=variant, base_url=base_url).load_client()


def dispose_engine(handle: ModelHandle) -> None:
    """Drop references held by an evicted engine so its memory can be reclaimed."""
    engine = handle.model
    if isinstance(engine, WhisperTranscriber):
        engine.model = None
    elif isinstance(engine, ChatSummarizer):
        engine.client = None
    handle.model = None
