"""
Inference engine adapters and the model cache.

Main components:
- ModelCache: single-slot, single-flight cache of loaded models per engine kind
- WhisperTranscriber: speech-to-text using Whisper
- ChatSummarizer: chunk summarization using an OpenAI-compatible chat model
"""

from .loader import dispose_engine, load_engine
from .model_cache import ModelCache
from .summarizer import ChatSummarizer, SummarizationEngine
from .transcription import TranscriptionEngine, WhisperTranscriber

__all__ = [
    "ModelCache",
    "ChatSummarizer",
    "SummarizationEngine",
    "TranscriptionEngine",
    "WhisperTranscriber",
    "load_engine",
    "dispose_engine",
]
