"""
Shared fixtures: fake inference engines and a model cache wired to them.

The fakes stand in for Whisper and the chat summarizer so tests run without
models, network access or API keys.
"""

import threading
from typing import Callable, List, Optional, Tuple

import pytest

from transcript_digest.engines.model_cache import ModelCache
from transcript_digest.exceptions import EngineError
from transcript_digest.models import JobKind, TranscriptionOutput, TranscriptSegment


class FakeSummarizer:
    """Summarization engine returning a short, recognizable summary of its input."""

    def __init__(
        self,
        fail_when: Optional[Callable[[str], bool]] = None,
        response: Optional[Callable[[str], str]] = None,
        gate: Optional[threading.Event] = None,
    ):
        self.fail_when = fail_when
        self.response = response
        self.gate = gate
        self.entered = threading.Event()
        self.calls: List[Tuple[str, int, int]] = []
        self._lock = threading.Lock()

    def summarize_chunk(self, text: str, max_length: int, min_length: int) -> str:
        with self._lock:
            self.calls.append((text, max_length, min_length))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_when is not None and self.fail_when(text):
            raise EngineError("engine exploded")
        if self.response is not None:
            return self.response(text)
        return f"summary({text[:12]})"


class FakeTranscriber:
    """Transcription engine returning fixed segments and reporting progress."""

    def __init__(self, segments=None, language: str = "en", error: Optional[Exception] = None):
        self.segments = segments or [
            TranscriptSegment(text="Hello there.", start=0.0, end=1.5, confidence=0.9),
            TranscriptSegment(text="General Kenobi.", start=1.5, end=3.25, confidence=0.7),
        ]
        self.language = language
        self.error = error
        self.calls = []

    def transcribe(self, audio, language=None, return_timestamps=True, on_progress=None):
        self.calls.append({"audio": audio, "language": language, "return_timestamps": return_timestamps})
        if on_progress is not None:
            on_progress(0.5)
        if self.error is not None:
            raise self.error
        if on_progress is not None:
            on_progress(1.0)
        return TranscriptionOutput(
            text=" ".join(s.text for s in self.segments),
            segments=list(self.segments),
            detected_language=self.language,
        )


class RecordingLoader:
    """Model loader that counts calls and hands out the fake engines."""

    def __init__(self, summarizer=None, transcriber=None, gate: Optional[threading.Event] = None, error=None):
        self.summarizer = summarizer or FakeSummarizer()
        self.transcriber = transcriber or FakeTranscriber()
        self.gate = gate
        self.error = error
        self.calls: List[Tuple[JobKind, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, engine_kind: JobKind, variant: str):
        with self._lock:
            self.calls.append((engine_kind, variant))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.error is not None:
                raise self.error
            if engine_kind == JobKind.TRANSCRIPTION:
                return self.transcriber
            return self.summarizer
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def loader(summarizer, transcriber):
    return RecordingLoader(summarizer=summarizer, transcriber=transcriber)


@pytest.fixture
def model_cache(loader):
    return ModelCache(loader)


def sentences(count: int, words: int = 8) -> str:
    """Build a text of numbered sentences."""
    return " ".join(f"Sentence number {i} " + " ".join(["word"] * words) + "." for i in range(count))
