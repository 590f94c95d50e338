"""
Audio transcription functionality using OpenAI Whisper.

This module is the boundary to the speech-to-text engine. Whisper's raw
result dictionary is normalized into a TranscriptionOutput with ordered,
non-overlapping segments, so callers never re-interpret engine output.

Key features:
- Multiple Whisper model sizes (tiny to large)
- 16-bit PCM bytes or float arrays as input
- Hallucination detection and filtering
- Timestamped segment extraction
"""

import io
import logging
import warnings
import wave
from typing import Any, Callable, Dict, List, Optional, Protocol

import numpy as np

from ..exceptions import EngineError, InputUnavailable, ModelLoadError
from ..models import TranscriptionOutput, TranscriptSegment

# Suppress warnings from third-party libraries
warnings.filterwarnings("ignore", category=UserWarning, module="whisper")
warnings.filterwarnings("ignore", category=UserWarning, module="torch")

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Whisper models expect 16 kHz mono input
WHISPER_SAMPLE_RATE = 16000

HALLUCINATIONS = ["1.5%", "2.5%", "3.5%", "subscribe", ".", "...", "♪", "[BLANK_AUDIO]", "(blank)"]


class TranscriptionEngine(Protocol):
    """Interface of a speech-to-text engine."""

    def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        return_timestamps: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscriptionOutput: ...


class WhisperTranscriber:
    """
    Handle audio transcription using OpenAI Whisper.

    Provides methods for transcribing audio bytes or arrays, extracting
    timestamped segments and filtering hallucinations.
    """

    def __init__(self, model_name: str = "base"):
        """
        Initialize transcriber with a Whisper model name.

        Args:
            model_name: Whisper model size (tiny, base, small, medium, large)
        """
        self.model_name = model_name
        self.model = None

    def load_model(self) -> "WhisperTranscriber":
        """
        Load the Whisper model.

        Raises:
            ModelLoadError: If whisper is not installed or the model cannot be loaded
        """
        if self.model is not None:
            return self

        try:
            import whisper
        except ImportError as e:
            raise ModelLoadError(
                "transcription",
                self.model_name,
                "openai-whisper is not installed",
                suggestion="pip install 'transcript-digest[whisper]'",
            ) from e

        try:
            self.model = whisper.load_model(self.model_name)
        except Exception as e:
            raise ModelLoadError("transcription", self.model_name, str(e)) from e
        return self

    def transcribe(
        self,
        audio: Any,
        language: Optional[str] = None,
        return_timestamps: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscriptionOutput:
        """
        Transcribe audio to text using Whisper.

        Args:
            audio: 16-bit PCM bytes or a float numpy array
            language: Language code, or None/'auto' to auto-detect
            return_timestamps: Whether to keep timestamped segments
            on_progress: Optional callback receiving a completion fraction (0-1)

        Returns:
            Normalized transcription output

        Raises:
            InputUnavailable: If no audio data was given
            EngineError: If the Whisper call fails
        """
        samples = _to_float_samples(audio)
        self.load_model()

        if language == "auto":
            language = None

        try:
            result = self.model.transcribe(samples, language=language, verbose=None)
        except Exception as e:
            raise EngineError(f"Transcription failed: {e}") from e

        if on_progress is not None:
            on_progress(1.0)

        output = self._normalize(result, return_timestamps)
        logger.info(f"Transcribed {len(output.segments)} segment(s), language: {output.detected_language}")
        return output

    def _normalize(self, result: Dict, return_timestamps: bool) -> TranscriptionOutput:
        """Turn a Whisper result dictionary into a TranscriptionOutput."""
        if not isinstance(result, dict) or "text" not in result:
            raise EngineError(f"Unexpected transcription result format: {type(result).__name__}")

        segments = self.get_segments(result) if return_timestamps else []
        return TranscriptionOutput(
            text=result["text"].strip(),
            segments=segments,
            detected_language=result.get("language"),
        )

    def get_segments(self, result: Dict) -> List[TranscriptSegment]:
        """
        Extract valid, ordered, non-overlapping segments from a Whisper result.

        Args:
            result: Whisper transcription result

        Returns:
            List of segments with text, start and end
        """
        if "segments" not in result:
            return []

        segments = []
        filtered_count = 0
        for seg in sorted(result["segments"], key=lambda s: s["start"]):
            text = seg["text"].strip()
            if not text or not self._is_valid_transcription(text, seg.get("no_speech_prob", 0.0)):
                filtered_count += 1
                continue

            start = float(seg["start"])
            if segments and start < segments[-1].end:
                start = segments[-1].end
            end = max(float(seg["end"]), start)
            confidence = float(np.exp(seg["avg_logprob"])) if "avg_logprob" in seg else None
            segments.append(TranscriptSegment(text=text, start=start, end=end, confidence=confidence))

        if filtered_count > 0:
            logger.debug(f"Filtered {filtered_count} hallucination(s), kept {len(segments)} segment(s)")
        return segments

    def _is_valid_transcription(self, text: str, no_speech_prob: float = 0.0) -> bool:
        """
        Check if a transcription segment is valid (not a hallucination).

        Filters out common Whisper hallucinations that occur during silence or
        low audio levels. Uses no_speech_prob threshold and pattern matching.

        Args:
            text: Transcribed text to validate
            no_speech_prob: Whisper's probability that segment contains no speech (0-1)

        Returns:
            True if segment appears to be valid speech, False if likely hallucination
        """
        if no_speech_prob > 0.6:
            return False

        text_lower = text.lower().strip()

        if text_lower in HALLUCINATIONS:
            return False

        if len(text_lower) <= 3 and not any(c.isalpha() for c in text_lower):
            return False

        if len(set(text_lower.replace(" ", ""))) <= 2 and len(text_lower) < 10:
            return False

        return True


def _to_float_samples(audio: Any) -> np.ndarray:
    """Convert raw audio input to the float32 samples Whisper expects."""
    if audio is None:
        raise InputUnavailable("No audio data provided")

    if isinstance(audio, np.ndarray):
        if audio.size == 0:
            raise InputUnavailable("Audio data is empty")
        return audio.astype(np.float32)

    if isinstance(audio, (bytes, bytearray)):
        if _is_wav(audio):
            return _decode_wav(bytes(audio))
        if len(audio) < 2:
            raise InputUnavailable("Audio data is empty")
        usable = len(audio) - (len(audio) % 2)
        return np.frombuffer(bytes(audio[:usable]), dtype=np.int16).astype(np.float32) / 32768.0

    raise InputUnavailable(f"Unsupported audio input type: {type(audio).__name__}")


def _is_wav(audio: bytes) -> bool:
    return len(audio) >= 12 and audio[:4] == b"RIFF" and audio[8:12] == b"WAVE"


def _decode_wav(audio: bytes) -> np.ndarray:
    """
    Decode a 16-bit PCM WAV payload into mono float32 samples at Whisper's rate.

    Stereo input is averaged down to mono and other sample rates are
    linearly resampled.

    Raises:
        InputUnavailable: If the payload is not 16-bit PCM WAV or holds no frames
    """
    try:
        with wave.open(io.BytesIO(audio), "rb") as wf:
            n_channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        raise InputUnavailable(f"Unreadable WAV file: {e}", suggestion="Upload 16-bit PCM audio") from e

    if sample_width != 2:
        raise InputUnavailable(
            f"Unsupported WAV sample width: {sample_width * 8} bits", suggestion="Upload 16-bit PCM audio"
        )

    samples = np.frombuffer(frames, dtype=np.int16)
    if n_channels > 1:
        samples = samples[: len(samples) - len(samples) % n_channels].reshape(-1, n_channels).mean(axis=1)
    if samples.size == 0:
        raise InputUnavailable("WAV file contains no audio frames")

    samples = samples.astype(np.float32) / 32768.0
    if rate != WHISPER_SAMPLE_RATE:
        target_length = int(len(samples) / rate * WHISPER_SAMPLE_RATE)
        samples = np.interp(
            np.linspace(0, len(samples), target_length, dtype=np.float32),
            np.arange(len(samples), dtype=np.float32),
            samples,
        ).astype(np.float32)
    return samples
