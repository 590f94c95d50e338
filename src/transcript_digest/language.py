"""
Heuristic language detection for English and Dutch text.

Detection counts common function words of each language. It is meant for
picking a transcription or summary language, not as a general purpose
language identifier: anything it cannot tell apart is reported as "auto".
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

AUTO = "auto"
DEFAULT_CONFIDENCE_THRESHOLD = 0.7

# Minimum text length for a recommendation based on the text itself
MIN_TEXT_LENGTH = 10

ENGLISH_INDICATORS = {
    "the", "and", "that", "this", "with", "for", "are", "but", "they", "have",
    "from", "word", "said", "each", "which", "she", "will", "their", "if", "do",
}  # fmt: skip

DUTCH_INDICATORS = {
    "de", "het", "een", "van", "en", "dat", "is", "te", "voor", "met",
    "zijn", "op", "niet", "aan", "ook", "als", "er", "maar", "om", "ze",
}  # fmt: skip

DISPLAY_NAMES = {"en": "English", "nl": "Dutch", AUTO: "Auto-detect"}


@dataclass(frozen=True)
class LanguageDetection:
    """Detected language with its confidence (0-1) and the runner-up candidates."""

    language: str
    confidence: float
    alternatives: List[Dict[str, Any]] = field(default_factory=list)
    is_reliable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "language": self.language,
            "confidence": self.confidence,
            "alternatives": [dict(a) for a in self.alternatives],
            "is_reliable": self.is_reliable,
        }


def detect_language(text: str, confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD) -> LanguageDetection:
    """
    Detect whether text is English or Dutch.

    Only words longer than two characters are counted. The share of indicator
    words decides the language; the reported confidence is that share doubled
    and capped at 0.95. A detection is reliable when the share itself is above
    confidence_threshold.

    Args:
        text: Text to analyze
        confidence_threshold: Share of indicator words needed for a reliable detection

    Returns:
        LanguageDetection, with language "auto" when neither language stands out
    """
    words = [w for w in (text or "").lower().split() if len(w) > 2]
    if not words:
        return LanguageDetection(
            language=AUTO,
            confidence=0.0,
            alternatives=[{"language": "en", "confidence": 0.1}, {"language": "nl", "confidence": 0.1}],
            is_reliable=False,
        )

    english = sum(1 for w in words if w in ENGLISH_INDICATORS) / len(words)
    dutch = sum(1 for w in words if w in DUTCH_INDICATORS) / len(words)

    if english > dutch and english > 0.1:
        return LanguageDetection(
            language="en",
            confidence=min(english * 2, 0.95),
            alternatives=[{"language": "nl", "confidence": dutch}, {"language": AUTO, "confidence": 0.1}],
            is_reliable=english > confidence_threshold,
        )
    if dutch > english and dutch > 0.1:
        return LanguageDetection(
            language="nl",
            confidence=min(dutch * 2, 0.95),
            alternatives=[{"language": "en", "confidence": english}, {"language": AUTO, "confidence": 0.1}],
            is_reliable=dutch > confidence_threshold,
        )

    return LanguageDetection(
        language=AUTO,
        confidence=0.3,
        alternatives=[{"language": "en", "confidence": english}, {"language": "nl", "confidence": dutch}],
        is_reliable=False,
    )


def recommended_language(
    text: str,
    default_language: str = AUTO,
    auto_detect: bool = True,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> str:
    """
    Pick the language to use for a text.

    The detected language wins only when detection is enabled, the text is
    long enough and the detection is reliable; default_language otherwise.
    """
    if not auto_detect or not text or len(text) < MIN_TEXT_LENGTH:
        return default_language

    detection = detect_language(text, confidence_threshold)
    return detection.language if detection.is_reliable else default_language


def resolve_language(text: str) -> str:
    """
    Resolve the language a result is stored under.

    Unlike recommended_language any clear majority counts, so mixed text
    still gets a language; "unknown" when nothing stands out.
    """
    detection = detect_language(text)
    return detection.language if detection.language != AUTO else "unknown"


def display_name(language: str) -> str:
    return DISPLAY_NAMES.get(language, "Unknown")
