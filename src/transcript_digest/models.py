"""
Data models for transcription and summarization jobs.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

DEFAULT_PAGE_SIZE = 20


class JobKind(Enum):
    """Kind of work a job performs."""

    TRANSCRIPTION = "transcription"
    SUMMARIZATION = "summarization"


class JobState(Enum):
    """Lifecycle states of a job."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    LOADING_MODEL = "loading_model"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


class SummaryLength(Enum):
    """Target length preset for summaries."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress notification for a job."""

    job_id: str
    state: JobState
    percent: float
    message: str = ""
    current_chunk: Optional[int] = None
    total_chunks: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "percent": self.percent,
            "message": self.message,
            "current_chunk": self.current_chunk,
            "total_chunks": self.total_chunks,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ModelHandle:
    """A loaded inference model owned by the model cache."""

    engine_kind: JobKind
    variant: str
    model: Any
    loaded_at: datetime = field(default_factory=datetime.now)
    borrowers: int = 0
    evicted: bool = False


@dataclass(frozen=True)
class TextChunk:
    """A sentence-respecting slice of the input text."""

    index: int
    text: str
    start_offset: int
    end_offset: int


@dataclass(frozen=True)
class ChunkSummary:
    """Summary of one chunk, with the chunk's offsets for traceability."""

    chunk_index: int
    summary_text: str
    start_offset: int
    end_offset: int
    is_placeholder: bool = False


@dataclass(frozen=True)
class TranscriptSegment:
    """A single segment of transcribed audio with timing info."""

    text: str
    start: float
    end: float
    confidence: Optional[float] = None


@dataclass(frozen=True)
class TranscriptionOutput:
    """Normalized output of a transcription engine call."""

    text: str
    segments: List[TranscriptSegment]
    detected_language: Optional[str] = None


@dataclass(frozen=True)
class TranscriptionOptions:
    """Options for a transcription job."""

    model_variant: str = "base"
    language: str = "auto"
    return_timestamps: bool = True


@dataclass(frozen=True)
class SummarizationOptions:
    """Options for a summarization job."""

    model_variant: str = "gpt-4o-mini"
    target_length: SummaryLength = SummaryLength.MEDIUM
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    language: str = "auto"
    strict_recombination: bool = False


@dataclass(frozen=True)
class TranscriptionResult:
    """Complete result of a transcription job."""

    text: str
    segments: List[TranscriptSegment]
    language: str
    model_used: str
    duration: float
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = JobKind.TRANSCRIPTION.value
        return data


@dataclass(frozen=True)
class SummarizationResult:
    """Complete result of a summarization job."""

    summary: str
    chunk_summaries: List[ChunkSummary]
    original_length: int
    summary_length: int
    compression_ratio: float
    model_used: str = ""
    language: str = "auto"
    processing_time: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = JobKind.SUMMARIZATION.value
        return data


JobResult = Union[TranscriptionResult, SummarizationResult]


@dataclass
class SummaryRecord:
    """Persisted summary attached to a history record."""

    id: str
    summary: str
    model_used: str
    original_length: int
    summary_length: int
    compression_ratio: float
    processing_time: float
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SummaryRecord":
        return cls(
            id=data["id"],
            summary=data.get("summary", ""),
            model_used=data.get("model_used", ""),
            original_length=data.get("original_length", 0),
            summary_length=data.get("summary_length", 0),
            compression_ratio=data.get("compression_ratio", 0.0),
            processing_time=data.get("processing_time", 0.0),
            created_at=data.get("created_at", ""),
        )


@dataclass
class HistoryRecord:
    """Persisted job result as stored in the history."""

    id: str
    text: str
    language: str
    model_used: str
    duration: float
    created_at: str
    updated_at: str
    confidence: Optional[float] = None
    kind: str = JobKind.TRANSCRIPTION.value
    summary: Optional[SummaryRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        summary = data.get("summary")
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            language=data.get("language", "unknown"),
            model_used=data.get("model_used", ""),
            duration=data.get("duration", 0.0),
            created_at=data["created_at"],
            updated_at=data.get("updated_at", data["created_at"]),
            confidence=data.get("confidence"),
            kind=data.get("kind", JobKind.TRANSCRIPTION.value),
            summary=SummaryRecord.from_dict(summary) if summary else None,
        )


@dataclass
class HistoryFilter:
    """Composable history predicate plus pagination window."""

    language: Optional[str] = None
    model_used: Optional[str] = None
    date_from: Optional[Union[str, datetime]] = None
    date_to: Optional[Union[str, datetime]] = None
    search_text: Optional[str] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0


@dataclass
class HistoryPage:
    """One page of history query results."""

    items: List[HistoryRecord]
    total_matching: int
    has_more: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total_matching,
            "has_more": self.has_more,
        }


@dataclass
class HistoryStats:
    """Aggregate statistics over the whole history."""

    total_jobs: int = 0
    total_summaries: int = 0
    total_duration: float = 0.0
    average_confidence: float = 0.0
    most_used_language: str = "Unknown"
    most_used_model: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
