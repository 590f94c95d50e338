"""
Transcription and hierarchical summarization jobs.

This package turns long transcripts into short summaries and tracks
long-running transcription and summarization jobs with progress reporting,
cancellation and a searchable history.

Example usage:
    from transcript_digest import ModelCache, SummarizationJobController, load_engine

    cache = ModelCache(load_engine)
    controller = SummarizationJobController(cache)
    progress, future = controller.start(transcript_text)
    for event in progress:
        print(f"{event.percent:.0f}% {event.message}")
    result = future.result()
"""

from .engines import ModelCache, dispose_engine, load_engine
from .exceptions import (
    EngineError,
    InputUnavailable,
    JobAlreadyRunning,
    JobCancelled,
    ModelLoadError,
    ProcessingError,
    StoreError,
)
from .history import HistoryQueryEngine, InMemoryHistoryStore, JsonHistoryStore
from .jobs import JobRunner, SummarizationJobController, TranscriptionJobController
from .models import (
    HistoryFilter,
    HistoryPage,
    JobKind,
    JobState,
    ProgressEvent,
    SummarizationOptions,
    SummarizationResult,
    SummaryLength,
    TranscriptionOptions,
    TranscriptionResult,
)
from .summarization import HierarchicalSummarizer, chunk_text

__all__ = [
    "ModelCache",
    "load_engine",
    "dispose_engine",
    "ProcessingError",
    "ModelLoadError",
    "InputUnavailable",
    "EngineError",
    "JobCancelled",
    "JobAlreadyRunning",
    "StoreError",
    "HistoryQueryEngine",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "JobRunner",
    "SummarizationJobController",
    "TranscriptionJobController",
    "HistoryFilter",
    "HistoryPage",
    "JobKind",
    "JobState",
    "ProgressEvent",
    "SummarizationOptions",
    "SummarizationResult",
    "SummaryLength",
    "TranscriptionOptions",
    "TranscriptionResult",
    "HierarchicalSummarizer",
    "chunk_text",
]
