"""
Hierarchical summarization of arbitrarily long text.

The summarization engine only accepts a bounded input, so long text is
chunked, each chunk is summarized on its own and the chunk summaries are
recombined. When more than one chunk was produced the combined summaries
are summarized once more into a single coherent summary.

One failing chunk does not fail the job: its summary is replaced by a
clearly marked placeholder that is left out of the combined summary.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple, Union

from ..engines.model_cache import ModelCache
from ..exceptions import EngineError, JobCancelled
from ..language import AUTO, resolve_language
from ..models import ChunkSummary, JobKind, JobState, SummarizationOptions, SummarizationResult, SummaryLength
from .chunker import chunk_text

logger = logging.getLogger(__name__)

# Kept below the engine's input window
DEFAULT_CHUNK_SIZE = 800

PLACEHOLDER_MARKER = "[Summary unavailable"
PLACEHOLDER_TEMPLATE = PLACEHOLDER_MARKER + " for chunk {number}]"

# (ratio, floor, ceiling) for max_length and (ratio, floor) for min_length
LENGTH_PRESETS = {
    SummaryLength.SHORT: (0.10, 50, 100, 0.05, 20),
    SummaryLength.MEDIUM: (0.20, 100, 200, 0.10, 50),
    SummaryLength.LONG: (0.30, 150, 300, 0.15, 75),
}

ProgressSink = Callable[..., None]


def compute_length_targets(
    target_length: Union[SummaryLength, str],
    text_length: int,
    max_length: Optional[int] = None,
    min_length: Optional[int] = None,
) -> Tuple[int, int]:
    """
    Compute (max_length, min_length) for a summary of a text of the given length.

    Explicit max_length/min_length override the computed values. The returned
    min_length never exceeds max_length.
    """
    try:
        target = SummaryLength(target_length)
    except ValueError:
        target = SummaryLength.MEDIUM
    ratio, floor, ceiling, min_ratio, min_floor = LENGTH_PRESETS[target]

    computed_max = min(max(int(text_length * ratio), floor), ceiling)
    computed_min = max(int(text_length * min_ratio), min_floor)

    final_max = max_length if max_length is not None else computed_max
    final_min = min_length if min_length is not None else computed_min
    return final_max, min(final_min, final_max)


def is_placeholder(summary_text: str) -> bool:
    """Check whether a chunk summary is a failure placeholder."""
    return summary_text.startswith(PLACEHOLDER_MARKER)


def _noop_sink(*args, **kwargs) -> None:
    pass


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise JobCancelled("Summarization cancelled by user")


class HierarchicalSummarizer:
    """Drives the model cache and the summarization engine over chunked text."""

    def __init__(self, model_cache: ModelCache, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the summarizer.

        Args:
            model_cache: Cache providing summarization engine handles
            chunk_size: Character budget per chunk
        """
        self.model_cache = model_cache
        self.chunk_size = chunk_size

    def summarize(
        self,
        text: str,
        options: Optional[SummarizationOptions] = None,
        progress_sink: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SummarizationResult:
        """
        Summarize text of any length.

        Args:
            text: Text to summarize
            options: Summarization options
            progress_sink: Callable receiving (state, percent, message, current_chunk=, total_chunks=)
            cancel_event: Event checked between chunks

        Returns:
            SummarizationResult with per-chunk summaries

        Raises:
            EngineError: On empty input, a failing single chunk, or when every chunk failed
            ModelLoadError: If the summarization model could not be loaded
            JobCancelled: If cancel_event was set
        """
        options = options or SummarizationOptions()
        sink = progress_sink or _noop_sink

        if not text or not text.strip():
            raise EngineError("Cannot summarize empty text", suggestion="Provide a non-empty transcript")

        start_time = time.time()
        sink(JobState.INITIALIZING, 0, "Preparing summarization...")

        if not self.model_cache.is_loaded(JobKind.SUMMARIZATION, options.model_variant):
            sink(JobState.LOADING_MODEL, 10, f"Loading {options.model_variant} summarization model...")

        with self.model_cache.borrow(JobKind.SUMMARIZATION, options.model_variant) as handle:
            _check_cancelled(cancel_event)
            summaries = self._summarize_chunks(handle.model, text, options, sink, cancel_event)
            final_summary, warnings = self._recombine(handle.model, summaries, options, sink, cancel_event)

        final_summary = final_summary.strip()
        processing_time = time.time() - start_time
        logger.info(
            f"Summarized {len(text)} characters in {len(summaries)} chunk(s) "
            f"into {len(final_summary)} characters ({processing_time:.2f}s)"
        )

        return SummarizationResult(
            summary=final_summary,
            chunk_summaries=summaries,
            original_length=len(text),
            summary_length=len(final_summary),
            compression_ratio=len(final_summary) / len(text),
            model_used=options.model_variant,
            language=options.language if options.language != AUTO else resolve_language(text),
            processing_time=processing_time,
            warnings=warnings,
        )

    def _summarize_chunks(
        self,
        engine,
        text: str,
        options: SummarizationOptions,
        sink: ProgressSink,
        cancel_event: Optional[threading.Event],
    ) -> List[ChunkSummary]:
        """Summarize every chunk in order, isolating per-chunk failures."""
        sink(JobState.PROCESSING, 30, "Preparing text for summarization...")
        chunks = chunk_text(text, self.chunk_size)
        total = len(chunks)

        sink(
            JobState.PROCESSING,
            40,
            f"Processing {total} text chunk{'s' if total > 1 else ''}...",
            current_chunk=0,
            total_chunks=total,
        )

        summaries = []
        for chunk in chunks:
            _check_cancelled(cancel_event)
            number = chunk.index + 1
            max_length, min_length = compute_length_targets(
                options.target_length, len(chunk.text), options.max_length, options.min_length
            )

            try:
                summary_text = engine.summarize_chunk(chunk.text, max_length, min_length).strip()
                placeholder = False
            except Exception as e:
                if total == 1:
                    if isinstance(e, EngineError):
                        raise
                    raise EngineError(f"Summarization failed: {e}") from e
                logger.warning(f"Error summarizing chunk {number} of {total}: {e}")
                summary_text = PLACEHOLDER_TEMPLATE.format(number=number)
                placeholder = True

            summaries.append(
                ChunkSummary(
                    chunk_index=chunk.index,
                    summary_text=summary_text,
                    start_offset=chunk.start_offset,
                    end_offset=chunk.end_offset,
                    is_placeholder=placeholder,
                )
            )
            sink(
                JobState.PROCESSING,
                40 + number / total * 50,
                f"Summarized chunk {number} of {total}",
                current_chunk=number,
                total_chunks=total,
            )

        return summaries

    def _recombine(
        self,
        engine,
        summaries: List[ChunkSummary],
        options: SummarizationOptions,
        sink: ProgressSink,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[str, List[str]]:
        """Combine chunk summaries and, for multiple chunks, summarize them once more."""
        combined = " ".join(s.summary_text for s in summaries if not s.is_placeholder)
        warnings = []

        if not combined:
            raise EngineError(f"All {len(summaries)} chunks failed to summarize")

        failed = sum(1 for s in summaries if s.is_placeholder)
        if failed:
            warnings.append(f"{failed} of {len(summaries)} chunks could not be summarized")

        if len(summaries) == 1:
            return combined, warnings

        _check_cancelled(cancel_event)
        sink(JobState.PROCESSING, 95, "Creating final summary...")

        max_length, min_length = compute_length_targets(options.target_length, len(combined))
        try:
            return engine.summarize_chunk(combined, max_length, min_length), warnings
        except Exception as e:
            if options.strict_recombination:
                raise EngineError(f"Final summary pass failed: {e}") from e
            logger.warning(f"Error creating final summary, using combined chunks: {e}")
            warnings.append("Final summary pass failed; the summary is the combined chunk summaries")
            return combined, warnings
