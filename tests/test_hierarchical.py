"""Tests for hierarchical summarization over chunked text."""

import threading

import pytest

from transcript_digest.engines.model_cache import ModelCache
from transcript_digest.exceptions import EngineError, JobCancelled, ModelLoadError
from transcript_digest.models import JobState, SummarizationOptions, SummaryLength
from transcript_digest.summarization.hierarchical import (
    PLACEHOLDER_MARKER,
    HierarchicalSummarizer,
    compute_length_targets,
    is_placeholder,
)

from conftest import FakeSummarizer, RecordingLoader, sentences

# Six sentences of 57 characters: two fit in a 120 character chunk
MULTI_CHUNK_TEXT = sentences(6)
CHUNK_SIZE = 120


def _summarizer(engine, chunk_size=CHUNK_SIZE, loader=None):
    loader = loader or RecordingLoader(summarizer=engine)
    return HierarchicalSummarizer(ModelCache(loader), chunk_size=chunk_size)


class _Events:
    def __init__(self):
        self.events = []

    def __call__(self, state, percent, message, current_chunk=None, total_chunks=None):
        self.events.append((state, percent, current_chunk, total_chunks))

    @property
    def states(self):
        return [e[0] for e in self.events]


def test_single_chunk_is_not_summarized_twice():
    engine = FakeSummarizer()
    result = _summarizer(engine, chunk_size=800).summarize("A short transcript. Nothing more to say.")

    assert len(engine.calls) == 1
    assert len(result.chunk_summaries) == 1
    assert result.summary == "summary(A short tran)"
    assert result.warnings == []


def test_multiple_chunks_are_recombined():
    engine = FakeSummarizer()
    result = _summarizer(engine).summarize(MULTI_CHUNK_TEXT)

    assert len(result.chunk_summaries) == 3
    assert len(engine.calls) == 4
    combined = " ".join(s.summary_text for s in result.chunk_summaries)
    assert engine.calls[-1][0] == combined
    assert result.summary == f"summary({combined[:12]})"
    assert [s.chunk_index for s in result.chunk_summaries] == [0, 1, 2]


def test_compression_ratio_is_exact():
    engine = FakeSummarizer(response=lambda text: "b" * 200)
    result = _summarizer(engine, chunk_size=800).summarize("a" * 1000)

    assert result.original_length == 1000
    assert result.summary_length == 200
    assert result.compression_ratio == 0.2


def test_failed_chunk_becomes_placeholder():
    engine = FakeSummarizer(fail_when=lambda text: "number 2" in text)
    result = _summarizer(engine).summarize(MULTI_CHUNK_TEXT)

    failed = result.chunk_summaries[1]
    assert failed.is_placeholder
    assert failed.summary_text == "[Summary unavailable for chunk 2]"
    assert is_placeholder(failed.summary_text)
    assert not result.chunk_summaries[0].is_placeholder
    assert PLACEHOLDER_MARKER not in engine.calls[-1][0]
    assert result.warnings == ["1 of 3 chunks could not be summarized"]


def test_single_chunk_failure_fails_the_job():
    engine = FakeSummarizer(fail_when=lambda text: True)

    with pytest.raises(EngineError):
        _summarizer(engine, chunk_size=800).summarize("Only one chunk here.")


def test_all_chunks_failing_fails_the_job():
    engine = FakeSummarizer(fail_when=lambda text: True)

    with pytest.raises(EngineError, match="All 3 chunks failed"):
        _summarizer(engine).summarize(MULTI_CHUNK_TEXT)


def test_recombination_failure_falls_back_to_combined_summaries():
    engine = FakeSummarizer(fail_when=lambda text: text.startswith("summary("))
    result = _summarizer(engine).summarize(MULTI_CHUNK_TEXT)

    combined = " ".join(s.summary_text for s in result.chunk_summaries)
    assert result.summary == combined
    assert any("Final summary pass failed" in w for w in result.warnings)


def test_strict_recombination_raises():
    engine = FakeSummarizer(fail_when=lambda text: text.startswith("summary("))
    options = SummarizationOptions(strict_recombination=True)

    with pytest.raises(EngineError, match="Final summary pass failed"):
        _summarizer(engine).summarize(MULTI_CHUNK_TEXT, options)


@pytest.mark.parametrize("text", ["", "   \n"])
def test_empty_text_is_rejected(text):
    engine = FakeSummarizer()

    with pytest.raises(EngineError):
        _summarizer(engine).summarize(text)
    assert engine.calls == []


def test_explicit_lengths_apply_to_chunks_only():
    engine = FakeSummarizer()
    options = SummarizationOptions(max_length=60, min_length=10)
    result = _summarizer(engine).summarize(MULTI_CHUNK_TEXT, options)

    assert all(call[1:] == (60, 10) for call in engine.calls[:-1])
    combined_length = len(" ".join(s.summary_text for s in result.chunk_summaries))
    assert engine.calls[-1][1:] == compute_length_targets(SummaryLength.MEDIUM, combined_length)


def test_progress_is_reported_per_chunk():
    sink = _Events()
    _summarizer(FakeSummarizer()).summarize(MULTI_CHUNK_TEXT, progress_sink=sink)

    percents = [e[1] for e in sink.events]
    assert percents == sorted(percents)
    assert sink.states[:2] == [JobState.INITIALIZING, JobState.LOADING_MODEL]
    chunk_events = [(e[2], e[3]) for e in sink.events if e[2]]
    assert chunk_events == [(1, 3), (2, 3), (3, 3)]
    assert percents[-1] == 95


def test_loading_step_skipped_when_model_cached():
    summarizer = _summarizer(FakeSummarizer())
    summarizer.summarize("Warm up the cache.")

    sink = _Events()
    summarizer.summarize("Second run.", progress_sink=sink)

    assert JobState.LOADING_MODEL not in sink.states


def test_cancellation_stops_before_first_chunk():
    engine = FakeSummarizer()
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(JobCancelled):
        _summarizer(engine).summarize(MULTI_CHUNK_TEXT, cancel_event=cancel_event)
    assert engine.calls == []


def test_model_load_failure_propagates():
    loader = RecordingLoader(error=RuntimeError("no such model"))

    with pytest.raises(ModelLoadError, match="no such model"):
        _summarizer(None, loader=loader).summarize(MULTI_CHUNK_TEXT)


@pytest.mark.parametrize(
    "target,text_length,expected",
    [
        (SummaryLength.SHORT, 300, (50, 20)),
        (SummaryLength.SHORT, 3000, (100, 100)),
        (SummaryLength.MEDIUM, 700, (140, 70)),
        (SummaryLength.MEDIUM, 5000, (200, 200)),
        (SummaryLength.LONG, 100, (150, 75)),
        ("long", 800, (240, 120)),
        ("unknown", 700, (140, 70)),
    ],
)
def test_length_targets(target, text_length, expected):
    assert compute_length_targets(target, text_length) == expected


def test_length_overrides_win_and_min_is_capped():
    assert compute_length_targets(SummaryLength.MEDIUM, 1000, max_length=80, min_length=30) == (80, 30)
    assert compute_length_targets(SummaryLength.MEDIUM, 1000, max_length=40) == (40, 40)


def test_auto_language_is_detected_from_text():
    text = "Het team van de afdeling heeft een plan voor het budget. Het plan is niet klaar maar ook niet slecht."

    result = _summarizer(FakeSummarizer(), chunk_size=800).summarize(text)

    assert result.language == "nl"


def test_explicit_language_is_kept():
    options = SummarizationOptions(language="de")

    result = _summarizer(FakeSummarizer(), chunk_size=800).summarize("Das ist ein kurzer Text.", options)

    assert result.language == "de"
