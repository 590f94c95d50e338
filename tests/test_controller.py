"""Tests for the job controllers' state machine, progress and cancellation."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from transcript_digest.engines.model_cache import ModelCache
from transcript_digest.exceptions import (
    EngineError,
    InputUnavailable,
    JobAlreadyRunning,
    JobCancelled,
    ModelLoadError,
)
from transcript_digest.jobs.controller import SummarizationJobController, TranscriptionJobController
from transcript_digest.models import (
    JobKind,
    JobState,
    SummarizationOptions,
    SummarizationResult,
    TranscriptionOptions,
)

from conftest import FakeSummarizer, FakeTranscriber, RecordingLoader, sentences

TIMEOUT = 5


def _collect(stream):
    return list(stream.events(timeout=TIMEOUT))


def test_summarization_job_runs_to_completion(model_cache):
    controller = SummarizationJobController(model_cache, chunk_size=120)
    stream, future = controller.start(sentences(6))

    events = _collect(stream)
    result = future.result(timeout=TIMEOUT)

    assert isinstance(result, SummarizationResult)
    assert controller.state == JobState.COMPLETED
    assert not controller.is_active
    states = [e.state for e in events]
    assert states[0] == JobState.PENDING
    assert states[-1] == JobState.COMPLETED
    assert JobState.LOADING_MODEL in states
    assert all(e.job_id == controller.job_id for e in events)
    percents = [e.percent for e in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100


def test_states_never_move_backwards(model_cache):
    order = [JobState.PENDING, JobState.INITIALIZING, JobState.LOADING_MODEL, JobState.PROCESSING, JobState.COMPLETED]
    controller = SummarizationJobController(model_cache, chunk_size=120)
    stream, _ = controller.start(sentences(6))

    ranks = [order.index(e.state) for e in _collect(stream)]
    assert ranks == sorted(ranks)


def test_loading_step_skipped_when_model_cached(model_cache):
    with model_cache.borrow(JobKind.SUMMARIZATION, SummarizationOptions().model_variant):
        pass

    controller = SummarizationJobController(model_cache)
    stream, future = controller.start("Already warm.")
    states = [e.state for e in _collect(stream)]

    future.result(timeout=TIMEOUT)
    assert JobState.LOADING_MODEL not in states


def test_second_start_while_running_is_rejected():
    gate = threading.Event()
    engine = FakeSummarizer(gate=gate)
    controller = SummarizationJobController(ModelCache(RecordingLoader(summarizer=engine)))

    _, future = controller.start("First job.")
    job_id = controller.job_id
    assert engine.entered.wait(TIMEOUT)

    with pytest.raises(JobAlreadyRunning):
        controller.start("Second job.")
    assert controller.job_id == job_id

    gate.set()
    future.result(timeout=TIMEOUT)


def test_controller_can_be_reused_after_completion(model_cache):
    controller = SummarizationJobController(model_cache)
    _, first = controller.start("First job.")
    first.result(timeout=TIMEOUT)
    first_id = controller.job_id

    _, second = controller.start("Second job.")
    second.result(timeout=TIMEOUT)

    assert controller.job_id != first_id
    assert controller.state == JobState.COMPLETED


def test_cancel_during_engine_call_discards_result():
    gate = threading.Event()
    engine = FakeSummarizer(gate=gate)
    controller = SummarizationJobController(ModelCache(RecordingLoader(summarizer=engine)))
    stream, future = controller.start("Cancel me while I am busy.")
    assert engine.entered.wait(TIMEOUT)

    assert controller.cancel() is True
    assert controller.state == JobState.CANCELLED
    gate.set()

    with pytest.raises(JobCancelled):
        future.result(timeout=TIMEOUT)
    events = _collect(stream)
    assert events[-1].state == JobState.CANCELLED
    assert events[-1].percent == 0
    assert [e.state for e in events].count(JobState.CANCELLED) == 1
    assert JobState.COMPLETED not in [e.state for e in events]
    assert controller.state == JobState.CANCELLED


def test_cancel_is_idempotent():
    gate = threading.Event()
    engine = FakeSummarizer(gate=gate)
    controller = SummarizationJobController(ModelCache(RecordingLoader(summarizer=engine)))
    controller.start("Cancel me twice.")
    assert engine.entered.wait(TIMEOUT)

    assert controller.cancel() is True
    assert controller.cancel() is False
    gate.set()
    assert controller.state == JobState.CANCELLED


def test_cancel_after_completion_is_a_no_op(model_cache):
    controller = SummarizationJobController(model_cache)
    _, future = controller.start("Done quickly.")
    future.result(timeout=TIMEOUT)

    assert controller.cancel() is False
    assert controller.state == JobState.COMPLETED


def test_cancel_without_job_is_a_no_op(model_cache):
    assert SummarizationJobController(model_cache).cancel() is False


def test_model_load_failure_fails_the_job():
    loader = RecordingLoader(error=RuntimeError("checkpoint missing"))
    controller = SummarizationJobController(ModelCache(loader))
    stream, future = controller.start("Some text.")

    with pytest.raises(ModelLoadError):
        future.result(timeout=TIMEOUT)
    events = _collect(stream)
    assert events[-1].state == JobState.FAILED
    assert events[-1].percent == 0
    assert "checkpoint missing" in events[-1].message
    assert isinstance(controller.error, ModelLoadError)


def test_empty_text_fails_the_job(model_cache):
    controller = SummarizationJobController(model_cache)
    _, future = controller.start("   ")

    with pytest.raises(EngineError):
        future.result(timeout=TIMEOUT)
    assert controller.state == JobState.FAILED


def test_missing_text_is_rejected_synchronously(model_cache):
    controller = SummarizationJobController(model_cache)

    with pytest.raises(InputUnavailable):
        controller.start(None)
    assert controller.job_id is None
    assert controller.progress is None


def test_transcription_job_produces_result(model_cache, transcriber):
    controller = TranscriptionJobController(model_cache)
    stream, future = controller.start(b"\x00\x01" * 100, TranscriptionOptions(language="en"))

    events = _collect(stream)
    result = future.result(timeout=TIMEOUT)

    assert result.text == "Hello there. General Kenobi."
    assert result.language == "en"
    assert result.model_used == "whisper-base"
    assert result.duration == 3.25
    assert result.confidence == pytest.approx(0.8)
    assert transcriber.calls[0]["language"] == "en"
    processing = [e.percent for e in events if e.state == JobState.PROCESSING]
    assert processing[0] == 30
    assert 60 in processing
    assert max(processing) <= 90
    assert events[-1].state == JobState.COMPLETED


def test_transcription_without_audio_is_rejected(model_cache):
    controller = TranscriptionJobController(model_cache)

    with pytest.raises(InputUnavailable):
        controller.start(b"")
    assert controller.state == JobState.PENDING
    assert not controller.is_active


def test_transcription_engine_error_fails_the_job():
    transcriber = FakeTranscriber(error=RuntimeError("decoder crashed"))
    controller = TranscriptionJobController(ModelCache(RecordingLoader(transcriber=transcriber)))
    _, future = controller.start(b"\x00\x01" * 10)

    with pytest.raises(EngineError, match="decoder crashed"):
        future.result(timeout=TIMEOUT)
    assert controller.state == JobState.FAILED


def test_jobs_run_on_a_given_executor(model_cache):
    with ThreadPoolExecutor(max_workers=1) as executor:
        controller = SummarizationJobController(model_cache, executor=executor)
        _, future = controller.start("Pooled job.")
        assert future.result(timeout=TIMEOUT).summary


def test_failing_chunk_still_completes_the_job():
    engine = FakeSummarizer(fail_when=lambda text: "number 4" in text)
    controller = SummarizationJobController(ModelCache(RecordingLoader(summarizer=engine)), chunk_size=120)
    _, future = controller.start(sentences(6))

    result = future.result(timeout=TIMEOUT)
    assert controller.state == JobState.COMPLETED
    assert [s.is_placeholder for s in result.chunk_summaries] == [False, False, True]
    assert result.warnings
