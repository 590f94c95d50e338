"""
Job controllers for transcription and summarization jobs.

A controller runs one job at a time on a worker thread and owns its
lifecycle:

    PENDING -> INITIALIZING -> LOADING_MODEL -> PROCESSING -> COMPLETED

LOADING_MODEL is skipped when the model cache already holds a matching
model. Any non-terminal state may move to FAILED or CANCELLED. COMPLETED,
FAILED and CANCELLED are terminal: no further transitions or progress
events happen once one of them is reached.

Cancellation is cooperative. cancel() moves the job to CANCELLED at once
and sets an event the worker checks between units of work; an engine
call already in flight is not interrupted, its result is discarded.
"""

import logging
import threading
import uuid
from concurrent.futures import Executor, Future
from typing import Any, Optional, Tuple

from ..engines.model_cache import ModelCache
from ..exceptions import EngineError, InputUnavailable, JobAlreadyRunning, JobCancelled, ProcessingError
from ..models import (
    JobKind,
    JobResult,
    JobState,
    ProgressEvent,
    SummarizationOptions,
    TranscriptionOptions,
    TranscriptionResult,
)
from ..summarization.hierarchical import DEFAULT_CHUNK_SIZE, HierarchicalSummarizer
from .progress import ProgressStream

logger = logging.getLogger(__name__)

STATE_ORDER = {
    JobState.PENDING: 0,
    JobState.INITIALIZING: 1,
    JobState.LOADING_MODEL: 2,
    JobState.PROCESSING: 3,
    JobState.COMPLETED: 4,
    JobState.FAILED: 4,
    JobState.CANCELLED: 4,
}


class JobController:
    """Base controller: state machine, progress emission, cancellation and result delivery."""

    kind: JobKind

    def __init__(self, model_cache: ModelCache, executor: Optional[Executor] = None):
        """
        Initialize the controller.

        Args:
            model_cache: Shared model cache
            executor: Optional executor to run jobs on; a daemon thread per job otherwise
        """
        self.model_cache = model_cache
        self._executor = executor
        self._lock = threading.RLock()

        self.job_id: Optional[str] = None
        self.state = JobState.PENDING
        self.error: Optional[ProcessingError] = None
        self._percent = 0.0
        self._stream: Optional[ProgressStream] = None
        self._future: Optional[Future] = None
        self._cancel_event = threading.Event()

    @property
    def is_active(self) -> bool:
        """True while a started job has not reached a terminal state."""
        with self._lock:
            return self.job_id is not None and not self.state.is_terminal

    @property
    def progress(self) -> Optional[ProgressStream]:
        """Progress stream of the current (or last) job."""
        return self._stream

    @property
    def future(self) -> Optional[Future]:
        """Result future of the current (or last) job."""
        return self._future

    def start(self, job_input: Any, options: Any = None) -> Tuple[ProgressStream, Future]:
        """
        Start a job.

        Args:
            job_input: Audio bytes for transcription, text for summarization
            options: Job options

        Returns:
            Tuple of (progress stream, future resolving to the job result)

        Raises:
            JobAlreadyRunning: If this controller already runs a job
            InputUnavailable: If the required input is missing
        """
        with self._lock:
            if self.is_active:
                raise JobAlreadyRunning(f"Job {self.job_id} is still {self.state.value}")

            self._validate_input(job_input)

            job_id = str(uuid.uuid4())
            self.job_id = job_id
            self.state = JobState.PENDING
            self.error = None
            self._percent = 0.0
            self._cancel_event = threading.Event()
            self._stream = ProgressStream(job_id)
            self._future = Future()
            self._future.set_running_or_notify_cancel()
            self._emit(JobState.PENDING, 0, "Job queued")

            stream, future, cancel_event = self._stream, self._future, self._cancel_event

        logger.info(f"Starting {self.kind.value} job {job_id}")
        if self._executor is not None:
            self._executor.submit(self._run, job_id, job_input, options, cancel_event)
        else:
            worker = threading.Thread(
                target=self._run, args=(job_id, job_input, options, cancel_event), name=f"job-{job_id}", daemon=True
            )
            worker.start()

        return stream, future

    def cancel(self) -> bool:
        """
        Cancel the current job.

        Safe to call repeatedly or after the job finished.

        Returns:
            True if a running job was cancelled, False if there was nothing to cancel
        """
        with self._lock:
            if not self.is_active:
                return False

            self._cancel_event.set()
            error = JobCancelled(f"{self.kind.value.capitalize()} cancelled by user")
            self.state = JobState.CANCELLED
            self.error = error
            self._emit(JobState.CANCELLED, 0, error.message)
            self._future.set_exception(error)

        logger.info(f"Job {self.job_id} cancelled")
        return True

    def _run(self, job_id: str, job_input: Any, options: Any, cancel_event: threading.Event) -> None:
        """Worker body: process the job and commit its terminal state."""
        try:
            self._transition(job_id, JobState.INITIALIZING, 0, f"Preparing {self.kind.value}...")
            result = self._process(job_id, job_input, options, cancel_event)
        except JobCancelled:
            logger.info(f"Job {job_id} stopped after cancellation")
        except ProcessingError as e:
            self._fail(job_id, e)
        except Exception as e:
            logger.exception(f"Unexpected error in job {job_id}")
            self._fail(job_id, EngineError(f"{self.kind.value.capitalize()} failed: {e}"))
        else:
            self._complete(job_id, result, cancel_event)

    def _process(self, job_id: str, job_input: Any, options: Any, cancel_event: threading.Event) -> JobResult:
        raise NotImplementedError

    def _validate_input(self, job_input: Any) -> None:
        pass

    def _transition(
        self,
        job_id: str,
        state: JobState,
        percent: float,
        message: str,
        current_chunk: Optional[int] = None,
        total_chunks: Optional[int] = None,
    ) -> bool:
        """
        Move the job forward and emit a progress event.

        States never move backwards; events from a stale or finished job are dropped.

        Returns:
            True if the event was emitted
        """
        with self._lock:
            if job_id != self.job_id or self.state.is_terminal:
                return False
            if STATE_ORDER[state] > STATE_ORDER[self.state]:
                self.state = state
            self._emit(self.state, percent, message, current_chunk, total_chunks)
            return True

    def _complete(self, job_id: str, result: JobResult, cancel_event: threading.Event) -> None:
        with self._lock:
            if job_id != self.job_id or self.state.is_terminal or cancel_event.is_set():
                logger.info(f"Discarding result of job {job_id} (no longer active)")
                return
            self.state = JobState.COMPLETED
            self._emit(JobState.COMPLETED, 100, f"{self.kind.value.capitalize()} completed!")
            self._future.set_result(result)

        logger.info(f"Job {job_id} completed successfully")

    def _fail(self, job_id: str, error: ProcessingError) -> None:
        with self._lock:
            if job_id != self.job_id or self.state.is_terminal:
                return
            self.state = JobState.FAILED
            self.error = error
            self._emit(JobState.FAILED, 0, error.message)
            self._future.set_exception(error)

        logger.error(f"Job {job_id} failed with error: {error}")

    def _emit(
        self,
        state: JobState,
        percent: float,
        message: str,
        current_chunk: Optional[int] = None,
        total_chunks: Optional[int] = None,
    ) -> None:
        """Publish an event; percent is non-decreasing except on FAILED/CANCELLED."""
        if state in (JobState.FAILED, JobState.CANCELLED):
            percent = 0.0
        else:
            percent = max(float(percent), self._percent)
            self._percent = percent

        self._stream.publish(
            ProgressEvent(
                job_id=self.job_id,
                state=state,
                percent=percent,
                message=message,
                current_chunk=current_chunk,
                total_chunks=total_chunks,
            )
        )


class TranscriptionJobController(JobController):
    """Runs transcription jobs: audio bytes in, TranscriptionResult out."""

    kind = JobKind.TRANSCRIPTION

    def _validate_input(self, job_input: Any) -> None:
        if job_input is None or len(job_input) == 0:
            raise InputUnavailable("No audio data provided", suggestion="Upload an audio file first")

    def _process(
        self, job_id: str, audio: Any, options: Optional[TranscriptionOptions], cancel_event: threading.Event
    ) -> TranscriptionResult:
        options = options or TranscriptionOptions()
        variant = options.model_variant

        if not self.model_cache.is_loaded(JobKind.TRANSCRIPTION, variant):
            self._transition(job_id, JobState.LOADING_MODEL, 10, f"Loading Whisper {variant} model...")

        with self.model_cache.borrow(JobKind.TRANSCRIPTION, variant) as handle:
            if cancel_event.is_set():
                raise JobCancelled()
            self._transition(job_id, JobState.PROCESSING, 30, "Processing audio file...")

            def on_progress(fraction: float) -> None:
                percent = min(30 + fraction * 60, 90)
                self._transition(job_id, JobState.PROCESSING, percent, "Transcribing audio...")

            try:
                output = handle.model.transcribe(
                    audio,
                    language=options.language,
                    return_timestamps=options.return_timestamps,
                    on_progress=on_progress,
                )
            except ProcessingError:
                raise
            except Exception as e:
                raise EngineError(f"Transcription failed: {e}") from e

        segments = list(output.segments)
        confidences = [s.confidence for s in segments if s.confidence is not None]
        language = output.detected_language or (options.language if options.language != "auto" else "unknown")

        return TranscriptionResult(
            text=output.text,
            segments=segments,
            language=language,
            model_used=f"whisper-{variant}",
            duration=segments[-1].end if segments else 0.0,
            confidence=sum(confidences) / len(confidences) if confidences else None,
        )


class SummarizationJobController(JobController):
    """Runs summarization jobs: text in, SummarizationResult out."""

    kind = JobKind.SUMMARIZATION

    def __init__(
        self, model_cache: ModelCache, executor: Optional[Executor] = None, chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        super().__init__(model_cache, executor)
        self.summarizer = HierarchicalSummarizer(model_cache, chunk_size=chunk_size)

    def _validate_input(self, job_input: Any) -> None:
        if job_input is None:
            raise InputUnavailable("No text provided", suggestion="Transcribe an audio file or paste a transcript")

    def _process(
        self, job_id: str, text: str, options: Optional[SummarizationOptions], cancel_event: threading.Event
    ):
        def sink(state, percent, message, current_chunk=None, total_chunks=None):
            self._transition(job_id, state, percent, message, current_chunk, total_chunks)

        return self.summarizer.summarize(text, options or SummarizationOptions(), sink, cancel_event)
