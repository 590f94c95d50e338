"""
Thread-pool job runner.

This module starts transcription and summarization jobs on a shared
ThreadPoolExecutor, keeps track of their controllers by job id and
persists completed results to the history.

Only active jobs keep their controller. Once a job is finished its status
and result are kept as a snapshot, and only the most recent
max_finished_jobs snapshots are retained.
"""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

from ..engines.model_cache import ModelCache
from ..exceptions import JobCancelled, StoreError
from ..history.query import HistoryQueryEngine
from ..models import JobKind, JobResult, JobState, SummarizationOptions, TranscriptionOptions
from ..summarization.hierarchical import DEFAULT_CHUNK_SIZE
from .controller import JobController, SummarizationJobController, TranscriptionJobController

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINISHED_JOBS = 1000


class JobRunner:
    """Runs jobs concurrently and records their results in the history."""

    def __init__(
        self,
        model_cache: ModelCache,
        history: HistoryQueryEngine,
        max_workers: int = 2,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_finished_jobs: int = DEFAULT_MAX_FINISHED_JOBS,
    ):
        """
        Initialize the job runner.

        Args:
            model_cache: Model cache shared by every job
            history: History receiving completed results
            max_workers: Maximum number of concurrently processing jobs
            chunk_size: Character budget per summarization chunk
            max_finished_jobs: Number of finished job snapshots kept for status and result lookups
        """
        self.model_cache = model_cache
        self.history = history
        self.max_workers = max_workers
        self.chunk_size = chunk_size
        self.max_finished_jobs = max_finished_jobs

        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job")
        self.jobs: Dict[str, JobController] = {}
        self.finished: "OrderedDict[str, Tuple[Dict[str, Any], Optional[JobResult]]]" = OrderedDict()
        self.is_running = True
        self._finalized: Dict[str, threading.Event] = {}

        # Lock for thread safety
        self._lock = threading.Lock()

    def submit_transcription(self, audio: bytes, options: Optional[TranscriptionOptions] = None) -> str:
        """
        Start a transcription job.

        Returns:
            Job ID

        Raises:
            InputUnavailable: If no audio data was given
        """
        controller = TranscriptionJobController(self.model_cache, executor=self.executor)
        return self._submit(controller, audio, options)

    def submit_summarization(
        self, text: str, options: Optional[SummarizationOptions] = None, transcription_id: Optional[str] = None
    ) -> str:
        """
        Start a summarization job.

        Args:
            text: Text to summarize
            options: Summarization options
            transcription_id: History record the summary belongs to, if any

        Returns:
            Job ID
        """
        controller = SummarizationJobController(self.model_cache, executor=self.executor, chunk_size=self.chunk_size)
        # A standalone summary stores its input text; an attached one reuses the transcription record
        record_text = None if transcription_id else text
        return self._submit(controller, text, options, text=record_text, transcription_id=transcription_id)

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a running job.

        Returns:
            True if the job was cancelled, False if it was unknown or already finished
        """
        controller = self.get_controller(job_id)
        if controller is None:
            return False
        return controller.cancel()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until a job is finished and its result handled.

        Returns:
            True if the job finished within the timeout, False otherwise or if unknown
        """
        with self._lock:
            if job_id in self.finished:
                return True
            finalized = self._finalized.get(job_id)
        if finalized is None:
            return False
        return finalized.wait(timeout)

    def get_controller(self, job_id: str) -> Optional[JobController]:
        """Get the controller of an active job."""
        with self._lock:
            return self.jobs.get(job_id)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get the state and latest progress of a job, or None if unknown."""
        with self._lock:
            controller = self.jobs.get(job_id)
            if controller is None:
                snapshot = self.finished.get(job_id)
                return dict(snapshot[0]) if snapshot else None
        return _status_of(job_id, controller)

    def get_result(self, job_id: str) -> Optional[JobResult]:
        """Get the result of a completed job, or None if the job has not completed."""
        with self._lock:
            controller = self.jobs.get(job_id)
            if controller is None:
                snapshot = self.finished.get(job_id)
                return snapshot[1] if snapshot else None
        if controller.state != JobState.COMPLETED:
            return None
        return controller.future.result()

    def get_queue_status(self) -> Dict[str, Any]:
        """Get status information about the runner."""
        with self._lock:
            running_jobs = list(self.jobs)

        return {
            "is_running": self.is_running,
            "running_jobs": running_jobs,
            "max_workers": self.max_workers,
        }

    def stop(self) -> None:
        """Cancel running jobs and shut the executor down."""
        if not self.is_running:
            return

        logger.info("Stopping job runner...")
        self.is_running = False

        with self._lock:
            controllers = list(self.jobs.items())

        for job_id, controller in controllers:
            if controller.cancel():
                logger.info(f"Cancelled job {job_id}")

        self.executor.shutdown(wait=True)
        logger.info("Job runner stopped")

    def _submit(self, controller: JobController, job_input: Any, options: Any, **context) -> str:
        if not self.is_running:
            raise RuntimeError("Cannot start job: job runner is stopped")

        _, future = controller.start(job_input, options)
        job_id = controller.job_id
        with self._lock:
            self.jobs[job_id] = controller
            self._finalized[job_id] = threading.Event()

        future.add_done_callback(
            lambda f, jid=job_id, kind=controller.kind: self._job_completed(jid, kind, f, **context)
        )
        logger.info(f"Job {job_id} submitted ({controller.kind.value})")
        return job_id

    def _job_completed(
        self,
        job_id: str,
        kind: JobKind,
        future: Future,
        text: Optional[str] = None,
        transcription_id: Optional[str] = None,
    ) -> None:
        """Callback called when a job reaches a terminal state."""
        persist_error = None
        try:
            persist_error = self._handle_outcome(job_id, kind, future, text, transcription_id)
        finally:
            self._retire(job_id, future, persist_error)

    def _handle_outcome(
        self, job_id: str, kind: JobKind, future: Future, text: Optional[str], transcription_id: Optional[str]
    ) -> Optional[str]:
        """Persist a completed result; returns the persistence error message, if any."""
        error = future.exception()
        if isinstance(error, JobCancelled):
            logger.info(f"Job {job_id} was cancelled")
            return None
        if error is not None:
            logger.error(f"Job {job_id} failed with error: {error}")
            return None

        result = future.result()
        try:
            if kind == JobKind.TRANSCRIPTION:
                self.history.save_transcription(result, job_id)
            else:
                self.history.save_summary(result, job_id, text=text or "", transcription_id=transcription_id)
        except StoreError as e:
            logger.error(f"Failed to save result of job {job_id}: {e}")
            return e.message

        logger.info(f"Job {job_id} result saved to history")
        return None

    def _retire(self, job_id: str, future: Future, persist_error: Optional[str]) -> None:
        """Replace a finished job's controller with a status/result snapshot."""
        with self._lock:
            controller = self.jobs.get(job_id)

        if controller is not None:
            status = _status_of(job_id, controller)
            if persist_error is not None:
                status["persist_error"] = persist_error
            result = future.result() if controller.state == JobState.COMPLETED else None
        else:
            status, result = None, None

        with self._lock:
            if status is not None:
                self.finished[job_id] = (status, result)
                while len(self.finished) > self.max_finished_jobs:
                    self.finished.popitem(last=False)
            self.jobs.pop(job_id, None)
            finalized = self._finalized.pop(job_id, None)

        if finalized is not None:
            finalized.set()


def _status_of(job_id: str, controller: JobController) -> Dict[str, Any]:
    """Build the status dictionary of a job from its controller."""
    latest = controller.progress.latest if controller.progress else None
    status = {
        "job_id": job_id,
        "kind": controller.kind.value,
        "state": controller.state.value,
        "progress": latest.percent if latest else 0.0,
        "message": latest.message if latest else "",
        "current_chunk": latest.current_chunk if latest else None,
        "total_chunks": latest.total_chunks if latest else None,
    }
    if controller.error is not None:
        status["error"] = controller.error.message
    return status
