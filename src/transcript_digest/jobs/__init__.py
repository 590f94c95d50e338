"""
Job orchestration: controllers, progress streams and the thread-pool runner.
"""

from .controller import JobController, SummarizationJobController, TranscriptionJobController
from .progress import ProgressStream
from .runner import JobRunner

__all__ = [
    "JobController",
    "SummarizationJobController",
    "TranscriptionJobController",
    "ProgressStream",
    "JobRunner",
]
