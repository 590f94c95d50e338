"""
Error taxonomy for transcription and summarization jobs.

Every error carries a message suitable for direct display. Job-level errors
move a job to the FAILED state; JobCancelled marks a caller-initiated stop
and is never logged as a fault.

Hierarchy:
    ProcessingError
    ├── ModelLoadError     - model could not be loaded (cache stays usable)
    ├── InputUnavailable   - required input missing, e.g. no audio payload
    ├── EngineError        - inference call failed or returned bad output
    ├── JobCancelled       - caller-initiated cancellation
    ├── JobAlreadyRunning  - controller already owns a non-terminal job
    └── StoreError         - history persistence or query failure
"""

from typing import Optional


class ProcessingError(Exception):
    """Base class for all job processing errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.suggestion:
            return f"{self.message} Suggestion: {self.suggestion}"
        return self.message


class ModelLoadError(ProcessingError):
    """Raised when an inference model fails to load."""

    def __init__(self, engine_kind: str, variant: str, reason: str = "", suggestion: Optional[str] = None):
        self.engine_kind = engine_kind
        self.variant = variant
        message = f"Failed to load {engine_kind} model '{variant}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, suggestion)


class InputUnavailable(ProcessingError):
    """Raised when the input a job needs is missing."""


class EngineError(ProcessingError):
    """Raised when an external inference call fails or returns malformed output."""


class JobCancelled(ProcessingError):
    """Raised when a job was cancelled by its caller."""

    def __init__(self, message: str = "Job cancelled by user"):
        super().__init__(message)


class JobAlreadyRunning(ProcessingError):
    """Raised when start() is called while a job is still in progress."""


class StoreError(ProcessingError):
    """Raised when the history store cannot be read or written."""
