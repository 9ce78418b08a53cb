"""Error taxonomy for the redaction pipeline."""

from typing import Optional

from callscrub.core.common.enums import FailureCategory


class RedactionPipelineError(Exception):
    """
    Base exception for every pipeline failure.
    Carries enough context (job, stage, cause) to explain a failure without re-running it.
    """
    category: FailureCategory = FailureCategory.INTERNAL

    def __init__(self, message: str, *, job_id: Optional[str] = None,
                 stage: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.stage = stage
        self.cause = cause

    def with_context(self, job_id: str, stage: str) -> "RedactionPipelineError":
        """Fills in job/stage if the raising layer didn't know them."""
        self.job_id = self.job_id or job_id
        self.stage = self.stage or stage
        return self

    def __str__(self) -> str:
        return self.message


class ConfigurationError(RedactionPipelineError):
    """Raised when configuration (e.g. a rule file) is invalid."""
    category = FailureCategory.CONFIGURATION


class CapacityError(RedactionPipelineError):
    """Insufficient scratch space. Fatal for the job, never retried."""
    category = FailureCategory.CAPACITY

    def __init__(self, message: str, *, required_bytes: int = 0, available_bytes: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.required_bytes = required_bytes
        self.available_bytes = available_bytes


class TranscriptionError(RedactionPipelineError):
    """Speech-to-text failure. Transient errors are retried with backoff."""
    category = FailureCategory.TRANSCRIPTION

    def __init__(self, message: str, *, transient: bool = False, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.transient = transient
        self.status_code = status_code


class DetectionError(RedactionPipelineError):
    """Malformed transcript input. Never retried."""
    category = FailureCategory.DETECTION


class EngineError(RedactionPipelineError):
    """External audio tool failure, carrying its captured stderr."""
    category = FailureCategory.ENGINE

    def __init__(self, message: str, *, stderr: str = "", transient: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.stderr = stderr
        self.transient = transient


class PersistenceError(RedactionPipelineError):
    """Storage failure. Surfaced to the caller; redaction work is not repeated."""
    category = FailureCategory.PERSISTENCE


class JobCancelledError(RedactionPipelineError):
    """Raised inside a job once its cancellation token fires."""
    category = FailureCategory.CANCELLED
