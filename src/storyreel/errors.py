"""Error taxonomy for asset resolution and render jobs."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of failure reported by resolution and job tracking."""

    NOT_FOUND = "not_found"
    SYNTHESIS_FAILED = "synthesis_failed"
    SUBMISSION_REJECTED = "submission_rejected"
    JOB_FAILED = "job_failed"
    JOB_TIMEOUT = "job_timeout"
    VALIDATION_FAILED = "validation_failed"


class StoryreelError(Exception):
    """Base class for all recoverable storyreel errors."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(StoryreelError):
    """A referenced clip, music track or cached narration is absent."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, ref: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Asset not found: {ref}")
        self.ref = ref


class SynthesisFailedError(StoryreelError):
    """The narration service failed to produce audio.

    ``reason`` is a short machine-readable cause: ``rate_limited``,
    ``unauthorized``, ``bad_request``, ``server_error``, ``transport``
    or ``empty_audio``.
    """

    kind = ErrorKind.SYNTHESIS_FAILED

    def __init__(self, message: str, reason: str = "server_error") -> None:
        super().__init__(message)
        self.reason = reason


class SubmissionRejectedError(StoryreelError):
    """The rendering backend refused the job request or could not be reached."""

    kind = ErrorKind.SUBMISSION_REJECTED

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobFailedError(StoryreelError):
    """The rendering backend reported the job as failed."""

    kind = ErrorKind.JOB_FAILED

    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(message)
        self.job_id = job_id


class JobTimeoutError(StoryreelError):
    """No terminal status was observed within the job time budget."""

    kind = ErrorKind.JOB_TIMEOUT

    def __init__(self, job_id: str, timeout: float) -> None:
        super().__init__(f"Job {job_id} did not finish within {timeout:.0f}s")
        self.job_id = job_id
        self.timeout = timeout


class ValidationFailedError(StoryreelError):
    """A submission was attempted that cannot be accepted locally."""

    kind = ErrorKind.VALIDATION_FAILED
