"""Render job state."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..errors import ErrorKind, JobFailedError, JobTimeoutError


class JobStatus(str, Enum):
    """Status of a render job as tracked by the job monitor."""

    IDLE = "idle"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.QUEUED, JobStatus.PROCESSING)


@dataclass
class RenderJob:
    """Last known state of one render job.

    ``result_url`` is set only when completed; ``error`` and
    ``error_kind`` only when failed.
    """

    job_id: Optional[str] = None
    status: JobStatus = JobStatus.IDLE
    progress: int = 0
    result_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    poll_count: int = 0

    @property
    def timed_out(self) -> bool:
        return self.error_kind == ErrorKind.JOB_TIMEOUT

    def raise_for_status(self) -> None:
        """Raise the matching error if the job failed."""
        if self.status != JobStatus.FAILED:
            return
        if self.error_kind == ErrorKind.JOB_TIMEOUT:
            raise JobTimeoutError(self.job_id or "", _timeout_from(self))
        raise JobFailedError(self.job_id or "", self.error or "Render job failed")


def _timeout_from(job: RenderJob) -> float:
    if job.submitted_at and job.completed_at:
        return (job.completed_at - job.submitted_at).total_seconds()
    return 0.0


@dataclass
class JobStatusReport:
    """One poll response from the rendering backend."""

    status: JobStatus
    progress: Optional[int] = None
    video_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "JobStatusReport":
        """Parse a ``/job-status`` response body.

        Raises:
            ValueError: If the body is not an object, the status is missing
                or unknown, or progress is not a number.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Job status body must be an object, got {type(payload).__name__}")

        raw_status = payload.get("status")
        if raw_status not in ("queued", "processing", "completed", "failed"):
            raise ValueError(f"Unknown job status: {raw_status!r}")

        progress = payload.get("progress")
        if progress is not None:
            try:
                progress = int(progress)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid job progress: {progress!r}") from None

        return cls(
            status=JobStatus(raw_status),
            progress=progress,
            video_url=payload.get("video_url"),
            error=payload.get("error"),
        )
