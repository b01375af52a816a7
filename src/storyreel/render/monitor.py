"""Render job monitoring.

State machine::

    idle -> queued -> processing -> completed
                 \\            \\-> failed (backend error or timeout)
                  \\-> failed

Polling runs as one background asyncio task per job. It starts once the
job is queued, stops as soon as a terminal state is reached and can be
cancelled by the caller at any time. The time budget is enforced here,
independently of how long individual status requests take.
"""

import asyncio
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

import requests

from ..config import config
from ..errors import ErrorKind, ValidationFailedError
from ..models.job import JobStatus, JobStatusReport, RenderJob
from ..models.storyboard import Storyboard
from ..services.render_backend import RenderBackendClient

logger = logging.getLogger(__name__)


class JobStateCell:
    """Synchronized holder of the last known job state.

    Readers always get a copy, so a snapshot never changes under them.
    """

    def __init__(self, job: Optional[RenderJob] = None) -> None:
        self._job = job or RenderJob()
        self._lock = threading.Lock()

    def get(self) -> RenderJob:
        with self._lock:
            return replace(self._job)

    def set(self, job: RenderJob) -> RenderJob:
        with self._lock:
            self._job = replace(job)
            return replace(self._job)

    def update(self, **changes) -> RenderJob:
        with self._lock:
            self._job = replace(self._job, **changes)
            return replace(self._job)


class JobMonitor:
    """Tracks one render job at a time for a storyboard.

    On completion the result URL and completion time are written onto the
    storyboard and ``on_complete`` is called to persist it.
    """

    def __init__(
        self,
        backend: RenderBackendClient,
        storyboard: Storyboard,
        on_complete: Optional[Callable[[Storyboard], None]] = None,
        on_update: Optional[Callable[[RenderJob], None]] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            backend: Client used for status requests.
            storyboard: Storyboard that receives the final render reference.
            on_complete: Persists the storyboard after a completed job.
            on_update: Called with a snapshot after every state change.
            poll_interval: Seconds between polls. Defaults to config.poll_interval.
            timeout: Seconds from submission before the job is failed with
                a timeout. Defaults to config.job_timeout.
        """
        self._backend = backend
        self._storyboard = storyboard
        self._on_complete = on_complete
        self._on_update = on_update
        self._poll_interval = poll_interval or config.poll_interval
        self._timeout = timeout or config.job_timeout
        self._state = JobStateCell()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> RenderJob:
        """Snapshot of the current job state."""
        return self._state.get()

    @property
    def is_active(self) -> bool:
        """Whether a job is being polled right now."""
        return self._task is not None and not self._task.done()

    def start(self, job_id: str) -> asyncio.Task:
        """Begin monitoring a freshly submitted job.

        Must be called from a running event loop.

        Raises:
            ValidationFailedError: If another job is still being polled.
        """
        if self.is_active:
            raise ValidationFailedError(
                f"Job {self._state.get().job_id} is still in progress for this storyboard"
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout

        self._publish(self._state.set(RenderJob(
            job_id=job_id,
            status=JobStatus.QUEUED,
            submitted_at=datetime.now(),
        )))
        self._storyboard.mark_processing()
        logger.info(f"Monitoring job {job_id} (every {self._poll_interval}s, timeout {self._timeout}s)")

        self._task = loop.create_task(self._run(job_id, deadline))
        return self._task

    def cancel(self) -> None:
        """Stop polling. The last known job state is kept.

        A new job may be started once :meth:`wait` has returned.
        """
        if self._task is not None and not self._task.done():
            logger.info(f"Cancelling monitor for job {self._state.get().job_id}")
            self._task.cancel()
            self._storyboard.clear_processing()

    async def wait(self) -> RenderJob:
        """Wait until polling stops and return the final snapshot."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self._state.get()

    async def _run(self, job_id: str, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    self._fail_timeout()
                    return

                await asyncio.sleep(min(self._poll_interval, remaining))
                remaining = deadline - loop.time()
                if remaining <= 0:
                    self._fail_timeout()
                    return

                try:
                    report = await asyncio.wait_for(self._poll(job_id), timeout=remaining)
                except asyncio.TimeoutError:
                    self._fail_timeout()
                    return

                if report is not None and self._apply(report):
                    break

            if self._state.get().status == JobStatus.COMPLETED and self._on_complete is not None:
                await asyncio.to_thread(self._on_complete, self._storyboard)

        except asyncio.CancelledError:
            logger.info(f"Stopped polling job {job_id} at status {self._state.get().status.value}")
            raise

        except Exception as e:
            if self._state.get().status.is_terminal:
                logger.error(f"Error after job {job_id} finished: {e}")
            else:
                self._fail(ErrorKind.JOB_FAILED, f"Status polling stopped: {e}")

    async def _poll(self, job_id: str) -> Optional[JobStatusReport]:
        job = self._state.update(poll_count=self._state.get().poll_count + 1)
        logger.debug(f"Polling job {job_id} (attempt {job.poll_count})")
        try:
            return await asyncio.to_thread(self._backend.get_status, job_id)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Error checking job status: {e}")
            return None

    def _apply(self, report: JobStatusReport) -> bool:
        """Apply one poll response. Returns True once the job is terminal."""
        current = self._state.get()

        if report.status in (JobStatus.QUEUED, JobStatus.PROCESSING):
            status = JobStatus.PROCESSING if report.status == JobStatus.PROCESSING else current.status
            progress = current.progress
            if status == JobStatus.PROCESSING and report.progress is not None:
                progress = max(progress, min(100, max(0, report.progress)))
            if status != current.status or progress != current.progress:
                logger.info(f"Job {current.job_id}: {status.value} {progress}%")
                self._publish(self._state.update(status=status, progress=progress))
            return False

        if report.status == JobStatus.COMPLETED and report.video_url:
            self._complete(report)
            return True

        if report.status == JobStatus.COMPLETED:
            self._fail(ErrorKind.JOB_FAILED, "Render completed without a video URL")
        else:
            self._fail(ErrorKind.JOB_FAILED, report.error or "Render failed")
        return True

    def _complete(self, report: JobStatusReport) -> None:
        completed_at = datetime.now()
        progress = self._state.get().progress
        if report.progress is not None:
            progress = max(progress, min(100, report.progress))

        job = self._state.update(
            status=JobStatus.COMPLETED,
            progress=progress,
            result_url=report.video_url,
            completed_at=completed_at,
        )
        logger.info(f"Job {job.job_id} completed: {job.result_url}")

        self._storyboard.record_render(report.video_url, completed_at)
        self._publish(job)

    def _fail_timeout(self) -> None:
        self._fail(ErrorKind.JOB_TIMEOUT, f"Timed out after {self._timeout:.0f}s without a final status")

    def _fail(self, kind: ErrorKind, message: str) -> None:
        job = self._state.update(
            status=JobStatus.FAILED,
            error=message,
            error_kind=kind,
            completed_at=datetime.now(),
        )
        logger.error(f"Job {job.job_id} failed ({kind.value}): {message}")
        self._storyboard.clear_processing()
        self._publish(job)

    def _publish(self, job: RenderJob) -> None:
        if self._on_update is not None:
            self._on_update(job)
