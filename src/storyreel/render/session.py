"""One storyboard's render flow: resolve, submit, monitor."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import ValidationFailedError
from ..models.job import RenderJob
from ..models.storyboard import Storyboard
from ..services.render_backend import RenderBackendClient
from .monitor import JobMonitor
from .resolver import AssetResolver, ResolutionResult
from .submitter import JobSubmitter

logger = logging.getLogger(__name__)


@dataclass
class RenderAttempt:
    """A submitted render: what was resolved and the job tracking it."""

    resolution: ResolutionResult
    job_id: str


class RenderSession:
    """Owns the render flow of a single storyboard.

    Only one job is tracked at a time; ``generate`` is rejected while an
    earlier call is still resolving or submitting, or while the previous
    job is still being polled. Nothing here retries: a failed or cancelled
    attempt needs a new ``generate`` call.
    """

    def __init__(
        self,
        storyboard: Storyboard,
        resolver: AssetResolver,
        backend: RenderBackendClient,
        save: Optional[Callable[[Storyboard], None]] = None,
        on_update: Optional[Callable[[RenderJob], None]] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.storyboard = storyboard
        self._resolver = resolver
        self._submitter = JobSubmitter(backend)
        self._save = save
        self._generating = False
        self.monitor = JobMonitor(
            backend,
            storyboard,
            on_complete=save,
            on_update=on_update,
            poll_interval=poll_interval,
            timeout=timeout,
        )

    @property
    def job(self) -> RenderJob:
        return self.monitor.state

    @property
    def busy(self) -> bool:
        """Whether a generate call or job monitoring is under way."""
        return self._generating or self.monitor.is_active

    async def resolve(self) -> ResolutionResult:
        """Resolve assets without submitting, e.g. for a readiness report."""
        resolution = await self._resolver.resolve(self.storyboard)
        await self._persist()
        return resolution

    async def generate(self) -> RenderAttempt:
        """Resolve every scene, submit the ready ones and start monitoring.

        Raises:
            ValidationFailedError: If a job is already active or no scene
                is ready.
            SubmissionRejectedError: If the backend refuses the job.
        """
        if self.busy:
            raise ValidationFailedError(
                f"Job {self.monitor.state.job_id or '(submitting)'} is still in progress for this storyboard"
            )
        if not any(s.clip_id and s.wants_narration for s in self.storyboard.flatten()):
            raise ValidationFailedError(
                "No scene can be rendered: every scene needs a clip, a script and a voice"
            )

        self._generating = True
        try:
            resolution = await self.resolve()
            job_id = await asyncio.to_thread(
                self._submitter.submit_resolution, resolution, self.storyboard
            )
            self.monitor.start(job_id)
        finally:
            self._generating = False

        await self._persist()
        return RenderAttempt(resolution=resolution, job_id=job_id)

    async def wait(self) -> RenderJob:
        return await self.monitor.wait()

    def cancel(self) -> None:
        self.monitor.cancel()

    async def _persist(self) -> None:
        if self._save is not None:
            await asyncio.to_thread(self._save, self.storyboard)
