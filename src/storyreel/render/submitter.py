"""Render job submission."""

import logging
from typing import List, Optional, Sequence

from ..config import config
from ..errors import ValidationFailedError
from ..models.storyboard import Storyboard
from ..services.render_backend import RenderBackendClient
from .resolver import ResolutionResult

logger = logging.getLogger(__name__)


def build_metadata(
    scripts: Sequence[Optional[str]],
    title: str,
    description: str = "",
    clip_duration: Optional[float] = None,
    output_resolution: Optional[str] = None,
    background_music_volume: Optional[float] = None,
) -> dict:
    """Build the job metadata for scenes in final order.

    Each entry carries its position, the fixed per-scene duration and the
    script for that position, so the backend can align clips and
    voiceovers without relying on upload order.
    """
    duration = clip_duration if clip_duration is not None else config.clip_duration
    return {
        "scenes": [
            {
                "clip_order": order,
                "clip_duration": duration,
                "script": script or "",
                "voiceover_order": order,
            }
            for order, script in enumerate(scripts)
        ],
        "output_resolution": output_resolution or config.output_resolution,
        "background_music_volume": (
            background_music_volume
            if background_music_volume is not None
            else config.background_music_volume
        ),
        "video_title": title,
        "video_description": description,
    }


class JobSubmitter:
    """Packages resolved assets into one render job request.

    Performs exactly one backend request per ``submit`` and never retries;
    retrying is the caller's decision.
    """

    def __init__(self, backend: RenderBackendClient) -> None:
        self._backend = backend

    def submit(
        self,
        clips: Sequence[bytes],
        narrations: Sequence[bytes],
        music: Optional[bytes],
        metadata: dict,
    ) -> str:
        """Submit a job and return the backend job id.

        Raises:
            ValidationFailedError: If there is nothing to render or the
                clip, narration and metadata counts disagree. No request
                is made in that case.
            SubmissionRejectedError: If the backend refuses the job.
        """
        scene_count = len(metadata.get("scenes", []))
        if not clips:
            raise ValidationFailedError("No ready scenes to render")
        if len(clips) != len(narrations) or len(clips) != scene_count:
            raise ValidationFailedError(
                f"Mismatched job payload: {len(clips)} clip(s), "
                f"{len(narrations)} voiceover(s), {scene_count} metadata scene(s)"
            )

        return self._backend.submit(clips, narrations, music, metadata)

    def submit_resolution(self, resolution: ResolutionResult, storyboard: Storyboard) -> str:
        """Submit the ready scenes of a resolved storyboard, in flattened order.

        Scenes that are not ready are left out of the job.
        """
        ready = resolution.ready_scenes
        if not ready:
            raise ValidationFailedError("No ready scenes to render: every scene needs a clip and narration")

        skipped = len(resolution.scenes) - len(ready)
        if skipped:
            logger.warning(f"Leaving {skipped} scene(s) that are not ready out of the render")

        clips: List[bytes] = [s.clip for s in ready]
        narrations: List[bytes] = [s.narration for s in ready]
        metadata = build_metadata(
            [s.script for s in ready],
            title=storyboard.title,
            description=storyboard.description,
        )
        return self.submit(clips, narrations, resolution.music, metadata)
