"""Asset resolution.

Turns the scene references of a storyboard (clip ids, script + voice,
storyboard music) into the binary payloads a render job needs. Scenes are
resolved concurrently and the caller gets one result once every scene is
done. Problems with one scene never stop the others; they are recorded on
that scene's resolution so the caller sees a complete readiness report.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import config
from ..errors import ErrorKind, NotFoundError, SynthesisFailedError
from ..models.scene import Scene
from ..models.storyboard import Storyboard
from ..models.voiceover import AudioRef
from ..services.elevenlabs import NarrationClient
from ..services.storage import ObjectStorage, clip_ref, music_ref
from .cache import VoiceoverCache

logger = logging.getLogger(__name__)


@dataclass
class SceneIssue:
    """A problem that kept one asset of a scene from resolving."""

    asset: str  # "clip", "narration" or "music"
    kind: ErrorKind
    message: str


@dataclass
class SceneResolution:
    """Resolved payloads and readiness of one scene."""

    position: int
    scene_id: str
    script: Optional[str] = None
    clip: Optional[bytes] = None
    narration: Optional[bytes] = None
    voiceover: Optional[AudioRef] = None
    synthesized: bool = False
    issues: List[SceneIssue] = field(default_factory=list)

    @property
    def has_clip(self) -> bool:
        return self.clip is not None

    @property
    def has_narration(self) -> bool:
        return self.narration is not None

    @property
    def ready(self) -> bool:
        return self.has_clip and self.has_narration

    @property
    def missing(self) -> List[str]:
        """Names of the assets this scene still lacks."""
        missing = []
        if not self.has_clip:
            missing.append("clip")
        if not self.has_narration:
            missing.append("narration")
        return missing


@dataclass
class ResolutionResult:
    """Outcome of resolving a whole storyboard, in flattened scene order."""

    scenes: List[SceneResolution] = field(default_factory=list)
    music: Optional[bytes] = None
    music_issue: Optional[SceneIssue] = None

    @property
    def clips(self) -> List[Optional[bytes]]:
        return [s.clip for s in self.scenes]

    @property
    def narrations(self) -> List[Optional[bytes]]:
        return [s.narration for s in self.scenes]

    @property
    def ready_scenes(self) -> List[SceneResolution]:
        return [s for s in self.scenes if s.ready]

    @property
    def has_ready_scene(self) -> bool:
        return any(s.ready for s in self.scenes)

    @property
    def synthesis_count(self) -> int:
        return sum(1 for s in self.scenes if s.synthesized)

    @property
    def issues(self) -> List[SceneIssue]:
        found = [issue for s in self.scenes for issue in s.issues]
        if self.music_issue:
            found.append(self.music_issue)
        return found


class _ResolutionPass:
    """Shares downloads between scenes within one resolution pass."""

    def __init__(self, storage: ObjectStorage, limit: asyncio.Semaphore) -> None:
        self._storage = storage
        self._limit = limit
        self._downloads: Dict[str, asyncio.Task] = {}

    async def fetch(self, ref: str) -> bytes:
        task = self._downloads.get(ref)
        if task is None:
            task = asyncio.ensure_future(self._download(ref))
            self._downloads[ref] = task
        return await task

    async def _download(self, ref: str) -> bytes:
        async with self._limit:
            logger.debug(f"Fetching {ref}")
            return await asyncio.to_thread(self._storage.fetch, ref)

    @property
    def download_count(self) -> int:
        return len(self._downloads)


class AssetResolver:
    """Resolves storyboard scenes into clip, narration and music bytes.

    Narration always goes through the voiceover cache: a hit is fetched
    from storage and never re-synthesized; a miss is synthesized and
    stored in the cache before it is used.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        cache: VoiceoverCache,
        narrator: NarrationClient,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self._storage = storage
        self._cache = cache
        self._narrator = narrator
        self._max_concurrency = max_concurrency or config.max_concurrent_fetches

    async def resolve(self, storyboard: Storyboard) -> ResolutionResult:
        """Resolve every scene and the storyboard music.

        Each scene's ``voiceover_ref`` is updated to the narration actually
        used, so the persisted storyboard records it.
        """
        scenes = storyboard.flatten()
        limit = asyncio.Semaphore(self._max_concurrency)
        resolution_pass = _ResolutionPass(self._storage, limit)

        logger.info(f"Resolving {len(scenes)} scene(s)")
        scene_results, (music, music_issue) = await asyncio.gather(
            asyncio.gather(*(
                self._resolve_scene(position, scene, resolution_pass, limit)
                for position, scene in enumerate(scenes)
            )),
            self._resolve_music(storyboard.music_id, resolution_pass),
        )

        for scene, resolved in zip(scenes, scene_results):
            if resolved.voiceover is not None:
                scene.voiceover_ref = resolved.voiceover.ref

        result = ResolutionResult(scenes=list(scene_results), music=music, music_issue=music_issue)
        logger.info(
            f"Resolved {len(result.ready_scenes)}/{len(scenes)} ready scene(s), "
            f"{result.synthesis_count} synthesized, {resolution_pass.download_count} download(s)"
        )
        return result

    def resolve_sync(self, storyboard: Storyboard) -> ResolutionResult:
        """Blocking wrapper around :meth:`resolve`."""
        return asyncio.run(self.resolve(storyboard))

    async def _resolve_scene(
        self,
        position: int,
        scene: Scene,
        resolution_pass: _ResolutionPass,
        limit: asyncio.Semaphore,
    ) -> SceneResolution:
        resolved = SceneResolution(position=position, scene_id=scene.id, script=scene.script)

        clip_step = self._resolve_clip(scene, resolved, resolution_pass)
        narration_step = self._resolve_narration(scene, resolved, resolution_pass, limit)
        await asyncio.gather(clip_step, narration_step)

        for issue in resolved.issues:
            logger.warning(f"{scene.id}: {issue.asset} {issue.kind.value}: {issue.message}")
        return resolved

    async def _resolve_clip(
        self,
        scene: Scene,
        resolved: SceneResolution,
        resolution_pass: _ResolutionPass,
    ) -> None:
        if not scene.clip_id:
            return
        try:
            resolved.clip = await resolution_pass.fetch(clip_ref(scene.clip_id))
        except NotFoundError as e:
            resolved.issues.append(SceneIssue("clip", e.kind, e.message))
        except Exception as e:
            resolved.issues.append(SceneIssue("clip", ErrorKind.NOT_FOUND, f"Clip unavailable: {e}"))

    async def _resolve_narration(
        self,
        scene: Scene,
        resolved: SceneResolution,
        resolution_pass: _ResolutionPass,
        limit: asyncio.Semaphore,
    ) -> None:
        if not scene.wants_narration:
            return

        script, voice_id = scene.script, scene.voice_id
        try:
            entry = await asyncio.to_thread(self._cache.lookup, scene.id, script, voice_id)
            if entry is not None:
                resolved.narration = await resolution_pass.fetch(entry.ref)
                resolved.voiceover = entry
                return
        except NotFoundError as e:
            resolved.issues.append(SceneIssue("narration", e.kind, e.message))
            return
        except Exception as e:
            resolved.issues.append(
                SceneIssue("narration", ErrorKind.NOT_FOUND, f"Cached narration unavailable: {e}")
            )
            return

        try:
            async with limit:
                logger.info(f"Synthesizing narration for {scene.id} (voice {voice_id})")
                audio = await asyncio.to_thread(self._narrator.synthesize, script, voice_id)
            entry = await asyncio.to_thread(self._cache.store, scene.id, script, voice_id, audio)
        except SynthesisFailedError as e:
            resolved.issues.append(SceneIssue("narration", e.kind, f"{e.message} [{e.reason}]"))
            return
        except Exception as e:
            resolved.issues.append(
                SceneIssue("narration", ErrorKind.SYNTHESIS_FAILED, f"Narration not stored: {e}")
            )
            return

        resolved.voiceover = entry
        resolved.narration = audio
        resolved.synthesized = True

    async def _resolve_music(
        self,
        music_id: Optional[str],
        resolution_pass: _ResolutionPass,
    ) -> tuple:
        if not music_id:
            return None, None
        try:
            return await resolution_pass.fetch(music_ref(music_id)), None
        except NotFoundError as e:
            logger.warning(f"Background music {music_id}: {e.message}")
            return None, SceneIssue("music", e.kind, e.message)
        except Exception as e:
            logger.warning(f"Background music {music_id}: {e}")
            return None, SceneIssue("music", ErrorKind.NOT_FOUND, f"Music unavailable: {e}")
