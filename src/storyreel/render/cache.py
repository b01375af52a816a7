"""Voiceover cache.

Content-addressed store mapping ``(scene_id, script, voice_id)`` to
synthesized narration. The cache is the single source of truth for
"has this exact narration already been synthesized": lookups never
trigger synthesis and entries are created only from successful synthesis.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from diskcache import Cache

from ..config import config
from ..models.voiceover import AudioRef, voiceover_key
from ..services.storage import ObjectStorage, voiceover_path

logger = logging.getLogger(__name__)


class VoiceoverCache(ABC):
    """Lookup/store interface for synthesized narration."""

    @abstractmethod
    def lookup(self, scene_id: str, script: str, voice_id: str) -> Optional[AudioRef]:
        """Return the cached narration reference for this exact key, if any."""
        ...

    @abstractmethod
    def store(self, scene_id: str, script: str, voice_id: str, audio: bytes) -> AudioRef:
        """Persist freshly synthesized narration, replacing any prior entry."""
        ...

    def close(self) -> None:
        """Release resources held by the cache."""


class InMemoryVoiceoverCache(VoiceoverCache):
    """Process-local index over audio kept in object storage."""

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage
        self._entries: Dict[str, AudioRef] = {}
        self._lock = threading.Lock()

    def lookup(self, scene_id: str, script: str, voice_id: str) -> Optional[AudioRef]:
        with self._lock:
            return self._entries.get(voiceover_key(scene_id, script, voice_id))

    def store(self, scene_id: str, script: str, voice_id: str, audio: bytes) -> AudioRef:
        key = voiceover_key(scene_id, script, voice_id)
        ref = self._storage.upload(voiceover_path(key), audio, content_type="audio/mpeg")
        entry = AudioRef(ref=ref, scene_id=scene_id, script=script, voice_id=voice_id)
        with self._lock:
            self._entries[key] = entry
        return entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PersistentVoiceoverCache(VoiceoverCache):
    """Cache whose index survives restarts.

    Audio bytes live in object storage under ``voiceovers/<key>.mp3``; the
    index (key -> AudioRef) lives in a diskcache directory. ``store``
    uploads before publishing the index entry, so a hit always points at
    complete audio, and a later store for the same key wins.
    """

    INDEX_PREFIX = "voiceover:"

    def __init__(self, storage: ObjectStorage, cache_dir: Optional[Path] = None) -> None:
        self._storage = storage
        self.cache_dir = Path(cache_dir or config.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._index = Cache(str(self.cache_dir))

    def lookup(self, scene_id: str, script: str, voice_id: str) -> Optional[AudioRef]:
        key = voiceover_key(scene_id, script, voice_id)
        data = self._index.get(f"{self.INDEX_PREFIX}{key}")
        if data is None:
            logger.debug(f"Voiceover cache miss for {scene_id}")
            return None
        logger.debug(f"Voiceover cache hit for {scene_id}")
        return AudioRef.model_validate(data)

    def store(self, scene_id: str, script: str, voice_id: str, audio: bytes) -> AudioRef:
        key = voiceover_key(scene_id, script, voice_id)
        ref = self._storage.upload(voiceover_path(key), audio, content_type="audio/mpeg")

        entry = AudioRef(
            ref=ref,
            scene_id=scene_id,
            script=script,
            voice_id=voice_id,
            generated_at=datetime.now(),
        )
        self._index.set(f"{self.INDEX_PREFIX}{key}", entry.model_dump(mode="json"))
        logger.info(f"Cached narration for {scene_id} at {ref}")
        return entry

    def get_stats(self) -> dict:
        """Return index statistics."""
        return {
            "entries": sum(1 for k in self._index.iterkeys() if str(k).startswith(self.INDEX_PREFIX)),
            "size_bytes": self._index.volume(),
            "directory": str(self.cache_dir),
        }

    def clear(self) -> None:
        """Drop every index entry. Stored audio is left in place."""
        self._index.clear()

    def close(self) -> None:
        self._index.close()
