"""Voiceover cache entry model."""

import hashlib
from datetime import datetime
from pydantic import BaseModel, Field


def voiceover_key(scene_id: str, script: str, voice_id: str) -> str:
    """Content-addressed key for a narration.

    Any change to the scene id, the script text or the voice yields a
    different key.
    """
    digest = hashlib.sha256()
    for part in (scene_id, script, voice_id):
        data = part.encode("utf-8")
        digest.update(len(data).to_bytes(8, "big"))
        digest.update(data)
    return digest.hexdigest()


class AudioRef(BaseModel):
    """Durable reference to synthesized narration for one exact key."""

    ref: str = Field(..., description="Object storage reference of the audio")
    scene_id: str
    script: str
    voice_id: str
    generated_at: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def key(self) -> str:
        return voiceover_key(self.scene_id, self.script, self.voice_id)
