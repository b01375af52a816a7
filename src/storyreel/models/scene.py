"""Scene data model."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class SceneKind(str, Enum):
    """Primary payload type of a scene."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class Scene(BaseModel):
    """Represents a single scene in the storyboard."""

    id: str = Field(..., description="Scene identifier, sequential by flattened position")
    kind: SceneKind = Field(default=SceneKind.TEXT, description="Payload type")
    title: str = Field(default="", description="Short scene title")
    description: str = Field(default="", description="What happens in the scene")
    content: str = Field(default="", description="Inline text, image reference or clip reference")
    script: Optional[str] = Field(None, description="Narration text")
    voice_id: Optional[str] = Field(None, description="Synthetic voice used for the script")
    clip_id: Optional[str] = Field(None, description="Previously uploaded video clip")
    music_id: Optional[str] = Field(None, description="Advisory background track")
    voiceover_ref: Optional[str] = Field(None, description="Storage ref of generated narration")
    subtitles: Optional[str] = Field(None, description="Subtitle text")
    characters_in_scene: List[str] = Field(default_factory=list, description="Characters appearing")
    speaker_character_id: Optional[str] = Field(None, description="Character speaking the script")

    class Config:
        """Pydantic config."""
        frozen = False

    @property
    def wants_narration(self) -> bool:
        """True when the scene has both a script and a voice."""
        return bool(self.script and self.script.strip() and self.voice_id)
