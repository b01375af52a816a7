"""Storyboard data model and structural operations."""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

import yaml
from pydantic import BaseModel, Field, model_validator

from .scene import Scene

logger = logging.getLogger(__name__)

SCENE_ID_PREFIX = "scene_"


def scene_id_for(position: int) -> str:
    """Return the canonical id of the scene at a zero-based flattened position."""
    return f"{SCENE_ID_PREFIX}{position + 1}"


class StoryboardStatus(str, Enum):
    """Lifecycle of the storyboard's rendered output."""
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETE = "complete"


class Section(BaseModel):
    """Ordered group of scenes sharing a narrative role."""

    label: str = Field(..., description="Narrative role, e.g. 'Hook'")
    description: str = Field(default="", description="Section description")
    scenes: List[Scene] = Field(default_factory=list, description="Ordered scenes")

    class Config:
        """Pydantic config."""
        frozen = False


class Storyboard(BaseModel):
    """Ordered sections of scenes; the source of truth for composition intent.

    Flattening the sections yields the canonical scene order used for both
    the timeline and the final render. Scene ids are unique across the
    flattened order; any structural change renumbers them.
    """

    title: str = Field(default="Untitled Video", description="Video title")
    description: str = Field(default="", description="Video description")
    music_id: Optional[str] = Field(None, description="Authoritative background music")
    sections: List[Section] = Field(default_factory=list, description="Ordered sections")
    status: StoryboardStatus = Field(default=StoryboardStatus.DRAFT)
    final_video_url: Optional[str] = Field(None, description="Last completed render")
    last_generated_at: Optional[datetime] = Field(None, description="Completion time of last render")

    class Config:
        """Pydantic config."""
        frozen = False

    @model_validator(mode="after")
    def _ensure_unique_ids(self) -> "Storyboard":
        ids = [scene.id for scene in self.flatten()]
        if len(set(ids)) != len(ids) or not all(ids):
            logger.warning("Storyboard has duplicate or empty scene ids, renumbering")
            self.renumber()
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "Storyboard":
        """Load a storyboard from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save the storyboard to a YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(
                self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def flatten(self) -> List[Scene]:
        """Return all scenes in canonical render order."""
        return [scene for section in self.sections for scene in section.scenes]

    def locate(self, scene_id: str) -> Optional[Tuple[int, int]]:
        """Return ``(section_index, position)`` of a scene, or None."""
        for section_index, section in enumerate(self.sections):
            for position, scene in enumerate(section.scenes):
                if scene.id == scene_id:
                    return section_index, position
        return None

    def get_scene(self, scene_id: str) -> Optional[Scene]:
        """Return the scene with the given id, or None."""
        found = self.locate(scene_id)
        if found is None:
            return None
        section_index, position = found
        return self.sections[section_index].scenes[position]

    def slot_for(self, flat_index: int) -> Tuple[int, int]:
        """Map a flattened insertion index to ``(section_index, position)``.

        The index belongs to the section currently holding that flattened
        position; an index at or past the end appends to the last section.
        """
        if not self.sections:
            raise IndexError("Storyboard has no sections")

        start = 0
        for section_index, section in enumerate(self.sections):
            count = len(section.scenes)
            if start <= flat_index < start + count:
                return section_index, flat_index - start
            start += count

        last = len(self.sections) - 1
        return last, len(self.sections[last].scenes)

    # ------------------------------------------------------------------
    # Structural operations
    # ------------------------------------------------------------------

    def renumber(self) -> Dict[str, str]:
        """Reassign every scene id sequentially by flattened position.

        Callers must re-resolve voiceover cache lookups afterwards, since
        cache keys include the scene id.

        Returns:
            Mapping of old id to new id for scenes whose id changed.
        """
        changed: Dict[str, str] = {}
        for position, scene in enumerate(self.flatten()):
            new_id = scene_id_for(position)
            if scene.id != new_id:
                changed[scene.id] = new_id
                scene.id = new_id
        if changed:
            logger.debug(f"Renumbered {len(changed)} scene(s)")
        return changed

    def insert_scene(
        self,
        section_index: int,
        position: Optional[int] = None,
        scene: Optional[Scene] = None,
    ) -> Optional[Scene]:
        """Insert a scene into a section and renumber.

        Args:
            section_index: Target section.
            position: Position within the section. Appends when omitted;
                clamped to the section bounds.
            scene: Scene to insert. A blank text scene when omitted.

        Returns:
            The inserted scene (with its new id), or None if the section
            does not exist.
        """
        if not 0 <= section_index < len(self.sections):
            logger.warning(f"Cannot insert scene: section {section_index} not found")
            return None

        scenes = self.sections[section_index].scenes
        if position is None:
            position = len(scenes)
        position = max(0, min(position, len(scenes)))

        new_scene = scene if scene is not None else Scene(id="", title="New Scene")
        new_scene.id = f"new_{uuid4().hex}"
        scenes.insert(position, new_scene)
        self.renumber()
        return new_scene

    def remove_scene(self, scene_id: str) -> Optional[Scene]:
        """Remove a scene and renumber.

        Returns:
            The removed scene, or None if no scene has that id.
        """
        found = self.locate(scene_id)
        if found is None:
            logger.warning(f"Cannot remove scene: {scene_id} not found")
            return None

        section_index, position = found
        removed = self.sections[section_index].scenes.pop(position)
        self.renumber()
        return removed

    def move_scene(
        self,
        scene_id: str,
        new_position: int,
        section_index: Optional[int] = None,
    ) -> Optional[Scene]:
        """Move a scene and renumber.

        Only the id and the scene's place change; every other field,
        including clip, voice, music and voiceover references, is kept.

        Args:
            scene_id: Scene to move.
            new_position: Flattened index the scene should end up at, or the
                position within ``section_index`` when that is given.
            section_index: Optional explicit destination section.

        Returns:
            The moved scene, or None if the scene or section does not exist.
        """
        found = self.locate(scene_id)
        if found is None:
            logger.warning(f"Cannot move scene: {scene_id} not found")
            return None
        if section_index is not None and not 0 <= section_index < len(self.sections):
            logger.warning(f"Cannot move scene: section {section_index} not found")
            return None

        src_section, src_position = found
        if section_index is None:
            current = sum(len(s.scenes) for s in self.sections[:src_section]) + src_position
            if new_position == current:
                return self.sections[src_section].scenes[src_position]

        scene = self.sections[src_section].scenes.pop(src_position)

        if section_index is None:
            dest_section, dest_position = self.slot_for(max(0, new_position))
        else:
            dest_section = section_index
            dest_position = max(0, min(new_position, len(self.sections[section_index].scenes)))

        self.sections[dest_section].scenes.insert(dest_position, scene)
        self.renumber()
        return scene

    # ------------------------------------------------------------------
    # Render results
    # ------------------------------------------------------------------

    def mark_processing(self) -> None:
        """Mark that a render job is in flight for this storyboard."""
        self.status = StoryboardStatus.PROCESSING

    def record_render(self, result_url: str, completed_at: datetime) -> None:
        """Store the reference of a completed render."""
        self.final_video_url = result_url
        self.last_generated_at = completed_at
        self.status = StoryboardStatus.COMPLETE

    def clear_processing(self) -> None:
        """Return to the state before the in-flight job started."""
        if self.status == StoryboardStatus.PROCESSING:
            self.status = (
                StoryboardStatus.COMPLETE if self.final_video_url else StoryboardStatus.DRAFT
            )


class StoryboardStore:
    """Durable YAML storage for a single storyboard."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Storyboard:
        return Storyboard.from_yaml(self.path)

    def save(self, storyboard: Storyboard) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        storyboard.to_yaml(self.path)
        logger.debug(f"Saved storyboard to {self.path}")
