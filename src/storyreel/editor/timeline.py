"""Timeline editing: drag-and-drop reordering and scene edits."""

import logging
import re
from typing import Iterable, List, Optional

from ..models.scene import Scene
from ..models.storyboard import Section, Storyboard

logger = logging.getLogger(__name__)

MAX_CHARACTERS_PER_SCENE = 3

# Fields a regenerated scene inherits from the scene it replaces when left empty
PRESERVED_FIELDS = ("clip_id", "voice_id", "music_id", "subtitles")

EDITABLE_FIELDS = {
    "kind", "title", "description", "content", "script", "voice_id",
    "clip_id", "music_id", "subtitles",
}


def reorder(storyboard: Storyboard, source_index: int, destination_index: int) -> Optional[Scene]:
    """Move the scene at one flattened index so it lands at another.

    The scene leaves its source section and joins whichever section holds
    the destination position; scene ids are renumbered afterwards.

    Returns:
        The moved scene, or None if the source index is out of range.
    """
    scenes = storyboard.flatten()
    if not 0 <= source_index < len(scenes):
        logger.warning(f"Cannot reorder: no scene at position {source_index}")
        return None

    scene = scenes[source_index]
    return storyboard.move_scene(scene.id, max(0, destination_index))


def move_between_sections(
    storyboard: Storyboard,
    source_section: int,
    source_position: int,
    destination_section: int,
    destination_position: int,
) -> Optional[Scene]:
    """Move a scene using section-relative coordinates, as a drop target reports them."""
    if not 0 <= source_section < len(storyboard.sections):
        logger.warning(f"Cannot move scene: section {source_section} not found")
        return None
    scenes = storyboard.sections[source_section].scenes
    if not 0 <= source_position < len(scenes):
        logger.warning(f"Cannot move scene: no scene at {source_section}:{source_position}")
        return None

    return storyboard.move_scene(
        scenes[source_position].id, destination_position, section_index=destination_section
    )


def update_scene(storyboard: Storyboard, scene_id: str, **changes) -> Optional[Scene]:
    """Edit scene fields in place.

    Changing the script or voice drops the scene's voiceover reference,
    since that audio no longer matches.

    Raises:
        ValueError: If a field is not editable.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

    scene = storyboard.get_scene(scene_id)
    if scene is None:
        logger.warning(f"Cannot update scene: {scene_id} not found")
        return None

    narration_changed = any(
        field in changes and changes[field] != getattr(scene, field)
        for field in ("script", "voice_id")
    )
    for field, value in changes.items():
        setattr(scene, field, value)
    if narration_changed:
        scene.voiceover_ref = None
    return scene


def assign_characters(
    storyboard: Storyboard,
    scene_id: str,
    character_ids: Iterable[str],
    speaker_id: Optional[str] = None,
) -> Optional[Scene]:
    """Set the characters appearing in a scene and who speaks its script.

    Raises:
        ValueError: If more than three characters are given or the speaker
            is not one of them.
    """
    characters: List[str] = list(dict.fromkeys(character_ids))
    if len(characters) > MAX_CHARACTERS_PER_SCENE:
        raise ValueError(
            f"A scene can feature at most {MAX_CHARACTERS_PER_SCENE} characters, got {len(characters)}"
        )
    if speaker_id is not None and speaker_id not in characters:
        raise ValueError(f"Speaker {speaker_id} is not in the scene")

    scene = storyboard.get_scene(scene_id)
    if scene is None:
        logger.warning(f"Cannot assign characters: {scene_id} not found")
        return None

    scene.characters_in_scene = characters
    scene.speaker_character_id = speaker_id
    return scene


# ----------------------------------------------------------------------
# Regenerated structure
# ----------------------------------------------------------------------


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _fuzzy_title(value: Optional[str]) -> str:
    return re.sub(r"[^\w\s]", "", (value or "").lower()).strip()


def scenes_match(proposed: Scene, existing: Scene) -> bool:
    """Whether a regenerated scene stands for an existing one.

    Exact title, then description, then content (case-insensitive), then
    one punctuation-free title containing the other.
    """
    for field in ("title", "description", "content"):
        a, b = _norm(getattr(proposed, field)), _norm(getattr(existing, field))
        if a and b and a == b:
            return True

    a, b = _fuzzy_title(proposed.title), _fuzzy_title(existing.title)
    if len(a) > 3 and len(b) > 3 and (a in b or b in a):
        return True
    return False


def merge_regenerated(storyboard: Storyboard, proposed_sections: List[Section]) -> Storyboard:
    """Apply a regenerated section list while keeping attached media.

    Each proposed scene is matched with at most one unused existing scene.
    A match keeps the existing clip, voice, music and subtitles wherever the
    proposal leaves them empty, and the voiceover reference while the
    script and voice are unchanged. Existing scenes without a match are
    dropped. Ids are renumbered on the result.

    Returns:
        A new storyboard; the input is not modified.
    """
    available: List[Scene] = [scene.model_copy(deep=True) for scene in storyboard.flatten()]
    merged_sections: List[Section] = []

    for section in proposed_sections:
        merged_scenes: List[Scene] = []
        for proposed in section.scenes:
            scene = proposed.model_copy(deep=True)
            match_index = next(
                (i for i, existing in enumerate(available) if scenes_match(scene, existing)),
                None,
            )
            if match_index is not None:
                existing = available.pop(match_index)
                logger.debug(f"Matched regenerated scene '{scene.title}' to {existing.id}")
                for field in PRESERVED_FIELDS:
                    if not getattr(scene, field) and getattr(existing, field):
                        setattr(scene, field, getattr(existing, field))
                if (scene.script, scene.voice_id) == (existing.script, existing.voice_id):
                    scene.voiceover_ref = scene.voiceover_ref or existing.voiceover_ref
            merged_scenes.append(scene)

        merged_sections.append(Section(
            label=section.label,
            description=section.description,
            scenes=merged_scenes,
        ))

    for orphan in available:
        logger.info(f"Dropped scene {orphan.id} ('{orphan.title or 'Untitled'}')")

    merged = storyboard.model_copy(deep=True)
    merged.sections = merged_sections
    merged.renumber()
    return merged
