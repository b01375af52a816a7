"""Storyboard timeline editing."""

from .timeline import (
    reorder,
    move_between_sections,
    update_scene,
    assign_characters,
    scenes_match,
    merge_regenerated,
    MAX_CHARACTERS_PER_SCENE,
)

__all__ = [
    "reorder",
    "move_between_sections",
    "update_scene",
    "assign_characters",
    "scenes_match",
    "merge_regenerated",
    "MAX_CHARACTERS_PER_SCENE",
]
