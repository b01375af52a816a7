"""Data models for storyboards, narration and render jobs."""

from .scene import Scene, SceneKind
from .storyboard import Section, Storyboard, StoryboardStatus, StoryboardStore
from .voiceover import AudioRef, voiceover_key
from .voice import Voice, DEFAULT_VOICES
from .job import JobStatus, RenderJob, JobStatusReport

__all__ = [
    "Scene",
    "SceneKind",
    "Section",
    "Storyboard",
    "StoryboardStatus",
    "StoryboardStore",
    "AudioRef",
    "voiceover_key",
    "Voice",
    "DEFAULT_VOICES",
    "JobStatus",
    "RenderJob",
    "JobStatusReport",
]
