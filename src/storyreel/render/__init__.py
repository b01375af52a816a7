"""Asset resolution, voiceover caching and render job orchestration."""

from .cache import VoiceoverCache, InMemoryVoiceoverCache, PersistentVoiceoverCache
from .resolver import AssetResolver, ResolutionResult, SceneResolution, SceneIssue
from .submitter import JobSubmitter, build_metadata
from .monitor import JobMonitor, JobStateCell
from .session import RenderSession, RenderAttempt

__all__ = [
    "VoiceoverCache",
    "InMemoryVoiceoverCache",
    "PersistentVoiceoverCache",
    "AssetResolver",
    "ResolutionResult",
    "SceneResolution",
    "SceneIssue",
    "JobSubmitter",
    "build_metadata",
    "JobMonitor",
    "JobStateCell",
    "RenderSession",
    "RenderAttempt",
]
