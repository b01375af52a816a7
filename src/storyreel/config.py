"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class Config(BaseModel):
    """Application configuration."""

    # Rendering backend
    render_backend_url: str = Field(
        default_factory=lambda: os.getenv("STORYREEL_RENDER_URL", ""),
        description="Base URL of the rendering backend"
    )
    render_api_key: str = Field(
        default_factory=lambda: os.getenv("STORYREEL_RENDER_API_KEY", ""),
        description="Bearer token for the rendering backend (optional)"
    )

    # Narration synthesis
    elevenlabs_api_key: str = Field(
        default_factory=lambda: os.getenv("ELEVENLABS_API_KEY", ""),
        description="ElevenLabs API key"
    )
    elevenlabs_model_id: str = Field(
        default_factory=lambda: os.getenv("ELEVENLABS_MODEL_ID", "eleven_monolingual_v1"),
        description="ElevenLabs speech model"
    )

    # Storyboard assistant
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key"
    )
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Default Claude model"
    )

    # Object storage
    storage_backend: str = Field(
        default_factory=lambda: os.getenv("STORYREEL_STORAGE", "local"),
        description="Storage backend: 'local' or 'gcs'"
    )
    storage_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("STORYREEL_STORAGE_DIR", "./storage")),
        description="Root directory for local storage"
    )
    gcs_bucket: str = Field(
        default_factory=lambda: os.getenv("STORYREEL_GCS_BUCKET", ""),
        description="GCS bucket for clips, music and narration"
    )
    google_cloud_project: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""),
        description="Google Cloud project ID"
    )

    # Voiceover cache
    cache_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("STORYREEL_CACHE_DIR", "./.voiceover-cache")),
        description="Directory of the persistent voiceover index"
    )

    # Render job settings
    poll_interval: float = Field(
        default_factory=lambda: _env_float("STORYREEL_POLL_INTERVAL", 5.0),
        description="Seconds between job status polls",
        gt=0,
    )
    job_timeout: float = Field(
        default_factory=lambda: _env_float("STORYREEL_JOB_TIMEOUT", 60.0),
        description="Seconds from submission before a job is timed out",
        gt=0,
    )
    clip_duration: float = Field(
        default_factory=lambda: _env_float("STORYREEL_CLIP_DURATION", 5.0),
        description="Fixed per-scene duration sent to the backend",
        gt=0,
    )
    output_resolution: str = Field(
        default_factory=lambda: os.getenv("STORYREEL_OUTPUT_RESOLUTION", "1280x720"),
        description="Output resolution requested from the backend"
    )
    background_music_volume: float = Field(
        default_factory=lambda: _env_float("STORYREEL_MUSIC_VOLUME", 0.3),
        description="Background music volume (0.0-1.0)",
        ge=0,
        le=1,
    )
    max_concurrent_fetches: int = Field(
        default_factory=lambda: int(os.getenv("STORYREEL_MAX_CONCURRENCY", "4")),
        description="Maximum concurrent asset fetches during resolution",
        ge=1,
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_required(self) -> None:
        """Validate that the assistant credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def validate_render_required(self) -> None:
        """Validate that the rendering backend is configured.

        Raises:
            ValueError: If the backend URL is missing or malformed.
        """
        if not self.render_backend_url:
            raise ValueError(
                "Missing required render configuration: STORYREEL_RENDER_URL. "
                "Set the corresponding environment variable."
            )
        if not self.render_backend_url.startswith(("http://", "https://")):
            raise ValueError(
                f"STORYREEL_RENDER_URL must be an http(s) URL. "
                f"Got: {self.render_backend_url}"
            )

    def validate_synthesis_required(self) -> None:
        """Validate that narration synthesis credentials are set."""
        if not self.elevenlabs_api_key:
            raise ValueError("ELEVENLABS_API_KEY not set")

    def validate_storage_required(self) -> None:
        """Validate the object storage configuration.

        Raises:
            ValueError: If the backend is unknown or GCS settings are missing.
        """
        if self.storage_backend not in ("local", "gcs"):
            raise ValueError(
                f"STORYREEL_STORAGE must be 'local' or 'gcs'. Got: {self.storage_backend}"
            )

        if self.storage_backend == "gcs":
            missing: list[str] = []
            if not self.gcs_bucket:
                missing.append("STORYREEL_GCS_BUCKET")
            if not self.google_cloud_project:
                missing.append("GOOGLE_CLOUD_PROJECT")
            if missing:
                raise ValueError(
                    f"Missing required storage configuration: {', '.join(missing)}. "
                    "Set the corresponding environment variables."
                )


# Global config instance
config = Config()
