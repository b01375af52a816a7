"""External service integrations."""

from .storage import ObjectStorage, LocalStorage, GCSStorage, create_storage
from .elevenlabs import NarrationClient
from .render_backend import RenderBackendClient
from .anthropic import AnthropicClient

__all__ = [
    "ObjectStorage",
    "LocalStorage",
    "GCSStorage",
    "create_storage",
    "NarrationClient",
    "RenderBackendClient",
    "AnthropicClient",
]
