"""Synthetic voice catalog model."""

from typing import List, Optional
from pydantic import BaseModel, Field


class Voice(BaseModel):
    """A narration voice offered by the synthesis service."""

    id: str = Field(..., description="Voice identifier used for synthesis")
    name: Optional[str] = None
    description: Optional[str] = None
    preview_url: Optional[str] = None
    gender: Optional[str] = None
    accent: Optional[str] = None


# Used when the voice catalog cannot be fetched
DEFAULT_VOICES: List[Voice] = [
    Voice(id="PcHg6574SeVenDJODonO"),
    Voice(id="mysUMLrLaXJqfLoz2xTV"),
    Voice(id="flHkNRp1BlvT73UL6gyz"),
    Voice(id="i0PqiZmVh7rJEXnK55fF"),
    Voice(id="kH1M7u1IXE6LlQULmZ3Y"),
]
