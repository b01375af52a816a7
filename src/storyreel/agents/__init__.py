"""AI agents for storyboard editing."""

from .base import BaseAgent
from .restructure import RestructureAgent, RestructureInput, RestructureResult

__all__ = ["BaseAgent", "RestructureAgent", "RestructureInput", "RestructureResult"]
