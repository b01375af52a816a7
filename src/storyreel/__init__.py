"""Storyboard composition and render-job orchestration."""

__version__ = "0.1.0"
