"""
Shared pytest fixtures for storyreel tests.

The doubles themselves live in _fakes.py so test modules can build
customized instances.
"""
from __future__ import annotations

import pytest

from storyreel.models import Storyboard
from storyreel.render import InMemoryVoiceoverCache

from _fakes import CountingNarrator, FakeStorage, make_blobs, make_storyboard


@pytest.fixture
def storyboard() -> Storyboard:
    return make_storyboard()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage(make_blobs())


@pytest.fixture
def narrator() -> CountingNarrator:
    return CountingNarrator()


@pytest.fixture
def cache(storage: FakeStorage) -> InMemoryVoiceoverCache:
    return InMemoryVoiceoverCache(storage)
