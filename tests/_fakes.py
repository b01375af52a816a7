"""
In-process stand-ins for every remote collaborator:
  - FakeStorage: dict-backed object storage that records fetches and uploads
  - CountingNarrator: deterministic synthesis with a call counter
  - ScriptedBackend: render backend replaying a fixed list of status payloads
  - FakeSession / FakeResponse: requests.Session look-alikes for wire tests
"""
from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Callable, Dict, List, Optional

import requests

from storyreel.errors import NotFoundError, SynthesisFailedError
from storyreel.models import JobStatusReport, Scene, Section, Storyboard
from storyreel.services.storage import ObjectStorage


# ---------------------------------------------------------------------------
# Object storage
# ---------------------------------------------------------------------------

class FakeStorage(ObjectStorage):
    """Dict-backed storage. ``fetch_counts`` counts every fetch per ref."""

    def __init__(self, blobs: Optional[Dict[str, bytes]] = None) -> None:
        super().__init__()
        self.blobs: Dict[str, bytes] = dict(blobs or {})
        self.fetch_counts: Counter = Counter()
        self.uploads: List[str] = []
        self._lock = threading.Lock()

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        with self._lock:
            self.blobs[path] = data
            self.uploads.append(path)
        return path

    def _fetch_stored(self, ref: str) -> bytes:
        with self._lock:
            self.fetch_counts[ref] += 1
            if ref not in self.blobs:
                raise NotFoundError(ref)
            return self.blobs[ref]


# ---------------------------------------------------------------------------
# Narration
# ---------------------------------------------------------------------------

class CountingNarrator:
    """Synthesizes ``b"audio:<voice>:<text>"``; scripts in ``failing`` raise."""

    def __init__(self, failing: Optional[set] = None) -> None:
        self.calls: List[tuple] = []
        self.failing = set(failing or ())
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def synthesize(self, text: str, voice_id: str) -> bytes:
        with self._lock:
            self.calls.append((text, voice_id))
        if text in self.failing:
            raise SynthesisFailedError(f"Refused: {text}", reason="bad_request")
        return narration_bytes(text, voice_id)


def narration_bytes(text: str, voice_id: str) -> bytes:
    return f"audio:{voice_id}:{text}".encode("utf-8")


# ---------------------------------------------------------------------------
# Render backend
# ---------------------------------------------------------------------------

class ScriptedBackend:
    """Render backend double.

    ``statuses`` is replayed one entry per poll; the last entry repeats.
    An entry may be a payload dict, a JobStatusReport or an exception
    instance to raise. ``delay`` makes every status call block that long;
    ``submit_delay`` does the same for submissions.
    """

    def __init__(
        self,
        statuses: Optional[list] = None,
        job_id: str = "job-1",
        delay: float = 0.0,
        submit_delay: float = 0.0,
        on_poll: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.statuses = list(statuses or [{"status": "processing", "progress": 0}])
        self.job_id = job_id
        self.delay = delay
        self.submit_delay = submit_delay
        self.on_poll = on_poll
        self.submissions: List[dict] = []
        self.polls = 0

    def submit(self, clips, narrations, music, metadata) -> str:
        if self.submit_delay:
            time.sleep(self.submit_delay)
        self.submissions.append({
            "clips": list(clips),
            "narrations": list(narrations),
            "music": music,
            "metadata": metadata,
        })
        return self.job_id

    def get_status(self, job_id: str) -> JobStatusReport:
        index = min(self.polls, len(self.statuses) - 1)
        self.polls += 1
        if self.on_poll is not None:
            self.on_poll(self.polls)
        if self.delay:
            time.sleep(self.delay)

        entry = self.statuses[index]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, JobStatusReport):
            return entry
        return JobStatusReport.from_payload(entry)


# ---------------------------------------------------------------------------
# google-cloud-storage doubles
# ---------------------------------------------------------------------------

class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str) -> None:
        self.bucket = bucket
        self.name = name

    def download_as_bytes(self) -> bytes:
        return self.bucket.objects[self.name]

    def upload_from_string(self, data: bytes, content_type: Optional[str] = None) -> None:
        self.bucket.objects[self.name] = data

    def generate_signed_url(self, **kwargs) -> str:
        self.bucket.signed.append({"name": self.name, **kwargs})
        return f"https://storage.example.com/{self.bucket.name}/{self.name}?X-Goog-Signature=abc"


class FakeBucket:
    def __init__(self, name: str) -> None:
        self.name = name
        self.objects: Dict[str, bytes] = {}
        self.signed: List[dict] = []

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


class FakeGCSClient:
    """Stands in for ``google.cloud.storage.Client``."""

    def __init__(self) -> None:
        self.buckets: Dict[str, FakeBucket] = {}

    def bucket(self, name: str) -> FakeBucket:
        return self.buckets.setdefault(name, FakeBucket(name))


# ---------------------------------------------------------------------------
# requests doubles
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int = 200, json_data=None, content: bytes = b"", text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text or (content.decode("utf-8", "replace") if content else "")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records calls."""

    def __init__(self, responses: Optional[list] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    def _next(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


# ---------------------------------------------------------------------------
# Storyboards
# ---------------------------------------------------------------------------

def make_storyboard() -> Storyboard:
    """Two sections, four scenes; scene_3 shares its clip with scene_1."""
    return Storyboard(
        title="Launch Video",
        description="Product launch",
        music_id="track-1",
        sections=[
            Section(label="Hook", scenes=[
                Scene(id="scene_1", title="Opening Shot", script="Meet the future.",
                      voice_id="v1", clip_id="c1"),
                Scene(id="scene_2", title="The Problem", script="Editing is slow.",
                      voice_id="v1", clip_id="c2"),
            ]),
            Section(label="Body", scenes=[
                Scene(id="scene_3", title="The Fix", script="Storyreel makes it fast.",
                      voice_id="v2", clip_id="c1"),
                Scene(id="scene_4", title="Call to Action", script="Try it today.",
                      voice_id="v2", clip_id="c4"),
            ]),
        ],
    )


def make_blobs() -> Dict[str, bytes]:
    return {
        "clips/c1": b"clip-1",
        "clips/c2": b"clip-2",
        "clips/c4": b"clip-4",
        "music/track-1": b"music",
    }
