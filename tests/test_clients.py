"""
Wire-format tests for the HTTP and SDK clients, driven through injected
session and client doubles. No network access.
"""
from __future__ import annotations

import json
from datetime import timedelta
from types import SimpleNamespace

import pytest
import requests

from storyreel.errors import NotFoundError, SubmissionRejectedError, SynthesisFailedError
from storyreel.models import DEFAULT_VOICES, JobStatus
from storyreel.services.anthropic import AnthropicClient
from storyreel.services.elevenlabs import NarrationClient
from storyreel.services.render_backend import RenderBackendClient
from storyreel.services.storage import GCSStorage, LocalStorage, clip_ref, music_ref

from _fakes import FakeGCSClient, FakeResponse, FakeSession


# ===========================================================================
# Render backend
# ===========================================================================

class TestRenderBackendClient:

    def _client(self, *responses) -> tuple[RenderBackendClient, FakeSession]:
        session = FakeSession(list(responses))
        client = RenderBackendClient(
            base_url="https://render.example.com/", api_key="token", session=session
        )
        return client, session

    def test_submit_multipart_layout(self):
        client, session = self._client(FakeResponse(200, {"success": True, "job_id": "j-7"}))
        metadata = {"scenes": [{"clip_order": 0}, {"clip_order": 1}], "video_title": "T"}

        job_id = client.submit([b"c0", b"c1"], [b"n0", b"n1"], b"m", metadata)

        assert job_id == "j-7"
        call = session.calls[0]
        assert call["url"] == "https://render.example.com/generate-video"
        assert call["headers"] == {"Authorization": "Bearer token"}
        assert call["files"] == [
            ("clips", ("clip_0.mp4", b"c0", "video/mp4")),
            ("clips", ("clip_1.mp4", b"c1", "video/mp4")),
            ("voiceovers", ("voiceover_0.mp3", b"n0", "audio/mpeg")),
            ("voiceovers", ("voiceover_1.mp3", b"n1", "audio/mpeg")),
            ("music", ("music.mp3", b"m", "audio/mpeg")),
        ]
        assert json.loads(call["data"]["metadata"]) == metadata

    def test_submit_without_music_has_no_music_part(self):
        client, session = self._client(FakeResponse(200, {"success": True, "job_id": "j"}))

        client.submit([b"c"], [b"n"], None, {"scenes": [{}]})

        assert [name for name, _ in session.calls[0]["files"]] == ["clips", "voiceovers"]

    @pytest.mark.parametrize("response", [
        FakeResponse(500, text="boom"),
        FakeResponse(200, {"success": False, "error": "quota"}),
        FakeResponse(200, {"success": True}),
        FakeResponse(200, None, text="<html>"),
        requests.ConnectionError("refused"),
    ])
    def test_submit_rejections(self, response):
        client, _ = self._client(response)

        with pytest.raises(SubmissionRejectedError):
            client.submit([b"c"], [b"n"], None, {"scenes": [{}]})

    def test_rejection_keeps_status_code(self):
        client, _ = self._client(FakeResponse(413, text="too large"))

        with pytest.raises(SubmissionRejectedError) as exc_info:
            client.submit([b"c"], [b"n"], None, {"scenes": [{}]})
        assert exc_info.value.status_code == 413

    def test_get_status(self):
        client, session = self._client(
            FakeResponse(200, {"status": "processing", "progress": "45"})
        )

        report = client.get_status("j-7")

        assert session.calls[0]["url"] == "https://render.example.com/job-status/j-7"
        assert report.status == JobStatus.PROCESSING
        assert report.progress == 45

    def test_get_status_unknown_status(self):
        client, _ = self._client(FakeResponse(200, {"status": "exploded"}))
        with pytest.raises(ValueError):
            client.get_status("j")

    @pytest.mark.parametrize("body", [["unexpected"], {"status": "processing", "progress": [1]}])
    def test_get_status_malformed_body(self, body):
        client, _ = self._client(FakeResponse(200, json_data=body))
        with pytest.raises(ValueError):
            client.get_status("job-1")

    def test_get_status_http_error(self):
        client, _ = self._client(FakeResponse(502))
        with pytest.raises(requests.HTTPError):
            client.get_status("j")

    def test_requires_base_url(self, monkeypatch):
        from storyreel.config import config

        monkeypatch.setattr(config, "render_backend_url", "")
        with pytest.raises(ValueError):
            RenderBackendClient(session=FakeSession())


# ===========================================================================
# Narration
# ===========================================================================

class TestNarrationClient:

    def _client(self, *responses) -> tuple[NarrationClient, FakeSession]:
        session = FakeSession(list(responses))
        client = NarrationClient(api_key="xi", model_id="m1", session=session, retry_delay=0)
        return client, session

    def test_synthesize(self):
        client, session = self._client(FakeResponse(200, content=b"ID3audio"))

        audio = client.synthesize("Hello there", "voice-1")

        assert audio == b"ID3audio"
        call = session.calls[0]
        assert call["url"] == "https://api.elevenlabs.io/v1/text-to-speech/voice-1"
        assert call["json"] == {"text": "Hello there", "model_id": "m1"}
        assert call["headers"]["xi-api-key"] == "xi"

    def test_rate_limit_is_retried(self):
        client, session = self._client(
            FakeResponse(429, text="slow down"),
            FakeResponse(200, content=b"audio"),
        )

        assert client.synthesize("Hi", "v") == b"audio"
        assert len(session.calls) == 2

    def test_rate_limit_exhausts_retries(self):
        client, session = self._client(*[FakeResponse(429, text="slow down")] * 3)

        with pytest.raises(SynthesisFailedError) as exc_info:
            client.synthesize("Hi", "v")
        assert exc_info.value.reason == "rate_limited"
        assert len(session.calls) == 3

    @pytest.mark.parametrize("status, reason", [
        (401, "unauthorized"),
        (422, "bad_request"),
        (503, "server_error"),
    ])
    def test_errors_are_not_retried(self, status, reason):
        client, session = self._client(FakeResponse(status, text="nope"))

        with pytest.raises(SynthesisFailedError) as exc_info:
            client.synthesize("Hi", "v")
        assert exc_info.value.reason == reason
        assert len(session.calls) == 1

    def test_empty_text_makes_no_request(self):
        client, session = self._client()

        with pytest.raises(SynthesisFailedError) as exc_info:
            client.synthesize("  ", "v")
        assert exc_info.value.reason == "bad_request"
        assert session.calls == []

    def test_empty_audio(self):
        client, _ = self._client(FakeResponse(200, content=b""))

        with pytest.raises(SynthesisFailedError) as exc_info:
            client.synthesize("Hi", "v")
        assert exc_info.value.reason == "empty_audio"

    def test_transport_errors_exhaust_retries(self):
        client, session = self._client(*[requests.ConnectionError("down")] * 3)

        with pytest.raises(SynthesisFailedError) as exc_info:
            client.synthesize("Hi", "v")
        assert exc_info.value.reason == "transport"
        assert len(session.calls) == 3

    def test_list_voices(self):
        client, _ = self._client(FakeResponse(200, {"voices": [{
            "voice_id": "abc",
            "name": "Rachel",
            "description": "",
            "preview_url": "https://x/p.mp3",
            "labels": {"gender": "Female", "accent": "american"},
        }]}))

        [voice] = client.list_voices()

        assert voice.id == "abc"
        assert voice.name == "Rachel"
        assert voice.description is None
        assert voice.gender == "female"
        assert voice.accent == "american"

    def test_list_voices_falls_back_to_defaults(self):
        client, _ = self._client(FakeResponse(500))

        voices = client.list_voices()

        assert [v.id for v in voices] == [v.id for v in DEFAULT_VOICES]
        assert len(voices) == 5


# ===========================================================================
# Claude
# ===========================================================================

class _FakeMessages:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(content=[SimpleNamespace(text=self.reply)])


class TestAnthropicClient:

    def _client(self, reply: str = "ok") -> tuple[AnthropicClient, _FakeMessages]:
        messages = _FakeMessages(reply)
        client = AnthropicClient(model="test-model", client=SimpleNamespace(messages=messages))
        return client, messages

    def test_chat_sends_system_and_prompt(self):
        client, messages = self._client("Sure.")

        assert client.chat("Hello", system="Be brief") == "Sure."
        assert messages.kwargs["model"] == "test-model"
        assert messages.kwargs["system"] == "Be brief"
        assert messages.kwargs["messages"] == [{"role": "user", "content": "Hello"}]

    def test_history_is_normalized(self):
        client, messages = self._client()
        history = [
            {"role": "assistant", "content": "Welcome!"},
            {"role": "user", "content": "Add a scene"},
            {"role": "assistant", "content": "Done"},
            {"role": "assistant", "content": "Anything else?"},
            {"role": "user", "content": "Yes"},
        ]

        client.chat("Make it shorter", history=history)

        assert messages.kwargs["messages"] == [
            {"role": "user", "content": "Add a scene"},
            {"role": "assistant", "content": "Done\n\nAnything else?"},
            {"role": "user", "content": "Yes\n\nMake it shorter"},
        ]

    def test_no_system_prompt_omits_key(self):
        client, messages = self._client()
        client.chat("Hi")
        assert "system" not in messages.kwargs


# ===========================================================================
# Storage
# ===========================================================================

class TestStorage:

    def test_refs(self):
        assert clip_ref("abc") == "clips/abc"
        assert music_ref("song") == "music/song"
        assert clip_ref("gs://bucket/clips/abc") == "gs://bucket/clips/abc"
        assert clip_ref("uploads/abc.mp4") == "uploads/abc.mp4"

    def test_local_roundtrip(self, tmp_path):
        storage = LocalStorage(root=tmp_path)

        ref = storage.upload("voiceovers/k.mp3", b"mp3")

        assert ref == "voiceovers/k.mp3"
        assert storage.fetch(ref) == b"mp3"
        assert (tmp_path / "voiceovers" / "k.mp3").read_bytes() == b"mp3"
        assert not list((tmp_path / "voiceovers").glob(".upload-*"))

    def test_local_missing(self, tmp_path):
        with pytest.raises(NotFoundError):
            LocalStorage(root=tmp_path).fetch("clips/none")

    def test_http_refs_use_the_session(self, tmp_path):
        session = FakeSession([FakeResponse(200, content=b"clip"), FakeResponse(404)])
        storage = LocalStorage(root=tmp_path, session=session)

        assert storage.fetch("https://cdn.example.com/a.mp4") == b"clip"
        with pytest.raises(NotFoundError):
            storage.fetch("https://cdn.example.com/b.mp4")


class TestGCSStorage:

    def _storage(self) -> tuple[GCSStorage, FakeGCSClient]:
        client = FakeGCSClient()
        return GCSStorage(bucket="gs://reels/", project_id="proj", client=client), client

    def test_upload_and_fetch(self):
        storage, client = self._storage()

        ref = storage.upload("voiceovers/k.mp3", b"mp3", content_type="audio/mpeg")

        assert ref == "gs://reels/voiceovers/k.mp3"
        assert client.buckets["reels"].objects == {"voiceovers/k.mp3": b"mp3"}
        assert storage.fetch(ref) == b"mp3"
        assert storage.fetch("voiceovers/k.mp3") == b"mp3"

    @pytest.mark.parametrize("ref", ["gs://elsewhere/clips/a.mp4", "gs://reels"])
    def test_refs_outside_the_bucket_are_not_found(self, ref):
        storage, _ = self._storage()
        with pytest.raises(NotFoundError):
            storage.fetch(ref)

    def test_signed_url(self):
        storage, client = self._storage()

        url = storage.signed_url("gs://reels/clips/a.mp4", expiration=timedelta(minutes=5))

        assert url.startswith("https://storage.example.com/reels/clips/a.mp4")
        assert client.buckets["reels"].signed == [{
            "name": "clips/a.mp4",
            "version": "v4",
            "expiration": timedelta(minutes=5),
            "method": "GET",
        }]
