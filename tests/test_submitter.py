"""
Unit tests for render job submission: local validation and metadata layout.
"""
from __future__ import annotations

import pytest

from storyreel.errors import ValidationFailedError
from storyreel.render import JobSubmitter, build_metadata
from storyreel.render.resolver import ResolutionResult, SceneResolution

from _fakes import ScriptedBackend


class TestBuildMetadata:

    def test_scene_entries_follow_order(self):
        metadata = build_metadata(
            ["one", None, "three"],
            title="Demo",
            description="A demo",
            clip_duration=4.0,
            output_resolution="1920x1080",
            background_music_volume=0.5,
        )

        assert metadata["scenes"] == [
            {"clip_order": 0, "clip_duration": 4.0, "script": "one", "voiceover_order": 0},
            {"clip_order": 1, "clip_duration": 4.0, "script": "", "voiceover_order": 1},
            {"clip_order": 2, "clip_duration": 4.0, "script": "three", "voiceover_order": 2},
        ]
        assert metadata["output_resolution"] == "1920x1080"
        assert metadata["background_music_volume"] == 0.5
        assert metadata["video_title"] == "Demo"
        assert metadata["video_description"] == "A demo"

    def test_defaults_come_from_config(self):
        metadata = build_metadata(["one"], title="Demo")

        assert metadata["scenes"][0]["clip_duration"] == 5.0
        assert metadata["output_resolution"] == "1280x720"
        assert metadata["background_music_volume"] == 0.3


class TestSubmit:

    def test_empty_job_is_rejected_without_a_request(self):
        backend = ScriptedBackend()

        with pytest.raises(ValidationFailedError):
            JobSubmitter(backend).submit([], [], None, build_metadata([], title="x"))

        assert backend.submissions == []

    def test_mismatched_counts_are_rejected_without_a_request(self):
        backend = ScriptedBackend()

        with pytest.raises(ValidationFailedError, match="Mismatched"):
            JobSubmitter(backend).submit([b"a", b"b"], [b"n"], None, build_metadata(["x", "y"], title="x"))

        assert backend.submissions == []

    def test_returns_backend_job_id(self):
        backend = ScriptedBackend(job_id="abc")

        job_id = JobSubmitter(backend).submit([b"a"], [b"n"], b"m", build_metadata(["x"], title="x"))

        assert job_id == "abc"
        assert backend.submissions[0]["music"] == b"m"


class TestSubmitResolution:

    def _resolution(self) -> ResolutionResult:
        return ResolutionResult(scenes=[
            SceneResolution(0, "scene_1", script="one", clip=b"c1", narration=b"n1"),
            SceneResolution(1, "scene_2", script="two", clip=b"c2"),
            SceneResolution(2, "scene_3", script="three", clip=b"c3", narration=b"n3"),
        ], music=b"m")

    def test_only_ready_scenes_are_sent_reindexed(self, storyboard):
        backend = ScriptedBackend()

        JobSubmitter(backend).submit_resolution(self._resolution(), storyboard)

        sent = backend.submissions[0]
        assert sent["clips"] == [b"c1", b"c3"]
        assert sent["narrations"] == [b"n1", b"n3"]
        assert sent["music"] == b"m"
        assert [s["script"] for s in sent["metadata"]["scenes"]] == ["one", "three"]
        assert [s["clip_order"] for s in sent["metadata"]["scenes"]] == [0, 1]
        assert sent["metadata"]["video_title"] == "Launch Video"

    def test_nothing_ready(self, storyboard):
        backend = ScriptedBackend()
        resolution = ResolutionResult(scenes=[SceneResolution(0, "scene_1", clip=b"c")])

        with pytest.raises(ValidationFailedError):
            JobSubmitter(backend).submit_resolution(resolution, storyboard)
        assert backend.submissions == []
