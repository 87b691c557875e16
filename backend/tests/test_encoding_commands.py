"""
Tests for ffmpeg argument builders and output naming.
"""

from pathlib import Path

import pytest

from compsync.encoding.commands import (
    OutputTarget,
    audio_track_index,
    build_copy_args,
    build_mux_args,
    build_reencode_args,
    build_video_only_args,
    output_filename,
    plan_outputs,
)
from compsync.settings.models import DEFAULT_TRACK_MAPPING


class TestOutputNaming:
    def test_names_with_prefix(self):
        assert output_filename("performance", "101_Sparkle") == "101_Sparkle_P_performance.mp4"
        assert output_filename("judge3", "101_Sparkle") == "101_Sparkle_J3_commentary.mp4"

    def test_names_without_prefix(self):
        assert output_filename("performance") == "P_performance.mp4"
        assert output_filename("judge1", "") == "J1_commentary.mp4"

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            output_filename("audience")


class TestTrackMapping:
    def test_default_mapping(self):
        assert audio_track_index("performance", DEFAULT_TRACK_MAPPING) == 0
        assert audio_track_index("judge1", DEFAULT_TRACK_MAPPING) == 1
        assert audio_track_index("judge3", DEFAULT_TRACK_MAPPING) == 3

    def test_custom_mapping(self):
        """
        GIVEN: Judge 1 wired to track 4 and performance to track 2
        WHEN: Resolving stream indices
        THEN: Indices follow the mapping (track N -> stream N-1)
        """
        mapping = {"track2": "performance", "track4": "judge1"}

        assert audio_track_index("performance", mapping) == 1
        assert audio_track_index("judge1", mapping) == 3

    def test_fallback_when_role_unmapped(self):
        assert audio_track_index("performance", {}) == 0
        assert audio_track_index("judge2", {}) == 2

    def test_plan_outputs_order(self, tmp_path):
        targets = plan_outputs(tmp_path, 2, DEFAULT_TRACK_MAPPING, "101")

        assert [t.role for t in targets] == ["performance", "judge1", "judge2"]
        assert targets[0].path == tmp_path / "101_P_performance.mp4"
        assert [t.audio_index for t in targets] == [0, 1, 2]

    def test_plan_outputs_without_judges(self, tmp_path):
        targets = plan_outputs(tmp_path, 0, {}, "")

        assert len(targets) == 1
        assert targets[0].path.name == "P_performance.mp4"


class TestArgumentBuilders:
    def targets(self, tmp_path):
        return [
            OutputTarget("performance", tmp_path / "P_performance.mp4", 0),
            OutputTarget("judge1", tmp_path / "J1_commentary.mp4", 1),
        ]

    def test_copy_args_map_each_audio_track(self, tmp_path):
        args = build_copy_args("/rec/in.mkv", self.targets(tmp_path))

        assert args[:4] == ["-y", "-hide_banner", "-i", "/rec/in.mkv"]
        assert args.count("-c") == 2
        assert "0:a:0" in args and "0:a:1" in args
        assert args[-1] == str(tmp_path / "J1_commentary.mp4")
        assert "ffmpeg" not in args

    def test_reencode_args_scale(self, tmp_path):
        args = build_reencode_args("/rec/in.mkv", self.targets(tmp_path), "1280:720")

        assert args.count("scale=1280:720") == 2
        assert args.count("libx264") == 2

    def test_video_only_drops_audio(self, tmp_path):
        args = build_video_only_args("/rec/in.mkv", tmp_path / "_temp_video.mp4")

        assert "-an" in args
        assert "-vf" not in args
        assert args[-1] == str(tmp_path / "_temp_video.mp4")

    def test_mux_args(self, tmp_path):
        target = OutputTarget("judge1", tmp_path / "J1_commentary.mp4", 1)

        args = build_mux_args(Path(tmp_path / "_temp_video.mp4"), "/rec/in.mkv", target)

        assert "-shortest" in args
        assert "1:a:1" in args
        assert args[args.index("-c:v") + 1] == "copy"
        assert args[-1] == str(target.path)
