"""Tests for boundary, news banner and crop detection."""

from pathlib import Path
from unittest.mock import patch

import pytest

from smarttrim.analyzers import boundaries
from smarttrim.analyzers.boundaries import (
    BOUNDARY_STRATEGIES,
    NEWS_BANNER_STRATEGY,
    detect_news_banners,
    detect_potential_boundaries,
    find_blackframe_groups,
    parse_blackframes,
)
from smarttrim.analyzers.crop import detect_crop_area, parse_crop_samples
from smarttrim.analyzers.silence import SilenceIndex, parse_silences
from smarttrim.config import Settings
from smarttrim.ffutil import ToolOutput
from smarttrim.models import BlackframeMeasurement, CropSample, DetectedFeature, Silence


def _blackframe(filter_id: int, frame: int, seconds: float) -> str:
    return (
        f"[Parsed_blackframe_{filter_id} @ 0x55d1c0a3e4c0] frame:{frame} pblack:99 "
        f"pts:{int(seconds * 90000)} t:{seconds:.6f} type:P last_keyframe:0"
    )


def _silence(end: float, duration: float) -> list[str]:
    return [
        f"[silencedetect @ 0x55d1c0b0a100] silence_start: {end - duration:.3f}",
        f"[silencedetect @ 0x55d1c0b0a100] silence_end: {end:.3f} | silence_duration: {duration:.3f}",
    ]


def _run(filter_id: int, first_frame: int, count: int, start_seconds: float) -> list[str]:
    return [
        _blackframe(filter_id, first_frame + i, start_seconds + i / 30)
        for i in range(count)
    ]


# ---------------------------------------------------------------------------
# Parsing (pure, no subprocess)
# ---------------------------------------------------------------------------

class TestParseSilences:
    def test_completed_silences_only(self):
        lines = _silence(11.5, 2.0) + ["[silencedetect @ 0x1] silence_start: 20.0"]
        assert parse_silences(lines) == [Silence(start_time=9500, end_time=11500)]

    def test_ignores_other_output(self):
        assert parse_silences(["frame=  100 fps=0.0 q=-0.0 size=N/A", ""]) == []


class TestParseBlackframes:
    def test_basic(self):
        lines = [_blackframe(11, 300, 10.01), "unrelated line", _blackframe(20, 301, 10.043)]
        assert parse_blackframes(lines) == [
            BlackframeMeasurement(filter_id=11, frame_number=300, time=10010),
            BlackframeMeasurement(filter_id=20, frame_number=301, time=10043),
        ]


class TestParseCropSamples:
    def test_with_and_without_limit_field(self):
        lines = [
            "[Parsed_cropdetect_5 @ 0x5] x1:210 x2:1709 y1:0 y2:927 w:1500 h:928 "
            "x:210 y:0 pts:1081080 t:12.012000 crop=1500:928:210:0",
            "[Parsed_cropdetect_5 @ 0x5] x1:160 x2:1759 y1:0 y2:927 w:1600 h:928 "
            "x:160 y:0 pts:1084083 t:12.045000 limit:0.094118 crop=1600:928:160:0",
        ]
        assert parse_crop_samples(lines) == [
            CropSample(time=12012, width=1500),
            CropSample(time=12045, width=1600),
        ]


# ---------------------------------------------------------------------------
# SilenceIndex
# ---------------------------------------------------------------------------

class TestSilenceIndex:
    def test_half_open_membership(self):
        index = SilenceIndex([Silence(1000, 3000), Silence(5000, 5200)])
        assert index.covers(1000)
        assert index.covers(2999)
        assert not index.covers(3000)
        assert not index.covers(999)
        assert index.covers(5100)

    def test_minimum_duration(self):
        index = SilenceIndex([Silence(1000, 3000), Silence(5000, 5200)])
        assert index.covers(2000, 1.5)
        assert not index.covers(5100, 1.5)
        assert index.covers(5100, 0.2)

    def test_overlapping_intervals(self):
        index = SilenceIndex([Silence(0, 10000), Silence(2000, 2500)])
        assert index.containing(2200) == [Silence(2000, 2500), Silence(0, 10000)]
        assert index.covers(2200, 5)

    def test_empty(self):
        index = SilenceIndex([])
        assert len(index) == 0
        assert not index.covers(0)


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

BLACK_LOGO = BOUNDARY_STRATEGIES[0]


class TestFindBlackframeGroups:
    def test_contiguous_run(self):
        measurements = parse_blackframes(_run(11, 300, 6, 10.0))
        index = SilenceIndex([Silence(9500, 11500)])
        assert find_blackframe_groups(measurements, BLACK_LOGO, index) == [
            DetectedFeature(start=10000, end=10167, first_frame=300, last_frame=305)
        ]

    def test_gap_splits_runs_and_short_runs_dropped(self):
        lines = _run(11, 300, 5, 10.0) + _run(11, 310, 4, 10.4)
        index = SilenceIndex([Silence(9500, 11500)])
        features = find_blackframe_groups(parse_blackframes(lines), BLACK_LOGO, index)
        assert [(f.first_frame, f.last_frame) for f in features] == [(300, 304)]

    def test_unsorted_input_is_grouped_by_frame(self):
        lines = list(reversed(_run(11, 300, 5, 10.0)))
        index = SilenceIndex([Silence(9500, 11500)])
        features = find_blackframe_groups(parse_blackframes(lines), BLACK_LOGO, index)
        assert features == [DetectedFeature(10000, 10133, 300, 304)]

    def test_frames_outside_long_silence_rejected(self):
        measurements = parse_blackframes(_run(11, 300, 6, 10.0))
        short = SilenceIndex([Silence(9900, 10900)])
        assert find_blackframe_groups(measurements, BLACK_LOGO, short) == []

    def test_other_filters_ignored(self):
        measurements = parse_blackframes(_run(13, 300, 6, 10.0))
        index = SilenceIndex([Silence(9500, 11500)])
        assert find_blackframe_groups(measurements, BLACK_LOGO, index) == []

    def test_max_skip_bridges_gaps(self):
        lines = [_blackframe(13, 1000 + 100 * i, 40 + i * 3.3) for i in range(130)]
        features = find_blackframe_groups(parse_blackframes(lines), NEWS_BANNER_STRATEGY)
        assert len(features) == 1
        assert features[0].first_frame == 1000
        assert features[0].last_frame == 13900


# ---------------------------------------------------------------------------
# detect_potential_boundaries (mocked execute)
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, thread_limit=4)


class TestDetectPotentialBoundaries:
    @patch("smarttrim.analyzers.boundaries.find_blackframe_groups")
    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_no_silence_returns_empty_without_strategies(self, mock_execute, mock_groups, settings):
        mock_execute.return_value = ToolOutput(stdout=[], stderr=_run(11, 300, 6, 10.0))
        assert detect_potential_boundaries(Path("rec.ts"), 0, None, settings) == []
        mock_groups.assert_not_called()

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_strictest_strategy_wins(self, mock_execute, settings):
        stderr = _silence(11.5, 2.0) + _run(11, 300, 6, 10.0) + _run(20, 300, 6, 10.0)
        mock_execute.return_value = ToolOutput(stdout=[], stderr=stderr)

        with patch.object(
            boundaries, "find_blackframe_groups", wraps=boundaries.find_blackframe_groups
        ) as spy:
            features = detect_potential_boundaries(Path("rec.ts"), 0, None, settings)

        assert features == [DetectedFeature(10000, 10167, 300, 305)]
        assert spy.call_count == 1

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_falls_back_to_looser_strategy(self, mock_execute, settings):
        # Logo frames sit in a 1s silence, too short for the logo strategies.
        stderr = _silence(11.0, 1.0) + _run(11, 300, 6, 10.2) + _run(20, 300, 3, 10.2)
        mock_execute.return_value = ToolOutput(stdout=[], stderr=stderr)

        features = detect_potential_boundaries(Path("rec.ts"), 0, None, settings)

        assert features == [DetectedFeature(10200, 10267, 300, 302)]

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_nothing_found(self, mock_execute, settings):
        stderr = _silence(11.5, 2.0) + _run(11, 300, 2, 30.0)
        mock_execute.return_value = ToolOutput(stdout=[], stderr=stderr)
        assert detect_potential_boundaries(Path("rec.ts"), 0, None, settings) == []

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_window_arguments(self, mock_execute, settings):
        mock_execute.return_value = ToolOutput(stdout=[], stderr=[])
        detect_potential_boundaries(Path("rec.ts"), 1500000, 600000, settings)

        command, args = mock_execute.call_args[0]
        assert command == "ffmpeg"
        assert args[:6] == ["-copyts", "-threads", "4", "-ss", "1500", "-t"]
        assert args[args.index("-t") + 1] == "600"
        assert str(settings.data_dir / "black_cropped.jpg") in args
        graph = args[args.index("-filter_complex") + 1]
        assert "silencedetect=n=-50dB:d=0.1" in graph
        assert args[-3:] == ["-f", "null", "-"]

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_open_ended_window(self, mock_execute, settings):
        mock_execute.return_value = ToolOutput(stdout=[], stderr=[])
        detect_potential_boundaries(Path("rec.ts"), 0, None, settings)
        args = mock_execute.call_args[0][1]
        assert "-t" not in args


class TestDetectNewsBanners:
    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_groups_without_silence(self, mock_execute, settings):
        stderr = [_blackframe(13, 500 + i, 20 + i / 30) for i in range(150)]
        mock_execute.return_value = ToolOutput(stdout=[], stderr=stderr)

        features = detect_news_banners(Path("rec.ts"), settings)

        assert features == [DetectedFeature(20000, 24967, 500, 649)]
        args = mock_execute.call_args[0][1]
        assert str(settings.data_dir / "news_background.jpg") in args

    @patch("smarttrim.analyzers.boundaries.ffutil.execute")
    def test_short_appearance_ignored(self, mock_execute, settings):
        stderr = [_blackframe(13, 500 + i, 20 + i / 30) for i in range(60)]
        mock_execute.return_value = ToolOutput(stdout=[], stderr=stderr)
        assert detect_news_banners(Path("rec.ts"), settings) == []


class TestDetectCropArea:
    @patch("smarttrim.analyzers.crop.ffutil.execute")
    def test_bounded_window(self, mock_execute, settings):
        mock_execute.return_value = ToolOutput(
            stdout=[],
            stderr=[
                "[Parsed_cropdetect_5 @ 0x5] x1:210 x2:1709 y1:0 y2:927 w:1500 h:928 "
                "x:210 y:0 pts:1081080 t:12.012000 crop=1500:928:210:0",
            ],
        )
        samples = detect_crop_area(Path("rec.ts"), 12000, 5000, settings)
        assert samples == [CropSample(time=12012, width=1500)]
        args = mock_execute.call_args[0][1]
        assert args[args.index("-ss") + 1] == "12"
        assert args[args.index("-t") + 1] == "5"
