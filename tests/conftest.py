"""Shared test fixtures."""

import json
import threading
from pathlib import Path

import pytest

from smarttrim.ffutil import ExternalToolFailure, ToolOutput

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


@pytest.fixture
def crop_manifest_path() -> Path:
    return FIXTURES_DIR / "crop_manifest.json"


class FakeTools:
    """Stands in for ffutil.execute, answering ffprobe queries from canned data.

    Every call is recorded; ffmpeg calls succeed with empty output unless
    ``fail_when`` matches their arguments.
    """

    def __init__(self, stream_count=2, keyframes=(), bitrate="4590588", ffmpeg_stderr=()):
        self.stream_count = stream_count
        self.keyframes = list(keyframes)
        self.bitrate = bitrate
        self.ffmpeg_stderr = list(ffmpeg_stderr)
        self.fail_when = None
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, command, args, input_data=None):
        with self._lock:
            self.calls.append((command, list(args), input_data))

        if command == "ffprobe":
            if "-show_format" in args:
                payload = {"format": {"duration": "1800.5", "nb_streams": str(self.stream_count)}}
            elif "-skip_frame" in args:
                payload = {"frames": [{"pts_time": f"{t / 1000:.6f}"} for t in self.keyframes]}
            else:
                payload = {"streams": [{"bit_rate": self.bitrate}]}
            return ToolOutput(stdout=json.dumps(payload).splitlines(), stderr=[])

        if self.fail_when is not None and self.fail_when(args):
            raise ExternalToolFailure(command, args, 1, [], ["Conversion failed!"])
        return ToolOutput(stdout=[], stderr=list(self.ffmpeg_stderr))

    def ffmpeg_calls(self):
        return [(args, data) for cmd, args, data in self.calls if cmd == "ffmpeg"]


@pytest.fixture
def fake_tools():
    return FakeTools
