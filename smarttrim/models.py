"""Shared data types used across smarttrim.

All times are whole milliseconds unless a field says otherwise.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class DetectedFeature:
    """A contiguous run of matching measurement samples."""

    start: int
    end: int
    first_frame: int
    last_frame: int


@dataclass(frozen=True)
class FrameSearchStrategy:
    """A named detection policy used by the boundary detector."""

    name: str
    filter_ids: frozenset[int]
    min_frames: int
    max_skip: int = 1
    min_silence_seconds: float = 0.0


@dataclass(frozen=True)
class Silence:
    start_time: int
    end_time: int

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class BlackframeMeasurement:
    filter_id: int
    frame_number: int
    time: int


@dataclass(frozen=True)
class CropSample:
    """Crop width in effect from ``time`` until the next sample.

    ``width`` of None means the full frame width.
    """

    time: int
    width: int | None = None


@dataclass(frozen=True)
class KeyframeBoundary:
    first_keyframe: int
    last_keyframe: int


@dataclass(frozen=True)
class TrimArtifact:
    """A temporary file produced by one phase of a smart trim."""

    role: str
    path: Path
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass
class ProbeResult:
    """Container-level metadata extracted via ffprobe."""

    duration: int
    stream_count: int

    @property
    def has_thumbnail(self) -> bool:
        # Video, audio, then an embedded cover image.
        return self.stream_count > 2


@dataclass
class Programme:
    """Broadcast metadata tagged onto a captured recording."""

    title: str | None = None
    subtitle: str | None = None
    description: str | None = None
    content: str | None = None
    start_date: datetime | None = None
    airing_id: str | None = None
    network: str = "NHK World"
