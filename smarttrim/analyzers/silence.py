"""Silence measurements and the interval index used to gate boundary candidates."""

import bisect
import re

from smarttrim.models import Silence

SILENCEDETECT_PATTERN = re.compile(
    r"\[silencedetect @ \w+\] "
    r"silence_end: (?P<end_time>[\d.]+) \| "
    r"silence_duration: (?P<duration>[\d.]+)"
)


def parse_silences(lines: list[str]) -> list[Silence]:
    """Parse ``silence_end`` lines from ffmpeg stderr into Silences.

    Only completed silences are reported; a trailing ``silence_start`` with
    no matching end is ignored.
    """
    silences: list[Silence] = []
    for line in lines:
        m = SILENCEDETECT_PATTERN.search(line)
        if not m:
            continue
        end = float(m.group("end_time"))
        duration = float(m.group("duration"))
        silences.append(
            Silence(start_time=round((end - duration) * 1000), end_time=round(end * 1000))
        )
    return silences


class SilenceIndex:
    """Answers "is time T inside a silence lasting at least D seconds?".

    Intervals are half-open ``[start_time, end_time)``. Lookups bisect on
    start times and walk back only while an earlier interval could still
    reach T, which is a single step for ffmpeg's non-overlapping output.
    """

    def __init__(self, silences: list[Silence]) -> None:
        self._silences = sorted(silences, key=lambda s: (s.start_time, s.end_time))
        self._starts = [s.start_time for s in self._silences]
        # Running maximum of end times lets the backward walk stop early.
        self._reach: list[int] = []
        furthest = None
        for s in self._silences:
            furthest = s.end_time if furthest is None else max(furthest, s.end_time)
            self._reach.append(furthest)

    def __len__(self) -> int:
        return len(self._silences)

    def containing(self, time: int) -> list[Silence]:
        """All silences whose interval contains *time*."""
        found: list[Silence] = []
        i = bisect.bisect_right(self._starts, time) - 1
        while i >= 0 and self._reach[i] > time:
            if self._silences[i].end_time > time:
                found.append(self._silences[i])
            i -= 1
        return found

    def covers(self, time: int, min_seconds: float = 0.0) -> bool:
        min_ms = min_seconds * 1000
        return any(s.duration >= min_ms for s in self.containing(time))
