"""Programme boundary detection.

A single ffmpeg pass diffs the top-left quarter of each luma frame against
a set of reference cards (station logo on black, on white, ...) and runs
``blackframe`` on each difference, while ``silencedetect`` watches the
audio. Candidate cut points are runs of near-identical frames that fall
inside a silence. Strategies are tried strictest first and the first one
that finds anything wins.
"""

import re
import time
from pathlib import Path

from loguru import logger

from smarttrim import ffutil
from smarttrim.analyzers.silence import SilenceIndex, parse_silences
from smarttrim.config import Settings
from smarttrim.models import BlackframeMeasurement, DetectedFeature, FrameSearchStrategy

BLACKFRAME_PATTERN = re.compile(
    r"\[Parsed_blackframe_(?P<filter_id>\d+) @ \w+\] "
    r"frame:(?P<frame>\d+) "
    r"pblack:(?P<pct_black>\d+) "
    r"pts:\d+ "
    r"t:(?P<time>[\d.]+) "
    r"type:\w "
    r"last_keyframe:\d+"
)

MINIMUM_BOUNDARY_SILENCE_SECONDS = 0.1

# Filter ids are the Parsed_blackframe_N instance numbers that ffmpeg
# assigns in BOUNDARY_FILTER_GRAPH; reordering the graph renumbers them.
BOUNDARY_STRATEGIES: tuple[FrameSearchStrategy, ...] = (
    FrameSearchStrategy("black-logo", frozenset({11}), min_frames=5, min_silence_seconds=1.5),
    FrameSearchStrategy("white-logo", frozenset({13}), min_frames=5, min_silence_seconds=1.5),
    FrameSearchStrategy("white-borders-logo", frozenset({15}), min_frames=5, min_silence_seconds=1.5),
    FrameSearchStrategy("black-logo-ai-subtitles", frozenset({17}), min_frames=5, min_silence_seconds=1.5),
    FrameSearchStrategy("black-no-logo-ai-subtitles", frozenset({19}), min_frames=5, min_silence_seconds=1.5),
    FrameSearchStrategy("no-logo", frozenset({20}), min_frames=3, min_silence_seconds=0.1),
    FrameSearchStrategy("newsline", frozenset({22}), min_frames=1, min_silence_seconds=0.0),
)

NEWS_BANNER_STRATEGY = FrameSearchStrategy(
    "news-banner-background", frozenset({13}), min_frames=120, max_skip=120
)

REFERENCE_IMAGES = (
    "black_cropped.jpg",
    "white_cropped.jpg",
    "white_borders_cropped.jpg",
    "black_cropped_aisubs.jpg",
    "black_cropped_nologo_aisubs.jpg",
    "newsline_intro.jpg",
)

BOUNDARY_FILTER_GRAPH = ";".join([
    # Luma planes
    "[0:0]extractplanes=y[vy]",
    "[1]extractplanes=y[by]",
    "[2]extractplanes=y[wy]",
    "[3]extractplanes=y[wby]",
    "[4]extractplanes=y[bay]",
    "[5]extractplanes=y[bnlay]",
    "[6]extractplanes=y[nly]",
    "[vy]split=outputs=2[vy0][vy1]",
    # Top-left corner, where the station logo sits
    "[vy0]crop=w=960:h=540:x=0:y=0[cvy]",
    "[cvy]split=outputs=6[cvy0][cvy1][cvy2][cvy3][cvy4][cvy5]",
    "[cvy0][by]blend=difference,blackframe=99",
    "[cvy1][wy]blend=difference,blackframe=99:50",
    "[cvy2][wby]blend=difference,blackframe=99:50",
    "[cvy3][bay]blend=difference,blackframe=99",
    "[cvy4][bnlay]blend=difference,blackframe=99",
    "[cvy5]blackframe=99",
    # Full-frame newsline intro card
    "[vy1][nly]blend=difference,blackframe=99",
    f"[0:1]silencedetect=n=-50dB:d={MINIMUM_BOUNDARY_SILENCE_SECONDS}",
])

NEWS_BANNER_FILTER_GRAPH = ";".join([
    "nullsrc=size=184x800:r=29.97[base]",
    "[0:0]extractplanes=y[vy]",
    "[1]extractplanes=y[iy]",
    "[vy]split=2[vy0][vy1]",
    "[iy]split=2[iy0][iy1]",
    # Left and right margins of the frame and of the banner background
    "[vy0]crop=92:800:0:174[vyl]",
    "[vy1]crop=92:800:1828:174[vyr]",
    "[iy0]crop=92:800:0:174[iyl]",
    "[iy1]crop=92:800:1828:174[iyr]",
    "[vyl][iyl]blend=difference[dl]",
    "[vyr][iyr]blend=difference[dr]",
    # Both margins side by side, measured as one frame
    "[base][dl]overlay=0:0:shortest=1[ol]",
    "[ol][dr]overlay=92:0,blackframe=99:16",
])


def parse_blackframes(lines: list[str]) -> list[BlackframeMeasurement]:
    measurements: list[BlackframeMeasurement] = []
    for line in lines:
        m = BLACKFRAME_PATTERN.search(line)
        if m:
            measurements.append(
                BlackframeMeasurement(
                    filter_id=int(m.group("filter_id")),
                    frame_number=int(m.group("frame")),
                    time=round(float(m.group("time")) * 1000),
                )
            )
    return measurements


def find_blackframe_groups(
    measurements: list[BlackframeMeasurement],
    strategy: FrameSearchStrategy,
    silences: SilenceIndex | None = None,
) -> list[DetectedFeature]:
    """Group measurements matching *strategy* into runs of consecutive frames.

    With *silences* given, only measurements inside a silence of at least
    ``strategy.min_silence_seconds`` are considered.
    """
    matching = [m for m in measurements if m.filter_id in strategy.filter_ids]
    if silences is not None:
        matching = [
            m for m in matching if silences.covers(m.time, strategy.min_silence_seconds)
        ]
    matching.sort(key=lambda m: (m.filter_id, m.frame_number))

    groups: list[list[BlackframeMeasurement]] = []
    for m in matching:
        previous = groups[-1][-1] if groups else None
        if (
            previous is not None
            and previous.filter_id == m.filter_id
            and m.frame_number - previous.frame_number <= strategy.max_skip
        ):
            groups[-1].append(m)
        else:
            groups.append([m])

    return [
        DetectedFeature(
            start=group[0].time,
            end=group[-1].time,
            first_frame=group[0].frame_number,
            last_frame=group[-1].frame_number,
        )
        for group in groups
        if len(group) >= strategy.min_frames
    ]


def _boundary_detection_args(
    input_path: Path, start: int, limit: int | None, settings: Settings
) -> list[str]:
    args = ["-copyts", *settings.thread_args(), "-ss", ffutil.format_seconds(start)]
    if limit:
        args += ["-t", ffutil.format_seconds(limit)]
    args += ["-i", str(input_path)]
    for name in REFERENCE_IMAGES:
        args += ["-i", str(settings.reference_image(name))]
    args += ["-filter_complex", BOUNDARY_FILTER_GRAPH, "-f", "null", "-"]
    return args


def detect_potential_boundaries(
    input_path: Path,
    start: int = 0,
    limit: int | None = None,
    settings: Settings | None = None,
) -> list[DetectedFeature]:
    """Scan ``[start, start + limit)`` (or to EOF) for programme boundaries.

    Returns an empty list when no silence long enough was found or no
    strategy produced a candidate.
    """
    settings = settings or Settings()
    args = _boundary_detection_args(input_path, start, limit, settings)

    started = time.perf_counter_ns()
    lines = ffutil.execute("ffmpeg", args).stderr
    logger.info(f"Boundary scan of {input_path} done in {ffutil.elapsed_ms(started)} ms")

    silences = parse_silences(lines)
    logger.debug(f"Found {len(silences)} silences")
    if not silences:
        logger.info("No silences of sufficient length, terminating boundary search")
        return []

    index = SilenceIndex(silences)
    measurements = parse_blackframes(lines)

    for strategy in BOUNDARY_STRATEGIES:
        candidates = find_blackframe_groups(measurements, strategy, index)
        logger.debug(f"Strategy {strategy.name}: {len(candidates)} boundary candidates")
        if candidates:
            return candidates

    return []


def detect_news_banners(
    input_path: Path, settings: Settings | None = None
) -> list[DetectedFeature]:
    """Find spans where the news banner background fills both side margins."""
    settings = settings or Settings()
    args = [
        *settings.thread_args(),
        "-i", str(input_path),
        "-i", str(settings.reference_image("news_background.jpg")),
        "-filter_complex", NEWS_BANNER_FILTER_GRAPH,
        "-f", "null", "-",
    ]

    started = time.perf_counter_ns()
    lines = ffutil.execute("ffmpeg", args).stderr
    logger.info(f"News banner scan of {input_path} done in {ffutil.elapsed_ms(started)} ms")

    return find_blackframe_groups(parse_blackframes(lines), NEWS_BANNER_STRATEGY)
