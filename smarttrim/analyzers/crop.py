"""Measure the width of the picture left uncovered by a news banner."""

import re
import time
from pathlib import Path

from loguru import logger

from smarttrim import ffutil
from smarttrim.config import Settings
from smarttrim.models import CropSample

CROPDETECT_PATTERN = re.compile(
    r"\[Parsed_cropdetect_(?P<filter_id>\d+) @ \w+\] "
    r"x1:(?P<x1>\d+) x2:(?P<x2>\d+) "
    r"y1:(?P<y1>\d+) y2:(?P<y2>\d+) "
    r"w:(?P<width>\d+) h:(?P<height>\d+) "
    r"x:(?P<x>\d+) y:(?P<y>\d+) "
    r"pts:\d+ "
    r"t:(?P<time>[\d.]+) "
    r"(?:limit:[\d.]+ )?"
    r"crop=\d+:\d+:\d+:\d+"
)

CROP_FILTER_GRAPH = ";".join([
    "[0:0]extractplanes=y[vy]",
    "[1]extractplanes=y[iy]",
    "[vy][iy]blend=difference,crop=1920:928:0:60,split=2[vc0][vc1]",
    # Mirror onto itself so the detected crop is symmetrical
    "[vc0]hflip[vf]",
    "[vf][vc1]blend=addition,cropdetect=24:2:1",
])


def parse_crop_samples(lines: list[str]) -> list[CropSample]:
    samples: list[CropSample] = []
    for line in lines:
        m = CROPDETECT_PATTERN.search(line)
        if m:
            samples.append(
                CropSample(
                    time=round(float(m.group("time")) * 1000),
                    width=int(m.group("width")),
                )
            )
    return samples


def detect_crop_area(
    input_path: Path, start: int, limit: int, settings: Settings | None = None
) -> list[CropSample]:
    """Run cropdetect over ``[start, start + limit)`` and return (time, width) samples."""
    settings = settings or Settings()
    args = [
        "-copyts",
        *settings.thread_args(),
        "-ss", ffutil.format_seconds(start),
        "-t", ffutil.format_seconds(limit),
        "-i", str(input_path),
        "-i", str(settings.reference_image("news_background.jpg")),
        "-filter_complex", CROP_FILTER_GRAPH,
        "-f", "null", "-",
    ]

    started = time.perf_counter_ns()
    lines = ffutil.execute("ffmpeg", args).stderr
    logger.info(f"Crop scan of {input_path} done in {ffutil.elapsed_ms(started)} ms")

    return parse_crop_samples(lines)
