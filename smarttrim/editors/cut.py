"""Direct trim — one ffmpeg pass from source to output."""

import time

from loguru import logger

from smarttrim import ffutil
from smarttrim.config import Settings
from smarttrim.editors.filters import compile_filter_chain
from smarttrim.manifest import SegmentRequest


def build_trim_args(
    request: SegmentRequest, has_thumbnail: bool, settings: Settings
) -> list[str]:
    """Arguments for a single-pass trim.

    Streams are copied unless crop samples force a video re-encode through
    the zoom filter graph. A thumbnail is re-read from a second handle on
    the input and retimed to the new start.
    """
    args = ["-y", *settings.thread_args(), "-i", str(request.input)]
    if has_thumbnail:
        args += ["-i", str(request.input)]
    args += ["-ss", ffutil.format_seconds(request.start)]
    if request.end:
        args += ["-to", ffutil.format_seconds(request.end)]
    args += ["-codec", "copy"]

    filter_chain = compile_filter_chain(request.start, request.crop_samples, has_thumbnail)
    if filter_chain:
        args += ["-filter_complex", filter_chain]

    if request.crop_samples:
        args += ["-map", "[c]", "-crf", "19", "-preset", "veryfast", "-codec:v:0", "libx264"]
    else:
        args += ["-map", "0:0"]
    args += ["-map", "0:1"]

    if has_thumbnail:
        args += ["-map", "[tn]", "-codec:v:1", "mjpeg", "-disposition:v:1", "attached_pic"]

    args += ["-map_metadata", "0", "-f", "mp4", str(request.output)]
    return args


def apply_trim(request: SegmentRequest, has_thumbnail: bool, settings: Settings) -> None:
    args = build_trim_args(request, has_thumbnail, settings)

    started = time.perf_counter_ns()
    ffutil.execute("ffmpeg", args)
    logger.info(f"Trimmed {request.output} in {ffutil.elapsed_ms(started)} ms")
