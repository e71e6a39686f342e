"""Time-keyed filter graphs for zooming past a banner of varying width."""

import math
from typing import Callable, Sequence

from smarttrim.ffutil import format_seconds
from smarttrim.models import CropSample

FULL_CROP_WIDTH = 1920
FULL_CROP_HEIGHT = 1080


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_scale_width(crop_width: int) -> int:
    """Width to scale the frame to so *crop_width* fills the output. Always even."""
    return _round_half_up(FULL_CROP_WIDTH * FULL_CROP_WIDTH / crop_width / 2) * 2


def calculate_overlay_position(crop_width: int) -> int:
    return _round_half_up((crop_width - FULL_CROP_WIDTH) / 2)


def generate_time_sequence(
    calc_value: Callable[[int], int], crop_samples: Sequence[CropSample]
) -> str:
    """Build a nested ``if(gte(t,T),V,...)`` expression over ascending samples.

    At time t the expression yields the value for the latest sample whose
    time is <= t, or the full-width value before the first sample. A
    sample at time 0 applies from the very start.
    """
    expression = str(calc_value(FULL_CROP_WIDTH))
    for sample in crop_samples:
        value = calc_value(sample.width or FULL_CROP_WIDTH)
        if not sample.time:
            expression = str(value)
        else:
            expression = f"if(gte(t,{format_seconds(sample.time)}),{value},{expression})"
    return expression


def compile_filter_chain(
    start: int, crop_samples: Sequence[CropSample], has_thumbnail: bool
) -> str:
    """Return the -filter_complex graph for a trim, or "" when none is needed.

    Crop samples produce a zoomed video labelled ``[c]``; a thumbnail
    stream (input 1, stream 2) is retimed by *start* and labelled ``[tn]``.
    """
    filters: list[str] = []
    if crop_samples:
        overlay_x = generate_time_sequence(calculate_overlay_position, crop_samples)
        scale_w = generate_time_sequence(calculate_scale_width, crop_samples)
        filters += [
            f"nullsrc=size={FULL_CROP_WIDTH}x{FULL_CROP_HEIGHT}:r=29.97[base]",
            f"[base][0:0]overlay='{overlay_x}':0:shortest=1[o]",
            f"[o]scale='{scale_w}':-1:eval=frame:flags=bicubic[s]",
            f"[s]crop={FULL_CROP_WIDTH}:{FULL_CROP_HEIGHT}:0:0[c]",
        ]
    if has_thumbnail:
        filters.append(f"[1:2]setpts=PTS+{format_seconds(start)}/TB[tn]")
    return ";".join(filters)
