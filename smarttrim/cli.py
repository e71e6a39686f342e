"""Thin CLI entry point — builds a SegmentRequest and calls the engine."""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from smarttrim.analyzers.boundaries import detect_news_banners, detect_potential_boundaries
from smarttrim.analyzers.crop import detect_crop_area
from smarttrim.config import load_settings
from smarttrim.engine import process
from smarttrim.log import configure_logging
from smarttrim.manifest import SegmentRequest, load_manifest
from smarttrim.models import CropSample


def _crop_sample(text: str) -> CropSample:
    """Parse ``TIME_MS:WIDTH`` (width may be omitted for full width)."""
    time_part, _, width_part = text.partition(":")
    try:
        return CropSample(time=int(time_part), width=int(width_part) if width_part else None)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid crop sample {text!r}, expected TIME_MS:WIDTH")


def _print_json(items) -> None:
    print(json.dumps([asdict(item) for item in items], indent=2))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="smarttrim",
        description="Trim and segment recorded broadcasts with minimal re-encoding.",
    )
    parser.add_argument("--config", type=Path, help="Path to a JSON settings file")
    parser.add_argument("--log-level", default="INFO", help="Log level (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command")

    proc = sub.add_parser("process", help="Trim a recording")
    proc.add_argument("video", nargs="?", type=Path, help="Input video file")
    proc.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    proc.add_argument("--output", "-o", type=Path, help="Output file path")
    proc.add_argument("--start", type=int, default=0, help="Cut start (ms)")
    proc.add_argument("--end", type=int, help="Cut end (ms)")
    proc.add_argument("--smart-trim", action="store_true", default=None, help="Copy between keyframes, re-encode only the edges")
    proc.add_argument("--crop", type=_crop_sample, action="append", default=[], metavar="TIME_MS:WIDTH", help="Banner crop width from a given time")

    detect = sub.add_parser("detect", help="Find programme boundary candidates")
    detect.add_argument("video", type=Path)
    detect.add_argument("--from", dest="start", type=int, default=0, help="Window start (ms)")
    detect.add_argument("--limit", type=int, help="Window length (ms), default to end of file")

    banners = sub.add_parser("banners", help="Find spans showing the news banner background")
    banners.add_argument("video", type=Path)

    crop = sub.add_parser("cropdetect", help="Measure banner crop widths over a window")
    crop.add_argument("video", type=Path)
    crop.add_argument("--from", dest="start", type=int, default=0, help="Window start (ms)")
    crop.add_argument("--limit", type=int, required=True, help="Window length (ms)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(args.log_level)
    settings = load_settings(args.config)

    if args.command == "detect":
        _print_json(detect_potential_boundaries(args.video, args.start, args.limit, settings))
        return
    if args.command == "banners":
        _print_json(detect_news_banners(args.video, settings))
        return
    if args.command == "cropdetect":
        _print_json(detect_crop_area(args.video, args.start, args.limit, settings))
        return

    if args.manifest:
        request = load_manifest(args.manifest, settings)
    elif args.video:
        output = args.output or args.video.with_stem(args.video.stem + "_trimmed")
        request = SegmentRequest(
            input=args.video,
            output=output,
            start=args.start,
            end=args.end,
            smart_trim=settings.smart_trim if args.smart_trim is None else args.smart_trim,
            crop_samples=sorted(args.crop, key=lambda s: s.time),
        )
    else:
        print("Error: provide either a VIDEO argument or --manifest.", file=sys.stderr)
        sys.exit(1)

    def on_progress(stage: str, frac: float) -> None:
        print(f"  [{frac:3.0%}] {stage}")

    result = process(request, settings, on_progress=on_progress)

    print()
    print(f"Done! Output: {result.output_path}")
    if result.keyframes:
        print(
            f"  Smart trim: copied {result.keyframes.first_keyframe}-"
            f"{result.keyframes.last_keyframe} ms, {len(result.artifacts)} pieces"
        )
