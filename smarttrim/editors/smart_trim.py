"""Smart trim: copy the keyframe-aligned middle, re-encode only the edges.

The span between the first keyframe at/after the cut start and the last
keyframe at/before the cut end is stream-copied. The short head and tail
outside it ("caps") are re-encoded at the source bitrate, then the pieces
are joined with the concat demuxer and the source metadata and cover
image are restored.

Intermediate files sit next to the input/output and are left in place.
"""

import time
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path

from loguru import logger

from smarttrim import ffutil
from smarttrim.models import KeyframeBoundary, TrimArtifact

START_SUFFIX = ".smarttrim.start"
MID_SUFFIX = ".smarttrim.mid"
END_SUFFIX = ".smarttrim.end"
FINAL_SUFFIX = ".smarttrim.FINAL.mp4"

# mp4 timescale of MPEG-TS sources; pieces must match or playback speed drifts.
VIDEO_TRACK_TIMESCALE = "90000"


def _suffixed(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def fragment_args(
    input_path: Path, output_path: Path, start: int, end: int, bitrate: int | None
) -> list[str]:
    """Cut ``[start, end)``; re-encode video at *bitrate*, or copy it when None."""
    video_codec = ["-c:0", "copy"] if bitrate is None else ["-c:0", "libx264", "-b:0", str(bitrate)]
    return [
        "-y",
        "-ss", ffutil.format_seconds(start),
        "-i", str(input_path),
        "-ss", "0",
        "-t", ffutil.format_seconds(end - start),
        "-map", "0:0", *video_codec,
        "-map", "0:1", "-c:1", "copy",
        "-video_track_timescale", VIDEO_TRACK_TIMESCALE,
        "-ignore_unknown",
        "-f", "mp4",
        str(output_path),
    ]


def render_fragment(
    input_path: Path, role: str, suffix: str, start: int, end: int, bitrate: int | None
) -> TrimArtifact | None:
    """Render one piece; a zero-length span yields no file and None."""
    if end - start <= 0:
        logger.debug(f"Smart trim: skipping empty {role} for {input_path}")
        return None

    output_path = _suffixed(input_path, suffix)
    logger.info(f"Smart trim: rendering {role} for {input_path}")
    started = time.perf_counter_ns()
    ffutil.execute("ffmpeg", fragment_args(input_path, output_path, start, end, bitrate))
    logger.info(f"Rendering {output_path} done in {ffutil.elapsed_ms(started)} ms")
    return TrimArtifact(role=role, path=output_path, start=start, end=end)


def render_fragments(
    input_path: Path,
    start: int,
    end: int,
    boundary: KeyframeBoundary,
    bitrate: int,
) -> list[TrimArtifact]:
    """Render start cap, middle and end cap concurrently.

    All three are awaited before any failure is raised, so nothing is
    concatenated from a partial set.
    """
    first, last = boundary.first_keyframe, boundary.last_keyframe
    if last < first:
        # No keyframe inside the cut: the whole segment is one re-encoded piece.
        jobs = [("start-cap", START_SUFFIX, start, end, bitrate)]
    else:
        jobs = [
            ("start-cap", START_SUFFIX, start, first, bitrate),
            ("mid", MID_SUFFIX, first, last, None),
            ("end-cap", END_SUFFIX, last, end, bitrate),
        ]
    with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
        futures = [executor.submit(render_fragment, input_path, *job) for job in jobs]
        wait(futures)

    artifacts = [future.result() for future in futures]
    return [artifact for artifact in artifacts if artifact is not None]


def _quote(path: Path) -> str:
    return "'" + str(path).replace("'", "'\\''") + "'"


def build_concat_plan(artifacts: list[TrimArtifact]) -> bytes:
    """Serialize the pieces as a concat demuxer script."""
    return "".join(f"file {_quote(a.path)}\n" for a in artifacts).encode("utf-8")


def concat_args(output_path: Path) -> list[str]:
    return [
        "-y",
        "-hide_banner",
        "-f", "concat",
        "-safe", "0",
        "-protocol_whitelist", "pipe,file,fd",
        "-i", "-",
        "-map", "0:0", "-c:0", "copy", "-disposition:0", "default",
        "-map", "0:1", "-c:1", "copy", "-disposition:1", "default",
        "-movflags", "+faststart",
        "-default_mode", "infer_no_subs",
        "-video_track_timescale", VIDEO_TRACK_TIMESCALE,
        "-ignore_unknown",
        "-f", "mp4",
        str(output_path),
    ]


def concat_fragments(artifacts: list[TrimArtifact], output_path: Path) -> None:
    started = time.perf_counter_ns()
    ffutil.execute("ffmpeg", concat_args(output_path), build_concat_plan(artifacts))
    logger.info(f"Concatenating {output_path} done in {ffutil.elapsed_ms(started)} ms")


def restore_metadata_args(
    original_path: Path, trimmed_path: Path, output_path: Path, has_thumbnail: bool
) -> list[str]:
    args = ["-y", "-i", str(original_path), "-i", str(trimmed_path)]
    if has_thumbnail:
        args += ["-map", "0:2", "-c", "copy"]
    args += ["-map", "1", "-c", "copy", "-map_metadata", "0", "-f", "mp4", str(output_path)]
    return args


def restore_metadata(
    original_path: Path, trimmed_path: Path, output_path: Path, has_thumbnail: bool
) -> None:
    args = restore_metadata_args(original_path, trimmed_path, output_path, has_thumbnail)
    started = time.perf_counter_ns()
    ffutil.execute("ffmpeg", args)
    logger.info(f"Copying metadata to {output_path} done in {ffutil.elapsed_ms(started)} ms")


def smart_trim(
    input_path: Path,
    output_path: Path,
    start: int,
    end: int,
    has_thumbnail: bool,
) -> tuple[KeyframeBoundary, list[TrimArtifact]]:
    """Run the full smart trim; returns the keyframe boundary and pieces used."""
    started = time.perf_counter_ns()

    boundary = ffutil.get_keyframe_boundaries(input_path, start, end)
    logger.debug(
        f"Smart trim keyframes for {input_path}: "
        f"{boundary.first_keyframe} ms / {boundary.last_keyframe} ms"
    )
    bitrate = ffutil.probe_bitrate(input_path)

    artifacts = render_fragments(input_path, start, end, boundary, bitrate)

    final_path = _suffixed(output_path, FINAL_SUFFIX)
    concat_fragments(artifacts, final_path)
    restore_metadata(input_path, final_path, output_path, has_thumbnail)

    logger.info(f"Smart trim done in {ffutil.elapsed_ms(started)} ms")
    return boundary, artifacts
