"""FFmpeg/ffprobe subprocess helpers."""

import json
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from smarttrim.config import Settings
from smarttrim.models import KeyframeBoundary, ProbeResult, Programme

# Half-width of the keyframe search windows around each cut point.
KEYFRAME_WINDOW_MS = 5_000


class FFmpegNotFoundError(RuntimeError):
    pass


class ExternalToolFailure(RuntimeError):
    """Raised when ffmpeg/ffprobe exits abnormally.

    Both captured streams are kept for diagnosis.
    """

    def __init__(
        self,
        command: str,
        args: list[str],
        returncode: int,
        stdout: list[str],
        stderr: list[str],
    ) -> None:
        tail = stderr[-1] if stderr else "no output"
        super().__init__(f"{command} failed (rc={returncode}): {tail}")
        self.command = command
        self.arguments = args
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ProbeParseFailure(ValueError):
    """Raised when ffprobe output lacks the expected structured data."""
    pass


@dataclass
class ToolOutput:
    stdout: list[str]
    stderr: list[str]


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def format_seconds(ms: int | float) -> str:
    """Render milliseconds as the shortest decimal seconds string (144311 -> "144.311")."""
    text = repr(ms / 1000)
    return text[:-2] if text.endswith(".0") else text


def elapsed_ms(started: int) -> int:
    return (time.perf_counter_ns() - started) // 1_000_000


def execute(
    command: str, args: list[str], input_data: bytes | None = None
) -> ToolOutput:
    """Run *command* with *args*, optionally piping *input_data* to stdin.

    Returns the captured stdout/stderr as lists of lines. A non-zero exit
    raises ExternalToolFailure.
    """
    logger.debug(f"Invoking {command} with args: {' '.join(args)}")
    started = time.perf_counter_ns()
    result = subprocess.run(
        [command, *args],
        input=input_data,
        stdin=None if input_data is not None else subprocess.DEVNULL,
        capture_output=True,
    )
    stdout = result.stdout.decode("utf-8", errors="replace").splitlines()
    stderr = result.stderr.decode("utf-8", errors="replace").splitlines()
    logger.debug(f"{command} exited with {result.returncode} after {elapsed_ms(started)} ms")

    if result.returncode != 0:
        raise ExternalToolFailure(command, args, result.returncode, stdout, stderr)
    return ToolOutput(stdout=stdout, stderr=stderr)


def _load_json(output: ToolOutput, path: Path) -> dict:
    try:
        data = json.loads("".join(output.stdout))
    except json.JSONDecodeError as e:
        raise ProbeParseFailure(f"ffprobe returned malformed JSON for {path}: {e}") from e
    if not isinstance(data, dict):
        raise ProbeParseFailure(f"ffprobe returned unexpected JSON for {path}")
    return data


def _probe_args(path: Path) -> list[str]:
    return ["-v", "quiet", "-print_format", "json", "-show_format", str(path)]


def probe(input_path: Path) -> ProbeResult:
    """Read container duration and stream count via ffprobe."""
    data = _load_json(execute("ffprobe", _probe_args(input_path)), input_path)
    fmt = data.get("format") or {}

    try:
        duration = round(float(fmt["duration"]) * 1000)
        stream_count = int(fmt["nb_streams"])
    except (KeyError, TypeError, ValueError) as e:
        raise ProbeParseFailure(
            f"ffprobe output for {input_path} lacks duration/stream count"
        ) from e

    return ProbeResult(duration=duration, stream_count=stream_count)


def get_file_duration(input_path: Path) -> int:
    return probe(input_path).duration


def get_stream_count(input_path: Path) -> int:
    return probe(input_path).stream_count


def _keyframe_probe_args(input_path: Path, start: int, end: int) -> list[str]:
    window = 2 * KEYFRAME_WINDOW_MS
    intervals = ",".join(
        f"{format_seconds(max(t - KEYFRAME_WINDOW_MS, 0))}%+{format_seconds(window)}"
        for t in (start, end)
    )
    return [
        "-v", "quiet",
        "-select_streams", "v:0",
        "-skip_frame", "nokey",
        "-show_entries", "frame=pts_time",
        "-read_intervals", intervals,
        "-print_format", "json",
        str(input_path),
    ]


def probe_keyframes(input_path: Path, start: int, end: int) -> list[int]:
    """Return keyframe timestamps (ms) found in ±5s windows around start and end."""
    data = _load_json(
        execute("ffprobe", _keyframe_probe_args(input_path, start, end)), input_path
    )
    frames = data.get("frames")
    if not isinstance(frames, list):
        raise ProbeParseFailure(f"ffprobe returned no frame list for {input_path}")

    timestamps: list[int] = []
    for frame in frames:
        try:
            timestamps.append(round(float(frame["pts_time"]) * 1000))
        except (KeyError, TypeError, ValueError):
            # Frames without a usable pts cannot serve as cut points.
            continue
    return timestamps


def get_keyframe_boundaries(input_path: Path, start: int, end: int) -> KeyframeBoundary:
    """Find the first keyframe at/after *start* and the last at/before *end*."""
    keyframes = probe_keyframes(input_path, start, end)

    first = next((t for t in keyframes if t >= start), None)
    last = next((t for t in reversed(keyframes) if t <= end), None)
    if first is None or last is None:
        raise ProbeParseFailure(
            f"No keyframes around {format_seconds(start)}s-{format_seconds(end)}s in {input_path}"
        )
    return KeyframeBoundary(first_keyframe=first, last_keyframe=last)


def probe_bitrate(input_path: Path) -> int:
    """Return the bitrate (bits/sec) of the first video stream."""
    args = [
        "-v", "quiet",
        "-select_streams", "v:0",
        "-show_entries", "stream=bit_rate",
        "-print_format", "json",
        str(input_path),
    ]
    data = _load_json(execute("ffprobe", args), input_path)

    try:
        return int(data["streams"][0]["bit_rate"])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProbeParseFailure(f"ffprobe reported no video bitrate for {input_path}") from e


def _capture_args(
    output_path: Path,
    programme: Programme,
    thumbnail: bool,
    duration_seconds: float,
    settings: Settings,
) -> list[str]:
    args = ["-y", *settings.thread_args(), "-i", settings.stream_url]
    if thumbnail:
        args += ["-i", "-", "-map", "0", "-map", "1", "-disposition:v:1", "attached_pic"]
    args += ["-t", format_seconds(round(duration_seconds * 1000)), "-codec", "copy", "-f", "mp4"]

    tags = [
        ("show", programme.title),
        ("title", programme.subtitle),
        ("description", programme.description),
        ("synopsis", programme.content),
        ("date", programme.start_date.isoformat() if programme.start_date else None),
        ("episode_id", programme.airing_id),
        ("network", programme.network),
    ]
    for key, value in tags:
        if value:
            args += ["-metadata", f"{key}={value}"]

    args.append(str(output_path))
    return args


def capture_stream(
    output_path: Path,
    target_seconds: float,
    programme: Programme,
    thumbnail_data: bytes | None,
    settings: Settings,
) -> list[str]:
    """Record the configured stream for *target_seconds*; returns ffmpeg's stderr lines."""
    if not settings.stream_url:
        raise ValueError("No stream_url configured for capture")

    args = _capture_args(
        output_path, programme, thumbnail_data is not None, target_seconds, settings
    )
    started = time.perf_counter_ns()
    output = execute("ffmpeg", args, thumbnail_data)
    logger.info(f"Captured {output_path} in {elapsed_ms(started)} ms")
    return output.stderr
