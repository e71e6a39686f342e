"""Orchestrator — runs one trim defined by a SegmentRequest."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from loguru import logger

from smarttrim import ffutil
from smarttrim.config import Settings
from smarttrim.editors.cut import apply_trim
from smarttrim.editors.smart_trim import smart_trim
from smarttrim.manifest import SegmentRequest
from smarttrim.models import KeyframeBoundary, TrimArtifact


@dataclass
class EngineResult:
    output_path: Path
    method: str = "direct"
    keyframes: KeyframeBoundary | None = None
    artifacts: list[TrimArtifact] = field(default_factory=list)


def process(
    request: SegmentRequest,
    settings: Settings | None = None,
    on_progress: Callable[[str, float], None] | None = None,
) -> EngineResult:
    """Produce ``request.output`` from ``request.input``.

    Smart trim is used only when requested and no crop is applied; every
    other request is a single ffmpeg pass. Failures propagate unchanged and
    any intermediate files are left behind.

    Args:
        request: Validated segment request.
        settings: Tool configuration; defaults apply when omitted.
        on_progress: Optional callback(stage_name, fraction_complete).
    """
    settings = settings or Settings()

    def _progress(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, frac)

    request.validate()
    if request.uses_smart_trim and request.end is None:
        raise ValueError("Smart trim needs an explicit end time")

    ffutil.check_ffmpeg()

    _progress("Probing source", 0.0)
    has_thumbnail = ffutil.probe(request.input).has_thumbnail
    _progress("Probing source", 0.1)

    if request.uses_smart_trim:
        logger.debug(f"Using smart trim for {request.input}")
        _progress("Smart trimming", 0.15)
        keyframes, artifacts = smart_trim(
            request.input, request.output, request.start, request.end, has_thumbnail
        )
        _progress("Done", 1.0)
        return EngineResult(
            output_path=request.output,
            method="smart",
            keyframes=keyframes,
            artifacts=artifacts,
        )

    _progress("Trimming" if not request.crop_samples else "Encoding cropped segment", 0.15)
    apply_trim(request, has_thumbnail, settings)
    _progress("Done", 1.0)
    return EngineResult(output_path=request.output)
