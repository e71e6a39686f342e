"""JSON manifest schema — the contract between CLI and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from smarttrim.config import Settings
from smarttrim.models import CropSample


@dataclass
class SegmentRequest:
    """One trim job. Times are milliseconds; ``end`` of None means to EOF."""

    input: Path
    output: Path
    start: int = 0
    end: int | None = None
    smart_trim: bool = False
    crop_samples: list[CropSample] = field(default_factory=list)

    def validate(self) -> None:
        if self.start < 0:
            raise ValueError("start must be >= 0")
        if self.end is not None and self.end <= self.start:
            raise ValueError("end must be greater than start")

    @property
    def uses_smart_trim(self) -> bool:
        # A crop re-encodes the whole segment, so keyframe alignment buys nothing.
        return self.smart_trim and not self.crop_samples


def _crop_sample(item: dict) -> CropSample:
    width = item.get("width")
    return CropSample(time=int(item["time"]), width=int(width) if width is not None else None)


def parse_crop_samples(items: list[dict]) -> list[CropSample]:
    samples = [_crop_sample(item) for item in items]
    return sorted(samples, key=lambda s: s.time)


def load_manifest(path: str | Path, settings: Settings | None = None) -> SegmentRequest:
    """Load and validate a segment request from a JSON file."""
    settings = settings or Settings()
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    end = data.get("end")
    smart_trim = data.get("smart_trim", settings.smart_trim)
    if not isinstance(smart_trim, bool):
        raise ValueError(f"smart_trim must be true or false, got {smart_trim!r}")

    request = SegmentRequest(
        input=Path(data["input"]),
        output=Path(data["output"]),
        start=int(data.get("start", 0)),
        end=int(end) if end else None,
        smart_trim=smart_trim,
        crop_samples=parse_crop_samples(data.get("crop_samples", [])),
    )
    request.validate()
    return request
