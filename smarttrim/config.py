"""Process-wide settings, loaded once and passed explicitly."""

import json
import os
from pathlib import Path

import pydantic
from dotenv import load_dotenv

DEFAULT_DATA_DIR = Path(__file__).parent / "data"

_ENV_PREFIX = "SMARTTRIM_"


class Settings(pydantic.BaseModel):
    """Immutable tool configuration.

    ``thread_limit`` of 0 leaves thread selection to ffmpeg.
    """

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")

    thread_limit: int = pydantic.Field(default=0, ge=0)
    stream_url: str = ""
    data_dir: Path = DEFAULT_DATA_DIR
    smart_trim: bool = False

    def thread_args(self) -> list[str]:
        return ["-threads", str(self.thread_limit)] if self.thread_limit > 0 else []

    def reference_image(self, name: str) -> Path:
        return self.data_dir / name


def load_settings(path: str | Path | None = None, env_file: str | Path = ".env") -> Settings:
    """Build Settings from an optional JSON file plus environment overrides.

    Variables in *env_file* are loaded into the environment first; variables
    already set take precedence over it.
    """
    load_dotenv(env_file)

    data: dict = {}
    if path is not None:
        data = json.loads(Path(path).read_text())

    for name in Settings.model_fields:
        value = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
        if value is not None:
            data[name] = value

    return Settings.model_validate(data)
