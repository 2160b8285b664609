"""Recorder configuration structures."""
from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .encoders.base import Encoder
    from .recorder import RecorderStatus


logger = logging.getLogger(__name__)

DEFAULT_DURATION = 3.0
DEFAULT_FRAME_RATE = 30.0
DEFAULT_EXTENSION = "mp4"
DEFAULT_DOWNLOAD_DIR = Path("recordings")

DOWNLOAD_DIR_ENV = "CANVAS_RECORD_DOWNLOAD_DIR"

MIME_TYPES: dict[str, str] = {
    "mkv": "video/x-matroska;codecs=avc1",
    "webm": "video/webm",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "gif": "image/gif",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "mjpeg": "multipart/x-mixed-replace; boundary=frame",
}

_EXTENSION_ALIASES = {
    "jpeg": "jpg",
    "matroska": "mkv",
    "mjpg": "mjpeg",
}

StatusCallback = Callable[["RecorderStatus"], object]


def normalise_extension(value: str | None) -> str:
    """Return a lower-cased extension without a leading dot."""

    if value is None:
        return DEFAULT_EXTENSION
    text = str(value).strip().lower().lstrip(".")
    if not text:
        return DEFAULT_EXTENSION
    return _EXTENSION_ALIASES.get(text, text)


def resolve_mime_type(extension: str | None) -> str | None:
    """Return the MIME type registered for ``extension`` if any."""

    if not extension:
        return None
    return MIME_TYPES.get(normalise_extension(extension))


def default_download_dir() -> Path:
    """Return the download directory, honouring ``CANVAS_RECORD_DOWNLOAD_DIR``."""

    env_value = os.getenv(DOWNLOAD_DIR_ENV)
    if env_value is not None:
        cleaned = env_value.strip()
        if cleaned:
            return Path(cleaned).expanduser()
        logger.warning("Empty %s value; using %s", DOWNLOAD_DIR_ENV, DEFAULT_DOWNLOAD_DIR)
    return DEFAULT_DOWNLOAD_DIR


def _coerce_dimension(value: Any, label: str) -> int | None:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if number <= 0:
        raise ValueError(f"{label} must be a positive integer")
    return number


@dataclass(frozen=True, slots=True)
class RecorderOptions:
    """Options for a single recording. Every field has a usable default."""

    name: str = ""
    filename: str | None = None
    duration: float = DEFAULT_DURATION
    frame_rate: float = DEFAULT_FRAME_RATE
    download: bool = True
    extension: str = DEFAULT_EXTENSION
    encoder: "Encoder | None" = None
    encoder_options: Mapping[str, Any] = field(default_factory=dict)
    on_status_change: StatusCallback | None = None
    width: int | None = None
    height: int | None = None
    debug: bool = False
    download_dir: Path | None = None

    def __post_init__(self) -> None:
        try:
            duration = float(self.duration)
            frame_rate = float(self.frame_rate)
        except (TypeError, ValueError) as exc:
            raise ValueError("Duration and frame rate must be numeric") from exc
        if math.isnan(duration) or duration <= 0:
            raise ValueError("Duration must be positive (math.inf records until stopped)")
        if not math.isfinite(frame_rate) or frame_rate <= 0:
            raise ValueError("Frame rate must be a positive finite value")
        if self.on_status_change is not None and not callable(self.on_status_change):
            raise ValueError("on_status_change must be callable")
        object.__setattr__(self, "name", str(self.name or ""))
        object.__setattr__(self, "duration", duration)
        object.__setattr__(self, "frame_rate", frame_rate)
        object.__setattr__(self, "download", bool(self.download))
        object.__setattr__(self, "extension", normalise_extension(self.extension))
        object.__setattr__(self, "encoder_options", dict(self.encoder_options or {}))
        object.__setattr__(self, "width", _coerce_dimension(self.width, "Width"))
        object.__setattr__(self, "height", _coerce_dimension(self.height, "Height"))
        object.__setattr__(self, "debug", bool(self.debug))
        if self.filename is not None:
            object.__setattr__(self, "filename", str(self.filename) or None)
        if self.download_dir is not None:
            object.__setattr__(self, "download_dir", Path(self.download_dir))

    @property
    def frame_total(self) -> float:
        return self.duration * self.frame_rate

    def merged(self, **overrides: Any) -> "RecorderOptions":
        """Return a copy with ``overrides`` applied on top of these options."""

        values = {item.name: getattr(self, item.name) for item in fields(self)}
        unknown = set(overrides) - set(values)
        if unknown:
            raise TypeError(f"Unknown recorder option(s): {', '.join(sorted(unknown))}")
        values.update(overrides)
        return RecorderOptions(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the JSON compatible options."""

        return {
            "name": self.name,
            "filename": self.filename,
            "duration": self.duration if math.isfinite(self.duration) else None,
            "frame_rate": self.frame_rate,
            "download": self.download,
            "extension": self.extension,
            "encoder_options": dict(self.encoder_options),
            "width": self.width,
            "height": self.height,
            "debug": self.debug,
            "download_dir": str(self.download_dir) if self.download_dir is not None else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RecorderOptions":
        data: dict[str, Any] = {}
        for key in (
            "name",
            "filename",
            "frame_rate",
            "download",
            "extension",
            "encoder_options",
            "width",
            "height",
            "debug",
            "download_dir",
        ):
            if key in payload:
                data[key] = payload[key]
        if "duration" in payload:
            duration = payload["duration"]
            data["duration"] = math.inf if duration is None else duration
        if data.get("encoder_options") is None:
            data.pop("encoder_options", None)
        return cls(**data)


DEFAULT_RECORDER_OPTIONS = RecorderOptions()


class RecorderOptionsStore:
    """Simple JSON backed persistence for :class:`RecorderOptions`."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RecorderOptions:
        if not self._path.exists():
            return RecorderOptions()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid recorder options JSON") from exc
        if not isinstance(raw, Mapping):
            raise ValueError("Recorder options JSON must contain an object")
        return RecorderOptions.from_dict(raw)

    def save(self, options: RecorderOptions) -> None:
        payload = options.to_dict()
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


__all__ = [
    "DEFAULT_DOWNLOAD_DIR",
    "DEFAULT_DURATION",
    "DEFAULT_EXTENSION",
    "DEFAULT_FRAME_RATE",
    "DEFAULT_RECORDER_OPTIONS",
    "DOWNLOAD_DIR_ENV",
    "MIME_TYPES",
    "RecorderOptions",
    "RecorderOptionsStore",
    "StatusCallback",
    "default_download_dir",
    "normalise_extension",
    "resolve_mime_type",
]
