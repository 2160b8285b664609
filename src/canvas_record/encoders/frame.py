"""Still image sequence encoder."""
from __future__ import annotations

from typing import Any

from ..errors import EncodeError
from ..frames import DEFAULT_JPEG_QUALITY
from .base import Encoder


class FrameEncoder(Encoder):
    """Collect one encoded still per frame; the artifact is the list of images."""

    supported_extensions = ("png", "jpg")
    frame_method = None

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._frames: list[bytes] = []

    @property
    def quality(self) -> int:
        return int(self.options.get("quality", DEFAULT_JPEG_QUALITY))

    async def encode(self, frame: Any, frame_index: int) -> None:
        if not isinstance(frame, (bytes, bytearray)):
            raise EncodeError(f"Expected encoded image bytes, got {type(frame).__name__}")
        self._frames.append(bytes(frame))

    async def stop(self) -> list[bytes]:
        frames, self._frames = self._frames, []
        return frames

    async def dispose(self) -> None:
        self._frames = []


__all__ = ["FrameEncoder"]
