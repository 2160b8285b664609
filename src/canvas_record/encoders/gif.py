"""Animated GIF encoding with Pillow."""
from __future__ import annotations

import asyncio
import io
import logging
from typing import Any

from PIL import Image

from ..errors import EncodeError, EncoderInitError
from ..frames import FrameMethod
from .base import Encoder, EncoderConfig


logger = logging.getLogger(__name__)


class GIFEncoder(Encoder):
    """Buffer palette-quantised snapshots and write them out on ``stop``.

    Options: ``max_colors`` (2-256, default 256) and ``loop`` (0 loops
    forever, default 0).
    """

    supported_extensions = ("gif",)
    frame_method = FrameMethod.BITMAP

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._frames: list[Image.Image] = []

    async def init(self, config: EncoderConfig) -> None:
        await super().init(config)
        colors = int(self.options.get("max_colors", 256))
        if not 2 <= colors <= 256:
            raise EncoderInitError("max_colors must be between 2 and 256")
        self._frames = []

    @property
    def frame_duration_ms(self) -> int:
        return max(int(round(1000 / self.frame_rate)), 1) if self.frame_rate else 100

    def _quantise(self, image: Image.Image) -> Image.Image:
        if image.size != (self.width, self.height):
            image = image.resize((self.width, self.height))
        colors = int(self.options.get("max_colors", 256))
        return image.convert("RGB").quantize(colors=colors)

    async def encode(self, frame: Any, frame_index: int) -> None:
        if not isinstance(frame, Image.Image):
            raise EncodeError(f"Expected a PIL image, got {type(frame).__name__}")
        self._frames.append(await asyncio.to_thread(self._quantise, frame))

    def _write(self, frames: list[Image.Image]) -> bytes:
        buffer = io.BytesIO()
        first, *rest = frames
        first.save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=rest,
            duration=self.frame_duration_ms,
            loop=int(self.options.get("loop", 0)),
        )
        return buffer.getvalue()

    async def stop(self) -> bytes | None:
        frames, self._frames = self._frames, []
        if not frames:
            logger.debug("GIF encoder stopped without frames")
            return None
        return await asyncio.to_thread(self._write, frames)

    async def dispose(self) -> None:
        self._frames = []


__all__ = ["GIFEncoder"]
