"""Motion JPEG encoder that captures the surface itself."""
from __future__ import annotations

import asyncio
from typing import Any

from ..errors import EncodeError
from ..frames import DEFAULT_JPEG_QUALITY, FrameMethod, FrameSource, encode_jpeg
from .base import Encoder, EncoderConfig


class MJPEGEncoder(Encoder):
    """Build a ``multipart/x-mixed-replace`` stream of JPEG parts.

    No frame payload is handed over; each ``encode`` call reads the surface
    that was passed in the encoder configuration.
    """

    supported_extensions = ("mjpeg",)
    frame_method = FrameMethod.REQUEST_FRAME
    boundary = "frame"

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._source: FrameSource | None = None
        self._chunks: list[bytes] = []

    @property
    def quality(self) -> int:
        return int(self.options.get("quality", DEFAULT_JPEG_QUALITY))

    async def init(self, config: EncoderConfig) -> None:
        await super().init(config)
        self._source = FrameSource(config.surface)
        self._chunks = []

    def _render_chunk(self, payload: bytes) -> bytes:
        header = (
            f"--{self.boundary}\r\n"
            "Content-Type: image/jpeg\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "\r\n"
        ).encode("ascii")
        return header + payload + b"\r\n"

    async def encode(self, frame: Any, frame_index: int) -> None:
        if frame is not None:
            raise EncodeError("MJPEGEncoder reads the surface itself and takes no frame payload")
        if self._source is None:
            raise EncodeError("Encoder has not been initialised")
        pixels = await self._source.read_top_down()
        payload = await asyncio.to_thread(encode_jpeg, pixels, quality=self.quality)
        self._chunks.append(self._render_chunk(payload))

    async def stop(self) -> bytes | None:
        chunks, self._chunks = self._chunks, []
        if not chunks:
            return None
        return b"".join(chunks)

    async def dispose(self) -> None:
        self._chunks = []
        self._source = None


__all__ = ["MJPEGEncoder"]
