"""Software video encoding (libx264 / libvpx) through PyAV."""
from __future__ import annotations

import asyncio
import logging
from fractions import Fraction
from typing import Any

import av
import numpy as np

from ..errors import EncodeError
from ..frames import FrameMethod
from ._av import ContainerWriter
from .base import Encoder, EncoderConfig


logger = logging.getLogger(__name__)

_CODECS_BY_EXTENSION: dict[str, tuple[str, ...]] = {
    "mp4": ("libx264", "h264", "mpeg4"),
    "mkv": ("libx264", "h264", "mpeg4"),
    "webm": ("libvpx-vp9", "libvpx"),
}

_DEFAULT_CODEC_OPTIONS: dict[str, dict[str, str]] = {
    "libx264": {"preset": "veryfast", "crf": "23"},
    "libvpx-vp9": {"deadline": "realtime", "cpu-used": "8", "crf": "32", "b": "0"},
    "libvpx": {"deadline": "realtime", "cpu-used": "8"},
}


def codec_candidates(extension: str, preferred: str | None = None) -> tuple[str, ...]:
    """Return the codecs to try for ``extension``, ``preferred`` first."""

    candidates = list(_CODECS_BY_EXTENSION.get(extension, _CODECS_BY_EXTENSION["mp4"]))
    if preferred:
        preferred = preferred.strip().lower()
        if preferred in candidates:
            candidates.remove(preferred)
        candidates.insert(0, preferred)
    return tuple(candidates)


class SoftwareVideoEncoder(Encoder):
    """Encode raw RGBA pixel buffers on the CPU.

    This is the fallback used when no hardware encoder is detected. Frame
    ``n`` is stamped at ``n / frame_rate`` regardless of capture cadence.
    """

    supported_extensions = ("mp4", "mkv", "webm")
    frame_method = FrameMethod.IMAGE_DATA

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._writer: ContainerWriter | None = None
        self._frame_rate_fraction = Fraction(30, 1)

    @property
    def codec(self) -> str | None:
        return self._writer.codec if self._writer is not None else None

    async def init(self, config: EncoderConfig) -> None:
        await super().init(config)
        extension = self.extension or self.supported_extensions[0]
        codecs = codec_candidates(extension, self.options.get("codec"))
        codec_options = dict(self.options.get("codec_options") or {})
        self._writer = await asyncio.to_thread(self._open_writer, extension, codecs, codec_options)
        self._frame_rate_fraction = Fraction(str(self.frame_rate)).limit_denominator(1000)
        logger.debug("Software encoder using %s for %s", self._writer.codec, extension)

    def _open_writer(
        self, extension: str, codecs: tuple[str, ...], codec_options: dict[str, Any]
    ) -> ContainerWriter:
        writer = ContainerWriter(
            extension=extension,
            codecs=codecs,
            width=self.width,
            height=self.height,
            frame_rate=self.frame_rate,
            codec_options=None,
            bit_rate=self.options.get("bit_rate"),
        )
        writer.update_options({**_DEFAULT_CODEC_OPTIONS.get(writer.codec, {}), **codec_options})
        return writer

    async def encode(self, frame: Any, frame_index: int) -> None:
        writer = self._writer
        if writer is None:
            raise EncodeError("Encoder has not been initialised")
        array = np.asarray(frame) if frame is not None else None
        if array is None or array.ndim != 3 or array.shape[2] != 4 or array.dtype != np.uint8:
            shape = None if array is None else array.shape
            raise EncodeError(f"Expected an RGBA uint8 pixel buffer, got shape {shape}")
        video_frame = av.VideoFrame.from_ndarray(np.ascontiguousarray(array), format="rgba")
        seconds = Fraction(int(frame_index)) / self._frame_rate_fraction
        await asyncio.to_thread(writer.write, video_frame, seconds)

    async def stop(self) -> bytes | None:
        writer = self._writer
        if writer is None:
            return None
        self._writer = None
        return await asyncio.to_thread(writer.finalise)

    async def dispose(self) -> None:
        writer = self._writer
        self._writer = None
        if writer is not None:
            await asyncio.to_thread(writer.close)


__all__ = ["SoftwareVideoEncoder", "codec_candidates"]
