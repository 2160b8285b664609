"""Hardware accelerated H.264 encoding through PyAV."""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Iterator

import av

from ..errors import EncodeError, EncoderInitError
from ..frames import FrameMethod
from ._av import ContainerWriter
from .base import Encoder, EncoderConfig


logger = logging.getLogger(__name__)

ENCODER_CHOICE_ENV = "CANVAS_RECORD_ENCODER"


@dataclass(frozen=True)
class H264EncoderBackend:
    """Represents a concrete hardware H.264 encoder implementation."""

    key: str
    codec: str
    label: str
    pixel_format: str = "yuv420p"


_HARDWARE_BACKENDS: tuple[H264EncoderBackend, ...] = (
    H264EncoderBackend(
        key="v4l2m2m",
        codec="h264_v4l2m2m",
        label="V4L2 M2M (Raspberry Pi and other SoCs)",
    ),
    H264EncoderBackend(
        key="nvenc",
        codec="h264_nvenc",
        label="NVIDIA NVENC",
    ),
    H264EncoderBackend(
        key="videotoolbox",
        codec="h264_videotoolbox",
        label="Apple VideoToolbox",
    ),
    H264EncoderBackend(
        key="qsv",
        codec="h264_qsv",
        label="Intel Quick Sync",
        pixel_format="nv12",
    ),
)

_BACKEND_BY_KEY = {backend.key: backend for backend in _HARDWARE_BACKENDS}
_ENCODER_ALIASES = {
    "": "auto",
    "auto": "auto",
    "default": "auto",
    "hardware": "auto",
    "software": "software",
    "libx264": "software",
    "x264": "software",
    "pi": "v4l2m2m",
    "h264_v4l2m2m": "v4l2m2m",
    "h264_nvenc": "nvenc",
    "h264_videotoolbox": "videotoolbox",
    "h264_qsv": "qsv",
}


def list_hardware_backends() -> tuple[H264EncoderBackend, ...]:
    """Return the known hardware encoder definitions in probe order."""

    return _HARDWARE_BACKENDS


def normalise_encoder_choice(choice: str | None) -> str:
    """Normalise a user-provided encoder choice string."""

    if choice is None:
        choice = os.getenv(ENCODER_CHOICE_ENV, "auto")
    key = choice.strip().lower()
    return _ENCODER_ALIASES.get(key, key)


def _iter_candidate_backends(preference: str) -> Iterator[H264EncoderBackend]:
    backend = _BACKEND_BY_KEY.get(preference)
    if backend is not None:
        yield backend
        for candidate in _HARDWARE_BACKENDS:
            if candidate is not backend:
                yield candidate
        return
    if preference != "auto":
        logger.warning("Unknown hardware encoder preference %r; probing all", preference)
    yield from _HARDWARE_BACKENDS


def _probe_backend(backend: H264EncoderBackend) -> bool:
    try:
        context = av.CodecContext.create(backend.codec, "w")
    except Exception as exc:  # pragma: no cover - codec probing failure
        logger.debug("Codec %s unavailable: %s", backend.codec, exc)
        return False
    if not getattr(context, "is_encoder", True):
        logger.debug("Codec %s is not an encoder", backend.codec)
        return False
    # A codec can be compiled in without a usable device behind it; opening a
    # tiny session is the only reliable check.
    try:
        context.width = 64
        context.height = 64
        context.pix_fmt = backend.pixel_format
        context.time_base = Fraction(1, 30)
        context.framerate = Fraction(30, 1)
        context.open()
    except Exception as exc:  # pragma: no cover - hardware dependent
        logger.debug("Codec %s failed to open: %s", backend.codec, exc)
        return False
    finally:
        try:
            context.close()
        except Exception:  # pragma: no cover - older PyAV releases lack close()
            pass
    return True


def select_hardware_backend(preference: str | None = None) -> H264EncoderBackend | None:
    """Return the first working hardware backend, or ``None``.

    ``preference`` (or ``CANVAS_RECORD_ENCODER`` when omitted) moves a backend
    to the front of the probe order; ``"software"`` disables probing.
    """

    normalised = normalise_encoder_choice(preference)
    if normalised == "software":
        return None
    for backend in _iter_candidate_backends(normalised):
        if _probe_backend(backend):
            logger.info("Hardware encoder available: %s", backend.label)
            return backend
    return None


class HardwareVideoEncoder(Encoder):
    """Stream timestamped video frames into a hardware H.264 encoder.

    Frames arrive as ``av.VideoFrame`` objects stamped in microseconds of
    logical time; the timestamps are rescaled into the stream time base so the
    output always plays back at the recording frame rate.
    """

    supported_extensions = ("mp4", "mkv")
    frame_method = FrameMethod.VIDEO_FRAME

    def __init__(self, codec: str | None = None, **options: Any) -> None:
        super().__init__(**options)
        self.codec = codec
        self._writer: ContainerWriter | None = None

    async def init(self, config: EncoderConfig) -> None:
        await super().init(config)
        backend: H264EncoderBackend | None
        if self.codec is None:
            backend = await asyncio.to_thread(
                select_hardware_backend, self.options.get("backend")
            )
            if backend is None:
                raise EncoderInitError("No hardware H.264 encoder is available")
        else:
            backend = next(
                (item for item in _HARDWARE_BACKENDS if item.codec == self.codec),
                H264EncoderBackend(key=self.codec, codec=self.codec, label=self.codec),
            )
        self.codec = backend.codec
        codec_options = dict(self.options.get("codec_options") or {})
        self._writer = await asyncio.to_thread(
            ContainerWriter,
            extension=self.extension or self.supported_extensions[0],
            codecs=(backend.codec,),
            width=self.width,
            height=self.height,
            frame_rate=self.frame_rate,
            pixel_format=backend.pixel_format,
            codec_options=codec_options,
            bit_rate=self.options.get("bit_rate"),
        )

    async def encode(self, frame: Any, frame_index: int) -> None:
        writer = self._writer
        if writer is None:
            raise EncodeError("Encoder has not been initialised")
        if not isinstance(frame, av.VideoFrame):
            raise EncodeError(f"Expected an av.VideoFrame, got {type(frame).__name__}")
        if frame.pts is not None and frame.time_base is not None:
            seconds = Fraction(frame.pts) * frame.time_base
        else:
            seconds = Fraction(frame_index) / Fraction(str(self.frame_rate))
        await asyncio.to_thread(writer.write, frame, seconds)

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


__all__ = [
    "ENCODER_CHOICE_ENV",
    "H264EncoderBackend",
    "HardwareVideoEncoder",
    "list_hardware_backends",
    "normalise_encoder_choice",
    "select_hardware_backend",
]
