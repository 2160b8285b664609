"""Frame acquisition: turn the surface into whatever an encoder consumes."""
from __future__ import annotations

import io
import logging
from enum import Enum
from fractions import Fraction
from typing import Any

import av
import numpy as np
from PIL import Image

try:  # pragma: no cover - dependency availability varies on CI
    import simplejpeg
except ImportError as exc:  # pragma: no cover - dependency availability varies on CI
    simplejpeg = None  # type: ignore[assignment]
    _SIMPLEJPEG_ERROR: ImportError | None = exc
else:  # pragma: no cover - dependency availability varies on CI
    _SIMPLEJPEG_ERROR = None

from .errors import FrameAcquisitionError
from .surface import BaseSurface
from .utils import next_multiple


logger = logging.getLogger(__name__)

MICROSECONDS_PER_SECOND = 1_000_000
VIDEO_FRAME_TIME_BASE = Fraction(1, MICROSECONDS_PER_SECOND)
DEFAULT_JPEG_QUALITY = 92


class FrameMethod(str, Enum):
    """Frame representations an encoder may require."""

    BITMAP = "bitmap"
    VIDEO_FRAME = "videoFrame"
    REQUEST_FRAME = "requestFrame"
    IMAGE_DATA = "imageData"


def to_top_down(pixels: np.ndarray, bottom_up: bool) -> np.ndarray:
    """Return ``pixels`` with rows ordered top to bottom."""

    if not bottom_up:
        return pixels
    return np.ascontiguousarray(pixels[::-1])


def pad_to_even(pixels: np.ndarray) -> np.ndarray:
    """Pad width and height up to even numbers with transparent black."""

    height, width = pixels.shape[:2]
    target_height = next_multiple(height, 2)
    target_width = next_multiple(width, 2)
    if target_height == height and target_width == width:
        return pixels
    padding = [(0, target_height - height), (0, target_width - width)]
    padding.extend((0, 0) for _ in range(pixels.ndim - 2))
    return np.pad(pixels, padding, mode="constant", constant_values=0)


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode an RGBA frame as PNG bytes."""

    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(pixels)).save(buffer, format="PNG")
    return buffer.getvalue()


def encode_jpeg(pixels: np.ndarray, *, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode an RGB(A) frame as JPEG bytes, dropping alpha."""

    if simplejpeg is None:  # pragma: no cover - dependency availability varies
        raise RuntimeError("simplejpeg is required for JPEG encoding") from _SIMPLEJPEG_ERROR
    rgb = np.ascontiguousarray(pixels[:, :, :3])
    return simplejpeg.encode_jpeg(rgb, quality=int(quality), colorspace="RGB")


def encode_still(pixels: np.ndarray, extension: str, *, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode a still image in the format implied by ``extension``."""

    if extension in {"jpg", "jpeg"}:
        return encode_jpeg(pixels, quality=quality)
    return encode_png(pixels)


class FrameSource:
    """Reads a surface and shapes the result for the active encoder."""

    def __init__(self, surface: BaseSurface) -> None:
        self._surface = surface

    @property
    def surface(self) -> BaseSurface:
        return self._surface

    async def read_top_down(self) -> np.ndarray:
        """Return the surface pixels as a top-down RGBA array."""

        surface = self._surface
        try:
            pixels = await surface.read_pixels()
        except FrameAcquisitionError:
            raise
        except Exception as exc:
            logger.debug("Surface read-back failed", exc_info=True)
            raise FrameAcquisitionError(f"Unable to read surface pixels: {exc}") from exc
        array = np.asarray(pixels)
        if array.ndim != 3 or array.shape[2] != 4:
            raise FrameAcquisitionError(
                f"Surface returned pixels with shape {array.shape}; expected (H, W, 4)"
            )
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise FrameAcquisitionError("Surface has zero size")
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)
        return to_top_down(array, bool(getattr(surface, "bottom_up", False)))

    async def get_frame(
        self,
        method: FrameMethod | str | None,
        *,
        time: float = 0.0,
        extension: str = "png",
        quality: int = DEFAULT_JPEG_QUALITY,
    ) -> Any:
        """Return one frame in the representation ``method`` asks for.

        ``None`` produces an encoded still image (PNG or JPEG depending on
        ``extension``). ``REQUEST_FRAME`` produces no payload at all because
        the encoder captures the surface itself.
        """

        if method is not None and not isinstance(method, FrameMethod):
            method = FrameMethod(method)

        if method is FrameMethod.REQUEST_FRAME:
            return None

        pixels = await self.read_top_down()

        if method is FrameMethod.IMAGE_DATA:
            return np.ascontiguousarray(pad_to_even(pixels))
        if method is FrameMethod.BITMAP:
            return Image.fromarray(np.ascontiguousarray(pixels))
        if method is FrameMethod.VIDEO_FRAME:
            frame = av.VideoFrame.from_ndarray(np.ascontiguousarray(pixels), format="rgba")
            frame.pts = int(round(time * MICROSECONDS_PER_SECOND))
            frame.time_base = VIDEO_FRAME_TIME_BASE
            return frame
        try:
            return encode_still(pixels, extension, quality=quality)
        except Exception as exc:
            raise FrameAcquisitionError(f"Unable to encode {extension} still: {exc}") from exc


__all__ = [
    "DEFAULT_JPEG_QUALITY",
    "FrameMethod",
    "FrameSource",
    "MICROSECONDS_PER_SECOND",
    "VIDEO_FRAME_TIME_BASE",
    "encode_jpeg",
    "encode_png",
    "encode_still",
    "pad_to_even",
    "to_top_down",
]
