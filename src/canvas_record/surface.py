"""Drawing surface abstractions read by the recorder."""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Protocol, Sequence

import numpy as np


class SurfaceError(RuntimeError):
    """Raised when a surface cannot provide its pixels."""


def ensure_rgba(frame: np.ndarray | Sequence) -> np.ndarray:
    """Return a contiguous ``uint8`` RGBA copy of ``frame``."""

    array = np.asarray(frame)
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    elif array.ndim != 3:
        raise ValueError("Expected a 2D or 3D frame")

    channels = array.shape[2]
    if channels == 1:
        array = np.repeat(array, 3, axis=2)
        channels = 3
    if channels == 3:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=array.dtype)
        array = np.concatenate([array, alpha], axis=2)
    elif channels > 4:
        array = array[:, :, :4]
    elif channels != 4:
        raise ValueError(f"Unsupported channel count {channels}")

    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)

    return np.array(array, dtype=np.uint8, order="C", copy=True)


class BaseSurface(ABC):
    """Abstract drawing target capable of producing RGBA pixels.

    ``read_pixels`` returns rows in the surface's native order. Surfaces whose
    origin is the bottom-left corner (OpenGL framebuffers) set ``bottom_up``.
    """

    bottom_up: bool = False

    @property
    @abstractmethod
    def width(self) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @property
    @abstractmethod
    def height(self) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abstractmethod
    async def read_pixels(self) -> np.ndarray:  # pragma: no cover - interface only
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - optional override
        return None


class ArraySurface(BaseSurface):
    """Surface backed by a caller-owned ``numpy`` image (top-down)."""

    def __init__(self, pixels: np.ndarray | Sequence) -> None:
        self._pixels = np.asarray(pixels)

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1]) if self._pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0]) if self._pixels.ndim >= 2 else 0

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    def update(self, pixels: np.ndarray | Sequence) -> None:
        """Replace the surface contents."""

        self._pixels = np.asarray(pixels)

    async def read_pixels(self) -> np.ndarray:
        if self.width == 0 or self.height == 0:
            raise SurfaceError("Surface has no pixels")
        return ensure_rgba(self._pixels)


class SyntheticSurface(BaseSurface):
    """Generates an animated gradient for development and testing.

    Unlike a wall-clock driven test pattern the content is a pure function of
    the time passed to :meth:`draw`, so deterministic renders are repeatable.
    """

    def __init__(self, width: int = 640, height: int = 480) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("Surface dimensions must be positive")
        self._width = int(width)
        self._height = int(height)
        self._time = 0.0
        self._frame: np.ndarray | None = None

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def time(self) -> float:
        return self._time

    def draw(self, time: float) -> np.ndarray:
        """Render the pattern for ``time`` seconds and return the RGBA frame."""

        if not math.isfinite(time):
            raise ValueError("time must be finite")
        self._time = float(time)
        horizontal = np.linspace(0, 255, self._width, dtype=np.uint8)
        vertical = np.linspace(0, 255, self._height, dtype=np.uint8).reshape(-1, 1)
        red = np.tile(horizontal, (self._height, 1))
        green = np.roll(red, int(self._time * 60), axis=1)
        blue = np.tile(vertical, (1, self._width))
        alpha = np.full((self._height, self._width), 255, dtype=np.uint8)
        self._frame = np.stack([red, green, blue, alpha], axis=2)
        return self._frame

    async def read_pixels(self) -> np.ndarray:
        frame = self._frame if self._frame is not None else self.draw(self._time)
        return frame.copy()


class FramebufferLike(Protocol):
    """Subset of the ``moderngl.Framebuffer`` API used for read-back."""

    size: tuple[int, int]

    def read(self, *args: Any, **kwargs: Any) -> bytes:  # pragma: no cover - protocol
        ...


class FramebufferSurface(BaseSurface):
    """Surface reading from an OpenGL framebuffer (bottom-up rows).

    The read-back runs on the calling thread because GL contexts are bound to
    the thread that created them.
    """

    bottom_up = True

    def __init__(self, framebuffer: FramebufferLike) -> None:
        self._framebuffer = framebuffer

    @property
    def width(self) -> int:
        return int(self._framebuffer.size[0])

    @property
    def height(self) -> int:
        return int(self._framebuffer.size[1])

    async def read_pixels(self) -> np.ndarray:
        width, height = self.width, self.height
        if width <= 0 or height <= 0:
            raise SurfaceError("Framebuffer has no pixels")
        try:
            data = self._framebuffer.read(components=4, alignment=1)
        except Exception as exc:
            raise SurfaceError(f"Framebuffer read-back failed: {exc}") from exc
        expected = width * height * 4
        if len(data) != expected:
            raise SurfaceError(
                f"Framebuffer returned {len(data)} bytes, expected {expected}"
            )
        return np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4).copy()


__all__ = [
    "ArraySurface",
    "BaseSurface",
    "FramebufferLike",
    "FramebufferSurface",
    "SurfaceError",
    "SyntheticSurface",
    "ensure_rgba",
]
