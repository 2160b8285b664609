from __future__ import annotations

import asyncio
import io
from fractions import Fraction

import av
import numpy as np
import pytest
from PIL import Image

from canvas_record.errors import FrameAcquisitionError
from canvas_record.frames import (
    FrameMethod,
    FrameSource,
    pad_to_even,
    to_top_down,
)
from canvas_record.surface import ArraySurface, BaseSurface


def run_async(coro):
    return asyncio.run(coro)


class _CountingSurface(ArraySurface):
    def __init__(self, pixels: np.ndarray) -> None:
        super().__init__(pixels)
        self.reads = 0

    async def read_pixels(self) -> np.ndarray:
        self.reads += 1
        return await super().read_pixels()


class _RawSurface(BaseSurface):
    def __init__(self, pixels: np.ndarray) -> None:
        self._pixels = pixels

    @property
    def width(self) -> int:
        return 2

    @property
    def height(self) -> int:
        return 2

    async def read_pixels(self) -> np.ndarray:
        return self._pixels


def _gradient(height: int, width: int) -> np.ndarray:
    values = np.arange(height * width * 4, dtype=np.uint32) % 256
    return values.astype(np.uint8).reshape(height, width, 4)


def test_to_top_down_flips_rows_only_for_bottom_up() -> None:
    pixels = _gradient(3, 2)

    assert to_top_down(pixels, False) is pixels
    np.testing.assert_array_equal(to_top_down(pixels, True), pixels[::-1])


def test_pad_to_even_adds_transparent_black() -> None:
    pixels = np.full((3, 5, 4), 200, dtype=np.uint8)

    padded = pad_to_even(pixels)

    assert padded.shape == (4, 6, 4)
    np.testing.assert_array_equal(padded[:3, :5], pixels)
    assert not padded[3].any()
    assert not padded[:, 5].any()


def test_pad_to_even_keeps_even_frames() -> None:
    pixels = _gradient(4, 6)

    assert pad_to_even(pixels) is pixels


def test_image_data_is_padded_rgba() -> None:
    source = FrameSource(ArraySurface(_gradient(3, 3)))

    frame = run_async(source.get_frame(FrameMethod.IMAGE_DATA))

    assert frame.shape == (4, 4, 4)
    assert frame.dtype == np.uint8
    assert frame.flags["C_CONTIGUOUS"]


def test_rgb_surfaces_gain_opaque_alpha() -> None:
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    source = FrameSource(ArraySurface(rgb))

    frame = run_async(source.get_frame("imageData"))

    assert frame.shape == (2, 2, 4)
    assert (frame[:, :, 3] == 255).all()


def test_bitmap_is_a_pil_image() -> None:
    source = FrameSource(ArraySurface(_gradient(3, 5)))

    image = run_async(source.get_frame(FrameMethod.BITMAP))

    assert isinstance(image, Image.Image)
    assert image.mode == "RGBA"
    assert image.size == (5, 3)


def test_video_frame_carries_microsecond_timestamp() -> None:
    source = FrameSource(ArraySurface(_gradient(4, 4)))

    frame = run_async(source.get_frame(FrameMethod.VIDEO_FRAME, time=0.5))

    assert isinstance(frame, av.VideoFrame)
    assert frame.pts == 500_000
    assert frame.time_base == Fraction(1, 1_000_000)
    assert (frame.width, frame.height) == (4, 4)


def test_request_frame_does_not_read_surface() -> None:
    surface = _CountingSurface(_gradient(2, 2))
    source = FrameSource(surface)

    assert run_async(source.get_frame(FrameMethod.REQUEST_FRAME)) is None
    assert surface.reads == 0


def test_screenshot_defaults_to_png() -> None:
    pixels = _gradient(2, 3)
    source = FrameSource(ArraySurface(pixels))

    payload = run_async(source.get_frame(None))

    assert payload.startswith(b"\x89PNG")
    decoded = np.asarray(Image.open(io.BytesIO(payload)))
    np.testing.assert_array_equal(decoded, pixels)


def test_screenshot_jpeg_uses_simplejpeg() -> None:
    pytest.importorskip("simplejpeg")
    source = FrameSource(ArraySurface(_gradient(8, 8)))

    payload = run_async(source.get_frame(None, extension="jpg", quality=80))

    assert payload.startswith(b"\xff\xd8")


def test_float_pixels_are_clipped_to_uint8() -> None:
    pixels = np.full((2, 2, 4), 300.0)
    source = FrameSource(_RawSurface(pixels))

    frame = run_async(source.read_top_down())

    assert frame.dtype == np.uint8
    assert (frame == 255).all()


def test_wrong_shape_raises_acquisition_error() -> None:
    source = FrameSource(_RawSurface(np.zeros((2, 2), dtype=np.uint8)))

    with pytest.raises(FrameAcquisitionError):
        run_async(source.get_frame(FrameMethod.IMAGE_DATA))


def test_empty_surface_raises_acquisition_error() -> None:
    source = FrameSource(ArraySurface(np.zeros((0, 0, 4), dtype=np.uint8)))

    with pytest.raises(FrameAcquisitionError):
        run_async(source.get_frame(FrameMethod.BITMAP))

