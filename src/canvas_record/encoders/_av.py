"""PyAV helpers shared by the in-process video encoders."""
from __future__ import annotations

import io
import logging
from fractions import Fraction
from typing import Mapping, Sequence

import av

from ..errors import EncodeError, EncoderInitError


logger = logging.getLogger(__name__)

CONTAINER_FORMATS: dict[str, str] = {
    "mp4": "mp4",
    "mkv": "matroska",
    "webm": "webm",
    "mov": "mov",
}


def frame_rate_fraction(frame_rate: float) -> Fraction:
    """Return ``frame_rate`` as a bounded fraction suitable for FFmpeg."""

    fraction = Fraction(str(float(frame_rate))).limit_denominator(1000)
    if fraction <= 0:
        return Fraction(30, 1)
    return fraction


def select_time_base(frame_rate: Fraction) -> Fraction:
    """Choose a container time base that mirrors the frame duration."""

    numerator = frame_rate.numerator
    denominator = frame_rate.denominator
    if numerator <= 0:
        numerator = 1
    if denominator <= 0:
        denominator = 1
    frame_rate_value = Fraction(numerator, denominator)
    if frame_rate_value <= 0:
        return Fraction(1, 30)
    # Very low frame rates get a millisecond-scale reciprocal so packets still
    # advance in fine increments.
    if frame_rate_value <= 5:
        ticks_per_second = frame_rate_value * 1000
        time_base = Fraction(ticks_per_second.denominator, ticks_per_second.numerator)
    else:
        time_base = Fraction(denominator, numerator)
    if time_base <= 0:
        return Fraction(1, 30)
    return time_base.limit_denominator(1_000_000)


def apply_stream_timing(stream, frame_rate: Fraction, time_base: Fraction) -> None:
    """Synchronise stream and codec timing so playback honours the frame rate."""

    try:
        stream.time_base = time_base
    except Exception:  # pragma: no cover - property may be read-only
        pass

    try:
        stream.average_rate = frame_rate
    except Exception:  # pragma: no cover - best-effort hint
        pass

    codec_context = getattr(stream, "codec_context", None)
    if codec_context is None:
        return

    try:
        codec_context.time_base = time_base
    except Exception:  # pragma: no cover - codec contexts vary
        pass

    try:
        codec_context.framerate = frame_rate
    except Exception:  # pragma: no cover - optional property
        pass


def _normalise_pixel_format(value: object) -> str | None:
    if isinstance(value, str):
        return value.strip().lower() or None
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name.strip().lower() or None
    return None


def select_stream_pixel_format(stream, requested: str | None) -> str:
    """Choose a pixel format compatible with ``stream`` and the requested value."""

    requested_format = _normalise_pixel_format(requested) or "yuv420p"
    codec_context = getattr(stream, "codec_context", None)
    codec = getattr(codec_context, "codec", None)
    formats = getattr(codec, "video_formats", None) or ()
    available = tuple(
        name for name in (_normalise_pixel_format(item) for item in formats) if name
    )
    if not available:
        return requested_format
    for candidate in (requested_format, "yuv420p", "nv12"):
        if candidate in available:
            return candidate
    return available[0]


def compose_codec_failure_message(
    last_error: Exception | None, attempted_codecs: Sequence[str]
) -> str:
    """Return a codec initialisation failure message listing the attempts."""

    detail = str(last_error).strip() if last_error is not None else ""
    if not detail:
        detail = "No usable video codec available"
    ordered_unique: list[str] = []
    for codec in attempted_codecs:
        if codec and codec not in ordered_unique:
            ordered_unique.append(codec)
    if ordered_unique:
        detail = f"{detail} (attempted codecs: {', '.join(ordered_unique)})"
    return detail


class ContainerWriter:
    """Encode ``av.VideoFrame`` objects into an in-memory container."""

    def __init__(
        self,
        *,
        extension: str,
        codecs: Sequence[str],
        width: int,
        height: int,
        frame_rate: float,
        pixel_format: str = "yuv420p",
        codec_options: Mapping[str, str] | None = None,
        bit_rate: int | None = None,
    ) -> None:
        container_format = CONTAINER_FORMATS.get(extension)
        if container_format is None:
            raise EncoderInitError(f"No container format registered for {extension!r}")
        self._rate = frame_rate_fraction(frame_rate)
        self.time_base = select_time_base(self._rate)
        self._buffer = io.BytesIO()
        try:
            self._container = av.open(self._buffer, mode="w", format=container_format)
        except Exception as exc:
            raise EncoderInitError(f"Unable to open {container_format} container: {exc}") from exc

        stream = None
        attempted: list[str] = []
        last_error: Exception | None = None
        for codec_name in codecs:
            attempted.append(codec_name)
            try:
                stream = self._container.add_stream(codec_name, rate=self._rate)
            except Exception as exc:  # pragma: no cover - codec availability varies
                last_error = exc
                logger.debug("Codec %s unavailable: %s", codec_name, exc)
                continue
            break
        if stream is None:
            self._container.close()
            raise EncoderInitError(compose_codec_failure_message(last_error, attempted))

        # 4:2:0 chroma subsampling needs even dimensions.
        target_width = int(width) + int(width) % 2
        target_height = int(height) + int(height) % 2
        if target_width <= 0 or target_height <= 0:
            self._container.close()
            raise EncoderInitError("Invalid frame dimensions for video encoder")

        stream.width = target_width
        stream.height = target_height
        stream.pix_fmt = select_stream_pixel_format(stream, pixel_format)
        apply_stream_timing(stream, self._rate, self.time_base)
        self.codec = stream.codec_context.name
        self.width = target_width
        self.height = target_height
        self._stream = stream
        self._frame_count = 0
        if codec_options:
            self.update_options(codec_options)
        if bit_rate:
            stream.codec_context.bit_rate = int(bit_rate)

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def update_options(self, options: Mapping[str, object]) -> None:
        """Merge codec private options (``preset``, ``crf``...) before encoding starts."""

        if self._stream is None or not options:
            return
        try:
            self._stream.codec_context.options.update(
                {str(key): str(value) for key, value in options.items()}
            )
        except Exception:  # pragma: no cover - codec options availability varies
            logger.debug("Codec %s rejected options %s", self.codec, options)

    def pts_for(self, seconds: float | Fraction) -> int:
        """Convert a timestamp in seconds to the stream time base."""

        return int(round(Fraction(seconds) / self.time_base))

    def write(self, frame: av.VideoFrame, seconds: float | Fraction) -> None:
        if self._stream is None:
            raise EncodeError("Video encoder has been closed")
        if frame.width != self.width or frame.height != self.height or (
            frame.format.name != self._stream.pix_fmt
        ):
            frame = frame.reformat(
                width=self.width, height=self.height, format=self._stream.pix_fmt
            )
        frame.pts = self.pts_for(seconds)
        frame.time_base = self.time_base
        try:
            for packet in self._stream.encode(frame):
                self._container.mux(packet)
        except Exception as exc:
            raise EncodeError(f"{self.codec} rejected frame: {exc}") from exc
        self._frame_count += 1

    def finalise(self) -> bytes:
        if self._stream is None:
            return self._buffer.getvalue()
        try:
            for packet in self._stream.encode():
                self._container.mux(packet)
        except Exception as exc:
            raise EncodeError(f"{self.codec} failed to flush: {exc}") from exc
        finally:
            self._container.close()
            self._stream = None
        return self._buffer.getvalue()

    def close(self) -> None:
        if self._stream is None:
            return
        self._stream = None
        try:
            self._container.close()
        except Exception:  # pragma: no cover - best effort cleanup
            logger.debug("Failed to close discarded container", exc_info=True)


__all__ = [
    "CONTAINER_FORMATS",
    "ContainerWriter",
    "apply_stream_timing",
    "compose_codec_failure_message",
    "frame_rate_fraction",
    "select_stream_pixel_format",
    "select_time_base",
]
