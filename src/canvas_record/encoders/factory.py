"""Encoder registry and default selection policy."""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from .base import Encoder
from .ffmpeg import FFmpegEncoder
from .frame import FrameEncoder
from .gif import GIFEncoder
from .hardware import HardwareVideoEncoder, select_hardware_backend
from .mjpeg import MJPEGEncoder
from .software import SoftwareVideoEncoder

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..config import RecorderOptions


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncoderDescriptor:
    """Describes an encoder backend that can be instantiated on demand."""

    key: str
    factory: Callable[..., Encoder]
    label: str
    hardware: bool = False

    def create(self, **options: Any) -> Encoder:
        return self.factory(**options)


CapabilityProbe = Callable[[], Optional[EncoderDescriptor]]

ENCODER_FACTORIES: dict[str, EncoderDescriptor] = {
    "hardware": EncoderDescriptor(
        "hardware", HardwareVideoEncoder, "Hardware H.264 (PyAV)", hardware=True
    ),
    "software": EncoderDescriptor("software", SoftwareVideoEncoder, "Software video (PyAV)"),
    "ffmpeg": EncoderDescriptor("ffmpeg", FFmpegEncoder, "ffmpeg subprocess"),
    "gif": EncoderDescriptor("gif", GIFEncoder, "Animated GIF (Pillow)"),
    "frame": EncoderDescriptor("frame", FrameEncoder, "Still image sequence"),
    "mjpeg": EncoderDescriptor("mjpeg", MJPEGEncoder, "Motion JPEG"),
}

FRAME_SEQUENCE_EXTENSIONS = frozenset({"png", "jpg", "jpeg"})


def create_encoder(key: str, **options: Any) -> Encoder:
    """Instantiate the backend registered under ``key``."""

    normalised = key.strip().lower()
    descriptor = ENCODER_FACTORIES.get(normalised)
    if descriptor is None:
        choices = ", ".join(sorted(ENCODER_FACTORIES))
        raise ValueError(f"Unknown encoder {key!r}; expected one of: {choices}")
    return descriptor.create(**options)


def probe_hardware_backend() -> EncoderDescriptor | None:
    """Return a descriptor for the first usable hardware encoder, if any."""

    backend = select_hardware_backend()
    if backend is None:
        logger.debug("No hardware H.264 encoder detected")
        return None
    return EncoderDescriptor(
        key=backend.key,
        factory=functools.partial(HardwareVideoEncoder, codec=backend.codec),
        label=backend.label,
        hardware=True,
    )


def select_encoder(
    options: "RecorderOptions", capability_probe: CapabilityProbe | None = None
) -> Encoder:
    """Pick the encoder for ``options``.

    An explicit encoder instance always wins. Otherwise ``gif`` and still image
    extensions map to their dedicated encoders, and video extensions use the
    probed hardware encoder when one is reported, falling back to software.
    """

    if options.encoder is not None:
        return options.encoder
    encoder_options = dict(options.encoder_options)
    extension = options.extension
    if extension == "gif":
        return GIFEncoder(**encoder_options)
    if extension in FRAME_SEQUENCE_EXTENSIONS:
        return FrameEncoder(**encoder_options)
    probe = capability_probe if capability_probe is not None else probe_hardware_backend
    descriptor = probe()
    if descriptor is not None:
        logger.info("Using %s encoder", descriptor.label)
        # ``codec`` names a software codec; the probed backend fixes its own.
        encoder_options.pop("codec", None)
        return descriptor.create(**encoder_options)
    return SoftwareVideoEncoder(**encoder_options)


__all__ = [
    "CapabilityProbe",
    "ENCODER_FACTORIES",
    "EncoderDescriptor",
    "create_encoder",
    "probe_hardware_backend",
    "select_encoder",
]
