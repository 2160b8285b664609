"""Record drawing surfaces frame by frame into video, GIF or image sequences."""
from __future__ import annotations

from typing import Any

__version__ = "0.1.0"

from .config import RecorderOptions, RecorderOptionsStore
from .download import DownloadSink
from .encoders import (
    Encoder,
    EncoderConfig,
    EncoderDescriptor,
    FFmpegEncoder,
    FrameEncoder,
    GIFEncoder,
    HardwareVideoEncoder,
    MJPEGEncoder,
    SoftwareVideoEncoder,
    create_encoder,
    probe_hardware_backend,
)
from .errors import (
    EncodeError,
    EncoderInitError,
    FrameAcquisitionError,
    RecorderError,
    RecorderStateError,
    UnsupportedExtensionWarning,
)
from .frames import FrameMethod, FrameSource
from .recorder import Recorder, RecorderStats, RecorderStatus
from .surface import ArraySurface, BaseSurface, FramebufferSurface, SyntheticSurface


def create_app(*args: Any, **kwargs: Any):
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ArraySurface",
    "BaseSurface",
    "DownloadSink",
    "EncodeError",
    "Encoder",
    "EncoderConfig",
    "EncoderDescriptor",
    "EncoderInitError",
    "FFmpegEncoder",
    "FrameAcquisitionError",
    "FrameEncoder",
    "FrameMethod",
    "FrameSource",
    "FramebufferSurface",
    "GIFEncoder",
    "HardwareVideoEncoder",
    "MJPEGEncoder",
    "Recorder",
    "RecorderError",
    "RecorderOptions",
    "RecorderOptionsStore",
    "RecorderStateError",
    "RecorderStats",
    "RecorderStatus",
    "SoftwareVideoEncoder",
    "SyntheticSurface",
    "UnsupportedExtensionWarning",
    "create_app",
    "create_encoder",
    "probe_hardware_backend",
]
