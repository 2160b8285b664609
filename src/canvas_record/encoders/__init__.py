"""Encoding backends for :class:`canvas_record.recorder.Recorder`."""
from __future__ import annotations

from .base import Artifact, Encoder, EncoderConfig
from .factory import (
    ENCODER_FACTORIES,
    CapabilityProbe,
    EncoderDescriptor,
    create_encoder,
    probe_hardware_backend,
    select_encoder,
)
from .ffmpeg import FFmpegEncoder
from .frame import FrameEncoder
from .gif import GIFEncoder
from .hardware import HardwareVideoEncoder, select_hardware_backend
from .mjpeg import MJPEGEncoder
from .software import SoftwareVideoEncoder

__all__ = [
    "Artifact",
    "CapabilityProbe",
    "ENCODER_FACTORIES",
    "Encoder",
    "EncoderConfig",
    "EncoderDescriptor",
    "FFmpegEncoder",
    "FrameEncoder",
    "GIFEncoder",
    "HardwareVideoEncoder",
    "MJPEGEncoder",
    "SoftwareVideoEncoder",
    "create_encoder",
    "probe_hardware_backend",
    "select_encoder",
    "select_hardware_backend",
]
