"""Exception and warning types raised by the recorder and its encoders."""
from __future__ import annotations


class RecorderError(RuntimeError):
    """Base class for recording failures."""


class EncoderInitError(RecorderError):
    """Raised when an encoder cannot satisfy the requested configuration."""


class FrameAcquisitionError(RecorderError):
    """Raised when a frame cannot be read from the drawing surface."""


class EncodeError(RecorderError):
    """Raised when an encoder rejects a frame."""


class RecorderStateError(RecorderError):
    """Raised when a recorder is driven from a state that cannot accept the call."""


class UnsupportedExtensionWarning(UserWarning):
    """Emitted when the requested extension is replaced by the encoder default."""


__all__ = [
    "EncodeError",
    "EncoderInitError",
    "FrameAcquisitionError",
    "RecorderError",
    "RecorderStateError",
    "UnsupportedExtensionWarning",
]
