"""Contract shared by every encoding backend."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union

from ..errors import EncoderInitError
from ..frames import FrameMethod
from ..surface import BaseSurface


logger = logging.getLogger(__name__)

Artifact = Union[bytes, list[bytes]]


@dataclass(frozen=True, slots=True)
class EncoderConfig:
    """Negotiated configuration handed to :meth:`Encoder.init`."""

    surface: BaseSurface
    width: int
    height: int
    frame_rate: float
    extension: str
    mime_type: str | None = None
    param_string: str = ""
    encoder_options: Mapping[str, Any] = field(default_factory=dict)
    debug: bool = False

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise EncoderInitError(
                f"Encoder dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.frame_rate <= 0:
            raise EncoderInitError("Encoder frame rate must be positive")
        object.__setattr__(self, "encoder_options", dict(self.encoder_options or {}))


class Encoder(ABC):
    """Abstract encoding backend.

    Subclasses list the file extensions they can produce in
    ``supported_extensions`` (the first one is the fallback) and declare the
    frame representation they consume through ``frame_method``. Frames are
    delivered strictly in call order; ``stop`` is awaited at most once.
    """

    supported_extensions: ClassVar[tuple[str, ...]] = ()
    frame_method: FrameMethod | None = None

    def __init__(self, **options: Any) -> None:
        self.options: dict[str, Any] = dict(options)
        self.config: EncoderConfig | None = None
        self.extension: str | None = None
        self.mime_type: str | None = None
        self.width = 0
        self.height = 0
        self.frame_rate = 0.0
        self.debug = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @classmethod
    def supports_extension(cls, extension: str) -> bool:
        return extension in cls.supported_extensions

    async def init(self, config: EncoderConfig) -> None:
        """Store the negotiated configuration. Subclasses extend this."""

        self.config = config
        self.options = {**self.options, **dict(config.encoder_options)}
        self.extension = config.extension
        self.mime_type = config.mime_type
        self.width = int(config.width)
        self.height = int(config.height)
        self.frame_rate = float(config.frame_rate)
        self.debug = bool(config.debug)
        if self.debug:
            logger.debug(
                "%s initialised for %s (%s)", self.name, config.extension, config.param_string
            )

    @abstractmethod
    async def encode(self, frame: Any, frame_index: int) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> Artifact | None:  # pragma: no cover - interface only
        raise NotImplementedError

    async def dispose(self) -> None:  # pragma: no cover - optional override
        return None


__all__ = ["Artifact", "Encoder", "EncoderConfig"]
