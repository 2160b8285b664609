"""Recorder state machine driving frame capture and encoding."""
from __future__ import annotations

import asyncio
import logging
import math
import warnings
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Mapping

from .config import DEFAULT_RECORDER_OPTIONS, RecorderOptions, resolve_mime_type
from .download import DownloadSink
from .encoders.base import Artifact, Encoder, EncoderConfig
from .encoders.factory import CapabilityProbe, select_encoder
from .errors import RecorderStateError, UnsupportedExtensionWarning
from .frames import DEFAULT_JPEG_QUALITY, FrameSource
from .surface import BaseSurface
from .utils import format_date, format_seconds


logger = logging.getLogger(__name__)

# Absorbs float error in duration * frame_rate (0.3 * 10 == 3.0000000000000004).
_FRAME_EPSILON = 1e-9


class RecorderStatus(IntEnum):
    """Lifecycle states, in the only order they can be visited."""

    READY = 0
    INITIALIZING = 1
    INITIALIZED = 2
    RECORDING = 3
    STOPPING = 4
    STOPPED = 5


@dataclass(frozen=True)
class RecorderStats:
    render_time: float
    seconds_per_frame: float
    detail: str


class Recorder:
    """Record a drawing surface frame by frame into a single artifact.

    The recorder advances a logical clock by exactly ``1 / frame_rate`` per
    encoded frame, so the artifact plays back at ``frame_rate`` whatever the
    capture cadence was. Drive it either with :meth:`run` or by calling
    :meth:`step` from an existing render loop after :meth:`start`.

    Concurrent ``step()`` calls must be serialised by the caller. A ``stop()``
    issued while a step is encoding waits for that frame to finish first.
    """

    def __init__(
        self,
        surface: BaseSurface,
        options: RecorderOptions | Mapping[str, Any] | None = None,
        *,
        capability_probe: CapabilityProbe | None = None,
        download_sink: DownloadSink | None = None,
        **overrides: Any,
    ) -> None:
        if options is None:
            base = DEFAULT_RECORDER_OPTIONS
        elif isinstance(options, RecorderOptions):
            base = options
        else:
            base = DEFAULT_RECORDER_OPTIONS.merged(**dict(options))
        self.options = base.merged(**overrides) if overrides else base
        self.surface = surface
        self.frame_source = FrameSource(surface)
        self.encoder: Encoder = select_encoder(self.options, capability_probe)
        self._download_sink = download_sink or DownloadSink(self.options.download_dir)
        self._step_done: asyncio.Event | None = None

        self.name = self.options.name
        self.filename = self.options.filename
        self.duration = self.options.duration
        self.frame_rate = self.options.frame_rate
        self.download = self.options.download
        self.debug = self.options.debug
        self._on_status_change = self.options.on_status_change

        self.start_time: datetime | None = None
        self.delta_time = 1 / self.frame_rate
        self.time = 0.0
        self.frame = 0
        self.frame_total = self.options.frame_total
        self.extension: str | None = None

        self.status = RecorderStatus.READY
        self._notify()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def width(self) -> int:
        if self.options.width is not None:
            return self.options.width
        return int(self.surface.width)

    @property
    def height(self) -> int:
        if self.options.height is not None:
            return self.options.height
        return int(self.surface.height)

    @property
    def stats(self) -> RecorderStats:
        """Wall clock progress of the current recording."""

        if self.start_time is None:
            render_time = 0.0
        else:
            render_time = (datetime.now() - self.start_time).total_seconds()
        seconds_per_frame = render_time / self.frame if self.frame else 0.0
        remaining = seconds_per_frame * self.frame_total - render_time
        speedup = self.time / render_time if render_time > 0 else 0.0
        detail = "\n".join(
            [
                f"Time: {self.time:.2f} / {self.duration:.2f}",
                f"Frame: {self.frame} / {self.frame_total:g}",
                f"Elapsed Time: {format_seconds(render_time)}",
                f"Remaining Time: {format_seconds(remaining)}",
                f"Speedup: x{speedup:.1f}",
            ]
        )
        return RecorderStats(
            render_time=render_time, seconds_per_frame=seconds_per_frame, detail=detail
        )

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------
    def get_param_string(self) -> str:
        return f"{self.width}x{self.height}@{self.frame_rate:g}fps"

    def get_default_filename(self, extension: str) -> str:
        parts = [self.name, format_date(self.start_time), self.get_param_string()]
        return "-".join(part for part in parts if part) + f".{extension}"

    def get_supported_extension(self) -> str:
        """Return the requested extension, or the encoder's default with a warning."""

        encoder_cls = type(self.encoder)
        requested = self.options.extension
        if encoder_cls.supports_extension(requested):
            return requested
        fallback = encoder_cls.supported_extensions[0]
        message = (
            f'Unsupported extension for encoder "{encoder_cls.__name__}". '
            f'Defaulting to "{fallback}".'
        )
        warnings.warn(message, UnsupportedExtensionWarning, stacklevel=2)
        logger.warning(message)
        return fallback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _update_status(self, status: RecorderStatus) -> None:
        self.status = status
        self._notify()

    def _notify(self) -> None:
        callback = self._on_status_change
        if callback is None:
            return
        try:
            callback(self.status)
        except Exception:
            logger.exception("Status observer failed for %s", self.status.name)

    async def init(self) -> None:
        """Reset the clock and initialise the encoder."""

        self._update_status(RecorderStatus.INITIALIZING)

        self.delta_time = 1 / self.frame_rate
        self.time = 0.0
        self.frame = 0
        self.frame_total = self.duration * self.frame_rate

        extension = self.get_supported_extension()
        self.extension = extension
        config = EncoderConfig(
            surface=self.surface,
            width=self.width,
            height=self.height,
            frame_rate=self.frame_rate,
            extension=extension,
            mime_type=resolve_mime_type(extension),
            param_string=self.get_param_string(),
            encoder_options=self.options.encoder_options,
            debug=self.debug,
        )
        await self.encoder.init(config)

        self._update_status(RecorderStatus.INITIALIZED)

    async def start(self) -> None:
        """Initialise, then encode the first frame."""

        if self.status >= RecorderStatus.RECORDING:
            raise RecorderStateError(
                f"Cannot start a recorder that is {self.status.name.lower()}"
            )
        await self.init()

        if self.status is not RecorderStatus.INITIALIZED:
            logger.debug("Recorder not initialised; skipping start")
            return

        self.start_time = datetime.now()
        if not self.filename:
            self.filename = self.get_default_filename(self.encoder.extension or self.extension)

        self._update_status(RecorderStatus.RECORDING)

        await self.step()

    async def step(self) -> Artifact | None:
        """Encode one frame, or stop once the duration has been reached.

        Returns the artifact when this call stopped the recording.
        """

        if (
            self.status is RecorderStatus.RECORDING
            and self.frame < self.frame_total - _FRAME_EPSILON
        ):
            encoder = self.encoder
            done = asyncio.Event()
            self._step_done = done
            try:
                frame = await self.frame_source.get_frame(
                    encoder.frame_method,
                    time=self.time,
                    extension=encoder.extension or "png",
                    quality=getattr(encoder, "quality", DEFAULT_JPEG_QUALITY),
                )
                await encoder.encode(frame, self.frame)
                self.frame += 1
                self.time = self.frame / self.frame_rate
            finally:
                if self._step_done is done:
                    self._step_done = None
                done.set()
            return None
        return await self.stop()

    async def stop(self) -> Artifact | None:
        """Finalise the encoder and hand the artifact to the download sink."""

        if self.status is not RecorderStatus.RECORDING:
            return None

        self._update_status(RecorderStatus.STOPPING)

        in_flight = self._step_done
        if in_flight is not None:
            logger.debug("Waiting for frame %d to finish encoding", self.frame)
            await in_flight.wait()

        artifact = await self.encoder.stop()

        if self.download and artifact:
            extension = self.encoder.extension or self.extension or "bin"
            filename = self.filename or self.get_default_filename(extension)
            await asyncio.to_thread(
                self._download_sink.save, filename, artifact, self.encoder.mime_type
            )

        self._update_status(RecorderStatus.STOPPED)
        return artifact

    async def dispose(self) -> None:
        await self.encoder.dispose()

    async def run(self) -> Artifact | None:
        """Record the whole duration as fast as frames can be produced."""

        if not math.isfinite(self.duration):
            raise ValueError("run() needs a finite duration; drive step() manually instead")
        await self.start()
        artifact: Artifact | None = None
        while self.status is RecorderStatus.RECORDING:
            artifact = await self.step()
        return artifact


__all__ = ["Recorder", "RecorderStats", "RecorderStatus"]
