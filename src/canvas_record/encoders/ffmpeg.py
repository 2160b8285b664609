"""Encode through an external ``ffmpeg`` process fed raw RGBA frames."""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

import numpy as np

from ..errors import EncodeError, EncoderInitError
from ..frames import FrameMethod
from ..utils import next_multiple
from .base import Encoder, EncoderConfig


logger = logging.getLogger(__name__)

_DEFAULT_CODECS = {
    "mp4": "libx264",
    "mkv": "libx264",
    "mov": "libx264",
    "webm": "libvpx-vp9",
}

_STDERR_TAIL_BYTES = 16_384


def check_ffmpeg() -> str | None:
    """Return the path of the ``ffmpeg`` executable, if installed."""

    return shutil.which("ffmpeg")


class FFmpegEncoder(Encoder):
    """Pipe raw frames into ``ffmpeg`` and collect the finished container.

    The process is spawned when the first frame arrives so the input geometry
    matches exactly what the frame source produces; ``ffmpeg`` scales to the
    configured size when the two differ.
    """

    supported_extensions = ("mp4", "webm", "mkv", "mov")
    frame_method = FrameMethod.IMAGE_DATA

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._binary: str | None = None
        self._output: Path | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._input_shape: tuple[int, int] | None = None
        self._stderr_task: asyncio.Task[bytes] | None = None

    async def init(self, config: EncoderConfig) -> None:
        await super().init(config)
        binary = self.options.get("binary") or check_ffmpeg()
        if not binary:
            raise EncoderInitError("ffmpeg not found. Install ffmpeg to use FFmpegEncoder.")
        self._binary = str(binary)
        suffix = f".{self.extension or self.supported_extensions[0]}"
        handle, name = tempfile.mkstemp(prefix="canvas-record-", suffix=suffix)
        os.close(handle)
        self._output = Path(name)

    def build_command(self, input_width: int, input_height: int) -> list[str]:
        extension = self.extension or self.supported_extensions[0]
        codec = self.options.get("codec") or _DEFAULT_CODECS.get(extension, "libx264")
        output_width = next_multiple(self.width, 2)
        output_height = next_multiple(self.height, 2)
        command = [
            self._binary or "ffmpeg",
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-y",
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "-s", f"{input_width}x{input_height}",
            "-r", str(self.frame_rate),
            "-i", "pipe:0",
        ]
        if (input_width, input_height) != (output_width, output_height):
            command.extend(["-vf", f"scale={output_width}:{output_height}"])
        command.extend(["-c:v", str(codec), "-pix_fmt", "yuv420p"])
        command.extend(str(arg) for arg in self.options.get("extra_args", ()))
        command.append(str(self._output))
        return command

    async def _spawn(self, input_width: int, input_height: int) -> asyncio.subprocess.Process:
        command = self.build_command(input_width, input_height)
        if self.debug:
            logger.debug("Starting ffmpeg: %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EncodeError(f"Failed to start ffmpeg: {exc}") from exc
        self._input_shape = (input_height, input_width)
        self._stderr_task = asyncio.create_task(self._drain_stderr(process))
        return process

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> bytes:
        """Collect the tail of ffmpeg's stderr while the process runs."""

        stream = process.stderr
        if stream is None:  # pragma: no cover - PIPE always provides stderr
            return b""
        tail = bytearray()
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            tail.extend(chunk)
            del tail[:-_STDERR_TAIL_BYTES]
            if self.debug:
                logger.debug("ffmpeg: %s", chunk.decode("utf-8", "replace").rstrip())
        return bytes(tail)

    async def encode(self, frame: Any, frame_index: int) -> None:
        if self._output is None:
            raise EncodeError("Encoder has not been initialised")
        array = np.asarray(frame) if frame is not None else None
        if array is None or array.ndim != 3 or array.shape[2] != 4:
            shape = None if array is None else array.shape
            raise EncodeError(f"Expected an RGBA pixel buffer, got shape {shape}")
        if self._process is None:
            self._process = await self._spawn(array.shape[1], array.shape[0])
        elif array.shape[:2] != self._input_shape:
            raise EncodeError(
                f"Frame {frame_index} has shape {array.shape[:2]}, expected {self._input_shape}"
            )
        stdin = self._process.stdin
        if stdin is None:  # pragma: no cover - PIPE always provides stdin
            raise EncodeError("ffmpeg stdin is not available")
        try:
            stdin.write(np.ascontiguousarray(array, dtype=np.uint8).tobytes())
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise EncodeError(f"ffmpeg closed its input after frame {frame_index}") from exc

    async def stop(self) -> bytes | None:
        process = self._process
        output = self._output
        self._process = None
        if process is None:
            return None
        if process.stdin is not None:
            process.stdin.close()
            try:
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):  # pragma: no cover - ffmpeg exited early
                pass
        await process.wait()
        stderr_task = self._stderr_task
        self._stderr_task = None
        stderr = await stderr_task if stderr_task is not None else b""
        if process.returncode != 0:
            message = (stderr or b"").decode("utf-8", "replace").strip()
            raise EncodeError(f"ffmpeg exited with code {process.returncode}: {message}")
        if output is None:  # pragma: no cover - init always sets the output
            return None
        return await asyncio.to_thread(output.read_bytes)

    async def dispose(self) -> None:
        process = self._process
        self._process = None
        if process is not None and process.returncode is None:
            process.kill()
            await process.wait()
        stderr_task = self._stderr_task
        self._stderr_task = None
        if stderr_task is not None:
            stderr_task.cancel()
            try:
                await stderr_task
            except asyncio.CancelledError:
                pass
        output = self._output
        self._output = None
        if output is not None:
            output.unlink(missing_ok=True)


__all__ = ["FFmpegEncoder", "check_ffmpeg"]
