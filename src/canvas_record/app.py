"""FastAPI application rendering and serving recordings."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import default_download_dir, normalise_extension, resolve_mime_type
from .download import DownloadSink
from .encoders.factory import CapabilityProbe
from .errors import RecorderError
from .recorder import Recorder, RecorderStatus
from .surface import SyntheticSurface


class RecordingPayload(BaseModel):
    name: str = "synthetic"
    width: int = Field(default=320, gt=0, le=4096)
    height: int = Field(default=240, gt=0, le=4096)
    duration: float = Field(default=1.0, gt=0, le=600)
    frame_rate: float = Field(default=30.0, gt=0, le=240)
    extension: str = "mp4"


def _describe(path: Path) -> dict[str, object]:
    stat = path.stat()
    return {
        "filename": path.name,
        "size_bytes": stat.st_size,
        "mime_type": resolve_mime_type(path.suffix) or "application/octet-stream",
    }


def create_app(
    recordings_dir: Path | str | None = None,
    *,
    capability_probe: CapabilityProbe | None = None,
) -> FastAPI:
    app = FastAPI(title="canvas-record", version=__version__)

    logger = logging.getLogger(__name__)

    directory = Path(recordings_dir) if recordings_dir is not None else default_download_dir()
    sink = DownloadSink(directory)

    def _resolve_file(filename: str) -> Path:
        name = Path(filename).name
        if not name or name != filename:
            raise HTTPException(status_code=400, detail="Invalid recording name")
        path = directory / name
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Recording not found")
        return path

    async def _render(payload: RecordingPayload) -> tuple[Recorder, object]:
        surface = SyntheticSurface(payload.width, payload.height)
        recorder = Recorder(
            surface,
            name=payload.name,
            duration=payload.duration,
            frame_rate=payload.frame_rate,
            extension=normalise_extension(payload.extension),
            download=False,
            capability_probe=capability_probe,
        )
        artifact = None
        try:
            surface.draw(0.0)
            await recorder.start()
            while recorder.status is RecorderStatus.RECORDING:
                surface.draw(recorder.time)
                artifact = await recorder.step()
        finally:
            await recorder.dispose()
        return recorder, artifact

    @app.post("/api/recordings")
    async def create_recording(payload: RecordingPayload) -> dict[str, object]:
        try:
            recorder, artifact = await _render(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RecorderError as exc:
            logger.exception("Recording %s failed", payload.name)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if not artifact:
            raise HTTPException(status_code=500, detail="Encoder produced no output")
        filename = recorder.filename or recorder.get_default_filename(recorder.extension or "bin")
        paths = await asyncio.to_thread(
            sink.save, filename, artifact, recorder.encoder.mime_type
        )
        logger.info("Rendered %s (%d frame(s))", filename, recorder.frame)
        return {
            "encoder": recorder.encoder.name,
            "extension": recorder.extension,
            "frames": recorder.frame,
            "files": [_describe(path) for path in paths],
        }

    @app.get("/api/recordings")
    async def list_recordings() -> dict[str, object]:
        if not directory.is_dir():
            return {"recordings": []}
        paths = await asyncio.to_thread(
            lambda: sorted(path for path in directory.iterdir() if path.is_file())
        )
        return {"recordings": [_describe(path) for path in paths]}

    @app.get("/api/recordings/{filename}")
    async def download_recording(filename: str) -> FileResponse:
        path = _resolve_file(filename)
        media_type = resolve_mime_type(path.suffix) or "application/octet-stream"
        return FileResponse(path, media_type=media_type, filename=path.name)

    return app


__all__ = ["RecordingPayload", "create_app"]
