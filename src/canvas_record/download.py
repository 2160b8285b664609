"""Persist finished recordings to disk."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .config import default_download_dir


logger = logging.getLogger(__name__)


def _safe_name(filename: str) -> str:
    name = Path(str(filename)).name
    if not name or name in {".", ".."}:
        raise ValueError(f"Invalid download filename: {filename!r}")
    return name


class DownloadSink:
    """Write artifacts into ``directory``.

    Each :meth:`save` call is self-contained: the directory is created on
    demand and nothing is kept open between calls.
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self._directory = Path(directory) if directory is not None else None

    @property
    def directory(self) -> Path:
        return self._directory if self._directory is not None else default_download_dir()

    def save(
        self,
        filename: str,
        artifact: bytes | Sequence[bytes],
        mime_type: str | None = None,
    ) -> list[Path]:
        """Write ``artifact`` and return the paths that were created.

        A single ``bytes`` payload lands in ``filename``; a sequence of parts is
        written as ``<stem>-00000<suffix>``, ``<stem>-00001<suffix>`` and so on.
        """

        name = _safe_name(filename)
        directory = self.directory
        directory.mkdir(parents=True, exist_ok=True)
        if isinstance(artifact, (bytes, bytearray, memoryview)):
            target = directory / name
            target.write_bytes(bytes(artifact))
            written = [target]
        else:
            stem = Path(name).stem
            suffix = Path(name).suffix
            written = []
            for index, part in enumerate(artifact):
                target = directory / f"{stem}-{index:05d}{suffix}"
                target.write_bytes(bytes(part))
                written.append(target)
        logger.debug(
            "Saved %s (%s) as %d file(s) in %s",
            name,
            mime_type or "application/octet-stream",
            len(written),
            directory,
        )
        return written


__all__ = ["DownloadSink"]
