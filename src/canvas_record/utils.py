"""Small formatting and arithmetic helpers shared by the recorder."""
from __future__ import annotations

import math
from datetime import datetime


def next_multiple(value: float, multiple: int) -> int:
    """Round ``value`` up to the nearest multiple of ``multiple``."""

    if multiple <= 0:
        raise ValueError("multiple must be positive")
    return int(math.ceil(float(value) / multiple) * multiple)


def format_date(moment: datetime | None) -> str:
    """Return a filesystem friendly timestamp such as ``2024.05.01-14.03.59``."""

    if moment is None:
        return ""
    return moment.strftime("%Y.%m.%d-%H.%M.%S")


def format_seconds(seconds: float) -> str:
    """Format a duration as ``MM:SS`` (or ``HH:MM:SS`` past the hour)."""

    if not math.isfinite(seconds):
        return "--:--"
    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


__all__ = ["format_date", "format_seconds", "next_multiple"]
