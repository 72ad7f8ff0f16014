"""Filesystem helpers."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)
    return path


def frame_filename(prefix: str, index: int, suffix: str = ".png") -> str:
    """Deterministic per-frame name: ``{prefix}_{index:04d}.png``."""

    if not suffix.startswith("."):
        suffix = "." + suffix
    return f"{prefix}_{index:04d}{suffix}"


def safe_name(name: str, fallback: str = "character") -> str:
    """Reduce a user-supplied name to a filesystem-safe stem."""

    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in name.strip())
    return cleaned.strip("_") or fallback
