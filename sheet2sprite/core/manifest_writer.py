"""Manifest and sprite-config writing logic."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from . import FrameInfo, SpriteSheet
from ..utils import file_tools

logger = logging.getLogger(__name__)


def render_json(payload: dict) -> str:
    return json.dumps(payload, indent=2)


def write_sprite_config(config: dict, path: Path) -> Path:
    """Write a sprite-config document as pretty-printed JSON."""

    config_path = path.with_suffix(".json")
    file_tools.ensure_directory(config_path.parent)
    config_path.write_text(render_json(config), encoding="utf-8")
    logger.info("Wrote sprite config to %s", config_path)
    return config_path


def frame_manifest(
    infos: Iterable[FrameInfo],
    sheet: SpriteSheet,
    spritesheet_path: Optional[Path] = None,
    source: Optional[str] = None,
) -> dict:
    """Describe where every frame sits inside an assembled sheet."""

    frames_payload = {}
    for info in infos:
        frames_payload[f"frame_{info.index:04d}"] = {
            "x": info.x,
            "y": info.y,
            "width": info.width,
            "height": info.height,
        }

    return {
        "source": source,
        "frames": frames_payload,
        "meta": {
            "columns": sheet.columns,
            "rows": sheet.rows,
            "cellWidth": sheet.cell_width,
            "cellHeight": sheet.cell_height,
            "spritesheet": str(spritesheet_path.with_suffix(".png")) if spritesheet_path else None,
        },
    }


def write_frame_manifest(
    infos: Iterable[FrameInfo],
    sheet: SpriteSheet,
    path: Path,
    source: Optional[str] = None,
) -> Path:
    """Create a JSON manifest describing frame coordinates next to the sheet."""

    manifest_path = path.with_suffix(".json")
    file_tools.ensure_directory(manifest_path.parent)
    manifest = frame_manifest(infos, sheet, spritesheet_path=path, source=source)
    manifest_path.write_text(render_json(manifest), encoding="utf-8")
    logger.info("Wrote manifest to %s", manifest_path)
    return manifest_path
