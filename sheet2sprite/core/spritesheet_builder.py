"""Spritesheet composition using Pillow."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Sequence, Union

from PIL import Image

from . import Frame, FrameInfo, SpriteSheet
from .errors import ValidationError
from ..utils import file_tools

logger = logging.getLogger(__name__)

FrameLike = Union[Frame, Image.Image]


def _image_of(item: FrameLike) -> Image.Image:
    image = item.image if isinstance(item, Frame) else item
    return image if image.mode == "RGBA" else image.convert("RGBA")


def _resolve_grid(frame_count: int, columns: int | None) -> tuple[int, int]:
    """Compute grid layout; prefer a forced column count."""

    if columns is not None:
        if columns <= 0:
            raise ValidationError("Columns must be greater than zero")
        return columns, math.ceil(frame_count / columns)

    # Square-ish fallback
    columns = math.ceil(math.sqrt(frame_count))
    rows = math.ceil(frame_count / columns)
    return columns, rows


def _centered(cell: int, size: int) -> int:
    return int(math.floor((cell - size) / 2 + 0.5))


def assemble_spritesheet(frames: Sequence[FrameLike], columns: Optional[int] = None) -> SpriteSheet:
    """Pack frames row-major into a grid sized to the largest frame.

    Frame ``i`` lands in cell ``(i % columns, i // columns)``, centred in it.
    An empty input produces a 1x1 transparent sheet.
    """

    images = [_image_of(frame) for frame in frames]
    if not images:
        if columns is not None and columns <= 0:
            raise ValidationError("Columns must be greater than zero")
        logger.debug("No frames to pack; returning 1x1 sheet")
        return SpriteSheet(image=Image.new("RGBA", (1, 1), (0, 0, 0, 0)), columns=0, rows=0, cell_width=0, cell_height=0)

    columns, rows = _resolve_grid(len(images), columns)
    cell_w = max(image.width for image in images)
    cell_h = max(image.height for image in images)
    sheet = Image.new("RGBA", (columns * cell_w, rows * cell_h), (0, 0, 0, 0))

    placements: list[FrameInfo] = []
    for idx, image in enumerate(images):
        col = idx % columns
        row = idx // columns
        x = col * cell_w + _centered(cell_w, image.width)
        y = row * cell_h + _centered(cell_h, image.height)
        sheet.paste(image, (x, y))
        placements.append(FrameInfo(index=idx, timestamp=0.0, width=image.width, height=image.height, x=x, y=y))

    logger.debug("Packed %s frames into %sx%s grid of %sx%s cells", len(images), columns, rows, cell_w, cell_h)
    return SpriteSheet(
        image=sheet, columns=columns, rows=rows, cell_width=cell_w, cell_height=cell_h, placements=placements
    )


def assemble_rows(rows_of_frames: Sequence[Sequence[FrameLike]], columns: Optional[int] = None) -> SpriteSheet:
    """Pack frames so that row ``r`` of the sheet holds ``rows_of_frames[r]``.

    Cells are sized to the largest frame and frames are centred as in
    :func:`assemble_spritesheet`; empty rows stay transparent.
    """

    rows = [[_image_of(frame) for frame in row] for row in rows_of_frames]
    widest = max((len(row) for row in rows), default=0)
    columns = widest if columns is None else columns
    if columns <= 0 or not any(rows):
        raise ValidationError("Row layout needs at least one frame")
    images = [image for row in rows for image in row]
    cell_w = max(image.width for image in images)
    cell_h = max(image.height for image in images)
    sheet = Image.new("RGBA", (columns * cell_w, len(rows) * cell_h), (0, 0, 0, 0))

    placements: list[FrameInfo] = []
    for row, images_in_row in enumerate(rows):
        if len(images_in_row) > columns:
            logger.warning("Row %s has %s frames; keeping the first %s", row, len(images_in_row), columns)
        for col, image in enumerate(images_in_row[:columns]):
            x = col * cell_w + _centered(cell_w, image.width)
            y = row * cell_h + _centered(cell_h, image.height)
            sheet.paste(image, (x, y))
            placements.append(
                FrameInfo(index=row * columns + col, timestamp=0.0, width=image.width, height=image.height, x=x, y=y)
            )
    return SpriteSheet(
        image=sheet, columns=columns, rows=len(rows), cell_width=cell_w, cell_height=cell_h, placements=placements
    )


def fit_into_cell(image: Image.Image, cell_width: int, cell_height: int) -> tuple[Image.Image, int, int]:
    """Scale to fit a cell (nearest-neighbour), centred horizontally, bottom-aligned."""

    scale = min(cell_width / image.width, cell_height / image.height)
    width = max(1, int(math.floor(image.width * scale + 0.5)))
    height = max(1, int(math.floor(image.height * scale + 0.5)))
    if (width, height) != image.size:
        image = image.resize((width, height), Image.Resampling.NEAREST)
    return image, _centered(cell_width, width), cell_height - height


def build_row_sheet(
    rows_of_frames: Sequence[Sequence[FrameLike]],
    columns: int,
    cell_size: tuple[int, int],
) -> SpriteSheet:
    """One row per role (direction or attack) on a fixed cell grid.

    Frames beyond ``columns`` are dropped and missing frames leave empty
    cells, so row ``r`` always starts at frame ``r * columns``.
    """

    if columns <= 0:
        raise ValidationError("Columns must be greater than zero")
    cell_w, cell_h = cell_size
    sheet = Image.new("RGBA", (columns * cell_w, max(len(rows_of_frames), 1) * cell_h), (0, 0, 0, 0))
    placements: list[FrameInfo] = []
    for row, frames in enumerate(rows_of_frames):
        if len(frames) > columns:
            logger.warning("Row %s has %s frames; keeping the first %s", row, len(frames), columns)
        for col, frame in enumerate(frames[:columns]):
            fitted, offset_x, offset_y = fit_into_cell(_image_of(frame), cell_w, cell_h)
            x = col * cell_w + offset_x
            y = row * cell_h + offset_y
            sheet.paste(fitted, (x, y))
            placements.append(
                FrameInfo(index=row * columns + col, timestamp=0.0, width=fitted.width, height=fitted.height, x=x, y=y)
            )
    return SpriteSheet(
        image=sheet, columns=columns, rows=len(rows_of_frames), cell_width=cell_w, cell_height=cell_h,
        placements=placements,
    )


def save_spritesheet(sheet: SpriteSheet, output_path: Path) -> Path:
    """Persist a sheet as PNG."""

    output_path = output_path.with_suffix(".png")
    file_tools.ensure_directory(output_path.parent)
    sheet.image.save(output_path, format="PNG")
    logger.info("Wrote spritesheet to %s", output_path)
    return output_path
