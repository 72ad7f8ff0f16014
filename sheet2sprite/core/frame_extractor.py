"""Slice a source raster into frames by grid, dividers or free regions."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import replace
from typing import Optional, Sequence

from PIL import Image

from . import (
    MIN_DIVIDER_GAP,
    DividedGrid,
    ExtractionResult,
    Frame,
    FreeRegions,
    PartitionDescriptor,
    Rect,
    Region,
    UniformGrid,
)
from .animation_config import roles_for_rows
from .errors import ValidationError

logger = logging.getLogger(__name__)

MIN_REGION_SIZE = 2.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def even_dividers(count: int) -> list[float]:
    """Divider percentages splitting an axis into ``count`` equal cells."""

    return [i / count * 100 for i in range(1, count)]


def percent_to_pixel(percent: float, size: int) -> int:
    """Round ``percent`` of ``size`` half-up.

    The product is first rounded to 9 decimals so that exact halves, such as
    one sixth of 45, are not pushed below .5 by float error.
    """

    return round_half_up(round(percent * size / 100, 9))


def axis_boundaries(dividers: Sequence[float], size: int) -> list[int]:
    """Pixel boundaries ``[0, ..., size]`` for an axis.

    Each boundary is rounded from its own percentage so adjacent cells share
    an edge exactly. For even dividers this equals ``round_half_up(i * size / count)``.
    """

    positions = [0.0, *dividers, 100.0]
    return [percent_to_pixel(p, size) for p in positions]


def validate_dividers(dividers: Sequence[float], axis: str = "divider") -> list[str]:
    """Describe ordering/gap problems without raising."""

    warnings: list[str] = []
    previous = 0.0
    for index, position in enumerate(dividers):
        if position <= 0 or position >= 100:
            warnings.append(f"{axis} {index} at {position:.2f}% lies outside the image")
        elif position - previous < MIN_DIVIDER_GAP:
            warnings.append(
                f"{axis} {index} at {position:.2f}% is closer than {MIN_DIVIDER_GAP:g}% to its neighbour"
            )
        previous = position
    if dividers and 100 - dividers[-1] < MIN_DIVIDER_GAP and 0 < dividers[-1] < 100:
        warnings.append(f"last {axis} at {dividers[-1]:.2f}% is closer than {MIN_DIVIDER_GAP:g}% to the edge")
    return warnings


def normalize_dividers(dividers: Sequence[float]) -> list[float]:
    """Sort and clamp into (0, 100), dropping duplicates."""

    clamped = sorted({min(max(float(d), 0.0), 100.0) for d in dividers})
    return [d for d in clamped if 0.0 < d < 100.0]


def move_divider(dividers: Sequence[float], index: int, position: float) -> list[float]:
    """Drag one divider, clamped between its neighbours by the minimum gap."""

    if index < 0 or index >= len(dividers):
        raise ValidationError(f"Divider index {index} out of range")
    updated = list(dividers)
    position = max(0.0, min(100.0, position))
    low = updated[index - 1] + MIN_DIVIDER_GAP if index > 0 else MIN_DIVIDER_GAP
    high = updated[index + 1] - MIN_DIVIDER_GAP if index < len(updated) - 1 else 100.0 - MIN_DIVIDER_GAP
    updated[index] = max(low, min(high, position))
    return updated


def divided_grid(columns: int, rows: int) -> DividedGrid:
    """Evenly spaced divider grid, the starting point before any drag."""

    return DividedGrid(vertical_dividers=even_dividers(columns), horizontal_dividers=even_dividers(rows))


def new_region_id() -> str:
    return uuid.uuid4().hex[:8]


def clamp_region(region: Region) -> Region:
    """Keep a region inside the 0-100 box with at least the minimum size."""

    x = min(max(region.x, 0.0), 100.0 - MIN_REGION_SIZE)
    y = min(max(region.y, 0.0), 100.0 - MIN_REGION_SIZE)
    width = min(max(region.width, MIN_REGION_SIZE), 100.0 - x)
    height = min(max(region.height, MIN_REGION_SIZE), 100.0 - y)
    return replace(region, x=x, y=y, width=width, height=height)


def regions_from_grid(columns: int, rows: int) -> list[Region]:
    """Seed free regions from a uniform grid, row-major."""

    if columns <= 0 or rows <= 0:
        return []
    col_width = 100 / columns
    row_height = 100 / rows
    return [
        Region(id=new_region_id(), x=col * col_width, y=row * row_height, width=col_width, height=row_height)
        for row in range(rows)
        for col in range(columns)
    ]


def move_region(regions: Sequence[Region], index: int, direction: str) -> list[Region]:
    """Swap a region with its neighbour; no-op at either end."""

    if direction not in ("up", "down"):
        raise ValidationError("direction must be 'up' or 'down'")
    updated = list(regions)
    target = index - 1 if direction == "up" else index + 1
    if index < 0 or index >= len(updated) or target < 0 or target >= len(updated):
        return updated
    updated[index], updated[target] = updated[target], updated[index]
    return updated


def remove_region(regions: Sequence[Region], region_id: str) -> list[Region]:
    return [region for region in regions if region.id != region_id]


def region_pixel_rect(region: Region, width: int, height: int) -> Rect:
    """Pixel rectangle of a region, clamped to the source."""

    x = min(max(percent_to_pixel(region.x, width), 0), width)
    y = min(max(percent_to_pixel(region.y, height), 0), height)
    w = percent_to_pixel(region.width, width)
    h = percent_to_pixel(region.height, height)
    return Rect(x=x, y=y, width=max(0, min(w, width - x)), height=max(0, min(h, height - y)))


def split_by_roles(frames: Sequence[Frame], rows: int, columns: int) -> Optional[dict[str, list[Frame]]]:
    """Group row-major frames by row role, or None when the row count has no roles."""

    roles = roles_for_rows(rows)
    if roles is None or columns <= 0 or len(frames) != rows * columns:
        return None
    return {role: list(frames[row * columns:(row + 1) * columns]) for row, role in enumerate(roles)}


def extract(source: Image.Image, partition: PartitionDescriptor) -> ExtractionResult:
    """Slice ``source`` into frames according to ``partition``."""

    image = source if source.mode == "RGBA" else source.convert("RGBA")
    if isinstance(partition, UniformGrid):
        return _extract_grid(
            image,
            partition,
            even_dividers(partition.columns) if partition.columns > 0 else [],
            even_dividers(partition.rows) if partition.rows > 0 else [],
            partition.columns,
            partition.rows,
            [],
        )
    if isinstance(partition, DividedGrid):
        warnings = validate_dividers(partition.vertical_dividers, "vertical divider")
        warnings += validate_dividers(partition.horizontal_dividers, "horizontal divider")
        vertical = normalize_dividers(partition.vertical_dividers)
        horizontal = normalize_dividers(partition.horizontal_dividers)
        if warnings:
            for message in warnings:
                logger.warning("Divider problem: %s", message)
        return _extract_grid(image, partition, vertical, horizontal, len(vertical) + 1, len(horizontal) + 1, warnings)
    if isinstance(partition, FreeRegions):
        return _extract_regions(image, partition)
    raise ValidationError(f"Unsupported partition: {type(partition).__name__}")


def _extract_grid(
    image: Image.Image,
    partition: PartitionDescriptor,
    vertical: Sequence[float],
    horizontal: Sequence[float],
    columns: int,
    rows: int,
    warnings: list[str],
) -> ExtractionResult:
    if columns <= 0 or rows <= 0:
        return ExtractionResult(frames=[], partition=partition, columns=max(columns, 0), rows=max(rows, 0), warnings=warnings)

    xs = axis_boundaries(vertical, image.width)
    ys = axis_boundaries(horizontal, image.height)
    frames: list[Frame] = []
    skipped = 0
    for row in range(rows):
        top, bottom = ys[row], ys[row + 1]
        for col in range(columns):
            left, right = xs[col], xs[col + 1]
            if right <= left or bottom <= top:
                skipped += 1
                warnings.append(f"cell ({col}, {row}) has zero size and was skipped")
                continue
            cell = image.crop((left, top, right, bottom))
            frames.append(Frame.from_image(len(frames), cell, source_x=left, source_y=top))

    roles = None
    if skipped:
        logger.warning("Skipped %s zero-size cells; frames are left unlabeled", skipped)
    else:
        roles = split_by_roles(frames, rows, columns)
        if roles is None:
            logger.debug("No row roles for %s rows", rows)
    logger.info("Extracted %s frames from %sx%s grid", len(frames), columns, rows)
    return ExtractionResult(frames=frames, partition=partition, columns=columns, rows=rows, roles=roles, warnings=warnings)


def _extract_regions(image: Image.Image, partition: FreeRegions) -> ExtractionResult:
    frames: list[Frame] = []
    warnings: list[str] = []
    for region in partition.regions:
        rect = region_pixel_rect(region, image.width, image.height)
        if rect.width <= 0 or rect.height <= 0:
            warnings.append(f"region {region.id} has zero size and was skipped")
            logger.warning("Region %s maps to an empty rectangle", region.id)
            continue
        cell = image.crop(rect.as_box())
        frames.append(Frame.from_image(len(frames), cell, source_x=rect.x, source_y=rect.y))
    logger.info("Extracted %s frames from %s regions", len(frames), len(partition.regions))
    return ExtractionResult(frames=frames, partition=partition, warnings=warnings)
