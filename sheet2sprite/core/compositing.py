"""Per-frame compositing: chroma key, halo removal, auto-crop.

Stages always run in that order and each one is optional. A stage that has
nothing to do, or that fails on one frame, leaves that frame's pixels as
they were; a batch never aborts because of a single frame.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional, Sequence, Union

import numpy as np
from PIL import Image

from . import (
    AutoCropSettings,
    BatchResult,
    CompositingSettings,
    CropMode,
    CropParams,
    Frame,
    FrameFailure,
)
from .bounds import detect_content
from .errors import ValidationError
from ..utils.validators import parse_hex_color

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
Color = Union[str, Sequence[int]]

STAGE_CHROMA_KEY = "chroma_key"
STAGE_HALO = "halo_removal"
STAGE_AUTO_CROP = "auto_crop"

# Alpha below this counts as background when growing the transparent area.
HALO_ALPHA_CUTOFF = 128


def _rgb(color: Color) -> tuple[int, int, int]:
    if isinstance(color, str):
        return parse_hex_color(color)
    red, green, blue = (int(c) for c in list(color)[:3])
    return red, green, blue


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def apply_chroma_key(image: Image.Image, color: Color, tolerance: int) -> Image.Image:
    """Clear pixels whose RGB lies within ``tolerance`` (Euclidean) of ``color``."""

    key = np.array(_rgb(color), dtype=np.int32)
    pixels = np.array(image.convert("RGBA"), dtype=np.uint8)
    diff = pixels[..., :3].astype(np.int32) - key
    distance_sq = (diff * diff).sum(axis=-1)
    keyed = distance_sq <= int(tolerance) * int(tolerance)
    pixels[..., 3][keyed] = 0
    logger.debug("Chroma key %s cleared %s pixels", color, int(keyed.sum()))
    return Image.fromarray(pixels)


def pick_color(image: Image.Image, x: int, y: int) -> str:
    """Eyedropper: ``#rrggbb`` of the pixel at (x, y)."""

    if not (0 <= x < image.width and 0 <= y < image.height):
        raise ValidationError(f"Point ({x}, {y}) is outside the {image.width}x{image.height} frame")
    red, green, blue, *_ = image.convert("RGBA").getpixel((x, y))
    return f"#{red:02x}{green:02x}{blue:02x}"


def dilate_disk(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow a boolean mask by a Euclidean disk of ``radius`` pixels."""

    height, width = mask.shape
    grown = mask.copy()
    r2 = radius * radius
    for dy in range(-radius, radius + 1):
        if abs(dy) >= height:
            continue
        for dx in range(-radius, radius + 1):
            if (dx == 0 and dy == 0) or dx * dx + dy * dy > r2 or abs(dx) >= width:
                continue
            grown[max(0, dy):height + min(0, dy), max(0, dx):width + min(0, dx)] |= mask[
                max(0, -dy):height + min(0, -dy), max(0, -dx):width + min(0, -dx)
            ]
    return grown


def remove_halo(image: Image.Image, expansion_px: int) -> Image.Image:
    """Expand the transparent area outward by ``expansion_px`` pixels."""

    pixels = np.array(image.convert("RGBA"), dtype=np.uint8)
    transparent = pixels[..., 3] < HALO_ALPHA_CUTOFF
    if not transparent.any() or expansion_px <= 0:
        return Image.fromarray(pixels)
    grown = dilate_disk(transparent, int(expansion_px))
    pixels[..., 3][grown] = 0
    return Image.fromarray(pixels)


async def remove_halo_async(image: Image.Image, expansion_px: int) -> Image.Image:
    """Run :func:`remove_halo` off the event loop."""

    return await asyncio.to_thread(remove_halo, image, expansion_px)


def calculate_crop_params(reference: Image.Image, settings: AutoCropSettings) -> Optional[CropParams]:
    """Crop rectangle from a reference frame's content bounds, or None."""

    bounds = detect_content(reference)
    if bounds is None:
        return None
    reduction = settings.reduction_px
    width = bounds.width - reduction * 2
    height = bounds.height - reduction * 2
    if width <= 0 or height <= 0:
        return None
    return CropParams(
        x=bounds.x + reduction,
        y=bounds.y + reduction,
        width=width,
        height=height,
        canvas_width=settings.canvas_width,
        canvas_height=settings.canvas_height,
    )


def _align_offset(space: int, size: int, alignment: str, start: str, end: str) -> int:
    if alignment == start:
        return 0
    if alignment == end:
        return space - size
    return _round_half_up((space - size) / 2)


def apply_crop(
    image: Image.Image,
    params: CropParams,
    align_x: str = "center",
    align_y: str = "center",
) -> Image.Image:
    """Draw the ``params`` source rectangle onto a fresh canvas.

    Content is fitted with a uniform scale; nearest-neighbour is used when a
    resize is needed and no resampling happens when sizes already match.
    """

    scale = min(params.canvas_width / params.width, params.canvas_height / params.height)
    scaled_width = max(1, _round_half_up(params.width * scale))
    scaled_height = max(1, _round_half_up(params.height * scale))

    region = image.convert("RGBA").crop((params.x, params.y, params.x + params.width, params.y + params.height))
    if (scaled_width, scaled_height) != region.size:
        region = region.resize((scaled_width, scaled_height), Image.Resampling.NEAREST)

    offset_x = _align_offset(params.canvas_width, scaled_width, align_x, "left", "right")
    offset_y = _align_offset(params.canvas_height, scaled_height, align_y, "top", "bottom")
    canvas = Image.new("RGBA", (params.canvas_width, params.canvas_height), (0, 0, 0, 0))
    canvas.paste(region, (offset_x, offset_y))
    return canvas


def center_center_crop(image: Image.Image, settings: AutoCropSettings) -> Optional[Image.Image]:
    """Crop one frame around its own content; None when it has none."""

    params = calculate_crop_params(image, settings)
    if params is None:
        return None
    return apply_crop(image, params, settings.align_x, settings.align_y)


def _run_stage(
    frame: Frame,
    stage: str,
    transform: Callable[[Image.Image], Optional[Image.Image]],
    result: BatchResult,
) -> Frame:
    try:
        image = transform(frame.image)
    except Exception as exc:
        logger.exception("Frame %s failed during %s", frame.index, stage)
        result.failures.append(FrameFailure(index=frame.index, stage=stage, message=str(exc)))
        return frame
    if image is None:
        result.warnings.append(f"frame {frame.index}: nothing to {stage.replace('_', ' ')}, left unchanged")
        return frame
    return frame.replace_image(image)


def _chroma_stage(frame: Frame, settings: CompositingSettings, result: BatchResult) -> Frame:
    key = settings.chroma_key
    return _run_stage(frame, STAGE_CHROMA_KEY, lambda img: apply_chroma_key(img, key.color, key.tolerance), result)


def _crop_stage(
    frame: Frame,
    settings: CompositingSettings,
    crop_params: Optional[CropParams],
    result: BatchResult,
) -> Frame:
    crop = settings.auto_crop
    if crop.mode == CropMode.CENTER_CENTER:
        return _run_stage(frame, STAGE_AUTO_CROP, lambda img: center_center_crop(img, crop), result)
    if crop_params is None:
        return frame
    return _run_stage(
        frame, STAGE_AUTO_CROP, lambda img: apply_crop(img, crop_params, crop.align_x, crop.align_y), result
    )


def composite_frame(
    frame: Frame,
    settings: CompositingSettings,
    crop_params: Optional[CropParams] = None,
) -> Frame:
    """Run the enabled stages on one frame synchronously.

    In animation-relative mode ``crop_params`` should come from the first
    frame of the set; when omitted they are computed from this frame.
    """

    result = BatchResult(frames=[])
    if settings.chroma_key.enabled:
        frame = _chroma_stage(frame, settings, result)
    if settings.halo.enabled:
        frame = _run_stage(frame, STAGE_HALO, lambda img: remove_halo(img, settings.halo.expansion_px), result)
    if settings.auto_crop.enabled:
        if settings.auto_crop.mode == CropMode.ANIMATION_RELATIVE and crop_params is None:
            crop_params = calculate_crop_params(frame.image, settings.auto_crop)
        frame = _crop_stage(frame, settings, crop_params, result)
    for message in result.warnings:
        logger.info("%s", message)
    return frame


class _Progress:
    def __init__(self, total: int, callback: Optional[ProgressCallback]):
        self.total = max(total, 1)
        self.done = 0
        self.callback = callback

    def report(self, stage: str) -> None:
        if self.callback is not None:
            self.callback(min(self.done / self.total, 1.0), stage)

    def step(self, stage: str) -> None:
        self.done += 1
        self.report(stage)


async def _clean_frame(
    frame: Frame,
    settings: CompositingSettings,
    result: BatchResult,
    progress: _Progress,
    frame_count: int,
) -> Frame:
    if settings.chroma_key.enabled:
        frame = _chroma_stage(frame, settings, result)
    if settings.halo.enabled:
        try:
            image = await remove_halo_async(frame.image, settings.halo.expansion_px)
        except Exception as exc:
            logger.exception("Frame %s failed during %s", frame.index, STAGE_HALO)
            result.failures.append(FrameFailure(index=frame.index, stage=STAGE_HALO, message=str(exc)))
        else:
            frame = frame.replace_image(image)
    progress.step(f"Cleaning frame {frame.index + 1} of {frame_count}")
    return frame


async def composite_frames_async(
    frames: Iterable[Frame],
    settings: CompositingSettings,
    progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """Composite a batch: stages 1-2 for every frame, then stage 3 in order.

    Crop parameters for animation-relative mode are read from frame 0 only
    after every frame has finished keying and halo removal.
    """

    settings.validate()
    frames = list(frames)
    result = BatchResult(frames=[])
    if not frames:
        return result

    crop_enabled = settings.auto_crop.enabled
    tracker = _Progress(len(frames) * (2 if crop_enabled else 1), progress)
    tracker.report("Preparing frames")

    cleaned = list(
        await asyncio.gather(*(_clean_frame(frame, settings, result, tracker, len(frames)) for frame in frames))
    )

    if crop_enabled:
        crop_params = None
        if settings.auto_crop.mode == CropMode.ANIMATION_RELATIVE:
            crop_params = calculate_crop_params(cleaned[0].image, settings.auto_crop)
            if crop_params is None:
                result.warnings.append("first frame has no content to crop to; frames left uncropped")
                logger.warning("Animation-relative crop skipped: reference frame is empty")
        for position, frame in enumerate(cleaned):
            cleaned[position] = _crop_stage(frame, settings, crop_params, result)
            tracker.step(f"Cropping frame {position + 1} of {len(cleaned)}")

    result.frames = cleaned
    result.failures.sort(key=lambda failure: failure.index)
    tracker.done = tracker.total
    tracker.report("Done")
    logger.info(
        "Composited %s frames (%s failures, %s warnings)", len(cleaned), len(result.failures), len(result.warnings)
    )
    return result


def composite_frames(
    frames: Iterable[Frame],
    settings: CompositingSettings,
    progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """Blocking wrapper around :func:`composite_frames_async`."""

    return asyncio.run(composite_frames_async(frames, settings, progress))


class FrameSetState:
    """Visible frame set where only the newest compositing pass may commit."""

    def __init__(self, frames: Optional[Sequence[Frame]] = None) -> None:
        self.frames: list[Frame] = list(frames or [])
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin_pass(self) -> int:
        self._generation += 1
        return self._generation

    def commit(self, token: int, frames: Sequence[Frame]) -> bool:
        if token != self._generation:
            logger.debug("Dropping results of superseded pass %s (current %s)", token, self._generation)
            return False
        self.frames = list(frames)
        return True

    async def run(
        self,
        frames: Iterable[Frame],
        settings: CompositingSettings,
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[BatchResult]:
        """Composite and commit; returns None when a newer pass superseded this one."""

        token = self.begin_pass()
        result = await composite_frames_async(frames, settings, progress)
        return result if self.commit(token, result.frames) else None
