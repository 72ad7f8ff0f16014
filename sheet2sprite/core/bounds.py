"""Content bounds detection on the alpha channel."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from PIL import Image

from . import OPACITY_THRESHOLD, Rect

logger = logging.getLogger(__name__)


def _alpha(image: Image.Image) -> np.ndarray:
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.asarray(image.getchannel("A"))


def detect_content(image: Image.Image, threshold: int = OPACITY_THRESHOLD) -> Optional[Rect]:
    """Return the tight rectangle of pixels with alpha above threshold, or None."""

    mask = _alpha(image) > threshold
    rows = np.flatnonzero(mask.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(mask.any(axis=0))
    min_y, max_y = int(rows[0]), int(rows[-1])
    min_x, max_x = int(cols[0]), int(cols[-1])
    return Rect(x=min_x, y=min_y, width=max_x - min_x + 1, height=max_y - min_y + 1)


def content_bounds(image: Image.Image, threshold: int = OPACITY_THRESHOLD) -> Rect:
    """Tight content rectangle, or the whole frame when nothing is opaque."""

    bounds = detect_content(image, threshold)
    if bounds is None:
        return Rect(x=0, y=0, width=image.width, height=image.height)
    return bounds


def crop_to_content(image: Image.Image, threshold: int = OPACITY_THRESHOLD) -> Image.Image:
    """Crop an image down to its content rectangle."""

    bounds = content_bounds(image, threshold)
    logger.debug("Cropping %sx%s image to %s", image.width, image.height, bounds)
    return image.crop(bounds.as_box())
