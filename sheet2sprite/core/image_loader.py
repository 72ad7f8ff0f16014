"""Decode still images into RGBA rasters."""

from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import BinaryIO, Iterable, Union

from PIL import Image, UnidentifiedImageError

from . import Frame
from .errors import InvalidImageError
from ..utils import validators

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray, BinaryIO, Image.Image]


def load_image(source: ImageSource) -> Image.Image:
    """Return an RGBA copy of the source, raising InvalidImageError on failure."""

    if isinstance(source, Image.Image):
        return source.convert("RGBA")

    label: object
    if isinstance(source, (str, Path)):
        path = validators.validate_image_path(Path(source))
        label = path
        handle: Union[Path, BinaryIO] = path
    elif isinstance(source, (bytes, bytearray)):
        if not source:
            raise InvalidImageError("<bytes>", reason="Empty buffer")
        label = f"<{len(source)} bytes>"
        handle = io.BytesIO(source)
    else:
        label = getattr(source, "name", "<stream>")
        handle = source

    try:
        with Image.open(handle) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidImageError(label, reason=str(exc)) from exc

    logger.debug("Decoded %s -> %sx%s", label, rgba.width, rgba.height)
    return rgba


async def load_image_async(source: ImageSource) -> Image.Image:
    """Decode off the event loop."""

    return await asyncio.to_thread(load_image, source)


def frames_from_stills(sources: Iterable[ImageSource]) -> list[Frame]:
    """Turn an ordered sequence of still images into frames."""

    frames = [Frame.from_image(index, load_image(source)) for index, source in enumerate(sources)]
    logger.info("Loaded %s still frames", len(frames))
    return frames
