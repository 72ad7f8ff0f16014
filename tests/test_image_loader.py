import asyncio
import io

import pytest
from PIL import Image

from sheet2sprite.core.errors import InvalidImageError
from sheet2sprite.core.image_loader import frames_from_stills, load_image, load_image_async


def _png_bytes(size=(5, 3), mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, (10, 20, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_load_image_from_bytes_returns_rgba():
    image = load_image(_png_bytes())
    assert image.mode == "RGBA"
    assert image.size == (5, 3)


def test_load_image_from_path(tmp_path):
    path = tmp_path / "sheet.png"
    path.write_bytes(_png_bytes((7, 9)))
    assert load_image(path).size == (7, 9)
    assert load_image(str(path)).size == (7, 9)


def test_undecodable_bytes_raise():
    with pytest.raises(InvalidImageError):
        load_image(b"not an image")
    with pytest.raises(InvalidImageError):
        load_image(b"")


def test_missing_or_unsupported_paths_raise(tmp_path):
    with pytest.raises(InvalidImageError):
        load_image(tmp_path / "missing.png")
    other = tmp_path / "notes.txt"
    other.write_text("hello", encoding="utf-8")
    with pytest.raises(InvalidImageError):
        load_image(other)


def test_load_image_async():
    image = asyncio.run(load_image_async(io.BytesIO(_png_bytes())))
    assert image.size == (5, 3)


def test_frames_from_stills_keeps_order():
    frames = frames_from_stills([_png_bytes((2, 2)), _png_bytes((3, 3))])
    assert [frame.index for frame in frames] == [0, 1]
    assert [frame.width for frame in frames] == [2, 3]
