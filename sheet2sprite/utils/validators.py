"""Validation helpers for user inputs."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from ..core.errors import InvalidImageError, InvalidVideoError, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from ..core import CompositingSettings


ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp"}
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}

TOLERANCE_RANGE = (0, 150)
HALO_EXPANSION_RANGE = (1, 30)
REDUCTION_RANGE = (0, 100)
ALIGN_X_VALUES = ("left", "center", "right")
ALIGN_Y_VALUES = ("top", "center", "bottom")


def validate_image_path(path: Path) -> Path:
    """Ensure the image path exists and appears to be a supported format."""

    if not path:
        raise InvalidImageError(Path("<unset>"), reason="No path provided")
    if not path.exists():
        raise InvalidImageError(path, reason="File not found")
    if path.suffix.lower() not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidImageError(path, reason="Unsupported format")
    return path


def validate_video_path(path: Path) -> Path:
    """Ensure the video path exists and appears to be a supported format."""

    if not path:
        raise InvalidVideoError(Path("<unset>"), reason="No path provided")
    if not path.exists():
        raise InvalidVideoError(path, reason="File not found")
    if path.suffix.lower() not in ALLOWED_VIDEO_EXTENSIONS:
        raise InvalidVideoError(path, reason="Unsupported format")
    return path


def parse_optional_int(value: str | None, field: str) -> Optional[int]:
    """Parse a positive integer from a string value, if provided."""

    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be an integer") from exc
    if parsed <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return parsed


def parse_optional_float(value: str | None, field: str) -> Optional[float]:
    """Parse a positive float from a string value, if provided."""

    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if parsed <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return parsed


def parse_grid_spec(value: str) -> tuple[int, int]:
    """Parse ``COLUMNSxROWS`` such as ``6x8``."""

    parts = value.lower().replace(" ", "").split("x")
    if len(parts) != 2:
        raise ValidationError("Grid must be COLUMNSxROWS, e.g. 6x8")
    try:
        columns, rows = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValidationError("Grid must be numeric COLUMNSxROWS") from exc
    validate_grid(columns, rows)
    return columns, rows


def parse_canvas_size(value: str) -> Union[int, tuple[int, int]]:
    """Parse ``64`` (square) or ``32x48``."""

    text = value.lower().replace(" ", "")
    try:
        if "x" in text:
            width_text, height_text = text.split("x", 1)
            size: Union[int, tuple[int, int]] = (int(width_text), int(height_text))
        else:
            size = int(text)
    except ValueError as exc:
        raise ValidationError("Canvas size must be N or WIDTHxHEIGHT") from exc
    validate_canvas_size(size)
    return size


def parse_divider_list(value: str | None, field: str) -> list[float]:
    """Parse a comma-separated list of divider percentages."""

    if value is None or value.strip() == "":
        return []
    try:
        dividers = [float(part) for part in value.split(",") if part.strip()]
    except ValueError as exc:
        raise ValidationError(f"{field} must be comma-separated numbers") from exc
    if any(d <= 0 or d >= 100 for d in dividers):
        raise ValidationError(f"{field} must lie strictly between 0 and 100")
    return dividers


def parse_hex_color(value: str) -> tuple[int, int, int]:
    """Parse ``#rrggbb`` (leading ``#`` optional)."""

    text = value.strip().lstrip("#")
    if len(text) != 6:
        raise ValidationError(f"Color must be #rrggbb, got {value!r}")
    try:
        return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))
    except ValueError as exc:
        raise ValidationError(f"Color must be #rrggbb, got {value!r}") from exc


def parse_color(value: str | None) -> Optional[str]:
    """Normalise ``#rrggbb`` or ``R,G,B`` into lowercase ``#rrggbb``."""

    if value is None or value.strip() == "":
        return None
    if "," in value:
        parts = [p.strip() for p in value.split(",")]
        if len(parts) not in (3, 4):
            raise ValidationError("Color must be R,G,B")
        try:
            numbers = [int(p) for p in parts[:3]]
        except ValueError as exc:
            raise ValidationError("Color must be numeric R,G,B") from exc
        if any(n < 0 or n > 255 for n in numbers):
            raise ValidationError("Color values must be between 0 and 255")
        return "#{:02x}{:02x}{:02x}".format(*numbers)
    red, green, blue = parse_hex_color(value)
    return f"#{red:02x}{green:02x}{blue:02x}"


def validate_grid(columns: Optional[int], rows: Optional[int]) -> None:
    """Ensure grid dimensions are not negative if provided."""

    if columns is not None and columns < 0:
        raise ValidationError("Columns must be zero or greater")
    if rows is not None and rows < 0:
        raise ValidationError("Rows must be zero or greater")


def validate_canvas_size(size: Union[int, tuple[int, int]]) -> None:
    dims = (size, size) if isinstance(size, int) else size
    if len(dims) != 2 or any(d <= 0 for d in dims):
        raise ValidationError("Canvas size must be positive")


def validate_range(value: int, bounds: tuple[int, int], field: str) -> None:
    low, high = bounds
    if value < low or value > high:
        raise ValidationError(f"{field} must be between {low} and {high}")


def validate_tolerance(value: Optional[int], field: str = "Tolerance") -> None:
    """Ensure chroma key tolerance is within the supported range."""

    if value is None:
        return
    validate_range(value, TOLERANCE_RANGE, field)


def validate_compositing(settings: "CompositingSettings") -> None:
    """Range-check every compositing field, enabled or not."""

    parse_hex_color(settings.chroma_key.color)
    validate_tolerance(settings.chroma_key.tolerance)
    validate_range(settings.halo.expansion_px, HALO_EXPANSION_RANGE, "Halo expansion")
    crop = settings.auto_crop
    validate_canvas_size(crop.canvas_size)
    validate_range(crop.reduction_px, REDUCTION_RANGE, "Reduction")
    if crop.align_x not in ALIGN_X_VALUES:
        raise ValidationError(f"align_x must be one of {', '.join(ALIGN_X_VALUES)}")
    if crop.align_y not in ALIGN_Y_VALUES:
        raise ValidationError(f"align_y must be one of {', '.join(ALIGN_Y_VALUES)}")


def validate_frame_selection(frame_count: Optional[int], frame_interval: Optional[float]) -> None:
    """Prevent conflicting frame selection strategies."""

    if frame_count is not None and frame_interval is not None:
        raise ValidationError("Set either frame count or frame interval, not both")


def validate_time_range(start: Optional[float], end: Optional[float]) -> None:
    """Ensure start/end make sense."""

    if start is not None and end is not None and end <= start:
        raise ValidationError("End time must be greater than start time")
