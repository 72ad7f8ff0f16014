"""Core data model for frame extraction, compositing and sheet export."""

__all__ = [
    "OPACITY_THRESHOLD",
    "MIN_DIVIDER_GAP",
    "Rect",
    "Frame",
    "FrameInfo",
    "Region",
    "UniformGrid",
    "DividedGrid",
    "FreeRegions",
    "ExtractionResult",
    "CropMode",
    "ChromaKeySettings",
    "HaloSettings",
    "AutoCropSettings",
    "CompositingSettings",
    "CropParams",
    "FrameFailure",
    "BatchResult",
    "SpriteSheet",
    "VideoMetadata",
]

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from PIL import Image

# Alpha (0-255) a pixel must exceed to count as content, roughly 4% opacity.
OPACITY_THRESHOLD = 10
# Minimum distance between two adjacent dividers, in percent of the axis.
MIN_DIVIDER_GAP = 2.0


@dataclass(frozen=True)
class Rect:
    """Integer rectangle in pixel space."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def as_box(self) -> tuple[int, int, int, int]:
        """Return a Pillow crop box (left, upper, right, lower)."""

        return (self.x, self.y, self.right, self.bottom)

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class Frame:
    """One extracted animation cell and where it came from."""

    index: int
    image: Image.Image
    source_x: int
    source_y: int
    width: int
    height: int
    content_bounds: Rect

    @classmethod
    def from_image(cls, index: int, image: Image.Image, source_x: int = 0, source_y: int = 0) -> "Frame":
        from .bounds import content_bounds

        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(
            index=index,
            image=rgba,
            source_x=source_x,
            source_y=source_y,
            width=rgba.width,
            height=rgba.height,
            content_bounds=content_bounds(rgba),
        )

    def replace_image(self, image: Image.Image) -> "Frame":
        """Return a new frame with the same identity carrying new pixels."""

        from .bounds import content_bounds

        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return replace(
            self,
            image=rgba,
            width=rgba.width,
            height=rgba.height,
            content_bounds=content_bounds(rgba),
        )

    def describe(self) -> dict:
        return {
            "index": self.index,
            "x": self.source_x,
            "y": self.source_y,
            "width": self.width,
            "height": self.height,
            "contentBounds": self.content_bounds.to_dict(),
        }


@dataclass
class FrameInfo:
    """Placement of a frame inside a packed sheet."""

    index: int
    timestamp: float
    width: int
    height: int
    x: int = 0
    y: int = 0


@dataclass
class Region:
    """Free-form selection rectangle in percentage space (0-100)."""

    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass
class UniformGrid:
    columns: int
    rows: int


@dataclass
class DividedGrid:
    """Grid whose cell boundaries are user-placed divider percentages."""

    vertical_dividers: list[float] = field(default_factory=list)
    horizontal_dividers: list[float] = field(default_factory=list)

    @property
    def columns(self) -> int:
        return len(self.vertical_dividers) + 1

    @property
    def rows(self) -> int:
        return len(self.horizontal_dividers) + 1


@dataclass
class FreeRegions:
    regions: list[Region] = field(default_factory=list)


PartitionDescriptor = Union[UniformGrid, DividedGrid, FreeRegions]


@dataclass
class ExtractionResult:
    """Ordered frames plus the partition that produced them."""

    frames: list[Frame]
    partition: PartitionDescriptor
    columns: Optional[int] = None
    rows: Optional[int] = None
    roles: Optional[dict[str, list[Frame]]] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_labeled(self) -> bool:
        return self.roles is not None


class CropMode(str, Enum):
    ANIMATION_RELATIVE = "animation-relative"
    CENTER_CENTER = "center-center"


@dataclass
class ChromaKeySettings:
    enabled: bool = False
    color: str = "#00ff00"
    tolerance: int = 50


@dataclass
class HaloSettings:
    enabled: bool = False
    expansion_px: int = 5


@dataclass
class AutoCropSettings:
    enabled: bool = False
    mode: CropMode = CropMode.ANIMATION_RELATIVE
    canvas_size: Union[int, tuple[int, int]] = (32, 48)
    reduction_px: int = 0
    align_x: str = "center"
    align_y: str = "center"

    @property
    def canvas_width(self) -> int:
        return self.canvas_size if isinstance(self.canvas_size, int) else self.canvas_size[0]

    @property
    def canvas_height(self) -> int:
        return self.canvas_size if isinstance(self.canvas_size, int) else self.canvas_size[1]


@dataclass
class CompositingSettings:
    """User-adjustable settings shared by every compositing pass."""

    chroma_key: ChromaKeySettings = field(default_factory=ChromaKeySettings)
    halo: HaloSettings = field(default_factory=HaloSettings)
    auto_crop: AutoCropSettings = field(default_factory=AutoCropSettings)

    def validate(self) -> "CompositingSettings":
        from ..utils import validators

        validators.validate_compositing(self)
        return self

    @property
    def any_enabled(self) -> bool:
        return self.chroma_key.enabled or self.halo.enabled or self.auto_crop.enabled


@dataclass(frozen=True)
class CropParams:
    """Source rectangle and destination canvas for an auto-crop."""

    x: int
    y: int
    width: int
    height: int
    canvas_width: int
    canvas_height: int


@dataclass
class FrameFailure:
    index: int
    stage: str
    message: str


@dataclass
class BatchResult:
    """Outcome of compositing a batch of frames."""

    frames: list[Frame]
    failures: list[FrameFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class SpriteSheet:
    """Assembled grid raster and where each frame landed."""

    image: Image.Image
    columns: int
    rows: int
    cell_width: int
    cell_height: int
    placements: list[FrameInfo] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        return len(self.placements)


@dataclass
class VideoMetadata:
    """Basic metadata for a source video."""

    width: int
    height: int
    fps: float
    duration_seconds: float
