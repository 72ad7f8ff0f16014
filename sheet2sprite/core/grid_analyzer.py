"""Grid detection and layout recommendations for raw character sheets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

import numpy as np
from PIL import Image

from .animation_config import ANIMATION_SPEEDS, COMBINED_ATTACK_SHEET, FRAME_SIZE

logger = logging.getLogger(__name__)

GAP_ALPHA = 10
GAP_RATIO = 0.95
MIN_GAP_SPACING = 5


@dataclass(frozen=True)
class GridRecommendation:
    animation_type: str
    columns: int
    rows: int
    frame_count: int
    directional: bool
    frame_duration: int
    loop: bool
    category: str
    description: str

    @property
    def total_duration(self) -> int:
        per_sequence = self.columns if self.directional else self.frame_count
        return per_sequence * self.frame_duration


GRID_RECOMMENDATIONS: Mapping[str, GridRecommendation] = MappingProxyType(
    {
        "idle": GridRecommendation("idle", 4, 8, 32, True, ANIMATION_SPEEDS["idle"], True, "movement",
                                   "Idle animation with 4 frames per direction (8 directions)"),
        "walk": GridRecommendation("walk", 6, 8, 48, True, ANIMATION_SPEEDS["walk"], True, "movement",
                                   "Walk cycle with 6 frames per direction (8 directions)"),
        COMBINED_ATTACK_SHEET: GridRecommendation(COMBINED_ATTACK_SHEET, 4, 3, 12, False, ANIMATION_SPEEDS["attack"],
                                                  False, "combat", "3-hit combo attack sheet (all attacks in one image)"),
        "attack1": GridRecommendation("attack1", 4, 1, 4, False, ANIMATION_SPEEDS["attack"], False, "combat",
                                      "First attack in 3-hit combo"),
        "attack2": GridRecommendation("attack2", 4, 1, 4, False, ANIMATION_SPEEDS["attack"], False, "combat",
                                      "Second attack in 3-hit combo"),
        "attack3": GridRecommendation("attack3", 4, 1, 4, False, ANIMATION_SPEEDS["attack"], False, "combat",
                                      "Third attack in 3-hit combo"),
        "dash": GridRecommendation("dash", 4, 1, 4, False, ANIMATION_SPEEDS["dash"], False, "movement",
                                   "Quick dash with brief invulnerability"),
        "hurt": GridRecommendation("hurt", 3, 1, 3, False, ANIMATION_SPEEDS["hurt"], False, "reaction",
                                   "Damage reaction with knockback"),
        "death": GridRecommendation("death", 4, 2, 8, False, ANIMATION_SPEEDS["death"], False, "reaction",
                                    "Death sequence over two rows"),
        "special": GridRecommendation("special", 6, 2, 12, False, ANIMATION_SPEEDS["special"], False, "combat",
                                      "Special ability over two rows"),
    }
)


@dataclass
class GridAnalysis:
    detected_columns: int
    detected_rows: int
    frame_width: int
    frame_height: int
    confidence: float
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "detectedColumns": self.detected_columns,
            "detectedRows": self.detected_rows,
            "frameWidth": self.frame_width,
            "frameHeight": self.frame_height,
            "confidence": round(self.confidence, 3),
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
        }


def recommendations_by_category() -> dict[str, list[GridRecommendation]]:
    grouped: dict[str, list[GridRecommendation]] = {"movement": [], "combat": [], "reaction": []}
    for recommendation in GRID_RECOMMENDATIONS.values():
        grouped[recommendation.category].append(recommendation)
    return grouped


def expected_dimensions(animation_type: str) -> Optional[tuple[int, int]]:
    recommendation = GRID_RECOMMENDATIONS.get(animation_type)
    if recommendation is None:
        return None
    return recommendation.columns * FRAME_SIZE[0], recommendation.rows * FRAME_SIZE[1]


def _find_gaps(transparent: np.ndarray, axis: int) -> list[int]:
    """Indices of mostly transparent lines, ignoring the outermost ones."""

    ratios = transparent.mean(axis=axis)
    gaps: list[int] = []
    for index in range(1, len(ratios) - 1):
        if ratios[index] > GAP_RATIO and (not gaps or index - gaps[-1] > MIN_GAP_SPACING):
            gaps.append(index)
    return gaps


def suggest_animation_type(columns: int, rows: int) -> Optional[str]:
    """Guess the animation type a grid layout was made for."""

    for name, recommendation in GRID_RECOMMENDATIONS.items():
        if recommendation.columns == columns and recommendation.rows == rows:
            return name
    if rows == 8:
        if columns == 4:
            return "idle"
        if columns == 6:
            return "walk"
    if rows == 1:
        if columns == 3:
            return "hurt"
        if columns == 4:
            return "attack1"
    if rows == 2:
        if columns == 4:
            return "death"
        if columns in (5, 6):
            return "special"
    if rows == 3 and columns == 4:
        return COMBINED_ATTACK_SHEET
    return None


def analyze_grid(image: Image.Image, expected_type: Optional[str] = None) -> GridAnalysis:
    """Estimate the grid of a sheet from transparent gutters."""

    alpha = np.asarray(image.convert("RGBA").getchannel("A"))
    transparent = alpha < GAP_ALPHA
    vertical_gaps = _find_gaps(transparent, axis=0)
    horizontal_gaps = _find_gaps(transparent, axis=1)

    columns = len(vertical_gaps) + 1
    rows = len(horizontal_gaps) + 1
    if columns <= 1:
        columns = max(1, round(image.width / FRAME_SIZE[0]))
    if rows <= 1:
        rows = max(1, round(image.height / FRAME_SIZE[1]))

    frame_width = round(image.width / columns)
    frame_height = round(image.height / rows)
    confidence = 1.0
    warnings: list[str] = []
    recommendations: list[str] = []

    if image.width % columns:
        confidence -= 0.2
        warnings.append(f"Image width ({image.width}px) doesn't divide evenly into {columns} columns")
    if image.height % rows:
        confidence -= 0.2
        warnings.append(f"Image height ({image.height}px) doesn't divide evenly into {rows} rows")

    expected = GRID_RECOMMENDATIONS.get(expected_type) if expected_type else None
    if expected is not None:
        if columns != expected.columns:
            confidence -= 0.15
            warnings.append(
                f"Detected {columns} columns, but {expected_type} recommends {expected.columns} columns"
            )
            recommendations.append(f"Consider using {expected.columns} columns for {expected_type} animation")
        if rows != expected.rows:
            confidence -= 0.15
            warnings.append(f"Detected {rows} rows, but {expected_type} recommends {expected.rows} rows")
            recommendations.append(f"Consider using {expected.rows} rows for {expected_type} animation")

    if (frame_width, frame_height) != FRAME_SIZE:
        recommendations.append(
            f"Frame size is {frame_width}x{frame_height}px. Standard size is {FRAME_SIZE[0]}x{FRAME_SIZE[1]}px"
        )

    suggested = suggest_animation_type(columns, rows)
    if suggested and suggested != expected_type:
        recommendations.append(f'Grid layout ({columns}x{rows}) matches "{suggested}" animation pattern')

    logger.debug("Grid analysis: %sx%s (confidence %.2f)", columns, rows, confidence)
    return GridAnalysis(
        detected_columns=columns,
        detected_rows=rows,
        frame_width=frame_width,
        frame_height=frame_height,
        confidence=max(0.0, min(1.0, confidence)),
        warnings=warnings,
        recommendations=recommendations,
    )


def validate_sheet_dimensions(width: int, height: int, animation_type: str) -> tuple[bool, list[str], list[str]]:
    """Compare a sheet's pixel size with the recommended layout."""

    recommendation = GRID_RECOMMENDATIONS.get(animation_type)
    if recommendation is None:
        return (
            False,
            [f"Unknown animation type: {animation_type}"],
            [f"Valid types: {', '.join(GRID_RECOMMENDATIONS)}"],
        )

    errors: list[str] = []
    suggestions: list[str] = []
    expected_width, expected_height = expected_dimensions(animation_type)  # type: ignore[misc]
    if width != expected_width:
        errors.append(
            f"Width mismatch: got {width}px, expected {expected_width}px "
            f"({recommendation.columns} columns x {FRAME_SIZE[0]}px)"
        )
        suggestions.append(f"Resize image width to {expected_width}px")
    if height != expected_height:
        errors.append(
            f"Height mismatch: got {height}px, expected {expected_height}px "
            f"({recommendation.rows} rows x {FRAME_SIZE[1]}px)"
        )
        suggestions.append(f"Resize image height to {expected_height}px")
    return not errors, errors, suggestions
