"""Animation type table, row-role lookup and sprite-config emission.

The row tables here are the only place that maps a grid row index to a
logical role. Extraction labeling (``frame_extractor``) and config emission
(``build_sprite_config``) both read them, so a row labelled ``left`` at
extraction time is always the row whose ``startFrame`` is emitted for
``left``.

The emitted dictionary is consumed verbatim by the game engine loader; key
names are camelCase on purpose and must not change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

DIRECTION_ROW_ORDER_8: tuple[str, ...] = (
    "down",
    "down-left",
    "left",
    "up-left",
    "up",
    "up-right",
    "right",
    "down-right",
)
DIRECTION_ROW_ORDER_4: tuple[str, ...] = ("down", "up", "left", "right")
ATTACK_ROW_ORDER: tuple[str, ...] = ("attack1", "attack2", "attack3")

ROW_ROLES: Mapping[int, tuple[str, ...]] = MappingProxyType(
    {
        4: DIRECTION_ROW_ORDER_4,
        8: DIRECTION_ROW_ORDER_8,
        3: ATTACK_ROW_ORDER,
    }
)
DIRECTIONAL_ROW_COUNTS = (4, 8)

COMBINED_ATTACK_SHEET = "attack"
FRAME_SIZE = (32, 48)

# Frame durations in milliseconds.
ANIMATION_SPEEDS = MappingProxyType(
    {
        "idle": 150,
        "walk": 100,
        "attack": 50,
        "dash": 40,
        "hurt": 80,
        "death": 100,
        "special": 60,
    }
)


@dataclass(frozen=True)
class AnimationSpec:
    name: str
    frame_count: int
    columns: int
    rows: int
    directional: bool
    frame_duration: int
    loop: bool
    sheet: str
    description: str = ""


ANIMATION_TYPES: Mapping[str, AnimationSpec] = MappingProxyType(
    {
        "idle": AnimationSpec("idle", 4, 4, 8, True, ANIMATION_SPEEDS["idle"], True, "idle",
                              "Standing idle breathing animation"),
        "walk": AnimationSpec("walk", 6, 6, 8, True, ANIMATION_SPEEDS["walk"], True, "walk",
                              "Walking cycle animation"),
        "attack1": AnimationSpec("attack1", 8, 8, 1, False, ANIMATION_SPEEDS["attack"], False,
                                 COMBINED_ATTACK_SHEET, "First attack combo - light slash"),
        "attack2": AnimationSpec("attack2", 8, 8, 1, False, ANIMATION_SPEEDS["attack"], False,
                                 COMBINED_ATTACK_SHEET, "Second attack combo - medium strike"),
        "attack3": AnimationSpec("attack3", 8, 8, 1, False, ANIMATION_SPEEDS["attack"], False,
                                 COMBINED_ATTACK_SHEET, "Third attack combo - heavy finisher"),
        "dash": AnimationSpec("dash", 6, 6, 1, False, ANIMATION_SPEEDS["dash"], False, "dash",
                              "Quick dash/dodge movement"),
        "hurt": AnimationSpec("hurt", 4, 4, 1, False, ANIMATION_SPEEDS["hurt"], False, "hurt",
                              "Taking damage reaction"),
        "death": AnimationSpec("death", 10, 10, 1, False, ANIMATION_SPEEDS["death"], False, "death",
                               "Death/defeat animation"),
        "special": AnimationSpec("special", 12, 12, 1, False, ANIMATION_SPEEDS["special"], False, "special",
                                 "Special ability/ultimate attack"),
    }
)
SHEET_ORDER = ("idle", "walk", COMBINED_ATTACK_SHEET, "dash", "hurt", "death", "special")


def get_animation_spec(animation_type: str) -> AnimationSpec:
    try:
        return ANIMATION_TYPES[animation_type]
    except KeyError:
        valid = ", ".join([*ANIMATION_TYPES, COMBINED_ATTACK_SHEET])
        raise ValidationError(f"Unknown animation type: {animation_type} (valid: {valid})") from None


def is_known_type(animation_type: str) -> bool:
    return animation_type in ANIMATION_TYPES or animation_type == COMBINED_ATTACK_SHEET


def roles_for_rows(rows: int) -> Optional[tuple[str, ...]]:
    """Role names for a grid with this many rows, or None when unlabeled."""

    return ROW_ROLES.get(rows)


def flat_entry(sheet: str, start_frame: int, frame_count: int, frame_duration: int, loop: bool) -> dict:
    return {
        "sheet": sheet,
        "startFrame": start_frame,
        "frameCount": frame_count,
        "frameDuration": frame_duration,
        "loop": loop,
    }


def directional_mapping(
    sheet: str,
    columns_per_direction: int,
    frame_duration: int,
    loop: bool = True,
    directions: tuple[str, ...] = DIRECTION_ROW_ORDER_8,
) -> dict[str, dict]:
    """One entry per direction, row ``i`` starting at ``i * columns_per_direction``."""

    return {
        direction: flat_entry(sheet, row * columns_per_direction, columns_per_direction, frame_duration, loop)
        for row, direction in enumerate(directions)
    }


def sheet_entry(
    name: str,
    columns: int,
    rows: int,
    frame_width: int,
    frame_height: int,
    base_path: str,
) -> dict:
    return {
        "path": f"{base_path}/{name}.png",
        "columns": columns,
        "rows": rows,
        "frameWidth": frame_width,
        "frameHeight": frame_height,
    }


def animation_entry(
    animation_type: str,
    frame_count: Optional[int] = None,
    rows: Optional[int] = None,
    start_frame: int = 0,
) -> dict:
    """Animation mapping for one type: per-direction for idle/walk, else flat."""

    spec = get_animation_spec(animation_type)
    count = frame_count if frame_count is not None else spec.frame_count
    if spec.directional:
        row_count = rows if rows is not None else spec.rows
        if row_count not in DIRECTIONAL_ROW_COUNTS:
            raise ValidationError(
                f"{animation_type} needs {' or '.join(map(str, DIRECTIONAL_ROW_COUNTS))} direction rows, got {row_count}"
            )
        return directional_mapping(spec.sheet, count, spec.frame_duration, spec.loop, ROW_ROLES[row_count])
    return flat_entry(spec.sheet, start_frame, count, spec.frame_duration, spec.loop)


@dataclass
class AnimationLayout:
    """Geometry of one exported animation sheet.

    ``frame_count`` is the frames per direction for directional types and the
    total frame count otherwise; it defaults to ``columns``.
    """

    animation_type: str
    columns: int
    rows: int = 1
    frame_width: int = FRAME_SIZE[0]
    frame_height: int = FRAME_SIZE[1]
    frame_count: Optional[int] = None


def build_sprite_config(
    character_name: str,
    layouts: Iterable[AnimationLayout],
    base_path: Optional[str] = None,
) -> dict:
    """Assemble the ``{"sheets": ..., "animations": ...}`` document."""

    base = base_path if base_path is not None else f"./{character_name}"
    sheets: dict[str, dict] = {}
    animations: dict[str, object] = {}
    attack_layouts: dict[str, AnimationLayout] = {}

    for layout in layouts:
        kind = layout.animation_type
        if kind == COMBINED_ATTACK_SHEET:
            for role in ATTACK_ROW_ORDER[: layout.rows]:
                attack_layouts[role] = AnimationLayout(
                    role, layout.columns, 1, layout.frame_width, layout.frame_height, layout.frame_count
                )
            continue
        spec = get_animation_spec(kind)
        if spec.sheet == COMBINED_ATTACK_SHEET:
            attack_layouts[kind] = layout
            continue
        per_row = layout.frame_count if layout.frame_count is not None else layout.columns
        sheets[spec.sheet] = sheet_entry(
            spec.sheet, layout.columns, layout.rows, layout.frame_width, layout.frame_height, base
        )
        if spec.directional:
            animations[kind] = animation_entry(kind, frame_count=per_row, rows=layout.rows)
        else:
            total = layout.frame_count if layout.frame_count is not None else layout.columns * layout.rows
            animations[kind] = animation_entry(kind, frame_count=total)

    if attack_layouts:
        counts = {
            role: (layout.frame_count if layout.frame_count is not None else layout.columns)
            for role, layout in attack_layouts.items()
        }
        attack_columns = max(counts.values())
        sample = next(iter(attack_layouts.values()))
        sheets[COMBINED_ATTACK_SHEET] = sheet_entry(
            COMBINED_ATTACK_SHEET, attack_columns, len(ATTACK_ROW_ORDER),
            sample.frame_width, sample.frame_height, base,
        )
        for row, role in enumerate(ATTACK_ROW_ORDER):
            if role in counts:
                animations[role] = animation_entry(role, frame_count=counts[role], start_frame=row * attack_columns)

    ordered_sheets = {name: sheets[name] for name in SHEET_ORDER if name in sheets}
    animation_order = [name for name in ANIMATION_TYPES if name in animations]
    ordered_animations = {name: animations[name] for name in animation_order}
    logger.debug("Built sprite config for %s with sheets %s", character_name, list(ordered_sheets))
    return {"sheets": ordered_sheets, "animations": ordered_animations}


def config_for_animation(
    animation_type: str,
    columns: int,
    rows: Optional[int] = None,
    frame_width: int = FRAME_SIZE[0],
    frame_height: int = FRAME_SIZE[1],
    frame_count: Optional[int] = None,
    character_name: str = "character",
) -> dict:
    """Config document for a single exported animation sheet."""

    if animation_type == COMBINED_ATTACK_SHEET:
        row_count = rows if rows is not None else len(ATTACK_ROW_ORDER)
    else:
        row_count = rows if rows is not None else get_animation_spec(animation_type).rows
    layout = AnimationLayout(animation_type, columns, row_count, frame_width, frame_height, frame_count)
    return build_sprite_config(character_name, [layout])
