"""End-to-end export: extract, composite, assemble and write sheets and configs."""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from PIL import Image

from . import CompositingSettings, Frame, FrameFailure, PartitionDescriptor, SpriteSheet
from .animation_config import (
    ATTACK_ROW_ORDER,
    COMBINED_ATTACK_SHEET,
    DIRECTION_ROW_ORDER_4,
    DIRECTION_ROW_ORDER_8,
    DIRECTIONAL_ROW_COUNTS,
    FRAME_SIZE,
    AnimationLayout,
    build_sprite_config,
    config_for_animation,
    get_animation_spec,
)
from .compositing import ProgressCallback, composite_frames
from .errors import ValidationError
from .frame_extractor import extract
from .image_loader import ImageSource, load_image
from .manifest_writer import render_json, write_frame_manifest, write_sprite_config
from .spritesheet_builder import assemble_rows, assemble_spritesheet, build_row_sheet, save_spritesheet
from ..utils import file_tools

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "sprite-config.json"
# Fixed entry timestamp so identical inputs give byte-identical archives.
ARCHIVE_DATE_TIME = (1980, 1, 1, 0, 0, 0)

FrameRows = Union[Sequence[Frame], Mapping[str, Sequence[Frame]]]


@dataclass
class ExportOutcome:
    """Everything produced by exporting one animation."""

    animation_type: str
    sheet_name: str
    sheet: SpriteSheet
    config: dict
    frames: list[Frame]
    warnings: list[str] = field(default_factory=list)
    failures: list[FrameFailure] = field(default_factory=list)
    sheet_path: Optional[Path] = None
    config_path: Optional[Path] = None
    manifest_path: Optional[Path] = None
    archive_path: Optional[Path] = None


@dataclass
class CharacterExport:
    """Sheets and config for a whole character."""

    character_name: str
    sheets: dict[str, SpriteSheet]
    config: dict
    sheet_paths: dict[str, Path] = field(default_factory=dict)
    config_path: Optional[Path] = None
    archive_path: Optional[Path] = None


def sheet_name_for(animation_type: str) -> str:
    if animation_type == COMBINED_ATTACK_SHEET:
        return COMBINED_ATTACK_SHEET
    return get_animation_spec(animation_type).sheet


def archive_name(character_name: str) -> str:
    return f"{file_tools.safe_name(character_name)}-sprites.zip"


def _png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _write_entries(entries: Sequence[tuple[str, bytes]], path: Path) -> Path:
    file_tools.ensure_directory(path.parent)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, payload in entries:
            info = zipfile.ZipInfo(name, date_time=ARCHIVE_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, payload)
    logger.info("Wrote archive with %s entries to %s", len(entries), path)
    return path


def write_frames_archive(frames: Sequence[Union[Frame, Image.Image]], prefix: str, path: Path) -> Path:
    """ZIP of individual frames named ``{prefix}_{i:04d}.png``."""

    entries = []
    for position, frame in enumerate(frames):
        image = frame.image if isinstance(frame, Frame) else frame
        entries.append((file_tools.frame_filename(prefix, position), _png_bytes(image)))
    return _write_entries(entries, path)


def write_export_archive(files: Mapping[str, Union[Path, bytes]], folder: str, path: Path) -> Path:
    """ZIP of export artifacts stored under ``folder/``."""

    entries = []
    for name, content in files.items():
        payload = content if isinstance(content, bytes) else Path(content).read_bytes()
        entries.append((f"{folder}/{name}", payload))
    return _write_entries(entries, path)


def export_animation(
    source: ImageSource,
    partition: PartitionDescriptor,
    animation_type: str,
    settings: Optional[CompositingSettings] = None,
    output_dir: Optional[Path] = None,
    character_name: str = "character",
    columns: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    archive: bool = False,
    dry_run: bool = False,
) -> ExportOutcome:
    """Run the whole chain for one animation type.

    Writes ``<output_dir>/<character>/<sheet>.png`` with a frame manifest
    beside it and ``<output_dir>/sprite-config.json``. With ``archive`` the
    same files are bundled into ``<character>-sprites.zip``. ``dry_run``
    computes everything without touching the filesystem.
    """

    spec_sheet = sheet_name_for(animation_type)
    settings = settings or CompositingSettings()
    character = file_tools.safe_name(character_name)

    image = load_image(source)
    extraction = extract(image, partition)
    if not extraction.frames:
        raise ValidationError("The partition produced no frames")
    warnings = list(extraction.warnings)

    if extraction.is_labeled and columns is not None and columns != extraction.columns:
        raise ValidationError(
            f"columns={columns} would reshape the {extraction.rows} labeled rows of "
            f"{extraction.columns} frames; omit columns to keep one row per role"
        )

    batch = composite_frames(extraction.frames, settings, progress)
    warnings.extend(batch.warnings)

    combined_attack = animation_type == COMBINED_ATTACK_SHEET
    single_attack = animation_type in ATTACK_ROW_ORDER
    directional = not combined_attack and get_animation_spec(animation_type).directional

    if single_attack:
        # Same geometry as the combined sheet: one row per attack, this attack in its own row.
        rows: list[list[Frame]] = [[] for _ in ATTACK_ROW_ORDER]
        rows[ATTACK_ROW_ORDER.index(animation_type)] = list(batch.frames)
        sheet = assemble_rows(rows)
    else:
        sheet_columns = columns if columns is not None else extraction.columns
        sheet = assemble_spritesheet(batch.frames, sheet_columns)

    if directional and sheet.rows not in DIRECTIONAL_ROW_COUNTS:
        raise ValidationError(
            f"{animation_type} needs 4 or 8 direction rows; the frames pack into {sheet.rows} rows"
        )
    if combined_attack and sheet.rows != len(ATTACK_ROW_ORDER):
        raise ValidationError(
            f"attack sheet needs {len(ATTACK_ROW_ORDER)} rows (one per attack); the frames pack into {sheet.rows} rows"
        )
    if (directional or combined_attack) and not extraction.is_labeled:
        message = f"frames are unlabeled; {animation_type} rows follow frame order"
        warnings.append(message)
        logger.warning("%s", message)

    if directional or combined_attack:
        frame_count = None
    else:
        frame_count = len(batch.frames)
    config = config_for_animation(
        animation_type,
        sheet.columns,
        rows=sheet.rows,
        frame_width=sheet.cell_width,
        frame_height=sheet.cell_height,
        frame_count=frame_count,
        character_name=character,
    )

    outcome = ExportOutcome(
        animation_type=animation_type,
        sheet_name=spec_sheet,
        sheet=sheet,
        config=config,
        frames=batch.frames,
        warnings=warnings,
        failures=batch.failures,
    )
    if dry_run or output_dir is None:
        logger.info("Dry run: %s frames -> %sx%s sheet", len(batch.frames), sheet.columns, sheet.rows)
        return outcome

    output_dir = Path(output_dir)
    sheet_path = save_spritesheet(sheet, output_dir / character / f"{spec_sheet}.png")
    outcome.sheet_path = sheet_path
    outcome.manifest_path = write_frame_manifest(
        sheet.placements, sheet, sheet_path, source=str(source) if isinstance(source, (str, Path)) else None
    )
    outcome.config_path = write_sprite_config(config, output_dir / CONFIG_FILENAME)
    if archive:
        outcome.archive_path = write_export_archive(
            {
                sheet_path.name: sheet_path,
                outcome.manifest_path.name: outcome.manifest_path,
                CONFIG_FILENAME: outcome.config_path,
            },
            character,
            output_dir / archive_name(character),
        )
    return outcome


def export_bundle(outcome: ExportOutcome, character_name: str) -> bytes:
    """In-memory ZIP of a (possibly dry-run) export, for HTTP responses."""

    folder = file_tools.safe_name(character_name)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, payload in (
            (f"{outcome.sheet_name}.png", _png_bytes(outcome.sheet.image)),
            (CONFIG_FILENAME, render_json(outcome.config).encode("utf-8")),
        ):
            info = zipfile.ZipInfo(f"{folder}/{name}", date_time=ARCHIVE_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, payload)
    return buffer.getvalue()


def _direction_rows(animation_type: str, frames: FrameRows) -> list[list[Frame]]:
    if isinstance(frames, Mapping):
        unknown = set(frames) - set(DIRECTION_ROW_ORDER_8)
        if unknown:
            raise ValidationError(f"Unknown directions for {animation_type}: {', '.join(sorted(unknown))}")
        order = DIRECTION_ROW_ORDER_4 if set(frames) <= set(DIRECTION_ROW_ORDER_4) else DIRECTION_ROW_ORDER_8
        return [list(frames.get(direction, [])) for direction in order]

    frames = list(frames)
    for row_count in sorted(DIRECTIONAL_ROW_COUNTS, reverse=True):
        if frames and len(frames) % row_count == 0:
            per_row = len(frames) // row_count
            return [frames[row * per_row:(row + 1) * per_row] for row in range(row_count)]
    raise ValidationError(f"{animation_type} needs a frame count divisible by 4 or 8, got {len(frames)}")


def _attack_rows(animations: Mapping[str, FrameRows]) -> dict[str, list[Frame]]:
    rows: dict[str, list[Frame]] = {}
    combined = animations.get(COMBINED_ATTACK_SHEET)
    if isinstance(combined, Mapping):
        rows.update({role: list(combined[role]) for role in ATTACK_ROW_ORDER if role in combined})
    elif combined is not None:
        combined = list(combined)
        if len(combined) % len(ATTACK_ROW_ORDER):
            raise ValidationError(f"attack sheet needs a frame count divisible by 3, got {len(combined)}")
        per_row = len(combined) // len(ATTACK_ROW_ORDER)
        for row, role in enumerate(ATTACK_ROW_ORDER):
            rows[role] = combined[row * per_row:(row + 1) * per_row]
    for role in ATTACK_ROW_ORDER:
        if role in animations:
            rows[role] = list(animations[role])  # type: ignore[arg-type]
    return {role: frames for role, frames in rows.items() if frames}


def export_character(
    animations: Mapping[str, FrameRows],
    output_dir: Optional[Path],
    character_name: str,
    frame_size: tuple[int, int] = FRAME_SIZE,
    archive: bool = False,
) -> CharacterExport:
    """Build every sheet of a character plus one combined sprite config.

    Idle and walk become one row per direction, the three attacks share the
    combined attack sheet one row each, and every other type is one row.
    Frames are scaled into ``frame_size`` cells.
    """

    character = file_tools.safe_name(character_name)
    sheets: dict[str, SpriteSheet] = {}
    layouts: list[AnimationLayout] = []
    frame_width, frame_height = frame_size

    for animation_type, frames in animations.items():
        if animation_type == COMBINED_ATTACK_SHEET or animation_type in ATTACK_ROW_ORDER:
            continue
        spec = get_animation_spec(animation_type)
        if spec.directional:
            rows = _direction_rows(animation_type, frames)
        else:
            if isinstance(frames, Mapping):
                raise ValidationError(f"{animation_type} takes a plain frame list")
            rows = [list(frames)]
        columns = max((len(row) for row in rows), default=0)
        if columns == 0:
            logger.warning("Skipping %s: no frames", animation_type)
            continue
        sheets[spec.sheet] = build_row_sheet(rows, columns, frame_size)
        layouts.append(
            AnimationLayout(
                animation_type, columns, len(rows), frame_width, frame_height,
                frame_count=columns if spec.directional else len(rows[0]),
            )
        )

    attack_rows = _attack_rows(animations)
    if attack_rows:
        attack_columns = max(len(row) for row in attack_rows.values())
        ordered = [attack_rows.get(role, []) for role in ATTACK_ROW_ORDER]
        sheets[COMBINED_ATTACK_SHEET] = build_row_sheet(ordered, attack_columns, frame_size)
        for role, row in attack_rows.items():
            layouts.append(AnimationLayout(role, len(row), 1, frame_width, frame_height, frame_count=len(row)))

    if not layouts:
        raise ValidationError("No animations with frames to export")
    config = build_sprite_config(character, layouts)
    result = CharacterExport(character_name=character, sheets=sheets, config=config)
    if output_dir is None:
        return result

    output_dir = Path(output_dir)
    for name, sheet in sheets.items():
        result.sheet_paths[name] = save_spritesheet(sheet, output_dir / character / f"{name}.png")
    result.config_path = write_sprite_config(config, output_dir / CONFIG_FILENAME)
    if archive:
        files: dict[str, Union[Path, bytes]] = {path.name: path for path in result.sheet_paths.values()}
        files[CONFIG_FILENAME] = result.config_path
        result.archive_path = write_export_archive(files, character, output_dir / archive_name(character))
    logger.info("Exported %s sheets for %s", len(sheets), character)
    return result
