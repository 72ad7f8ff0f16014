"""Command-line entry point for sheet extraction and export workflows."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .core import (
    AutoCropSettings,
    ChromaKeySettings,
    CompositingSettings,
    CropMode,
    DividedGrid,
    FreeRegions,
    HaloSettings,
    PartitionDescriptor,
    Region,
    UniformGrid,
)
from .core.animation_config import ANIMATION_TYPES, COMBINED_ATTACK_SHEET, config_for_animation
from .core.compositing import composite_frames
from .core.errors import InvalidImageError, InvalidVideoError, ProcessingError, ValidationError
from .core.exporter import export_animation
from .core.frame_extractor import new_region_id
from .core.grid_analyzer import analyze_grid
from .core.image_loader import load_image
from .core.manifest_writer import render_json, write_frame_manifest
from .core.spritesheet_builder import assemble_spritesheet, save_spritesheet
from .core.video_loader import extract_video_frames
from .utils import validators

logger = logging.getLogger(__name__)

ANIMATION_CHOICES = [*ANIMATION_TYPES, COMBINED_ATTACK_SHEET]


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )


def _add_compositing_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("compositing")
    group.add_argument("--chroma-key", metavar="COLOR", help="Key out this color (#rrggbb or R,G,B)")
    group.add_argument("--tolerance", type=int, default=50, help="Chroma key tolerance 0-150 (default: 50)")
    group.add_argument("--halo", type=int, metavar="PX", help="Remove edge halo by growing transparency PX pixels")
    group.add_argument(
        "--crop-mode",
        choices=[mode.value for mode in CropMode],
        help="Auto-crop frames onto a fixed canvas",
    )
    group.add_argument("--canvas", default="32x48", help="Auto-crop canvas, N or WIDTHxHEIGHT (default: 32x48)")
    group.add_argument("--reduction", type=int, default=0, help="Shrink the crop box by this many pixels per side")
    group.add_argument("--align-x", choices=validators.ALIGN_X_VALUES, default="center")
    group.add_argument("--align-y", choices=validators.ALIGN_Y_VALUES, default="center")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheet2sprite",
        description="Slice raw character sheets into clean, engine-ready sprite sheets and configs.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract frames from a sheet and export one animation")
    extract.add_argument("source", type=Path, help="Path to the source sheet image")
    extract.add_argument("output", type=Path, help="Output directory")
    partition = extract.add_mutually_exclusive_group(required=True)
    partition.add_argument("--grid", metavar="CxR", help="Uniform grid, e.g. 6x8")
    partition.add_argument(
        "--dividers",
        metavar="V;H",
        help="Divider percentages: vertical list, semicolon, horizontal list (e.g. '25,50,75;50')",
    )
    partition.add_argument("--regions", type=Path, metavar="FILE", help="JSON file with free regions in percent")
    _add_compositing_arguments(extract)
    extract.add_argument("--animation", choices=ANIMATION_CHOICES, default="idle", help="Animation type (default: idle)")
    extract.add_argument("--character", default="character", help="Character name used for paths")
    extract.add_argument("--columns", type=int, help="Force the sheet column count")
    extract.add_argument("--zip", action="store_true", help="Also bundle the outputs into a ZIP archive")
    extract.add_argument("--dry-run", action="store_true", help="Run the pipeline and print the config without writing")

    analyze = subparsers.add_parser("analyze", help="Detect the grid of a sheet and print it as JSON")
    analyze.add_argument("source", type=Path, help="Path to the source sheet image")
    analyze.add_argument("--expect", choices=ANIMATION_CHOICES, help="Animation type the sheet should match")

    config = subparsers.add_parser("config", help="Print the sprite config for one animation")
    config.add_argument("animation", choices=ANIMATION_CHOICES)
    config.add_argument("--columns", type=int, required=True, help="Frames per row")
    config.add_argument("--rows", type=int, help="Row count (defaults to the type's standard layout)")
    config.add_argument("--character", default="character")

    video = subparsers.add_parser("video", help="Sample a video into a packed sprite sheet")
    video.add_argument("source", type=Path, help="Path to source video clip")
    video.add_argument("output", type=Path, help="Destination sprite sheet path (PNG)")
    selection = video.add_mutually_exclusive_group()
    selection.add_argument("--frame-count", type=int, help="Number of evenly spaced frames")
    selection.add_argument("--interval", type=float, help="Seconds between sampled frames")
    video.add_argument("--max-frames", type=int, help="Upper bound on sampled frames")
    video.add_argument("--start", type=float, help="Start time in seconds")
    video.add_argument("--end", type=float, help="End time in seconds")
    video.add_argument("--columns", type=int, help="Force the sheet column count")
    _add_compositing_arguments(video)
    return parser


def load_regions(path: Path) -> FreeRegions:
    """Read ``[{"x":..,"y":..,"width":..,"height":..}, ...]`` or ``{"regions": [...]}``."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Could not read regions file {path}: {exc}") from exc
    items = payload.get("regions", []) if isinstance(payload, dict) else payload
    regions = []
    for item in items:
        try:
            regions.append(
                Region(
                    id=str(item.get("id") or new_region_id()),
                    x=float(item["x"]),
                    y=float(item["y"]),
                    width=float(item["width"]),
                    height=float(item["height"]),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid region entry {item!r}") from exc
    return FreeRegions(regions=regions)


def partition_from_args(args: argparse.Namespace) -> PartitionDescriptor:
    if args.grid:
        columns, rows = validators.parse_grid_spec(args.grid)
        return UniformGrid(columns=columns, rows=rows)
    if args.dividers is not None:
        vertical_text, _, horizontal_text = args.dividers.partition(";")
        return DividedGrid(
            vertical_dividers=validators.parse_divider_list(vertical_text, "Vertical dividers"),
            horizontal_dividers=validators.parse_divider_list(horizontal_text, "Horizontal dividers"),
        )
    return load_regions(args.regions)


def settings_from_args(args: argparse.Namespace) -> CompositingSettings:
    color = validators.parse_color(args.chroma_key)
    settings = CompositingSettings(
        chroma_key=ChromaKeySettings(enabled=color is not None, color=color or "#00ff00", tolerance=args.tolerance),
        halo=HaloSettings(enabled=args.halo is not None, expansion_px=args.halo if args.halo is not None else 5),
        auto_crop=AutoCropSettings(
            enabled=args.crop_mode is not None,
            mode=CropMode(args.crop_mode or CropMode.ANIMATION_RELATIVE.value),
            canvas_size=validators.parse_canvas_size(args.canvas),
            reduction_px=args.reduction,
            align_x=args.align_x,
            align_y=args.align_y,
        ),
    )
    return settings.validate()


def _print_progress(fraction: float, stage: str) -> None:
    logger.debug("%3d%% %s", int(fraction * 100), stage)


def run_extract(args: argparse.Namespace) -> int:
    outcome = export_animation(
        args.source,
        partition_from_args(args),
        args.animation,
        settings=settings_from_args(args),
        output_dir=args.output,
        character_name=args.character,
        columns=args.columns,
        progress=_print_progress,
        archive=args.zip,
        dry_run=args.dry_run,
    )
    for message in outcome.warnings:
        logger.warning("%s", message)
    for failure in outcome.failures:
        logger.warning("Frame %s failed during %s: %s", failure.index, failure.stage, failure.message)
    if args.dry_run:
        print(render_json(outcome.config))
    else:
        logger.info("Exported %s frames to %s", len(outcome.frames), outcome.sheet_path)
    return 0


def run_analyze(args: argparse.Namespace) -> int:
    analysis = analyze_grid(load_image(args.source), args.expect)
    print(render_json(analysis.to_dict()))
    return 0


def run_config(args: argparse.Namespace) -> int:
    if args.columns <= 0:
        raise ValidationError("Columns must be greater than zero")
    config = config_for_animation(args.animation, args.columns, rows=args.rows, character_name=args.character)
    print(render_json(config))
    return 0


def run_video(args: argparse.Namespace) -> int:
    frames = extract_video_frames(
        args.source,
        frame_count=args.frame_count,
        frame_interval=args.interval,
        max_frames=args.max_frames,
        start_time=args.start,
        end_time=args.end,
    )
    batch = composite_frames(frames, settings_from_args(args), _print_progress)
    sheet = assemble_spritesheet(batch.frames, args.columns)
    sheet_path = save_spritesheet(sheet, args.output)
    write_frame_manifest(sheet.placements, sheet, sheet_path, source=str(args.source))
    return 0


COMMANDS = {
    "extract": run_extract,
    "analyze": run_analyze,
    "config": run_config,
    "video": run_video,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return COMMANDS[args.command](args)
    except (ValidationError, InvalidImageError, InvalidVideoError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ProcessingError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
