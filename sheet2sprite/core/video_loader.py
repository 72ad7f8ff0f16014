"""Video decoding into frames using moviepy (eager, capped)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
from PIL import Image

from . import Frame, VideoMetadata
from .errors import InvalidVideoError, ProcessingError
from ..utils import validators

logger = logging.getLogger(__name__)
MAX_FRAME_CAP = 400


def load_metadata(video_path: Path) -> VideoMetadata:
    """Return basic metadata for the selected video."""

    validated_path = validators.validate_video_path(video_path)
    _ensure_ffmpeg_available()
    clip_class = _resolve_video_file_clip()

    try:
        with clip_class(str(validated_path)) as clip:
            width, height = clip.size
            fps = float(getattr(clip, "fps", 24.0) or 24.0)
            duration_seconds = float(getattr(clip, "duration", 1.0) or 1.0)
    except Exception as exc:  # pragma: no cover - backend dependent
        raise InvalidVideoError(validated_path, reason=f"Could not read metadata: {exc}") from exc

    logger.debug(
        "Loaded metadata for %s -> %sx%s @ %sfps, %ss",
        validated_path,
        width,
        height,
        fps,
        duration_seconds,
    )
    return VideoMetadata(width=width, height=height, fps=fps, duration_seconds=duration_seconds)


def compute_sample_times(
    metadata: VideoMetadata,
    frame_count: int | None = None,
    frame_interval: float | None = None,
    max_frames: int | None = None,
    start_time: float | None = None,
    end_time: float | None = None,
) -> list[float]:
    """Decide which timestamps to sample based on user input."""

    validators.validate_frame_selection(frame_count, frame_interval)
    validators.validate_time_range(start_time, end_time)
    user_cap = max_frames if max_frames is not None else MAX_FRAME_CAP
    cap = min(user_cap, MAX_FRAME_CAP)
    duration = metadata.duration_seconds
    start = max(0.0, start_time or 0.0)
    stop = min(end_time if end_time is not None else duration, duration)
    if stop <= start:
        stop = duration

    if frame_interval:
        times = list(np.arange(start, stop, frame_interval, dtype=float))
    elif frame_count:
        times = np.linspace(start, stop, num=frame_count, endpoint=False, dtype=float).tolist()
    else:
        # Default: roughly half the source frame rate over the selected span.
        window = stop - start
        default_count = int(metadata.fps * window / 2) if window > 0 else int(metadata.fps * duration / 2)
        default_count = max(default_count, 1)
        if cap and cap > 0:
            default_count = min(default_count, cap)
        times = np.linspace(start, stop, num=default_count, endpoint=False, dtype=float).tolist()

    times = [min(float(t), max(duration - 0.001, 0.0)) for t in times]
    unique_times = sorted(dict.fromkeys(times))
    if cap and cap > 0 and len(unique_times) > cap:
        logger.info("Capping frames to %s for memory safety (requested %s)", cap, len(unique_times))
        unique_times = unique_times[:cap]
    return unique_times


def iter_video_images(video_path: Path, times: list[float]) -> Iterator[tuple[float, Image.Image]]:
    """Yield (timestamp, RGBA image) pairs one at a time."""

    clip_class = _resolve_video_file_clip()
    _ensure_ffmpeg_available()

    logger.info("Extracting %s frames from %s", len(times), video_path)
    try:
        clip = clip_class(str(video_path))
    except Exception as exc:  # pragma: no cover - moviepy internals
        raise InvalidVideoError(video_path, reason=f"Failed to open video: {exc}") from exc
    try:
        for ts in times:
            try:
                frame_array = clip.get_frame(ts)
            except Exception as exc:  # pragma: no cover
                logger.warning("Failed to decode frame at %.3fs: %s", ts, exc)
                continue
            yield ts, Image.fromarray(frame_array).convert("RGBA")
    finally:
        clip.close()


def extract_video_frames(
    video_path: Path,
    frame_count: Optional[int] = None,
    frame_interval: Optional[float] = None,
    max_frames: Optional[int] = None,
    start_time: Optional[float] = None,
    end_time: Optional[float] = None,
) -> list[Frame]:
    """Sample a video into an unlabeled frame sequence."""

    metadata = load_metadata(video_path)
    times = compute_sample_times(metadata, frame_count, frame_interval, max_frames, start_time, end_time)
    frames = [Frame.from_image(index, image) for index, (_, image) in enumerate(iter_video_images(video_path, times))]
    if not frames:
        raise ProcessingError("No frames could be extracted from the video.")
    return frames


def _ensure_ffmpeg_available() -> None:
    """Raise a friendly error if ffmpeg is missing."""

    try:
        from moviepy.config import FFMPEG_BINARY  # type: ignore
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise ProcessingError("moviepy is not installed. Run pip install moviepy.") from exc

    if not FFMPEG_BINARY:
        raise ProcessingError("ffmpeg not found. Install ffmpeg and ensure it is on PATH.")


def _resolve_video_file_clip():
    """Import VideoFileClip from supported moviepy locations."""

    try:
        from moviepy import VideoFileClip  # type: ignore
        return VideoFileClip
    except ImportError:
        try:
            from moviepy.editor import VideoFileClip  # type: ignore
            return VideoFileClip
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise ProcessingError("moviepy is not installed. Run pip install moviepy.") from exc
