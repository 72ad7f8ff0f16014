import pytest

from sheet2sprite.core import VideoMetadata
from sheet2sprite.core.errors import InvalidVideoError, ValidationError
from sheet2sprite.core.video_loader import MAX_FRAME_CAP, compute_sample_times, load_metadata

META = VideoMetadata(width=64, height=64, fps=24.0, duration_seconds=2.0)


def test_frame_count_spreads_evenly():
    assert compute_sample_times(META, frame_count=4) == [0.0, 0.5, 1.0, 1.5]


def test_interval_respects_time_window():
    assert compute_sample_times(META, frame_interval=0.5, start_time=0.5, end_time=1.5) == [0.5, 1.0]


def test_default_samples_half_the_frame_rate():
    assert len(compute_sample_times(META)) == 24
    assert len(compute_sample_times(META, max_frames=5)) == 5


def test_long_videos_are_capped():
    long_clip = VideoMetadata(width=64, height=64, fps=30.0, duration_seconds=100.0)
    assert len(compute_sample_times(long_clip)) == MAX_FRAME_CAP
    assert len(compute_sample_times(long_clip, max_frames=1000)) == MAX_FRAME_CAP


def test_conflicting_selection_is_rejected():
    with pytest.raises(ValidationError):
        compute_sample_times(META, frame_count=4, frame_interval=0.5)


def test_missing_video_raises(tmp_path):
    with pytest.raises(InvalidVideoError):
        load_metadata(tmp_path / "missing.mp4")
