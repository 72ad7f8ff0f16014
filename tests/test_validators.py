import pytest

from sheet2sprite.core import AutoCropSettings, CompositingSettings, HaloSettings
from sheet2sprite.core.errors import ValidationError
from sheet2sprite.utils import file_tools, validators


def test_parse_grid_spec():
    assert validators.parse_grid_spec("6x8") == (6, 8)
    assert validators.parse_grid_spec(" 4 X 3 ") == (4, 3)
    for bad in ("6", "axb", "6x8x2", "-1x2"):
        with pytest.raises(ValidationError):
            validators.parse_grid_spec(bad)


def test_parse_canvas_size():
    assert validators.parse_canvas_size("64") == 64
    assert validators.parse_canvas_size("32x48") == (32, 48)
    with pytest.raises(ValidationError):
        validators.parse_canvas_size("0x48")


def test_parse_divider_list():
    assert validators.parse_divider_list("25, 50,75", "Dividers") == [25.0, 50.0, 75.0]
    assert validators.parse_divider_list("", "Dividers") == []
    with pytest.raises(ValidationError):
        validators.parse_divider_list("0,50", "Dividers")
    with pytest.raises(ValidationError):
        validators.parse_divider_list("a,b", "Dividers")


@pytest.mark.parametrize(
    "value,expected",
    [("#00FF00", "#00ff00"), ("ff00aa", "#ff00aa"), ("1,2,3", "#010203"), ("255, 255, 255, 128", "#ffffff")],
)
def test_parse_color_normalises(value, expected):
    assert validators.parse_color(value) == expected


@pytest.mark.parametrize("value", ["#12345", "300,0,0", "1,2", "zzzzzz"])
def test_parse_color_rejects_garbage(value):
    with pytest.raises(ValidationError):
        validators.parse_color(value)


def test_parse_optional_numbers():
    assert validators.parse_optional_int("", "Columns") is None
    assert validators.parse_optional_int("4", "Columns") == 4
    with pytest.raises(ValidationError):
        validators.parse_optional_int("0", "Columns")
    assert validators.parse_optional_float("0.5", "Interval") == 0.5
    with pytest.raises(ValidationError):
        validators.parse_optional_float("x", "Interval")


def test_validate_compositing_ranges():
    CompositingSettings().validate()
    with pytest.raises(ValidationError):
        CompositingSettings(halo=HaloSettings(enabled=True, expansion_px=31)).validate()
    with pytest.raises(ValidationError):
        CompositingSettings(auto_crop=AutoCropSettings(reduction_px=101)).validate()
    with pytest.raises(ValidationError):
        CompositingSettings(auto_crop=AutoCropSettings(align_x="middle")).validate()


def test_time_and_selection_checks():
    with pytest.raises(ValidationError):
        validators.validate_frame_selection(10, 0.5)
    with pytest.raises(ValidationError):
        validators.validate_time_range(2.0, 1.0)
    validators.validate_time_range(None, 1.0)


def test_file_tools_names():
    assert file_tools.frame_filename("walk", 7) == "walk_0007.png"
    assert file_tools.frame_filename("walk", 12, "webp") == "walk_0012.webp"
    assert file_tools.safe_name(" Sir Knight! ") == "Sir_Knight"
    assert file_tools.safe_name("???") == "character"
