import numpy as np
import pytest
from PIL import Image

from sheet2sprite.core import DividedGrid, FreeRegions, Region, UniformGrid
from sheet2sprite.core.animation_config import ATTACK_ROW_ORDER, DIRECTION_ROW_ORDER_4, DIRECTION_ROW_ORDER_8
from sheet2sprite.core.errors import ValidationError
from sheet2sprite.core.frame_extractor import (
    axis_boundaries,
    clamp_region,
    divided_grid,
    even_dividers,
    extract,
    move_divider,
    move_region,
    region_pixel_rect,
    regions_from_grid,
    remove_region,
    validate_dividers,
)


def _noise(width, height):
    data = (np.arange(width * height * 4, dtype=np.uint32) * 7919 % 256).astype(np.uint8)
    return Image.fromarray(data.reshape(height, width, 4))


@pytest.mark.parametrize("columns", range(1, 13))
def test_grid_cells_tile_without_gaps_or_overlaps(columns):
    rows = 13 - columns
    image = _noise(97, 61)
    result = extract(image, UniformGrid(columns=columns, rows=rows))

    assert len(result.frames) == columns * rows
    for row in range(rows):
        cells = result.frames[row * columns:(row + 1) * columns]
        assert cells[0].source_x == 0
        for left, right in zip(cells, cells[1:]):
            assert left.source_x + left.width == right.source_x
        assert cells[-1].source_x + cells[-1].width == 97
    first_column = result.frames[::columns]
    assert first_column[0].source_y == 0
    for top, bottom in zip(first_column, first_column[1:]):
        assert top.source_y + top.height == bottom.source_y
    assert first_column[-1].source_y + first_column[-1].height == 61


def test_uniform_grid_matches_even_dividers_pixel_for_pixel():
    image = _noise(101, 149)
    uniform = extract(image, UniformGrid(columns=6, rows=8))
    divided = extract(image, divided_grid(6, 8))

    assert len(uniform.frames) == len(divided.frames) == 48
    for a, b in zip(uniform.frames, divided.frames):
        assert (a.source_x, a.source_y, a.width, a.height) == (b.source_x, b.source_y, b.width, b.height)
        assert a.image.tobytes() == b.image.tobytes()


def test_axis_boundaries_round_each_edge_independently():
    assert axis_boundaries(even_dividers(3), 100) == [0, 33, 67, 100]
    assert axis_boundaries([], 10) == [0, 10]


def test_eight_rows_are_labeled_by_direction():
    image = _noise(64, 96)
    result = extract(image, UniformGrid(columns=4, rows=8))

    assert result.is_labeled
    assert list(result.roles) == list(DIRECTION_ROW_ORDER_8)
    left = result.roles["left"]
    assert [frame.index for frame in left] == [8, 9, 10, 11]
    assert all(frame.source_y == 24 for frame in left)


def test_four_and_three_rows_use_their_tables():
    image = _noise(40, 40)
    assert list(extract(image, UniformGrid(4, 4)).roles) == list(DIRECTION_ROW_ORDER_4)
    assert list(extract(image, UniformGrid(4, 3)).roles) == list(ATTACK_ROW_ORDER)


def test_other_row_counts_stay_unlabeled():
    result = extract(_noise(40, 40), UniformGrid(4, 5))
    assert result.roles is None
    assert not result.is_labeled


def test_zero_grid_produces_no_frames():
    result = extract(_noise(10, 10), UniformGrid(columns=0, rows=3))
    assert result.frames == []


def test_zero_size_cells_are_skipped_with_warning():
    image = _noise(10, 10)
    result = extract(image, DividedGrid(vertical_dividers=[50.0, 50.1], horizontal_dividers=[]))

    assert len(result.frames) == 2
    assert any("zero size" in message for message in result.warnings)
    assert result.roles is None


def test_validate_dividers_reports_tight_gaps():
    assert validate_dividers([25.0, 50.0, 75.0]) == []
    warnings = validate_dividers([50.0, 51.0])
    assert len(warnings) == 1


def test_move_divider_clamps_to_neighbours_and_edges():
    dividers = [25.0, 50.0, 75.0]
    assert move_divider(dividers, 1, 10.0) == [25.0, 27.0, 75.0]
    assert move_divider(dividers, 1, 90.0) == [25.0, 73.0, 75.0]
    assert move_divider(dividers, 0, -5.0)[0] == 2.0
    assert move_divider(dividers, 2, 100.0)[2] == 98.0
    with pytest.raises(ValidationError):
        move_divider(dividers, 3, 50.0)


def test_free_regions_keep_list_order():
    image = _noise(100, 100)
    regions = [
        Region(id="b", x=50, y=0, width=50, height=50),
        Region(id="a", x=0, y=0, width=50, height=50),
    ]
    result = extract(image, FreeRegions(regions))

    assert [frame.source_x for frame in result.frames] == [50, 0]
    assert [frame.index for frame in result.frames] == [0, 1]
    assert result.roles is None


def test_region_pixel_rect_rounds_percentages():
    rect = region_pixel_rect(Region(id="r", x=12.5, y=0, width=25, height=100), 10, 4)
    assert (rect.x, rect.y, rect.width, rect.height) == (1, 0, 3, 4)


def test_zero_size_region_is_skipped():
    regions = [Region(id="empty", x=10, y=10, width=0, height=20), Region(id="ok", x=0, y=0, width=50, height=50)]
    result = extract(_noise(10, 10), FreeRegions(regions))
    assert len(result.frames) == 1
    assert any("empty" in message for message in result.warnings)


def test_region_helpers():
    regions = regions_from_grid(2, 2)
    assert [(r.x, r.y) for r in regions] == [(0, 0), (50, 0), (0, 50), (50, 50)]

    moved = move_region(regions, 1, "up")
    assert moved[0].id == regions[1].id
    assert move_region(regions, 0, "up") == regions

    remaining = remove_region(regions, regions[2].id)
    assert len(remaining) == 3

    clamped = clamp_region(Region(id="c", x=99.5, y=-3, width=0.5, height=150))
    assert clamped.x == 98.0
    assert clamped.y == 0.0
    assert clamped.width == 2.0
    assert clamped.height == 100.0


def test_even_split_ties_round_up():
    assert axis_boundaries(even_dividers(6), 45) == [0, 8, 15, 23, 30, 38, 45]

    image = _noise(45, 10)
    uniform = extract(image, UniformGrid(columns=6, rows=1))
    assert [frame.width for frame in uniform.frames] == [8, 7, 8, 7, 8, 7]
    divided = extract(image, divided_grid(6, 1))
    assert [frame.image.tobytes() for frame in uniform.frames] == [frame.image.tobytes() for frame in divided.frames]
