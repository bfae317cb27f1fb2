import numpy as np
import pytest
from image_to_musicxml.image_processing import project
from image_to_musicxml.models import BoundingBox
from image_to_musicxml.staff import group_staves, remove_staff_lines
from image_to_musicxml.vertical_lines import remove_vertical_lines


@pytest.fixture
def staff_removed(score_mask):
    cleaned, lines = remove_staff_lines(score_mask, project(score_mask, "x"), 250)
    staves, spacing = group_staves(lines)
    return cleaned, staves, spacing


def test_bar_line_detected(staff_removed):
    cleaned, staves, spacing = staff_removed
    _, bar_lines, _ = remove_vertical_lines(cleaned, staves, spacing)
    assert len(bar_lines) == 1
    bar = bar_lines[0]
    assert bar.x_start == 470
    assert bar.y_start == 60
    assert abs(bar.y_end - 100) <= 3


def test_stem_detected_and_erased(staff_removed):
    cleaned, staves, spacing = staff_removed
    result, _, vertical_lines = remove_vertical_lines(cleaned, staves, spacing)
    assert len(vertical_lines) == 1
    stem = vertical_lines[0]
    assert stem.x_start <= 213 <= stem.x_end
    assert stem.y_start == 40
    # Free part of the stem is erased, the note head stays
    assert not result[40:70, 213].any()
    assert result[80, 205] == 255


def test_clef_strokes_stay(staff_removed):
    cleaned, staves, spacing = staff_removed
    result, _, _ = remove_vertical_lines(cleaned, staves, spacing)
    assert np.array_equal(result[40:126, 25:34], cleaned[40:126, 25:34])


def test_thin_stroke_near_stave_start_is_kept(stave):
    mask = np.zeros((120, 420), dtype=np.uint8)
    mask[20:70, 30] = 255
    result, bar_lines, vertical_lines = remove_vertical_lines(mask, [stave], 10)
    assert bar_lines == []
    assert vertical_lines == []
    assert np.array_equal(result, mask)


def test_bar_lines_ordered_left_to_right(stave):
    mask = np.zeros((120, 420), dtype=np.uint8)
    mask[40:81, 300] = 255
    mask[40:81, 150] = 255
    _, bar_lines, _ = remove_vertical_lines(mask, [stave], 10)
    assert [bar.x_start for bar in bar_lines] == [150, 300]
    assert all(isinstance(bar, BoundingBox) for bar in bar_lines)
