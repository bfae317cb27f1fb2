import tracemalloc

import numpy as np
import pytest
from image_to_musicxml.models import BoundingBox
from image_to_musicxml.symbols import (
    count_peaks,
    find_second_beam,
    find_stem,
    is_beam_shape,
    is_stem_for,
)


@pytest.fixture
def head():
    return BoundingBox(x_start=100, y_start=56, x_end=112, y_end=65)


def test_is_stem_for_attached_stem(head):
    stem = BoundingBox(x_start=112, y_start=20, x_end=113, y_end=60)
    assert is_stem_for(head, stem, 10)


def test_is_stem_for_rejects_distant_lines(head):
    far_right = BoundingBox(x_start=130, y_start=20, x_end=131, y_end=60)
    too_high = BoundingBox(x_start=112, y_start=0, x_end=113, y_end=40)
    assert not is_stem_for(head, far_right, 10)
    assert not is_stem_for(head, too_high, 10)


def test_find_stem(head):
    lines = [
        BoundingBox(x_start=300, y_start=20, x_end=301, y_end=60),
        BoundingBox(x_start=100, y_start=60, x_end=101, y_end=100),
    ]
    assert find_stem(head, lines, 10) == lines[1]
    assert find_stem(head, lines[:1], 10) is None


def test_filled_bar_is_beam_shape():
    assert is_beam_shape(np.ones((6, 40), dtype=bool), 10)


def test_slanted_beam_is_beam_shape():
    symbol = np.zeros((12, 40), dtype=bool)
    for x in range(40):
        top = x // 8
        symbol[top : top + 5, x] = True
    assert is_beam_shape(symbol, 10)


def test_outline_is_not_beam_shape():
    symbol = np.zeros((20, 20), dtype=bool)
    symbol[0, :] = symbol[-1, :] = True
    symbol[:, 0] = symbol[:, -1] = True
    assert not is_beam_shape(symbol, 10)


def test_empty_mask_is_not_beam_shape():
    assert not is_beam_shape(np.zeros((0, 5), dtype=bool), 10)


def test_wide_component_beam_shape_memory():
    symbol = np.zeros((100, 1500), dtype=bool)
    symbol[40:50, :] = True
    tracemalloc.start()
    try:
        assert is_beam_shape(symbol, 10)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    # Sampling every line at once would need over 100 MB here
    assert peak < 20 * 1024 * 1024


def test_count_peaks_rows():
    symbol = np.zeros((10, 10), dtype=bool)
    symbol[0:2, :] = True
    symbol[5:7, :] = True
    assert count_peaks(symbol, "x", 2) == 2


def test_count_peaks_merges_close_peaks():
    symbol = np.zeros((10, 10), dtype=bool)
    symbol[0, :] = True
    symbol[2, :] = True
    assert count_peaks(symbol, "x", 2) == 1


def test_count_peaks_columns_of_hollow_head():
    symbol = np.zeros((10, 14), dtype=bool)
    symbol[:, 0:2] = True
    symbol[:, 12:14] = True
    symbol[0, :] = symbol[-1, :] = True
    assert count_peaks(symbol, "y", 2) == 2
    assert count_peaks(symbol, "x", 2) == 2


def _beam(thick_from, thick_to, width=60):
    # A 3px beam, doubled to 14px between the given columns
    symbol = np.zeros((14, width), dtype=bool)
    symbol[0:3, :] = True
    symbol[:, thick_from:thick_to] = True
    return symbol


def test_second_beam_continues_on_both_sides():
    beam = BoundingBox(x_start=100, y_start=0, x_end=159, y_end=13)
    stem = BoundingBox(x_start=130, y_start=0, x_end=130, y_end=50)
    assert find_second_beam(_beam(0, 60), beam, stem, 12) == "continue"


def test_second_beam_begins_at_stem():
    beam = BoundingBox(x_start=100, y_start=0, x_end=159, y_end=13)
    stem = BoundingBox(x_start=130, y_start=0, x_end=130, y_end=50)
    assert find_second_beam(_beam(30, 60), beam, stem, 12) == "begin"


def test_second_beam_absent():
    beam = BoundingBox(x_start=100, y_start=0, x_end=159, y_end=13)
    stem = BoundingBox(x_start=130, y_start=0, x_end=130, y_end=50)
    assert find_second_beam(_beam(0, 0), beam, stem, 12) is None
