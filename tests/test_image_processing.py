import numpy as np
import pytest
from image_to_musicxml.image_processing import (
    binarize,
    foreground_ratio,
    label_to_rgb,
    mask_to_rgb,
    project,
    to_intensity,
)


def test_binarize_thresholding(small_rgb_image):
    # Red, green and blue all average to 85; only black is strictly below 85
    bin_img = binarize(small_rgb_image, threshold=85)
    expected = np.array([[0, 0], [0, 255]], dtype=np.uint8)
    assert np.array_equal(bin_img, expected)


def test_binarize_threshold_above_colours(small_rgb_image):
    bin_img = binarize(small_rgb_image, threshold=86)
    assert np.all(bin_img == 255)


def test_binarize_dtype_and_shape(small_rgb_image):
    b = binarize(small_rgb_image)
    assert b.dtype == np.uint8
    assert b.shape == small_rgb_image.shape[:2]


def test_transparent_pixels_are_paper():
    rgba = np.zeros((1, 2, 4), dtype=np.uint8)
    rgba[0, 0, 3] = 255
    rgba[0, 1, 3] = 128
    assert to_intensity(rgba).tolist() == [[0, 255]]
    assert binarize(rgba).tolist() == [[255, 0]]


def test_to_intensity_rejects_two_channels():
    with pytest.raises(ValueError):
        to_intensity(np.zeros((2, 2, 2), dtype=np.uint8))


def test_project_axes(simple_binary_blob):
    rows = project(simple_binary_blob, "x")
    cols = project(simple_binary_blob, "y")
    assert rows.shape == (100,)
    assert cols.shape == (100,)
    assert rows[20] == 21
    assert rows[5] == 0
    assert cols[30] == 21
    assert rows.sum() == cols.sum() == 21 * 21


def test_project_unknown_axis(simple_binary_blob):
    with pytest.raises(ValueError):
        project(simple_binary_blob, "z")


def test_foreground_ratio(simple_binary_blob):
    assert foreground_ratio(simple_binary_blob) == pytest.approx(441 / 10000)
    assert foreground_ratio(np.zeros((0, 0), dtype=np.uint8)) == 0.0


@pytest.mark.parametrize(
    "label,expected",
    [
        (0, (255, 255, 255)),
        (1, (25, 0, 0)),
        (10, (250, 0, 0)),
        (15, (125, 125, 0)),
        (40, (250, 0, 255)),
        (80, (0, 0, 0)),
        (81, (25, 0, 0)),
    ],
)
def test_label_to_rgb(label, expected):
    assert label_to_rgb(label) == expected


def test_mask_to_rgb(simple_binary_blob):
    rgb = mask_to_rgb(simple_binary_blob)
    assert rgb.shape == (100, 100, 3)
    assert tuple(rgb[20, 20]) == (0, 0, 0)
    assert tuple(rgb[50, 50]) == (255, 255, 255)
