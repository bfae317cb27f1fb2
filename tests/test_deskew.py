import cv2
import numpy as np
import pytest
from image_to_musicxml.deskew import deskew, estimate_skew, line_strength, rotate_mask
from image_to_musicxml.image_processing import project


@pytest.fixture
def tilted_line():
    # A 3px line rising about one degree from left to right
    mask = np.zeros((200, 600), dtype=np.uint8)
    cv2.line(mask, (20, 110), (580, 100), 255, 3)
    return mask


def test_line_strength_sums_rising_edges():
    histogram = np.array([0, 10, 10, 0, 12, 0])
    assert line_strength(histogram, 5) == 22


def test_line_strength_ignores_first_row_and_short_input():
    assert line_strength(np.array([10, 10, 0]), 5) == 0
    assert line_strength(np.array([10]), 5) == 0


def test_rotate_mask_zero_returns_copy(simple_binary_blob):
    rotated = rotate_mask(simple_binary_blob, 0)
    assert np.array_equal(rotated, simple_binary_blob)
    assert rotated is not simple_binary_blob


def test_rotate_mask_stays_binary(simple_binary_blob):
    rotated = rotate_mask(simple_binary_blob, 10.0)
    assert rotated.shape == simple_binary_blob.shape
    assert rotated.dtype == np.uint8
    assert set(np.unique(rotated)) <= {0, 255}
    assert rotated[50, 50] == 0


def test_estimate_skew_never_lowers_the_objective(tilted_line):
    threshold = tilted_line.shape[1] // 2
    start = line_strength(project(tilted_line, "x"), threshold)
    angle, score = estimate_skew(tilted_line)
    assert score >= start
    assert abs(angle) <= 2.0


def test_estimate_skew_rotates_against_the_tilt(tilted_line):
    angle, score = estimate_skew(tilted_line)
    assert angle < 0
    assert score > 0


def test_deskew_straightens_line(tilted_line):
    threshold = tilted_line.shape[1] // 2
    assert project(tilted_line, "x").max() < threshold

    straightened, angle, score = deskew(tilted_line)
    assert straightened.shape == tilted_line.shape
    assert project(straightened, "x").max() > threshold
    assert score > 0


def test_deskew_blank_page():
    blank = np.zeros((50, 80), dtype=np.uint8)
    straightened, angle, score = deskew(blank)
    assert score == 0
    assert not straightened.any()


def test_estimate_skew_recovers_known_rotation():
    # Long lines make every 0.05 degree step move their ends by more than a pixel
    mask = np.zeros((200, 2000), dtype=np.uint8)
    for y in range(80, 121, 10):
        mask[y, 50:1950] = 255
    tilted = rotate_mask(mask, 0.3)
    angle, score = estimate_skew(tilted)
    assert angle == pytest.approx(-0.3, abs=0.051)
    assert score > 0
