import numpy as np
import cv2
import pytest

from image_to_musicxml.models import BoundingBox, Stave


@pytest.fixture
def small_rgb_image():
    # 2×2 RGB image: red, green, blue, black
    img = np.array(
        [[[255, 0, 0], [0, 255, 0]], [[0, 0, 255], [0, 0, 0]]], dtype=np.uint8
    )
    return img


@pytest.fixture
def simple_binary_blob():
    # 100×100 binary mask with one square blob at (10,10)-(30,30)
    mask = np.zeros((100, 100), dtype=np.uint8)
    cv2.rectangle(mask, (10, 10), (30, 30), 255, -1)
    return mask


@pytest.fixture
def stave():
    # Five 1px staff lines at y=40..80, spacing 10, x from 10 to 409
    return Stave(
        lines=tuple(
            BoundingBox(x_start=10, y_start=y, x_end=409, y_end=y)
            for y in range(40, 81, 10)
        )
    )


@pytest.fixture
def score_mask():
    # 200×500 page: one stave at y=60..100, a treble-clef-sized block, a
    # filled note head on the middle line with a stem, and a closing bar line
    mask = np.zeros((200, 500), dtype=np.uint8)
    for y in range(60, 101, 10):
        mask[y, 20:480] = 255
    mask[40:126, 25:34] = 255  # clef
    mask[76:86, 200:213] = 255  # note head
    mask[40:86, 213] = 255  # stem
    mask[60:101, 470] = 255  # bar line
    return mask


@pytest.fixture
def score_image(score_mask):
    # The same page as black ink on a white RGB image
    page = np.where(score_mask > 0, 0, 255).astype(np.uint8)
    return cv2.cvtColor(page, cv2.COLOR_GRAY2RGB)
