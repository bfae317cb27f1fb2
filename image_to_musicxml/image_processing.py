"""Image preprocessing and geometry utilities.

This module converts decoded pages into binary ink masks and provides the
small numeric helpers shared by every later stage: row/column projections,
ink ratios and the label colour ramp used by the visualization layers.

Masks follow the OpenCV inverse-threshold convention: ink pixels are 255 and
paper pixels are 0.
"""

import cv2
import numpy as np

INK = 255
PAPER = 0
BINARY_THRESHOLD = 150
LABEL_CYCLE = 80


def to_intensity(image: np.ndarray) -> np.ndarray:
    """Convert a grey, RGB or RGBA image to an intensity image.

    The intensity of a colour pixel is the mean of its three colour channels.
    Pixels that are not fully opaque count as paper.

    Args:
        image: 2D grey image or 3D image with 3 or 4 channels.

    Returns:
        2D uint8 intensity image.
    """
    if image.ndim == 2:
        return image.astype(np.uint8, copy=False)

    channels = image.shape[2]
    if channels not in (3, 4):
        raise ValueError(f"Unsupported channel count: {channels}")

    gray = image[:, :, :3].astype(np.uint16).sum(axis=2) // 3
    gray = gray.astype(np.uint8)
    if channels == 4:
        gray[image[:, :, 3] != 255] = 255
    return gray


def binarize(image: np.ndarray, threshold: int = BINARY_THRESHOLD) -> np.ndarray:
    """Convert an image to a binary ink mask using inverted thresholding.

    Args:
        image: Grey, RGB or RGBA image.
        threshold: Intensities strictly below this value become ink.

    Returns:
        2D uint8 mask with ink as 255 and paper as 0.
    """
    gray = to_intensity(image)
    _, binary = cv2.threshold(gray, threshold - 1, INK, cv2.THRESH_BINARY_INV)
    return binary


def project(mask: np.ndarray, axis: str) -> np.ndarray:
    """Count ink pixels per row or per column.

    Args:
        mask: Binary mask (any non-zero value counts as ink).
        axis: ``"x"`` projects onto the vertical axis, yielding one count per
            row; ``"y"`` yields one count per column.

    Returns:
        1D integer array of ink counts.
    """
    ink = mask > 0
    if axis == "x":
        return np.count_nonzero(ink, axis=1)
    if axis == "y":
        return np.count_nonzero(ink, axis=0)
    raise ValueError(f"Unknown projection axis: {axis!r}")


def foreground_ratio(mask: np.ndarray) -> float:
    """Fraction of ink pixels in a mask, 0.0 for an empty mask."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / mask.size


def label_to_rgb(label: int) -> tuple[int, int, int]:
    """Map a component label to a display colour.

    Labels walk a fixed 80-step ramp through red, green, blue, their mixes and
    a final grey fade, then the ramp repeats. Label 0 is paper (white).

    Args:
        label: Non-negative component label.

    Returns:
        RGB colour tuple.
    """
    if label <= 0:
        return (255, 255, 255)
    step = (label - 1) % LABEL_CYCLE + 1
    if step <= 10:
        return (25 * step, 0, 0)
    if step <= 20:
        return (25 * (20 - step), 25 * (step - 10), 0)
    if step <= 30:
        return (0, 25 * (30 - step), 25 * (step - 20))
    if step <= 40:
        return (25 * (step - 30), 0, 255)
    if step <= 50:
        return (25 * (50 - step), 25 * (step - 40), 255)
    if step <= 60:
        return (25 * (step - 50), 255, 25 * (60 - step))
    if step <= 70:
        return (255, 255, 25 * (step - 60))
    grey = 25 * (80 - step)
    return (grey, grey, grey)


def mask_to_rgb(mask: np.ndarray) -> np.ndarray:
    """Render a binary mask as black ink on a white RGB page."""
    page = np.where(mask > 0, 0, 255).astype(np.uint8)
    return cv2.cvtColor(page, cv2.COLOR_GRAY2RGB)
