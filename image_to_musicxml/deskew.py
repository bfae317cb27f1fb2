"""Skew estimation and correction.

Staff lines are the longest straight strokes on a page, so the rotation that
makes them horizontal is the one that concentrates the most ink into rows
exceeding the staff-line threshold. The estimator hill-climbs that objective
in both rotation directions from zero.
"""

import logging

import cv2
import numpy as np

from image_to_musicxml.image_processing import BINARY_THRESHOLD, INK, binarize, project

logger = logging.getLogger(__name__)

ANGLE_STEP = 0.05
MAX_ANGLE = 2.0


def line_strength(histogram: np.ndarray, threshold: float) -> int:
    """Sum the histogram values at every upward crossing of the threshold.

    Args:
        histogram: Ink count per row.
        threshold: Row count above which a row belongs to a staff line.

    Returns:
        Total ink of the first row of every above-threshold run.
    """
    if len(histogram) < 2:
        return 0
    values = np.asarray(histogram)
    rising = (values[1:] > threshold) & (values[:-1] < threshold)
    return int(values[1:][rising].sum())


def rotate_mask(
    mask: np.ndarray, angle: float, binary_threshold: int = BINARY_THRESHOLD
) -> np.ndarray:
    """Rotate a binary mask about its centre and binarize it again.

    Args:
        mask: Binary mask with ink as 255.
        angle: Rotation in degrees, counter-clockwise positive.
        binary_threshold: Threshold used to re-binarize the interpolated page.

    Returns:
        Rotated binary mask of the same shape.
    """
    if angle == 0:
        return mask.copy()
    h, w = mask.shape[:2]
    matrix = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
    rotated = cv2.warpAffine(
        mask,
        matrix,
        (w, h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    # Interpolated ink is compared as page intensity, i.e. dark means ink
    return binarize(INK - rotated, binary_threshold)


def _climb(
    mask: np.ndarray,
    threshold: float,
    direction: int,
    step: float,
    max_angle: float,
    binary_threshold: int,
) -> tuple[float, int]:
    best_angle = 0.0
    best_score = line_strength(project(mask, "x"), threshold)
    n_steps = int(round(max_angle / step))

    for i in range(1, n_steps + 1):
        angle = direction * i * step
        rotated = rotate_mask(mask, angle, binary_threshold)
        score = line_strength(project(rotated, "x"), threshold)
        logger.debug(f"Skew angle {angle:.2f} scores {score}")
        if score < best_score:
            break
        best_angle, best_score = angle, score

    return best_angle, best_score


def estimate_skew(
    mask: np.ndarray,
    threshold: float | None = None,
    step: float = ANGLE_STEP,
    max_angle: float = MAX_ANGLE,
    binary_threshold: int = BINARY_THRESHOLD,
) -> tuple[float, int]:
    """Find the rotation that makes the staff lines horizontal.

    Each direction is climbed independently. A step that does not lower the
    objective is accepted, the first step that lowers it ends the climb and is
    not applied.

    Args:
        mask: Binary mask with ink as 255.
        threshold: Staff-line row threshold, half the width by default.
        step: Angular step in degrees.
        max_angle: Largest rotation tried in either direction.
        binary_threshold: Threshold used to re-binarize rotated masks.

    Returns:
        Tuple of (angle in degrees, objective value at that angle).
    """
    if threshold is None:
        threshold = mask.shape[1] // 2

    positive = _climb(mask, threshold, 1, step, max_angle, binary_threshold)
    negative = _climb(mask, threshold, -1, step, max_angle, binary_threshold)
    return negative if negative[1] > positive[1] else positive


def deskew(
    mask: np.ndarray,
    threshold: float | None = None,
    step: float = ANGLE_STEP,
    max_angle: float = MAX_ANGLE,
    binary_threshold: int = BINARY_THRESHOLD,
) -> tuple[np.ndarray, float, int]:
    """Straighten a page.

    Args:
        mask: Binary mask with ink as 255.
        threshold: Staff-line row threshold, half the width by default.
        step: Angular step in degrees.
        max_angle: Largest rotation tried in either direction.
        binary_threshold: Threshold used to re-binarize the rotated mask.

    Returns:
        Tuple of (straightened mask, applied angle, objective value).
    """
    angle, score = estimate_skew(mask, threshold, step, max_angle, binary_threshold)
    logger.info(f"Deskewing by {angle:.2f} degrees (line strength {score})")
    return rotate_mask(mask, angle, binary_threshold), angle, score
