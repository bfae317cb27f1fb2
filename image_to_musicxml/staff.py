"""Staff-line detection, removal and stave grouping.

Staff lines are found from the row projection of the straightened page: every
run of rows whose ink count exceeds the staff-line threshold is one line.
Pixels of a line are erased column by column unless a symbol crosses the line
in that column. Removing the lines splits symbols that straddle them (flats,
note heads on lines, clefs), so ``patch_broken_components`` later joins the
pieces again using the un-erased page.
"""

import logging

import numpy as np

from image_to_musicxml.exceptions import StaffLineCountError
from image_to_musicxml.models import BoundingBox, Stave

logger = logging.getLogger(__name__)

LINES_PER_STAVE = 5
LINE_DISTORTION = 2
MIN_LINE_COLUMNS = 5


def _row(ink: np.ndarray, y: int) -> np.ndarray:
    """Return row ``y`` of a boolean mask, or an empty row outside the image."""
    if 0 <= y < ink.shape[0]:
        return ink[y]
    return np.zeros(ink.shape[1], dtype=bool)


def _is_ink(ink: np.ndarray, x: int, y: int) -> bool:
    h, w = ink.shape
    return 0 <= x < w and 0 <= y < h and bool(ink[y, x])


def find_staff_line_bands(
    histogram: np.ndarray, threshold: float, line_distortion: int = LINE_DISTORTION
) -> list[tuple[int, int]]:
    """Find runs of rows whose ink count exceeds the staff-line threshold.

    Args:
        histogram: Ink count per row.
        threshold: Row count above which a row belongs to a staff line.
        line_distortion: Rows at either border of the page that are skipped.

    Returns:
        List of inclusive (top, bottom) row ranges, top to bottom.
    """
    bands = []
    n = len(histogram)
    i = line_distortion
    while i < n - line_distortion:
        if histogram[i] > threshold:
            bottom = i
            while bottom + 1 < n and histogram[bottom + 1] > threshold:
                bottom += 1
            bands.append((i, bottom))
            i = bottom
        i += 1
    return bands


def remove_staff_lines(
    mask: np.ndarray,
    histogram: np.ndarray,
    threshold: float,
    line_distortion: int = LINE_DISTORTION,
) -> tuple[np.ndarray, list[BoundingBox]]:
    """Erase staff lines from a binary mask.

    A column of a line is kept when a symbol crosses the line there: either
    ink touches the line from both sides, or there is ink ``line_distortion``
    rows above or below the line.

    Args:
        mask: Binary mask with ink as 255.
        histogram: Ink count per row of ``mask``.
        threshold: Row count above which a row belongs to a staff line.
        line_distortion: Extra rows erased around each line.

    Returns:
        Tuple of (mask without staff lines, one box per staff line).
    """
    ink = mask > 0
    staff_lines = []

    for top, bottom in find_staff_line_bands(histogram, threshold, line_distortion):
        above = _row(ink, top - 1)
        below = _row(ink, bottom + 1)
        far_above = _row(ink, top - line_distortion)
        far_below = _row(ink, bottom + line_distortion)
        removable = ~((above & below) | far_above | far_below)

        band_top = max(top - line_distortion, 0)
        band_bottom = min(bottom + line_distortion, ink.shape[0] - 1)
        erased = removable & ink[band_top : band_bottom + 1].any(axis=0)

        # The line starts once enough of the row has been recognized as line
        started = erased & (np.cumsum(removable) > MIN_LINE_COLUMNS)
        ink[band_top : band_bottom + 1, removable] = False

        if not erased.any() or not started.any():
            logger.debug(f"Rows {top}-{bottom} exceed the threshold but hold no line")
            continue
        x_start = int(np.flatnonzero(started)[0])
        x_end = int(np.flatnonzero(erased)[-1])
        staff_lines.append(
            BoundingBox(x_start=x_start, y_start=top, x_end=x_end, y_end=bottom)
        )

    logger.info(f"Removed {len(staff_lines)} staff lines")
    return np.where(ink, 255, 0).astype(np.uint8), staff_lines


def group_staves(staff_lines: list[BoundingBox]) -> tuple[list[Stave], int]:
    """Group staff lines into staves and derive the staff spacing.

    Args:
        staff_lines: Staff lines ordered top to bottom.

    Returns:
        Tuple of (staves, spacing in pixels between neighbouring lines).

    Raises:
        StaffLineCountError: If the line count is not a multiple of five.
    """
    count = len(staff_lines)
    if count == 0 or count % LINES_PER_STAVE != 0:
        raise StaffLineCountError(count)

    staves = []
    total = 0
    for first in range(0, count, LINES_PER_STAVE):
        lines = staff_lines[first : first + LINES_PER_STAVE]
        total += lines[-1].y_center - lines[0].y_center
        x_start = max(line.x_start for line in lines)
        aligned = tuple(
            line.model_copy(update={"x_start": min(x_start, line.x_end)})
            for line in lines
        )
        staves.append(Stave(lines=aligned))

    spacing = total // len(staves) // (LINES_PER_STAVE - 1)
    logger.info(f"Grouped {len(staves)} staves with spacing {spacing}px")
    return staves, spacing


def _trace_path(
    original: np.ndarray, x: int, y: int, target_y: int, max_steps: int
) -> tuple[bool, int, int, int]:
    """Follow ink downwards from (x, y) towards ``target_y``.

    Returns:
        Tuple of (target reached, final x, final y, number of left moves).
    """
    left_moves = 0
    for _ in range(max_steps):
        moved = False
        for dx in (0, -1, 1):
            if _is_ink(original, x + dx, y + 1):
                x, y = x + dx, y + 1
                left_moves += dx == -1
                moved = True
                break
        if not moved:
            for dx in (-1, 1):
                if _is_ink(original, x + dx, y):
                    x += dx
                    left_moves += dx == -1
                    moved = True
                    break
        if not moved:
            return False, x, y, left_moves
        if y == target_y:
            return True, x, y, left_moves
    return False, x, y, left_moves


def _is_stem_at(
    x: int, y: int, vertical_lines: list[BoundingBox], spacing: int
) -> bool:
    return any(
        abs(line.x_center - x) < spacing / 5
        and line.y_start <= y <= line.y_end
        and line.height > 3 * spacing
        for line in vertical_lines
    )


def _fill(ink: np.ndarray, x0: int, x1: int, y0: int, y1: int) -> None:
    h, w = ink.shape
    ink[max(y0, 0) : min(y1, h - 1) + 1, max(x0, 0) : min(x1, w - 1) + 1] = True


def patch_broken_components(
    original: np.ndarray,
    mask: np.ndarray,
    staff_lines: list[BoundingBox],
    vertical_lines: list[BoundingBox],
    spacing: int,
) -> np.ndarray:
    """Rejoin symbols that staff-line removal cut into pieces.

    Between two neighbouring staff lines, every ink pixel just below the upper
    line is followed downwards through the un-erased page. A path that reaches
    the next line and drifts left on the way is the outline of a curved
    symbol such as a flat or a clef. When two such paths lie close together
    the staff-line bands between them are filled in again, so the pieces of
    the symbol become one component. A straight path is only accepted when a
    long stem confirms it.

    Args:
        original: Straightened mask that still contains the staff lines.
        mask: Mask with staff and vertical lines removed.
        staff_lines: Staff lines ordered top to bottom.
        vertical_lines: Vertical strokes found during vertical-line removal.
        spacing: Staff spacing in pixels.

    Returns:
        The patched mask.
    """
    source = original > 0
    ink = mask > 0
    patches = 0

    for upper, lower in zip(staff_lines, staff_lines[1:]):
        last_top = -1
        last_bottom = -1
        last_left_moves = 0
        start_y = upper.y_end + 1
        target_y = lower.y_start - 1

        for j in range(upper.x_start + 5, upper.x_end - 5 + 1):
            if not _is_ink(ink, j, start_y):
                continue

            found, x, y, left_moves = _trace_path(
                source, j, start_y, target_y, 2 * spacing
            )
            if not found:
                continue

            straight = all(
                _is_ink(ink, x, row) for row in range(y, upper.y_end, -1)
            )
            if straight and not _is_stem_at(x, y, vertical_lines, spacing):
                continue

            if (
                last_top >= 0
                and last_left_moves > spacing / 4
                and 1 < j - last_top < 1.5 * spacing
                and 1 < x - last_bottom < 1.2 * spacing
            ):
                _fill(ink, last_top, j, upper.y_start - 1, upper.y_end + 1)
                _fill(ink, last_bottom, x, lower.y_start - 1, lower.y_end + 1)
                patches += 1

            last_top = j
            last_bottom = x
            last_left_moves = left_moves

    logger.info(f"Patched {patches} broken components")
    return np.where(ink, 255, 0).astype(np.uint8)
