"""Vertical-line (stem and bar line) detection and removal.

Once the staff lines are gone, stems and bar lines are the only long, thin
vertical strokes left. They are found by a raster scan, measured with some
tolerance for the jitter a scanned stroke shows, and erased unless a symbol
is attached at that height. Bar lines are told apart from stems by spanning
exactly one stave and by standing free of any neighbouring symbol.
"""

import logging

import numpy as np

from image_to_musicxml.models import BoundingBox, Stave
from image_to_musicxml.staff import LINE_DISTORTION

logger = logging.getLogger(__name__)

BAR_LINE_TOLERANCE = 3
FULL_COLUMN_RATIO = 0.6


def _is_ink(ink: np.ndarray, x: int, y: int) -> bool:
    h, w = ink.shape
    return 0 <= x < w and 0 <= y < h and bool(ink[y, x])


def _any_ink(ink: np.ndarray, y: int, x0: int, x1: int) -> bool:
    """Whether row ``y`` holds ink in columns ``x0`` to ``x1`` exclusive."""
    h, w = ink.shape
    if not 0 <= y < h:
        return False
    x0, x1 = max(x0, 0), min(x1, w)
    return x0 < x1 and bool(ink[y, x0:x1].any())


def _column_count(ink: np.ndarray, x: int, y0: int, y1: int) -> int:
    """Ink pixels in column ``x`` over rows ``y0`` to ``y1`` exclusive."""
    h, w = ink.shape
    if not 0 <= x < w:
        return 0
    return int(np.count_nonzero(ink[max(y0, 0) : min(y1, h), x]))


def _set_row(ink: np.ndarray, y: int, x0: int, x1: int, value: bool) -> None:
    """Set row ``y`` over columns ``x0`` to ``x1`` inclusive."""
    h, w = ink.shape
    if 0 <= y < h:
        ink[y, max(x0, 0) : min(x1, w - 1) + 1] = value


def _run_width(ink: np.ndarray, x: int, y: int, line_distortion: int) -> int:
    width = line_distortion
    while _is_ink(ink, x + width, y):
        width += 1
    return width


def _run_height(
    ink: np.ndarray, x: int, y: int, width: int, spacing: int, line_distortion: int
) -> int:
    """Follow a stroke downwards, tolerating side steps and short gaps."""
    height = 0
    pixels_off = 0
    pixel_gap = 0
    while pixels_off < spacing and pixel_gap < spacing // 6:
        height += 1
        row = y + height
        touching = False
        if _any_ink(ink, row, x, x + width):
            touching = True
            pixels_off = 0
            pixel_gap = 0
        elif _any_ink(ink, row, x - line_distortion, x) or _any_ink(
            ink, row, x + width, x + width - 1 + line_distortion
        ):
            touching = True
        if touching:
            pixels_off += 1
        else:
            pixel_gap += 1
    return height - 1


def _extra_width(
    ink: np.ndarray, first_column: int, direction: int, y: int, height: int
) -> int:
    """Count neighbouring columns that are mostly ink over the stroke height."""
    extra = 0
    count = height
    while count > FULL_COLUMN_RATIO * height:
        extra += 1
        count = _column_count(ink, first_column + direction * extra, y, y + height)
    return extra - 1


def _flanking_ink(
    ink: np.ndarray, y: int, x0: int, x1: int, line_distortion: int
) -> int:
    pixels = 0
    gap = 0
    for x in range(x0, x1):
        if _is_ink(ink, x, y):
            pixels += 1
        else:
            gap += 1
        if gap > line_distortion:
            break
    return pixels


def _spans_stave(
    top: int, bottom: int, staves: list[Stave], tolerance: int
) -> bool:
    return any(
        abs(top - stave.top.y_center) <= tolerance for stave in staves
    ) and any(abs(bottom - stave.bottom.y_center) <= tolerance for stave in staves)


def _is_free_standing(
    ink: np.ndarray,
    left: int,
    right: int,
    top: int,
    height: int,
    spacing: int,
    line_distortion: int,
) -> bool:
    """Whether few rows around a stroke carry ink of another symbol."""
    threshold = spacing // 2
    rows = 0
    for y in range(top - spacing, top + height + spacing):
        pixels = _flanking_ink(
            ink, y, left - 1 - 2 * threshold, left, line_distortion
        ) + _flanking_ink(ink, y, right + 1, right + 1 + 2 * threshold, line_distortion)
        if pixels > threshold:
            rows += 1
    return rows <= spacing // 2


def _insert_bar_line(
    bar_lines: list[BoundingBox], bar_line: BoundingBox, spacing: int
) -> None:
    """Insert a bar line after every bar line of earlier systems or to its left."""
    index = len(bar_lines) - 1
    while index >= 0:
        previous = bar_lines[index]
        if bar_line.y_start - previous.y_start > spacing:
            break
        if previous.x_end < bar_line.x_start:
            break
        index -= 1
    bar_lines.insert(index + 1, bar_line)


def _closest_staff_line(y: int, staves: list[Stave]) -> BoundingBox:
    lines = [line for stave in staves for line in stave.lines]
    return min(lines, key=lambda line: abs(y - line.y_center))


def _erase_stroke(
    ink: np.ndarray,
    left: int,
    right: int,
    top: int,
    height: int,
    spacing: int,
    line_distortion: int,
) -> None:
    """Erase a stroke row by row, keeping rows where a symbol is attached.

    Short erased runs that end at an attached symbol are restored, since they
    are more likely part of that symbol than of the stroke.
    """
    consecutive = 0
    for y in range(top, top + height):
        attached = (
            _is_ink(ink, left - 1, y) and _is_ink(ink, left - line_distortion, y)
        ) or (
            _is_ink(ink, right + 1, y)
            and _is_ink(ink, right + line_distortion, y)
        )
        if not attached:
            _set_row(ink, y, left - line_distortion, right + line_distortion, False)
            consecutive += 1
            continue

        if consecutive < spacing // 4 or (
            consecutive < spacing // 2 and height < 3 * spacing
        ):
            for row in range(y - consecutive, y):
                _set_row(ink, row, left, right, True)
        consecutive = 0


def remove_vertical_lines(
    mask: np.ndarray,
    staves: list[Stave],
    spacing: int,
    line_distortion: int = LINE_DISTORTION,
    bar_line_tolerance: int = BAR_LINE_TOLERANCE,
) -> tuple[np.ndarray, list[BoundingBox], list[BoundingBox]]:
    """Find and erase stems and bar lines.

    Args:
        mask: Binary mask without staff lines, ink as 255.
        staves: Detected staves.
        spacing: Staff spacing in pixels.
        line_distortion: Sideways tolerance of a stroke in pixels.
        bar_line_tolerance: Maximum distance between a bar line end and the
            outer staff line it should meet.

    Returns:
        Tuple of (mask without vertical lines, bar lines, other vertical lines).
        Bar lines are ordered left to right within each system and systems top
        to bottom.
    """
    ink = mask > 0
    h, w = ink.shape
    min_height = int(2.2 * spacing)
    max_width = spacing // 3
    bar_lines: list[BoundingBox] = []
    vertical_lines: list[BoundingBox] = []

    for j in range(h):
        row = ink[j]
        i = 0
        while i < w:
            hits = np.flatnonzero(row[i:])
            if hits.size == 0:
                break
            i += int(hits[0])

            width = _run_width(ink, i, j, line_distortion)
            if width > max_width:
                # Every pixel of a wide run is as wide until the run's last few
                if i + line_distortion < w and ink[j, i + line_distortion]:
                    i = max(i + 1, i + width - max_width)
                else:
                    i += 1
                continue

            height = _run_height(ink, i, j, width, spacing, line_distortion)
            if height < min_height:
                i += 1
                continue

            width_left = _extra_width(ink, i, -1, j, height)
            width_right = _extra_width(ink, i, 1, j, height)
            if width + width_left + width_right > max_width:
                i += 1
                continue

            left = max(i - width_left, 0)
            right = min(i + width + width_right - 1, w - 1)

            bar_line = _spans_stave(
                j, j + height - 1, staves, bar_line_tolerance
            ) and _is_free_standing(
                ink, left, right, j, height, spacing, line_distortion
            )
            if bar_line:
                _insert_bar_line(
                    bar_lines,
                    BoundingBox(
                        x_start=i,
                        y_start=j,
                        x_end=min(i + width - 1, w - 1),
                        y_end=min(j + height - 1, h - 1),
                    ),
                    spacing,
                )
            else:
                closest = _closest_staff_line(j, staves)
                if i < closest.x_start + 4 * spacing:
                    # Clef, key and time signature strokes stay in the image
                    i += 1
                    continue
                vertical_lines.append(
                    BoundingBox(
                        x_start=left,
                        y_start=j,
                        x_end=right,
                        y_end=min(j + height - 1, h - 1),
                    )
                )

            _erase_stroke(ink, left, right, j, height, spacing, line_distortion)
            i += width + width_right + 1

    logger.info(
        f"Found {len(bar_lines)} bar lines and {len(vertical_lines)} vertical lines"
    )
    return np.where(ink, 255, 0).astype(np.uint8), bar_lines, vertical_lines
