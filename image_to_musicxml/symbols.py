"""Shape predicates shared by the symbol classification rules.

All functions work on component masks (boolean arrays cut from the component
matrix) and on bounding boxes, with sizes relative to the staff spacing.
"""

import numpy as np

from image_to_musicxml.image_processing import project
from image_to_musicxml.models import BoundingBox

PEAK_THRESHOLD = 0.8


def is_stem_for(box: BoundingBox, line: BoundingBox, spacing: int) -> bool:
    """Whether a vertical line can be the stem of the symbol in ``box``.

    The line must be within one staff space horizontally, and the symbol's
    centre must lie on the line or within one staff space of either end.
    """
    if abs(line.x_center - box.x_center) >= spacing:
        return False
    y = box.y_center
    return (line.y_start < y < line.y_end + spacing) or (
        line.y_start - spacing < y < line.y_end
    )


def find_stem(
    box: BoundingBox, vertical_lines: list[BoundingBox], spacing: int
) -> BoundingBox | None:
    for line in vertical_lines:
        if is_stem_for(box, line, spacing):
            return line
    return None


def is_beam_shape(symbol: np.ndarray, spacing: int) -> bool:
    """Whether a mask is made of straight, nearly full strokes across its width.

    Every straight line from a row on the left edge to a row on the right edge
    is sampled. Lines with almost no gaps are counted per slope; a beam has
    many parallel full lines.

    Args:
        symbol: Component mask.
        spacing: Staff spacing in pixels.

    Returns:
        True if some slope has enough full lines.
    """
    h, w = symbol.shape
    if h == 0 or w == 0:
        return False

    # One start row at a time keeps memory at h * w for wide components
    ends = np.arange(h)[:, None]
    columns = np.arange(w)[None, :]
    lines_per_rise = np.zeros(2 * h - 1, dtype=np.int64)
    for start in range(h):
        rows = (start + (ends - start) * columns / w).astype(int)
        counts = symbol[rows, np.broadcast_to(columns, rows.shape)].sum(axis=1)
        full = counts > w - spacing // 4
        lines_per_rise[ends[full, 0] - start + h - 1] += 1

    lines_per_slope = lines_per_rise[lines_per_rise > 0]
    return bool(np.any((lines_per_slope > h // 3) | (lines_per_slope > spacing // 4)))


def count_peaks(
    symbol: np.ndarray, axis: str, tolerance: int, threshold: float = PEAK_THRESHOLD
) -> int:
    """Count nearly full rows (``axis="x"``) or columns (``axis="y"``).

    Adjacent full rows form one peak, and a new peak must start more than
    ``tolerance`` pixels after the previous one.

    Args:
        symbol: Component mask.
        axis: Projection axis, as for ``image_processing.project``.
        tolerance: Minimum distance between two peaks.
        threshold: Fraction of the orthogonal size a row or column must fill.

    Returns:
        Number of peaks.
    """
    projection = project(symbol, axis)
    size = symbol.shape[1] if axis == "x" else symbol.shape[0]
    limit = threshold * size

    peaks = 0
    last_peak = -tolerance
    for x, value in enumerate(projection):
        if value <= limit:
            continue
        if x == 0 or (projection[x - 1] <= limit and x - last_peak > tolerance):
            peaks += 1
            last_peak = x
    return peaks


def _dense_columns(
    projection: np.ndarray, start: int, stop: float, step: int, lower: int
) -> int:
    """Count columns above ``lower`` walking from ``start`` towards ``stop``."""
    size = len(projection)
    count = 0
    n = start
    if step < 0:
        while n > stop and n >= 0:
            if n >= size:
                n = size - 1
            if projection[n] > lower:
                count += 1
            n -= 1
    else:
        while n < stop and n < size:
            if n >= 0 and projection[n] > lower:
                count += 1
            n += 1
    return count


def find_second_beam(
    beam_symbol: np.ndarray, beam: BoundingBox, stem: BoundingBox, spacing: int
) -> str | None:
    """Look for a second beam next to the stem of a beamed note.

    A double beam makes the beam component about one staff space thick.
    Columns that thick are counted left and right of the stem; enough of
    them on one side means a hook, on both sides a continuing beam, and a
    second stretch further away means the double beam begins or ends here.

    Args:
        beam_symbol: Mask of the beam component.
        beam: Box of the beam.
        stem: Box of the stem joining note head and beam.
        spacing: Staff spacing in pixels.

    Returns:
        The beam role of the second beam, or None if there is none.
    """
    projection = project(beam_symbol, "y")
    lower = spacing - spacing // 3
    threshold = 4 * spacing // 5
    stem_x = stem.x_center - beam.x_start

    role = None
    if _dense_columns(projection, stem_x, stem_x - 1.5 * spacing, -1, lower) > threshold:
        role = "backward hook"
        if (
            _dense_columns(
                projection, stem_x - spacing, stem_x - 2.5 * spacing, -1, lower
            )
            > threshold
        ):
            role = "end"

    if _dense_columns(projection, stem_x, stem_x + 1.5 * spacing, 1, lower) > threshold:
        if role is not None:
            role = "continue"
        else:
            role = "forward hook"
            if (
                _dense_columns(
                    projection, stem_x + spacing, stem_x + 2.5 * spacing, 1, lower
                )
                > threshold
            ):
                role = "begin"
    return role
