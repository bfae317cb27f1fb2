"""
Visualization functions for the image-to-MusicXML pipeline.

This module centralizes the renderings of every pipeline stage: binary masks,
label matrices, bounding boxes, the red overlays of removed pixels and the
colour-coded recognition result. All functions return RGB uint8 arrays except
the projection plot, which is a matplotlib Figure.
"""

from collections.abc import Sequence

import cv2
import numpy as np
from matplotlib.figure import Figure

from image_to_musicxml.image_processing import LABEL_CYCLE, label_to_rgb, mask_to_rgb
from image_to_musicxml.models import BoundingBox, SymbolAnnotation, SymbolKind

REMOVED_COLOR = (255, 0, 0)
BAR_LINE_COLOR = (0, 0, 255)
BOX_COLOR = (255, 0, 0)

KIND_COLORS: dict[SymbolKind, tuple[int, int, int]] = {
    SymbolKind.DOT: (255, 0, 255),
    SymbolKind.REPETITION_DOT: (150, 0, 0),
    SymbolKind.BEAM: (255, 0, 0),
    SymbolKind.BEAM_HOOK: (255, 0, 0),
    SymbolKind.TAIL: (255, 150, 150),
    SymbolKind.TIE: (0, 180, 255),
    SymbolKind.CLEF: (255, 0, 0),
    SymbolKind.SHARP: (0, 0, 255),
    SymbolKind.FLAT: (0, 150, 255),
    SymbolKind.NATURAL: (255, 0, 255),
    SymbolKind.TIME_SIGNATURE: (0, 0, 255),
    SymbolKind.REST: (255, 150, 150),
    SymbolKind.NOTE: (0, 200, 0),
    SymbolKind.DISCARDED: (0, 0, 0),
}

# Index 0 is paper, index n is step n of the label ramp
_LABEL_COLORS = np.array(
    [label_to_rgb(step) for step in range(LABEL_CYCLE + 1)], dtype=np.uint8
)


def create_binary_visualization(binary_mask: np.ndarray | None) -> np.ndarray | None:
    """Render a binary mask as black ink on white.

    Args:
        binary_mask: 2D mask, ink non-zero, or None.

    Returns:
        RGB image, or None if the input is None.
    """
    if binary_mask is None:
        return None
    return mask_to_rgb(binary_mask)


def create_label_visualization(labels: np.ndarray) -> np.ndarray:
    """Colour every component label with the repeating label ramp."""
    steps = np.where(labels > 0, (labels - 1) % LABEL_CYCLE + 1, 0)
    return _LABEL_COLORS[steps]


def _draw_box(
    image: np.ndarray,
    box: BoundingBox,
    color: tuple[int, int, int],
    thickness: int = 1,
) -> None:
    cv2.rectangle(
        image, (box.x_start, box.y_start), (box.x_end, box.y_end), color, thickness
    )


def create_bounding_box_visualization(
    labels: np.ndarray, boxes: Sequence[BoundingBox]
) -> np.ndarray:
    """Outline every component box on top of the coloured label matrix.

    Args:
        labels: Resolved component matrix.
        boxes: Component bounding boxes.

    Returns:
        RGB image with red box outlines.
    """
    image = np.ascontiguousarray(create_label_visualization(labels))
    for box in boxes:
        _draw_box(image, box, BOX_COLOR)
    return image


def create_layer_visualization(
    before: np.ndarray, after: np.ndarray
) -> np.ndarray:
    """Mark the pixels a stage changed in red.

    Args:
        before: Mask before the stage.
        after: Mask after the stage.

    Returns:
        RGB rendering of ``before`` with every removed or added pixel in red.
    """
    image = mask_to_rgb(before)
    changed = (before > 0) != (after > 0)
    image[changed] = REMOVED_COLOR
    return image


def create_bar_line_visualization(
    image: np.ndarray, bar_lines: Sequence[BoundingBox]
) -> np.ndarray:
    """Fill the detected bar lines in blue on a copy of an RGB image."""
    overlay = np.ascontiguousarray(image.copy())
    for bar in bar_lines:
        _draw_box(overlay, bar, BAR_LINE_COLOR, thickness=cv2.FILLED)
    return overlay


def create_recognition_visualization(
    image: np.ndarray, annotations: Sequence[SymbolAnnotation]
) -> np.ndarray:
    """Outline every recognized symbol in the colour of its kind.

    Args:
        image: RGB rendering to draw on, or a 2D mask rendered as ink on white.
        annotations: Recognized boxes with their kinds.

    Returns:
        RGB image with coloured outlines; discarded boxes are black.
    """
    if image.ndim == 2:
        image = mask_to_rgb(image)
    image = np.ascontiguousarray(image.copy())
    for annotation in annotations:
        _draw_box(image, annotation.box, KIND_COLORS[annotation.kind])
    return image


def create_projection_figure(
    histogram: np.ndarray,
    threshold: float,
    *,
    width_in: float = 6.0,
    height_in: float = 8.0,
    dpi: int = 100,
) -> Figure:
    """Plot the horizontal projection used for staff-line detection.

    Rows run downwards as in the image, so peaks line up with staff lines.

    Args:
        histogram: Ink pixels per row.
        threshold: Staff-line threshold drawn as a vertical line.
        width_in: Figure width in inches.
        height_in: Figure height in inches.
        dpi: Raster resolution.

    Returns:
        Matplotlib Figure with the projection and the threshold.
    """
    fig = Figure(figsize=(width_in, height_in), dpi=dpi)
    ax = fig.add_subplot()
    rows = np.arange(len(histogram))
    ax.fill_betweenx(rows, 0, histogram, color="black", linewidth=0)
    ax.axvline(threshold, color="red", linewidth=1, label="threshold")
    ax.set_ylim(len(histogram), 0)
    ax.set_xlim(0, max(float(np.max(histogram, initial=0)), threshold) * 1.05 + 1)
    ax.set_xlabel("Ink pixels", fontsize=10)
    ax.set_ylabel("Row", fontsize=10)
    ax.legend(loc="lower right", fontsize=8)
    fig.tight_layout()
    return fig
