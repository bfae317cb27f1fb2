"""Models for representing pipeline processing stages.

This module contains Pydantic models that encapsulate the results of each
stage in the image-to-MusicXML pipeline. Every stage consumes the result of
the previous one and returns a new result; buffers are never shared between
two results, so an earlier stage can always be displayed again unchanged.
"""

from typing import Any

import numpy as np
from pydantic import BaseModel, Field

from image_to_musicxml.models.core_models import BoundingBox, Stave, SymbolAnnotation
from image_to_musicxml.models.score_models import ScoreDocument


class BinaryResult(BaseModel):
    """Binarized input page.

    Attributes:
        binary_mask: 2D uint8 array with ink as 255, or None if processing failed.
    """

    binary_mask: np.ndarray | None = Field(
        None, description="Binary mask from image processing"
    )

    class Config:
        arbitrary_types_allowed = True


class DeskewResult(BaseModel):
    """Straightened page.

    Attributes:
        binary_mask: Rotated and re-binarized mask.
        angle: Applied rotation in degrees (counter-clockwise positive).
        score: Line-strength objective reached at that angle.
        histogram: Ink count per row of the straightened mask.
    """

    binary_mask: np.ndarray | None = Field(None, description="Deskewed mask")
    angle: float = Field(0.0, description="Applied rotation in degrees")
    score: int = Field(0, ge=0, description="Line-strength objective")
    histogram: np.ndarray = Field(
        default_factory=lambda: np.array([], dtype=np.int64),
        description="Ink pixels per row",
    )

    class Config:
        arbitrary_types_allowed = True


class StaffResult(BaseModel):
    """Staff-line removal output.

    Attributes:
        binary_mask: Mask with staff lines erased.
        staff_lines: One box per detected staff line, top to bottom.
        staves: Staff lines grouped in fives and left-aligned.
        spacing: Distance in pixels between neighbouring staff lines.
        threshold: Row ink count above which a row belongs to a staff line.
    """

    binary_mask: np.ndarray | None = Field(None, description="Mask without staves")
    staff_lines: list[BoundingBox] = Field(default_factory=list)
    staves: list[Stave] = Field(default_factory=list)
    spacing: int = Field(0, ge=0, description="Staff space in pixels")
    threshold: int = Field(0, ge=0, description="Staff-line row threshold")

    class Config:
        arbitrary_types_allowed = True


class VerticalLineResult(BaseModel):
    """Stem and bar-line removal output.

    Attributes:
        binary_mask: Mask with vertical lines erased.
        bar_lines: Bar lines, left to right within each system.
        vertical_lines: Remaining vertical strokes, mostly note stems.
    """

    binary_mask: np.ndarray | None = Field(None, description="Mask without stems")
    bar_lines: list[BoundingBox] = Field(default_factory=list)
    vertical_lines: list[BoundingBox] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True


class PatchResult(BaseModel):
    """Mask with symbols split by staff-line removal joined again."""

    binary_mask: np.ndarray | None = Field(None, description="Patched mask")

    class Config:
        arbitrary_types_allowed = True


class LabelResult(BaseModel):
    """First-pass labelling output.

    Attributes:
        labels: Raw per-pixel labels, 0 for paper.
        equivalence: ``LabelEquivalence`` linking labels of one component.
    """

    labels: np.ndarray | None = Field(None, description="Raw label matrix")
    equivalence: Any = Field(None, description="Label equivalence sets")

    class Config:
        arbitrary_types_allowed = True


class ComponentResult(BaseModel):
    """Resolved component matrix, one label per connected component."""

    components: np.ndarray | None = Field(None, description="Component matrix")

    class Config:
        arbitrary_types_allowed = True


class BoundingBoxResult(BaseModel):
    """Bounding box of every component, keyed by label."""

    boxes: dict[int, BoundingBox] = Field(default_factory=dict)


class RecognitionResult(BaseModel):
    """Symbol recognition output.

    Attributes:
        document: Recognized measures.
        annotations: Every examined box with the symbol it was classified as.
        musicxml: Rendered MusicXML text.
        output_path: File the document was written to, if any.
    """

    document: ScoreDocument = Field(default_factory=ScoreDocument)
    annotations: list[SymbolAnnotation] = Field(default_factory=list)
    musicxml: str = Field("", description="Rendered MusicXML document")
    output_path: str | None = Field(None, description="Written MusicXML file")
