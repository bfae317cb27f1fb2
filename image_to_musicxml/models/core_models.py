"""Core geometric models for optical music recognition."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BoundingBox(BaseModel):
    """Axis-aligned, inclusive pixel rectangle around a labelled component.

    Coordinates follow the usual image convention with (0, 0) at the top-left
    corner. Both end coordinates are inclusive, so a single pixel has width
    and height 1. Boxes are immutable and hashable, which lets them serve as
    cache keys and set members during recognition.

    Attributes:
        x_start: Left-most column.
        y_start: Top-most row.
        x_end: Right-most column.
        y_end: Bottom-most row.
        label: Component label the box was derived from (0 when the box does
            not belong to a labelled component, e.g. a staff line).
    """

    model_config = ConfigDict(frozen=True)

    x_start: int = Field(..., ge=0, description="Left-most column")
    y_start: int = Field(..., ge=0, description="Top-most row")
    x_end: int = Field(..., ge=0, description="Right-most column")
    y_end: int = Field(..., ge=0, description="Bottom-most row")
    label: int = Field(0, ge=0, description="Component label")

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.x_start > self.x_end or self.y_start > self.y_end:
            raise ValueError(
                f"Unresolved box ({self.x_start}, {self.y_start}, "
                f"{self.x_end}, {self.y_end})"
            )
        return self

    @property
    def width(self) -> int:
        return self.x_end - self.x_start + 1

    @property
    def height(self) -> int:
        return self.y_end - self.y_start + 1

    @property
    def x_center(self) -> int:
        """Horizontal centre, rounded down to a pixel column."""
        return (self.x_start + self.x_end) // 2

    @property
    def y_center(self) -> int:
        """Vertical centre, rounded down to a pixel row."""
        return (self.y_start + self.y_end) // 2


class Stave(BaseModel):
    """The five staff lines of one stave, top line first.

    Attributes:
        lines: Exactly five staff-line boxes sharing a common ``x_start``.
    """

    model_config = ConfigDict(frozen=True)

    lines: tuple[BoundingBox, ...] = Field(
        ..., min_length=5, max_length=5, description="Staff lines, top to bottom"
    )

    @property
    def top(self) -> BoundingBox:
        return self.lines[0]

    @property
    def bottom(self) -> BoundingBox:
        return self.lines[4]

    @property
    def x_start(self) -> int:
        return self.lines[0].x_start

    def line(self, index: int) -> BoundingBox:
        return self.lines[index]


class SymbolKind(str, Enum):
    """Musical meaning assigned to a bounding box during recognition."""

    DOT = "dot"
    REPETITION_DOT = "repetition dot"
    BEAM = "beam"
    BEAM_HOOK = "beam hook"
    TAIL = "tail"
    TIE = "tie"
    CLEF = "clef"
    SHARP = "sharp"
    FLAT = "flat"
    NATURAL = "natural"
    TIME_SIGNATURE = "time signature"
    REST = "rest"
    NOTE = "note"
    DISCARDED = "discarded"


class SymbolAnnotation(BaseModel):
    """A bounding box together with the symbol it was recognized as."""

    model_config = ConfigDict(frozen=True)

    box: BoundingBox
    kind: SymbolKind
