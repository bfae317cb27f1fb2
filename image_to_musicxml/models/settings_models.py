"""Parameter models for pipeline configuration.

This module defines Pydantic models that encapsulate all configurable
parameters for each stage of the image-to-MusicXML pipeline. The defaults
reproduce the constants the recognition heuristics were tuned with; most of
the geometric rules scale with the detected staff spacing instead of taking
absolute pixel sizes.
"""

from pydantic import BaseModel, Field


class DeskewParams(BaseModel):
    """Configuration for binarization and skew estimation.

    Attributes:
        binary_threshold: Intensities strictly below this value are ink.
        threshold_ratio: Line-strength threshold as a fraction of image width.
        angle_step: Angular step of the hill climb, in degrees.
        max_angle: Largest rotation tried in either direction, in degrees.
    """

    binary_threshold: int = Field(
        150, ge=1, le=256, description="Intensity below which a pixel is ink"
    )
    threshold_ratio: float = Field(
        0.5, gt=0.0, le=1.0, description="Staff-line threshold as a width fraction"
    )
    angle_step: float = Field(
        0.05, gt=0.0, le=1.0, description="Hill-climb step in degrees"
    )
    max_angle: float = Field(
        2.0, gt=0.0, le=45.0, description="Maximum rotation in degrees"
    )


class LineRemovalParams(BaseModel):
    """Configuration for staff-line and vertical-line removal.

    Attributes:
        line_distortion: Pixel margin tolerated around lines bent by scanning.
        bar_line_tolerance: Maximum distance in pixels between a bar line end
            and the outer staff line it should meet.
    """

    line_distortion: int = Field(
        2, ge=1, le=10, description="Margin around distorted lines in pixels"
    )
    bar_line_tolerance: int = Field(
        3, ge=0, le=20, description="Bar line to staff line alignment tolerance"
    )


class RecognitionParams(BaseModel):
    """Configuration for symbol recognition.

    Attributes:
        pixel_ratio_threshold: Ink ratio above which a shape counts as filled.
        template_dir: Directory holding the reference symbol images. ``None``
            uses the images shipped with the package.
        template_tolerance: Largest accepted ink-ratio difference per grid cell.
        template_grid_size: Cells per side of the template comparison grid.
        beats: Time-signature numerator written to the attributes block.
        beat_type: Time-signature denominator written to the attributes block.
    """

    pixel_ratio_threshold: float = Field(
        0.8, gt=0.0, le=1.0, description="Ink ratio of a filled shape"
    )
    template_dir: str | None = Field(
        None, description="Directory with reference symbol images"
    )
    template_tolerance: float = Field(
        0.2, ge=0.0, le=1.0, description="Allowed ink-ratio difference"
    )
    template_grid_size: int = Field(
        1, ge=1, le=8, description="Template comparison grid size"
    )
    beats: int = Field(4, ge=1, le=32, description="Beats per measure")
    beat_type: int = Field(4, ge=1, le=32, description="Beat unit")


class ExportParams(BaseModel):
    """Configuration for document export.

    Attributes:
        output_path: Where the MusicXML document is written once recognition
            finishes. ``None`` keeps the document in memory only.
    """

    output_path: str | None = Field(
        "output.xml", description="MusicXML output file"
    )


class ProcessingParameters(BaseModel):
    """Aggregate of all pipeline processing parameters."""

    deskew: DeskewParams = Field(default_factory=DeskewParams)
    line_removal: LineRemovalParams = Field(default_factory=LineRemovalParams)
    recognition: RecognitionParams = Field(default_factory=RecognitionParams)
    export: ExportParams = Field(default_factory=ExportParams)
