"""
Pipeline processing functions for image-to-MusicXML conversion.

This module contains the stage functions of the recognition pipeline and the
``StageMachine`` that runs them one at a time. Every stage takes the result
models of earlier stages and returns a new result model; the machine keeps
a rendering of each stage so earlier stages can be displayed again without
recomputation.
"""

import logging
from collections.abc import Callable
from enum import IntEnum
from pathlib import Path

import numpy as np

from image_to_musicxml.components import (
    extract_bounding_boxes,
    label_components,
    resolve_equivalences,
)
from image_to_musicxml.deskew import deskew
from image_to_musicxml.exceptions import (
    PipelineError,
    ProcessingError,
    StaffLineCountError,
    TemplateLoadError,
)
from image_to_musicxml.image_loading import load_image
from image_to_musicxml.image_processing import binarize, project
from image_to_musicxml.models.pipeline_models import (
    BinaryResult,
    BoundingBoxResult,
    ComponentResult,
    DeskewResult,
    LabelResult,
    PatchResult,
    RecognitionResult,
    StaffResult,
    VerticalLineResult,
)
from image_to_musicxml.models.settings_models import (
    DeskewParams,
    LineRemovalParams,
    ProcessingParameters,
)
from image_to_musicxml.musicxml_utils import render_musicxml, save_musicxml
from image_to_musicxml.recognizer import SymbolRecognizer
from image_to_musicxml.staff import (
    group_staves,
    patch_broken_components,
    remove_staff_lines,
)
from image_to_musicxml.templates import TemplateSet
from image_to_musicxml.vertical_lines import remove_vertical_lines
from image_to_musicxml.visualization import (
    create_binary_visualization,
    create_bar_line_visualization,
    create_bounding_box_visualization,
    create_label_visualization,
    create_layer_visualization,
    create_recognition_visualization,
)

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    """Pipeline stages in processing order."""

    LOADED = 0
    DESKEWED = 1
    STAFF_REMOVED = 2
    VERTICAL_LINES_REMOVED = 3
    PATCHED = 4
    COMPONENTS_LABELED = 5
    EQUIVALENCES_RESOLVED = 6
    BOUNDING_BOXES = 7
    RECOGNIZED = 8


STAGE_DESCRIPTIONS = {
    Stage.LOADED: "",
    Stage.DESKEWED: "Image straightened",
    Stage.STAFF_REMOVED: "Stave lines removed",
    Stage.VERTICAL_LINES_REMOVED: "Vertical lines removed",
    Stage.PATCHED: "Patched up",
    Stage.COMPONENTS_LABELED: "Components collected",
    Stage.EQUIVALENCES_RESOLVED: "Label equivalences resolved",
    Stage.BOUNDING_BOXES: "Bounding boxes drawn",
    Stage.RECOGNIZED: "Symbols recognized",
}

# Stages whose changed pixels can be overlaid in red
LAYER_STAGES = (Stage.STAFF_REMOVED, Stage.VERTICAL_LINES_REMOVED, Stage.PATCHED)


def process_binary_image(image: np.ndarray, params: DeskewParams) -> BinaryResult:
    """Convert an RGB page to a binary ink mask.

    Args:
        image: RGB image as a NumPy array.
        params: Binarization parameters.

    Returns:
        BinaryResult containing the binary mask.
    """
    if image is None:
        logger.warning("No image provided for processing")
        return BinaryResult()
    return BinaryResult(binary_mask=binarize(image, params.binary_threshold))


def deskew_image(binary_result: BinaryResult, params: DeskewParams) -> DeskewResult:
    """Straighten the page so staff lines become horizontal.

    Args:
        binary_result: Binary mask of the page.
        params: Deskew parameters.

    Returns:
        DeskewResult with the rotated mask and its row histogram.
    """
    try:
        mask = binary_result.binary_mask
        threshold = int(mask.shape[1] * params.threshold_ratio)
        rotated, angle, score = deskew(
            mask,
            threshold,
            step=params.angle_step,
            max_angle=params.max_angle,
            binary_threshold=params.binary_threshold,
        )
        return DeskewResult(
            binary_mask=rotated,
            angle=angle,
            score=score,
            histogram=project(rotated, "x"),
        )
    except Exception as e:
        logger.error(f"Error in deskewing: {str(e)}")
        raise ProcessingError(f"Deskewing failed: {e}") from e


def remove_staff(
    deskew_result: DeskewResult,
    params: LineRemovalParams,
    threshold_ratio: float = 0.5,
) -> StaffResult:
    """Erase staff lines and group them into staves.

    Args:
        deskew_result: Straightened page.
        params: Line removal parameters.
        threshold_ratio: Staff-line row threshold as a fraction of the width.

    Returns:
        StaffResult with the cleaned mask, staff lines, staves and spacing.

    Raises:
        StaffLineCountError: If the lines do not form whole staves.
    """
    try:
        mask = deskew_result.binary_mask
        threshold = int(mask.shape[1] * threshold_ratio)
        cleaned, staff_lines = remove_staff_lines(
            mask, deskew_result.histogram, threshold, params.line_distortion
        )
        staves, spacing = group_staves(staff_lines)
        return StaffResult(
            binary_mask=cleaned,
            staff_lines=staff_lines,
            staves=staves,
            spacing=spacing,
            threshold=threshold,
        )
    except StaffLineCountError as e:
        logger.error(f"Cannot group staff lines into staves: {e.count} lines found")
        raise
    except Exception as e:
        logger.error(f"Error in staff removal: {str(e)}")
        raise ProcessingError(f"Staff removal failed: {e}") from e


def remove_vertical_strokes(
    staff_result: StaffResult, params: LineRemovalParams
) -> VerticalLineResult:
    """Erase stems and bar lines.

    Args:
        staff_result: Page without staff lines.
        params: Line removal parameters.

    Returns:
        VerticalLineResult with bar lines and the remaining vertical lines.
    """
    try:
        cleaned, bar_lines, vertical_lines = remove_vertical_lines(
            staff_result.binary_mask,
            staff_result.staves,
            staff_result.spacing,
            params.line_distortion,
            params.bar_line_tolerance,
        )
        if not bar_lines:
            logger.warning("No bar lines found")
        return VerticalLineResult(
            binary_mask=cleaned, bar_lines=bar_lines, vertical_lines=vertical_lines
        )
    except Exception as e:
        logger.error(f"Error in vertical line removal: {str(e)}")
        raise ProcessingError(f"Vertical line removal failed: {e}") from e


def patch_staff_gaps(
    deskew_result: DeskewResult,
    staff_result: StaffResult,
    vertical_result: VerticalLineResult,
) -> PatchResult:
    """Rejoin symbols cut apart by staff-line removal."""
    try:
        patched = patch_broken_components(
            deskew_result.binary_mask,
            vertical_result.binary_mask,
            staff_result.staff_lines,
            vertical_result.vertical_lines,
            staff_result.spacing,
        )
        return PatchResult(binary_mask=patched)
    except Exception as e:
        logger.error(f"Error in patching: {str(e)}")
        raise ProcessingError(f"Patching failed: {e}") from e


def collect_components(patch_result: PatchResult) -> LabelResult:
    """First connected-component pass over the patched page."""
    try:
        labels, equivalence = label_components(patch_result.binary_mask)
        logger.info(f"Collected {len(equivalence)} provisional labels")
        return LabelResult(labels=labels, equivalence=equivalence)
    except Exception as e:
        logger.error(f"Error in component labelling: {str(e)}")
        raise ProcessingError(f"Component labelling failed: {e}") from e


def resolve_components(label_result: LabelResult) -> ComponentResult:
    """Second connected-component pass: merge equivalent labels."""
    try:
        components = resolve_equivalences(
            label_result.labels, label_result.equivalence
        )
        return ComponentResult(components=components)
    except Exception as e:
        logger.error(f"Error in equivalence resolution: {str(e)}")
        raise ProcessingError(f"Equivalence resolution failed: {e}") from e


def find_bounding_boxes(component_result: ComponentResult) -> BoundingBoxResult:
    """Compute the inclusive bounding box of every labelled component.

    Args:
        component_result: Relabelled component matrix.

    Returns:
        BoundingBoxResult mapping each label to its box.

    Raises:
        ProcessingError: If box extraction fails.
    """
    try:
        boxes = extract_bounding_boxes(component_result.components)
        logger.info(f"Found {len(boxes)} bounding boxes")
        return BoundingBoxResult(boxes=boxes)
    except Exception as e:
        logger.error(f"Error in bounding box extraction: {str(e)}")
        raise ProcessingError(f"Bounding box extraction failed: {e}") from e


def load_templates(params: ProcessingParameters) -> TemplateSet:
    """Load the reference symbols, falling back to an empty set.

    Without templates the tail and rest rules never match, but every other
    rule still works.
    """
    recognition = params.recognition
    try:
        return TemplateSet.load(
            recognition.template_dir,
            recognition.template_tolerance,
            recognition.template_grid_size,
        )
    except TemplateLoadError as e:
        logger.warning(f"Continuing without templates: {e}")
        return TemplateSet.empty()


def recognize_symbols(
    staff_result: StaffResult,
    vertical_result: VerticalLineResult,
    component_result: ComponentResult,
    box_result: BoundingBoxResult,
    params: ProcessingParameters,
) -> RecognitionResult:
    """Recognize the score and export it as MusicXML.

    Args:
        staff_result: Staves and staff spacing.
        vertical_result: Bar lines and stems.
        component_result: Resolved component matrix.
        box_result: Bounding boxes of the components.
        params: Processing parameters; ``params.export.output_path`` selects
            where the document is written, ``None`` keeps it in memory.

    Returns:
        RecognitionResult with the document, annotations and MusicXML text.
    """
    try:
        recognizer = SymbolRecognizer(
            staves=staff_result.staves,
            bar_lines=vertical_result.bar_lines,
            vertical_lines=vertical_result.vertical_lines,
            spacing=staff_result.spacing,
            components=component_result.components,
            boxes=list(box_result.boxes.values()),
            templates=load_templates(params),
            params=params.recognition,
        )
        document, annotations = recognizer.recognize()
        musicxml = render_musicxml(document)

        output_path = None
        if params.export.output_path is not None:
            output_path = str(save_musicxml(document, params.export.output_path))
        return RecognitionResult(
            document=document,
            annotations=annotations,
            musicxml=musicxml,
            output_path=output_path,
        )
    except PipelineError:
        raise
    except Exception as e:
        logger.error(f"Error in symbol recognition: {str(e)}")
        raise ProcessingError(f"Symbol recognition failed: {e}") from e


def process_complete_pipeline(
    image: np.ndarray, params: ProcessingParameters | None = None
) -> RecognitionResult:
    """Process the complete image-to-MusicXML pipeline.

    Args:
        image: Input RGB image.
        params: Processing parameters, defaults for every stage if None.

    Returns:
        The recognition result.

    Raises:
        StaffLineCountError: If the staff lines do not form whole staves.
        ProcessingError: If any other stage fails.
    """
    params = params or ProcessingParameters()
    binary_result = process_binary_image(image, params.deskew)
    if binary_result.binary_mask is None:
        raise ProcessingError("No image provided")

    deskew_result = deskew_image(binary_result, params.deskew)
    staff_result = remove_staff(
        deskew_result, params.line_removal, params.deskew.threshold_ratio
    )
    vertical_result = remove_vertical_strokes(staff_result, params.line_removal)
    patch_result = patch_staff_gaps(deskew_result, staff_result, vertical_result)
    label_result = collect_components(patch_result)
    component_result = resolve_components(label_result)
    box_result = find_bounding_boxes(component_result)
    return recognize_symbols(
        staff_result, vertical_result, component_result, box_result, params
    )


class StageMachine:
    """Runs the pipeline one stage at a time and keeps every stage's rendering.

    ``advance`` computes the next stage; ``display_previous`` and
    ``display_next`` only move the displayed stage between stages already
    computed.

    Attributes:
        params: Processing parameters.
        stage: Last computed stage.
        displayed: Stage whose rendering ``displayed_image`` returns.
        layers_displayed: Whether stages with overlays show them.
    """

    def __init__(self, image: np.ndarray, params: ProcessingParameters | None = None):
        self.params = params or ProcessingParameters()
        self.stage = Stage.LOADED
        self.displayed = Stage.LOADED
        self.layers_displayed = False

        self.binary_result = process_binary_image(image, self.params.deskew)
        self.deskew_result: DeskewResult | None = None
        self.staff_result: StaffResult | None = None
        self.vertical_result: VerticalLineResult | None = None
        self.patch_result: PatchResult | None = None
        self.label_result: LabelResult | None = None
        self.component_result: ComponentResult | None = None
        self.box_result: BoundingBoxResult | None = None
        self.recognition_result: RecognitionResult | None = None

        self._images: dict[Stage, np.ndarray] = {Stage.LOADED: image}
        self._layers: dict[Stage, np.ndarray] = {}

    @classmethod
    def load(
        cls, path: str | Path, params: ProcessingParameters | None = None
    ) -> "StageMachine":
        """Create a machine for an image file.

        Raises:
            ImageReadError: If the file cannot be read.
            UnsupportedImageError: If the format is not supported.
        """
        return cls(load_image(path).image, params)

    @property
    def is_finished(self) -> bool:
        return self.stage == Stage.RECOGNIZED

    @property
    def displayed_image(self) -> np.ndarray:
        if self.layers_displayed and self.displayed in self._layers:
            return self._layers[self.displayed]
        return self._images[self.displayed]

    @property
    def description(self) -> str:
        return STAGE_DESCRIPTIONS[self.displayed]

    def stage_image(self, stage: Stage) -> np.ndarray | None:
        return self._images.get(stage)

    def stage_layer(self, stage: Stage) -> np.ndarray | None:
        return self._layers.get(stage)

    def display_previous(self) -> None:
        if self.displayed > Stage.LOADED:
            self.displayed = Stage(self.displayed - 1)

    def display_next(self) -> None:
        if self.displayed < self.stage:
            self.displayed = Stage(self.displayed + 1)

    def toggle_layers(self) -> None:
        self.layers_displayed = not self.layers_displayed

    def advance(self) -> bool:
        """Compute the next stage.

        Returns:
            True if a stage was computed; False at the terminal stage or when
            the staff lines cannot be grouped into staves, in which case the
            machine is left unchanged.
        """
        if self.is_finished:
            return False

        next_stage = Stage(self.stage + 1)
        steps = {
            Stage.DESKEWED: self._deskew,
            Stage.STAFF_REMOVED: self._remove_staff,
            Stage.VERTICAL_LINES_REMOVED: self._remove_vertical_lines,
            Stage.PATCHED: self._patch,
            Stage.COMPONENTS_LABELED: self._collect_components,
            Stage.EQUIVALENCES_RESOLVED: self._resolve_components,
            Stage.BOUNDING_BOXES: self._find_bounding_boxes,
            Stage.RECOGNIZED: self._recognize,
        }
        try:
            image, layer = steps[next_stage]()
        except StaffLineCountError:
            return False

        self._images[next_stage] = image
        if layer is not None:
            self._layers[next_stage] = layer
        self.stage = next_stage
        self.displayed = next_stage
        logger.info(f"Stage {int(next_stage)}: {STAGE_DESCRIPTIONS[next_stage]}")
        return True

    def run(
        self, should_continue: Callable[[], bool] | None = None
    ) -> RecognitionResult | None:
        """Advance until recognition finishes or a stage cannot be computed.

        Args:
            should_continue: Consulted before every stage; returning False
                stops the run.

        Returns:
            The recognition result, or None if the run stopped early.
        """
        while not self.is_finished:
            if should_continue is not None and not should_continue():
                logger.info(f"Stopped after stage {int(self.stage)}")
                break
            if not self.advance():
                break
        return self.recognition_result

    def _deskew(self) -> tuple[np.ndarray, None]:
        self.deskew_result = deskew_image(self.binary_result, self.params.deskew)
        return create_binary_visualization(self.deskew_result.binary_mask), None

    def _remove_staff(self) -> tuple[np.ndarray, np.ndarray]:
        self.staff_result = remove_staff(
            self.deskew_result,
            self.params.line_removal,
            self.params.deskew.threshold_ratio,
        )
        before = self.deskew_result.binary_mask
        after = self.staff_result.binary_mask
        layer = create_layer_visualization(before, after)
        return create_binary_visualization(after), layer

    def _remove_vertical_lines(self) -> tuple[np.ndarray, np.ndarray]:
        self.vertical_result = remove_vertical_strokes(
            self.staff_result, self.params.line_removal
        )
        before = self.staff_result.binary_mask
        after = self.vertical_result.binary_mask
        layer = create_bar_line_visualization(
            create_layer_visualization(before, after), self.vertical_result.bar_lines
        )
        return create_binary_visualization(after), layer

    def _patch(self) -> tuple[np.ndarray, np.ndarray]:
        self.patch_result = patch_staff_gaps(
            self.deskew_result, self.staff_result, self.vertical_result
        )
        before = self.vertical_result.binary_mask
        after = self.patch_result.binary_mask
        layer = create_layer_visualization(before, after)
        return create_binary_visualization(after), layer

    def _collect_components(self) -> tuple[np.ndarray, None]:
        self.label_result = collect_components(self.patch_result)
        return create_label_visualization(self.label_result.labels), None

    def _resolve_components(self) -> tuple[np.ndarray, None]:
        self.component_result = resolve_components(self.label_result)
        return create_label_visualization(self.component_result.components), None

    def _find_bounding_boxes(self) -> tuple[np.ndarray, None]:
        self.box_result = find_bounding_boxes(self.component_result)
        image = create_bounding_box_visualization(
            self.component_result.components, list(self.box_result.boxes.values())
        )
        return image, None

    def _recognize(self) -> tuple[np.ndarray, None]:
        self.recognition_result = recognize_symbols(
            self.staff_result,
            self.vertical_result,
            self.component_result,
            self.box_result,
            self.params,
        )
        image = create_recognition_visualization(
            self._images[Stage.BOUNDING_BOXES], self.recognition_result.annotations
        )
        return image, None
