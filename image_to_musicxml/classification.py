"""First recognition pass: symbols that need no stave context.

Dots, beams, beam hooks, quaver tails and ties are recognized before the
notes they modify, so the second pass can look them up by proximity. Each
component box is run through ``COMPONENT_RULES`` in order and the first rule
that returns a kind decides it. Boxes no rule claims are kept for the
per-stave pass in ``recognizer``.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from image_to_musicxml.cache import SubimageCache
from image_to_musicxml.image_processing import foreground_ratio
from image_to_musicxml.models import BoundingBox, Stave, SymbolAnnotation, SymbolKind
from image_to_musicxml.symbols import find_stem, is_beam_shape
from image_to_musicxml.templates import TemplateSet

logger = logging.getLogger(__name__)


@dataclass
class ClassificationContext:
    """Geometry shared by every classification rule of one recognition run.

    Attributes:
        staves: All staves, top to bottom.
        bar_lines: Bar lines in reading order.
        vertical_lines: Stems and other vertical strokes removed earlier.
        spacing: Staff spacing in pixels.
        subimages: Mask cache for the component matrix being recognized.
        templates: Reference symbols.
        ratio_threshold: Ink ratio of a filled region.
    """

    staves: list[Stave]
    bar_lines: list[BoundingBox]
    vertical_lines: list[BoundingBox]
    spacing: int
    subimages: SubimageCache
    templates: TemplateSet
    ratio_threshold: float = 0.8

    @property
    def tolerance(self) -> int:
        return self.spacing // 5

    def mask(self, box: BoundingBox) -> np.ndarray:
        return self.subimages.get(box)

    def ratio(self, box: BoundingBox) -> float:
        return foreground_ratio(self.subimages.get(box))

    def region_ratio(
        self, box: BoundingBox, x: int, y: int, width: int, height: int
    ) -> float:
        return foreground_ratio(self.subimages.region(box, x, y, width, height))


@dataclass
class ClassifiedSymbols:
    """Symbols recognized so far, grouped by what later rules look up.

    The first pass fills ``dots`` to ``remaining``; the per-stave pass adds
    accidentals and hollow semibreve halves as it finds them.
    """

    dots: list[BoundingBox] = field(default_factory=list)
    beams: list[BoundingBox] = field(default_factory=list)
    hooks: set[BoundingBox] = field(default_factory=set)
    tails: list[BoundingBox] = field(default_factory=list)
    ties: list[BoundingBox] = field(default_factory=list)
    remaining: list[BoundingBox] = field(default_factory=list)
    sharp_beams: list[BoundingBox] = field(default_factory=list)
    sharps: list[BoundingBox] = field(default_factory=list)
    flats: list[BoundingBox] = field(default_factory=list)
    natural_beams: list[BoundingBox] = field(default_factory=list)
    semibreve_halves: list[BoundingBox] = field(default_factory=list)
    annotations: list[SymbolAnnotation] = field(default_factory=list)

    def annotate(self, box: BoundingBox, kind: SymbolKind) -> None:
        self.annotations.append(SymbolAnnotation(box=box, kind=kind))


ComponentRule = Callable[[BoundingBox, ClassificationContext], SymbolKind | None]


def _degenerate(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    if box.width <= 1 or box.height <= 1:
        return SymbolKind.DISCARDED
    return None


def _outside_staves(
    box: BoundingBox, context: ClassificationContext
) -> SymbolKind | None:
    margin = 3 * context.spacing
    if (
        box.y_end < context.staves[0].top.y_center - margin
        or box.y_start > context.staves[-1].bottom.y_center + margin
    ):
        return SymbolKind.DISCARDED
    return None


def _next_to_bar_line(box: BoundingBox, context: ClassificationContext) -> bool:
    for bar in context.bar_lines:
        gap = max(box.x_start - bar.x_end, bar.x_start - box.x_end)
        if gap < context.spacing // 2 and bar.y_start < box.y_center < bar.y_end:
            return True
    return False


def _dot(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    s = context.spacing
    if (
        0.2 * s < box.width < 0.7 * s
        and 0.2 * s < box.height < 0.7 * s
        and abs(box.width - box.height) < context.tolerance
    ):
        if _next_to_bar_line(box, context):
            return SymbolKind.REPETITION_DOT
        return SymbolKind.DOT
    return None


def _beam(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    s = context.spacing
    if (
        box.width > 2.2 * s
        and box.height > s // 3
        and box.width > 1.3 * box.height
        and is_beam_shape(context.mask(box), s)
    ):
        return SymbolKind.BEAM
    return None


def _beam_hook(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    s = context.spacing
    if (
        s < box.width < 1.5 * s
        and s // 3 < box.height < s
        and context.ratio(box) > context.ratio_threshold
        and find_stem(box, context.vertical_lines, s) is not None
    ):
        return SymbolKind.BEAM_HOOK
    return None


def _quaver_tail(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    s = context.spacing
    if (
        0.5 * s < box.width < 1.5 * s
        and 2 * s < box.height < 3.2 * s
        and context.templates.is_tail(context.mask(box))
    ):
        return SymbolKind.TAIL
    return None


def _tie(box: BoundingBox, context: ClassificationContext) -> SymbolKind | None:
    if box.width > 2.5 * box.height and box.height > context.spacing // 4:
        return SymbolKind.TIE
    return None


COMPONENT_RULES: tuple[tuple[str, ComponentRule], ...] = (
    ("degenerate", _degenerate),
    ("outside staves", _outside_staves),
    ("dot", _dot),
    ("beam", _beam),
    ("beam hook", _beam_hook),
    ("quaver tail", _quaver_tail),
    ("tie", _tie),
)


def classify_component(
    box: BoundingBox, context: ClassificationContext
) -> SymbolKind | None:
    """Apply the component rules to one box.

    Args:
        box: Component bounding box.
        context: Shared recognition geometry.

    Returns:
        The kind assigned by the first matching rule, or None if the box is
        left for the per-stave pass.
    """
    for _, rule in COMPONENT_RULES:
        kind = rule(box, context)
        if kind is not None:
            return kind
    return None


def classify_components(
    boxes: list[BoundingBox], context: ClassificationContext
) -> ClassifiedSymbols:
    """Run the first recognition pass over all component boxes.

    Args:
        boxes: Component bounding boxes in any order.
        context: Shared recognition geometry.

    Returns:
        The classified symbols, with unclaimed boxes in ``remaining``.
    """
    symbols = ClassifiedSymbols()
    for box in boxes:
        kind = classify_component(box, context)
        if kind is None:
            symbols.remaining.append(box)
            continue

        symbols.annotate(box, kind)
        if kind is SymbolKind.DOT:
            symbols.dots.append(box)
        elif kind is SymbolKind.BEAM:
            symbols.beams.append(box)
        elif kind is SymbolKind.BEAM_HOOK:
            symbols.beams.append(box)
            symbols.hooks.add(box)
        elif kind is SymbolKind.TAIL:
            symbols.tails.append(box)
        elif kind is SymbolKind.TIE:
            symbols.ties.append(box)

    logger.info(
        f"First pass: {len(symbols.dots)} dots, {len(symbols.beams)} beams "
        f"({len(symbols.hooks)} hooks), {len(symbols.tails)} tails, "
        f"{len(symbols.ties)} ties, {len(symbols.remaining)} left"
    )
    return symbols
