"""Reference symbol templates.

A handful of symbols (the quaver tail and the rests) are too irregular for
pure geometric rules. They are compared with reference images by ink
density: the unknown symbol is cropped to the template's proportions, both
are divided into a ``grid_size`` × ``grid_size`` grid, and every cell's ink
ratio must lie within a tolerance of the template's.
"""

import logging
from pathlib import Path

import cv2
import numpy as np

from image_to_musicxml.exceptions import TemplateLoadError
from image_to_musicxml.image_processing import binarize, foreground_ratio

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "symbol_templates"

TEMPLATE_NAMES = (
    "filled_note_head",
    "minim",
    "semibreve",
    "tail",
    "crotchet_rest",
    "quaver_rest",
    "semiquaver_rest",
)


def _cells(mask: np.ndarray, grid_size: int) -> list[np.ndarray]:
    h, w = mask.shape
    rows = np.linspace(0, h, grid_size + 1).astype(int)
    cols = np.linspace(0, w, grid_size + 1).astype(int)
    return [
        mask[rows[r] : rows[r + 1], cols[c] : cols[c + 1]]
        for r in range(grid_size)
        for c in range(grid_size)
    ]


def crop_to_aspect(symbol: np.ndarray, template: np.ndarray) -> np.ndarray:
    """Centre-crop a symbol that is wider, relative to its height, than a template."""
    th, tw = template.shape
    sh, sw = symbol.shape
    if sw / sh > tw / th:
        new_width = tw * sh // th
        left = (sw - new_width) // 2
        return symbol[:, left : left + new_width]
    return symbol


def compare(
    template: np.ndarray,
    symbol: np.ndarray,
    tolerance: float = 0.2,
    grid_size: int = 1,
) -> bool:
    """Compare the ink density of a symbol with a template.

    Args:
        template: Template mask, non-zero is ink.
        symbol: Symbol mask, non-zero is ink.
        tolerance: Largest accepted ink-ratio difference per cell.
        grid_size: Cells per side; 1 compares the whole images.

    Returns:
        True if every cell's ink ratio is within ``tolerance``.
    """
    if symbol.size == 0 or template.size == 0:
        return False
    cropped = crop_to_aspect(symbol, template)
    for expected, actual in zip(_cells(template, grid_size), _cells(cropped, grid_size)):
        if abs(foreground_ratio(expected) - foreground_ratio(actual)) > tolerance:
            return False
    return True


class TemplateSet:
    """The reference symbols used by the recognizer.

    A set without templates is valid: every comparison then fails, which
    disables only the rules that depend on templates.

    Attributes:
        templates: Template masks by name.
        tolerance: Largest accepted ink-ratio difference per cell.
        grid_size: Cells per side of the comparison grid.
    """

    def __init__(
        self,
        templates: dict[str, np.ndarray],
        tolerance: float = 0.2,
        grid_size: int = 1,
    ):
        self.templates = templates
        self.tolerance = tolerance
        self.grid_size = grid_size

    @classmethod
    def load(
        cls,
        directory: str | Path | None = None,
        tolerance: float = 0.2,
        grid_size: int = 1,
    ) -> "TemplateSet":
        """Read all reference symbols from a directory.

        Args:
            directory: Folder holding ``<name>.pbm`` files; the templates
                shipped with the package by default.
            tolerance: Largest accepted ink-ratio difference per cell.
            grid_size: Cells per side of the comparison grid.

        Returns:
            The loaded template set.

        Raises:
            TemplateLoadError: If any template is missing or unreadable.
        """
        folder = Path(directory) if directory is not None else DEFAULT_TEMPLATE_DIR
        templates = {}
        for name in TEMPLATE_NAMES:
            path = folder / f"{name}.pbm"
            if not path.is_file():
                raise TemplateLoadError(f"Template not found: {path}")
            image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
            if image is None:
                raise TemplateLoadError(f"Template could not be decoded: {path}")
            templates[name] = binarize(image) > 0
        logger.debug(f"Loaded {len(templates)} templates from {folder}")
        return cls(templates, tolerance, grid_size)

    @classmethod
    def empty(cls) -> "TemplateSet":
        return cls({})

    def matches(self, name: str, symbol: np.ndarray) -> bool:
        template = self.templates.get(name)
        if template is None:
            return False
        return compare(template, symbol, self.tolerance, self.grid_size)

    def is_tail(self, symbol: np.ndarray) -> bool:
        return self.matches("tail", symbol)

    def is_crotchet_rest(self, symbol: np.ndarray) -> bool:
        return self.matches("crotchet_rest", symbol)

    def is_quaver_rest(self, symbol: np.ndarray) -> bool:
        return self.matches("quaver_rest", symbol)

    def is_semiquaver_rest(self, symbol: np.ndarray) -> bool:
        return self.matches("semiquaver_rest", symbol)
