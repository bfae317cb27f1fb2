"""Connected-component labelling.

The labeller is the classic two-pass algorithm. The first pass gives every
ink pixel the smallest label among its already visited neighbours (above-left,
above, above-right and left) and records that all of those labels belong to
one component. The second pass rewrites every label to the smallest label of
its component. Component bounding boxes are then read off the resolved matrix.
"""

import logging

import numpy as np

from image_to_musicxml.models import BoundingBox

logger = logging.getLogger(__name__)

# Causal neighbourhood of the raster scan, as (dy, dx)
NEIGHBOURS = ((-1, -1), (-1, 0), (-1, 1), (0, -1))


class LabelEquivalence:
    """Disjoint sets of labels known to belong to the same component.

    A union-find with path compression and union by size. Each set also
    remembers its smallest label, which is the label the whole set resolves
    to.
    """

    def __init__(self):
        self._parent: dict[int, int] = {}
        self._size: dict[int, int] = {}
        self._smallest: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._parent)

    def __contains__(self, label: int) -> bool:
        return label in self._parent

    def make_set(self, label: int) -> None:
        if label not in self._parent:
            self._parent[label] = label
            self._size[label] = 1
            self._smallest[label] = label

    def find(self, label: int) -> int:
        """Return the root of the set holding ``label``."""
        root = label
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[label] != root:
            self._parent[label], label = root, self._parent[label]
        return root

    def union(self, a: int, b: int) -> int:
        """Merge the sets holding ``a`` and ``b`` and return the new root."""
        self.make_set(a)
        self.make_set(b)
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        self._smallest[root_a] = min(self._smallest[root_a], self._smallest[root_b])
        return root_a

    def representative(self, label: int) -> int:
        """Smallest label of the set holding ``label``."""
        if label not in self._parent:
            return label
        return self._smallest[self.find(label)]

    def sets(self) -> list[set[int]]:
        """All sets, each as a set of labels."""
        groups: dict[int, set[int]] = {}
        for label in self._parent:
            groups.setdefault(self.find(label), set()).add(label)
        return list(groups.values())


def label_components(mask: np.ndarray) -> tuple[np.ndarray, LabelEquivalence]:
    """First labelling pass.

    Args:
        mask: Binary mask, any non-zero value is ink.

    Returns:
        Tuple of (raw label matrix, equivalence between raw labels).
    """
    h, w = mask.shape
    labels = np.zeros((h, w), dtype=np.int32)
    equivalence = LabelEquivalence()
    next_label = 1

    for y, x in np.argwhere(mask > 0):
        neighbours = set()
        for dy, dx in NEIGHBOURS:
            ny, nx = y + dy, x + dx
            if 0 <= ny and 0 <= nx < w and labels[ny, nx]:
                neighbours.add(int(labels[ny, nx]))

        if not neighbours:
            labels[y, x] = next_label
            equivalence.make_set(next_label)
            next_label += 1
            continue

        smallest = min(neighbours)
        labels[y, x] = smallest
        for label in neighbours:
            if label != smallest:
                equivalence.union(smallest, label)

    logger.info(f"Collected {next_label - 1} raw labels")
    return labels, equivalence


def resolve_equivalences(
    labels: np.ndarray, equivalence: LabelEquivalence
) -> np.ndarray:
    """Second labelling pass: rewrite every label to its representative.

    Args:
        labels: Raw label matrix from ``label_components``.
        equivalence: Equivalence between raw labels.

    Returns:
        New component matrix with one label per connected component.
    """
    max_label = int(labels.max()) if labels.size else 0
    mapping = np.arange(max_label + 1, dtype=np.int32)
    for label in range(1, max_label + 1):
        mapping[label] = equivalence.representative(label)
    components = mapping[labels]
    logger.info(f"Resolved {len(np.unique(components)) - 1} components")
    return components


def extract_bounding_boxes(components: np.ndarray) -> dict[int, BoundingBox]:
    """Bounding box of every component.

    Args:
        components: Resolved component matrix, 0 is background.

    Returns:
        Mapping from label to the box spanning its pixels.
    """
    ys, xs = np.nonzero(components)
    if ys.size == 0:
        return {}
    values = components[ys, xs]
    labels = np.unique(values)
    index = np.searchsorted(labels, values)

    n = labels.size
    x_min = np.full(n, np.iinfo(np.int64).max)
    y_min = np.full(n, np.iinfo(np.int64).max)
    x_max = np.full(n, -1)
    y_max = np.full(n, -1)
    np.minimum.at(x_min, index, xs)
    np.minimum.at(y_min, index, ys)
    np.maximum.at(x_max, index, xs)
    np.maximum.at(y_max, index, ys)

    return {
        int(label): BoundingBox(
            x_start=int(x_min[k]),
            y_start=int(y_min[k]),
            x_end=int(x_max[k]),
            y_end=int(y_max[k]),
            label=int(label),
        )
        for k, label in enumerate(labels)
    }
