"""Caching of component subimages during symbol recognition.

The recognizer inspects the pixels of the same component many times (ink
ratios, projections, beam tests). ``SubimageCache`` keeps the extracted
masks for one recognition run. Its owner creates it for a component matrix
and clears it when the pipeline moves on, so cached masks never outlive the
matrix they were cut from.
"""

import numpy as np

from image_to_musicxml.models import BoundingBox


def extract_subimage(components: np.ndarray, box: BoundingBox) -> np.ndarray:
    """Cut the pixels of one component out of a component matrix.

    Args:
        components: Resolved component matrix.
        box: Box whose label selects the component and whose bounds select
            the region.

    Returns:
        Boolean mask of shape (box.height, box.width), True where the region
        belongs to the component.
    """
    region = components[box.y_start : box.y_end + 1, box.x_start : box.x_end + 1]
    return region == box.label


class SubimageCache:
    """Per-run cache of component masks keyed by box and component matrix.

    Attributes:
        components: Component matrix the masks are cut from.
    """

    def __init__(self, components: np.ndarray):
        self.components = components
        self._entries: dict[tuple[BoundingBox, int], np.ndarray] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, box: BoundingBox) -> np.ndarray:
        """Return the mask of ``box``, extracting it on first use."""
        key = (box, id(self.components))
        subimage = self._entries.get(key)
        if subimage is None:
            self.misses += 1
            subimage = extract_subimage(self.components, box)
            subimage.flags.writeable = False
            self._entries[key] = subimage
        else:
            self.hits += 1
        return subimage

    def region(
        self, box: BoundingBox, x: int, y: int, width: int, height: int
    ) -> np.ndarray:
        """Return a rectangular part of the mask of ``box``.

        Args:
            box: Component box.
            x: Left offset inside the box.
            y: Top offset inside the box.
            width: Region width.
            height: Region height.

        Returns:
            The clipped region of the cached mask.
        """
        return self.get(box)[y : y + height, x : x + width]

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
