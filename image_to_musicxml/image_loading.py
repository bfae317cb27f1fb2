"""Reading score images from disk.

Pages are decoded with OpenCV and normalized to 8-bit RGB, so the rest of the
pipeline never sees palette, 16-bit or alpha images. Multi-page files (TIFF)
are accepted; only the first page is processed.
"""

import logging
from pathlib import Path

import cv2
import numpy as np
from pydantic import BaseModel, Field

from image_to_musicxml.exceptions import ImageReadError, UnsupportedImageError

logger = logging.getLogger(__name__)


class LoadedImage(BaseModel):
    """A decoded page.

    Attributes:
        image: RGB uint8 array of shape (height, width, 3).
        page_count: Number of pages found in the file.
    """

    image: object = Field(..., description="RGB uint8 page")
    page_count: int = Field(1, ge=1, description="Pages in the file")

    class Config:
        arbitrary_types_allowed = True


def _to_uint8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image
    if image.dtype == np.uint16:
        return (image // 257).astype(np.uint8)
    if np.issubdtype(image.dtype, np.floating):
        return (np.clip(image, 0.0, 1.0) * 255).astype(np.uint8)
    raise UnsupportedImageError(f"Unsupported pixel type: {image.dtype}")


def to_rgb(image: np.ndarray) -> np.ndarray:
    """Normalize a decoded OpenCV image to 8-bit RGB on white paper.

    Args:
        image: Grey, BGR or BGRA array as returned by ``cv2.imread``.

    Returns:
        RGB uint8 array. Pixels that are not fully opaque become white.
    """
    image = _to_uint8(image)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)

    channels = image.shape[2]
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGB)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    if channels == 4:
        rgb = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
        rgb[image[:, :, 3] != 255] = 255
        return rgb
    raise UnsupportedImageError(f"Unsupported channel count: {channels}")


def load_image(path: str | Path) -> LoadedImage:
    """Load the first page of an image file.

    Args:
        path: Image file path.

    Returns:
        The decoded page as RGB.

    Raises:
        ImageReadError: If the file is missing, unreadable or has no pages.
        UnsupportedImageError: If no decoder understands the file.
    """
    path = Path(path)
    if not path.is_file():
        raise ImageReadError(f"Image not found: {path}")
    if not cv2.haveImageReader(str(path)):
        raise UnsupportedImageError(f"No decoder for {path}")

    ok, frames = cv2.imreadmulti(str(path), flags=cv2.IMREAD_UNCHANGED)
    if not ok or len(frames) == 0:
        raise ImageReadError(f"Could not read any page from {path}")

    image = to_rgb(frames[0])
    logger.info(
        f"Loaded {path.name}: {image.shape[1]}x{image.shape[0]}, {len(frames)} page(s)"
    )
    return LoadedImage(image=image, page_count=len(frames))
