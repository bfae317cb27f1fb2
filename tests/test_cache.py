import numpy as np
import pytest
from image_to_musicxml.cache import SubimageCache, extract_subimage
from image_to_musicxml.models import BoundingBox


@pytest.fixture
def components():
    matrix = np.zeros((10, 10), dtype=np.int32)
    matrix[2:5, 2:6] = 1
    matrix[4, 5] = 2  # a foreign label inside the first box
    return matrix


@pytest.fixture
def box():
    return BoundingBox(x_start=2, y_start=2, x_end=5, y_end=4, label=1)


def test_extract_subimage_selects_component(components, box):
    subimage = extract_subimage(components, box)
    assert subimage.shape == (box.height, box.width)
    assert subimage.dtype == bool
    assert subimage.sum() == 11
    assert not subimage[2, 3]


def test_cache_hits_and_misses(components, box):
    cache = SubimageCache(components)
    first = cache.get(box)
    second = cache.get(box)
    assert first is second
    assert (cache.hits, cache.misses) == (1, 1)
    assert len(cache) == 1


def test_cached_masks_are_read_only(components, box):
    cache = SubimageCache(components)
    with pytest.raises(ValueError):
        cache.get(box)[0, 0] = False


def test_cache_region(components, box):
    cache = SubimageCache(components)
    region = cache.region(box, 1, 1, 2, 2)
    assert region.shape == (2, 2)
    assert region.all()


def test_cache_clear(components, box):
    cache = SubimageCache(components)
    cache.get(box)
    cache.clear()
    assert len(cache) == 0
    assert (cache.hits, cache.misses) == (0, 0)
