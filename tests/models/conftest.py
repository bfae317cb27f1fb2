import pytest
from image_to_musicxml.models import BoundingBox, Note


@pytest.fixture
def valid_box():
    return BoundingBox(x_start=1, y_start=2, x_end=4, y_end=9, label=3)


@pytest.fixture
def valid_note():
    return Note(step="B", octave=4, type="quarter")
