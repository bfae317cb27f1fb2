import numpy as np
from image_to_musicxml.models.pipeline_models import (
    BinaryResult,
    BoundingBoxResult,
    DeskewResult,
    LabelResult,
    RecognitionResult,
    StaffResult,
    VerticalLineResult,
)


def test_binaryresult_defaults():
    b = BinaryResult()
    assert b.binary_mask is None


def test_deskewresult_defaults():
    d = DeskewResult()
    assert d.binary_mask is None
    assert d.angle == 0.0
    assert d.score == 0
    assert isinstance(d.histogram, np.ndarray)
    assert d.histogram.size == 0


def test_staffresult_defaults():
    s = StaffResult()
    assert s.staff_lines == []
    assert s.staves == []
    assert s.spacing == 0


def test_verticallineresult_defaults():
    v = VerticalLineResult()
    assert v.bar_lines == []
    assert v.vertical_lines == []


def test_recognitionresult_defaults():
    r = RecognitionResult()
    assert r.document.measures == []
    assert r.annotations == []
    assert r.musicxml == ""
    assert r.output_path is None


def test_pipeline_models_arbitrary_types():
    # Ensure numpy arrays and label equivalences are accepted
    b = BinaryResult(binary_mask=np.zeros((1, 1)))
    assert b.binary_mask.shape == (1, 1)
    l = LabelResult(labels=np.zeros((2, 2), dtype=np.int32), equivalence=object())
    assert l.labels.shape == (2, 2)
    assert BoundingBoxResult().boxes == {}
