import numpy as np
from matplotlib.figure import Figure
from image_to_musicxml.models import BoundingBox, SymbolAnnotation, SymbolKind
from image_to_musicxml.visualization import (
    KIND_COLORS,
    create_bar_line_visualization,
    create_binary_visualization,
    create_bounding_box_visualization,
    create_label_visualization,
    create_layer_visualization,
    create_projection_figure,
    create_recognition_visualization,
)


def test_binary_visualization(simple_binary_blob):
    assert create_binary_visualization(None) is None
    image = create_binary_visualization(simple_binary_blob)
    assert image.shape == (100, 100, 3)
    assert tuple(image[20, 20]) == (0, 0, 0)
    assert tuple(image[0, 0]) == (255, 255, 255)


def test_label_visualization_cycles():
    labels = np.array([[0, 1, 81, 10]], dtype=np.int32)
    image = create_label_visualization(labels)
    assert image.dtype == np.uint8
    assert [tuple(p) for p in image[0]] == [
        (255, 255, 255),
        (25, 0, 0),
        (25, 0, 0),
        (250, 0, 0),
    ]


def test_label_visualization_last_step_stands_out_from_paper():
    labels = np.zeros((10, 10), dtype=np.int32)
    labels[2:8, 2:8] = 80
    image = create_label_visualization(labels)
    # The ramp ends in black, so the background must stay white
    assert tuple(image[5, 5]) == (0, 0, 0)
    assert tuple(image[0, 0]) == (255, 255, 255)


def test_bounding_box_visualization():
    labels = np.zeros((20, 20), dtype=np.int32)
    labels[5:10, 5:10] = 1
    box = BoundingBox(x_start=5, y_start=5, x_end=9, y_end=9, label=1)
    image = create_bounding_box_visualization(labels, [box])
    assert tuple(image[5, 7]) == (255, 0, 0)
    assert tuple(image[0, 0]) == (255, 255, 255)


def test_layer_visualization_marks_changes(simple_binary_blob):
    after = simple_binary_blob.copy()
    after[10:20, 10:31] = 0
    image = create_layer_visualization(simple_binary_blob, after)
    assert tuple(image[15, 15]) == (255, 0, 0)
    assert tuple(image[25, 25]) == (0, 0, 0)
    assert tuple(image[50, 50]) == (255, 255, 255)


def test_bar_line_visualization_does_not_modify_input():
    image = np.full((30, 30, 3), 255, dtype=np.uint8)
    bar = BoundingBox(x_start=10, y_start=5, x_end=11, y_end=25)
    overlay = create_bar_line_visualization(image, [bar])
    assert tuple(overlay[15, 10]) == (0, 0, 255)
    assert np.all(image == 255)


def test_recognition_visualization_from_mask(simple_binary_blob):
    box = BoundingBox(x_start=10, y_start=10, x_end=30, y_end=30, label=1)
    annotations = [SymbolAnnotation(box=box, kind=SymbolKind.NOTE)]
    image = create_recognition_visualization(simple_binary_blob, annotations)
    assert image.shape == (100, 100, 3)
    assert tuple(image[10, 20]) == KIND_COLORS[SymbolKind.NOTE]


def test_every_kind_has_a_colour():
    assert set(KIND_COLORS) == set(SymbolKind)


def test_projection_figure():
    histogram = np.array([0, 5, 400, 5, 0])
    fig = create_projection_figure(histogram, 200)
    assert isinstance(fig, Figure)
    ax = fig.axes[0]
    assert ax.get_ylim() == (5.0, 0.0)
    assert ax.get_xlim()[1] > 400
