import numpy as np
import pytest
from image_to_musicxml.cache import SubimageCache
from image_to_musicxml.classification import (
    COMPONENT_RULES,
    ClassificationContext,
    classify_component,
    classify_components,
)
from image_to_musicxml.components import extract_bounding_boxes
from image_to_musicxml.models import BoundingBox, SymbolKind
from image_to_musicxml.templates import TemplateSet

DOT, REPEAT_DOT, BEAM, TIE, SPECK, FAR, HEAD, HOOK, TAIL = range(1, 10)


@pytest.fixture
def templates():
    return TemplateSet.load()


@pytest.fixture
def components(templates):
    matrix = np.zeros((170, 420), dtype=np.int32)
    matrix[62:67, 150:155] = DOT
    matrix[52:57, 392:397] = REPEAT_DOT
    matrix[20:24, 200:240] = BEAM
    for x in range(30):
        matrix[85 + int(4 * ((x - 15) / 15) ** 2), 250 + x] = TIE
    matrix[30:40, 300] = SPECK
    matrix[150:155, 150:155] = FAR
    matrix[56:66, 100:113] = HEAD
    matrix[20:25, 320:332] = HOOK
    region = matrix[10:36, 350:360]
    region[templates.templates["tail"]] = TAIL
    return matrix


@pytest.fixture
def context(stave, components, templates):
    return ClassificationContext(
        staves=[stave],
        bar_lines=[BoundingBox(x_start=400, y_start=40, x_end=401, y_end=79)],
        vertical_lines=[BoundingBox(x_start=331, y_start=22, x_end=332, y_end=60)],
        spacing=10,
        subimages=SubimageCache(components),
        templates=templates,
    )


@pytest.fixture
def boxes(components):
    return extract_bounding_boxes(components)


@pytest.mark.parametrize(
    "label,kind",
    [
        (DOT, SymbolKind.DOT),
        (REPEAT_DOT, SymbolKind.REPETITION_DOT),
        (BEAM, SymbolKind.BEAM),
        (TIE, SymbolKind.TIE),
        (SPECK, SymbolKind.DISCARDED),
        (FAR, SymbolKind.DISCARDED),
        (HEAD, None),
        (HOOK, SymbolKind.BEAM_HOOK),
        (TAIL, SymbolKind.TAIL),
    ],
)
def test_classify_component(context, boxes, label, kind):
    assert classify_component(boxes[label], context) is kind


def test_context_tolerance_and_ratio(context, boxes):
    assert context.tolerance == 2
    assert context.ratio(boxes[HEAD]) == 1.0
    assert context.region_ratio(boxes[HEAD], 0, 0, 4, 4) == 1.0


def test_rule_order_starts_with_cheap_rejections():
    names = [name for name, _ in COMPONENT_RULES]
    assert names[:2] == ["degenerate", "outside staves"]
    assert names.index("dot") < names.index("beam") < names.index("tie")


def test_classify_components_groups_symbols(context, boxes):
    symbols = classify_components(list(boxes.values()), context)
    assert symbols.dots == [boxes[DOT]]
    assert symbols.beams == [boxes[BEAM], boxes[HOOK]]
    assert symbols.hooks == {boxes[HOOK]}
    assert symbols.tails == [boxes[TAIL]]
    assert symbols.ties == [boxes[TIE]]
    assert symbols.remaining == [boxes[HEAD]]
    assert symbols.sharps == []
    # Every classified box is annotated, the remaining one is not yet
    assert len(symbols.annotations) == 8
    assert boxes[HEAD] not in {a.box for a in symbols.annotations}


def test_repetition_dot_is_not_a_duration_dot(context, boxes):
    symbols = classify_components(list(boxes.values()), context)
    assert boxes[REPEAT_DOT] not in symbols.dots
    kinds = {a.box: a.kind for a in symbols.annotations}
    assert kinds[boxes[REPEAT_DOT]] is SymbolKind.REPETITION_DOT


def test_dot_next_to_stem_is_still_a_dot(context, boxes):
    dot = boxes[DOT]
    stem = BoundingBox(
        x_start=dot.x_end + 1,
        y_start=dot.y_start - 30,
        x_end=dot.x_end + 2,
        y_end=dot.y_end,
    )
    context.vertical_lines.append(stem)
    assert classify_component(dot, context) is SymbolKind.DOT
