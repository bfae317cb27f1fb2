import xml.etree.ElementTree as ET

import pytest
from image_to_musicxml.models import Measure, MeasureAttributes, Note, ScoreDocument
from image_to_musicxml.musicxml_utils import (
    DOCTYPE,
    XML_DECLARATION,
    build_attributes_element,
    build_measure_element,
    build_note_element,
    render_musicxml,
    save_musicxml,
)


@pytest.fixture
def document():
    first = Measure(
        number=1,
        attributes=MeasureAttributes(fifths=-1, clefs=["treble", "bass"], staves=2),
    )
    first.add_note(Note(step="B", alter=-1, octave=4, type="half", accidental="flat"))
    first.add_note(Note(step="D", octave=5, type="half", chord=True))
    first.add_backup()
    first.add_note(Note.rest_of(2, "whole", False, 2))
    first.add_backup()

    second = Measure(number=2, new_system=True, last=True)
    second.add_note(Note(step="C", octave=4, type="whole"))
    document = ScoreDocument()
    document.add_measure(first)
    document.add_measure(second)
    return document


def _children(element):
    return [child.tag for child in element]


def test_note_element_order():
    note = Note(
        step="F",
        alter=1,
        octave=5,
        tie="start",
        type="eighth",
        dotted=True,
        accidental="sharp",
        beams=("begin", "forward hook"),
        chord=True,
    )
    element = build_note_element(note)
    assert _children(element) == [
        "chord",
        "pitch",
        "duration",
        "tie",
        "voice",
        "type",
        "dot",
        "accidental",
        "staff",
        "beam",
        "beam",
        "notations",
    ]
    assert element.findtext("pitch/alter") == "1"
    assert element.findtext("duration") == "3"
    assert [b.get("number") for b in element.findall("beam")] == ["1", "2"]
    assert element.findall("beam")[1].text == "forward hook"
    assert element.find("notations/tied").get("type") == "start"


def test_natural_pitch_has_no_alter():
    element = build_note_element(Note(step="C", octave=4))
    assert element.find("pitch/alter") is None
    assert _children(element) == ["pitch", "duration", "voice", "type", "staff"]


def test_rest_element():
    element = build_note_element(Note.rest_of(1, "quarter", False, 1))
    assert element.find("rest") is not None
    assert element.find("pitch") is None
    assert element.findtext("duration") == "4"


def test_attributes_element():
    element = build_attributes_element(
        MeasureAttributes(fifths=2, clefs=["treble", "bass"], staves=2)
    )
    assert element.findtext("divisions") == "4"
    assert element.findtext("key/fifths") == "2"
    assert element.findtext("time/beats") == "4"
    assert element.findtext("staves") == "2"
    clefs = element.findall("clef")
    assert [c.get("number") for c in clefs] == ["1", "2"]
    assert [(c.findtext("sign"), c.findtext("line")) for c in clefs] == [
        ("G", "2"),
        ("F", "4"),
    ]


def test_measure_element(document):
    first, second = document.measures
    element = build_measure_element(first)
    assert element.get("number") == "1"
    assert _children(element) == [
        "attributes",
        "note",
        "note",
        "backup",
        "note",
        "backup",
    ]
    assert element.find("barline") is None

    element = build_measure_element(second)
    assert element.find("print").get("new-system") == "yes"
    assert element.findtext("barline/bar-style") == "light-heavy"
    assert element.find("barline").get("location") == "right"


def test_render_musicxml(document):
    text = render_musicxml(document)
    lines = text.splitlines()
    assert lines[0] == XML_DECLARATION
    assert lines[1] == DOCTYPE
    assert text.endswith("\n")

    root = ET.fromstring(text.split("\n", 2)[2])
    assert root.tag == "score-partwise"
    assert root.get("version") == "3.1"
    assert root.find("part-list/score-part").get("id") == "P1"
    assert root.findtext("part-list/score-part/part-name") == "Music"
    assert len(root.findall("part/measure")) == 2


def test_render_empty_document():
    root = ET.fromstring(render_musicxml(ScoreDocument()).split("\n", 2)[2])
    assert root.find("part").findall("measure") == []


def test_save_musicxml(tmp_path, document):
    path = save_musicxml(document, tmp_path / "out" / "score.xml")
    assert path.is_file()
    assert path.read_text(encoding="utf-8") == render_musicxml(document)


def test_attribute_only_measures_are_rendered():
    # Measures appended directly, bypassing the empty-measure check
    document = ScoreDocument(
        measures=[
            Measure(number=n, attributes=MeasureAttributes(clefs=["treble"]))
            for n in (1, 2, 3)
        ]
    )
    root = ET.fromstring(render_musicxml(document).split("\n", 2)[2])
    measures = root.findall("part/measure")
    assert len(measures) == 3
    assert all(m.find("attributes") is not None for m in measures)
    assert all(m.find("note") is None for m in measures)
