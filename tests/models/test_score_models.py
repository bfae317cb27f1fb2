import pytest
from pydantic import ValidationError
from image_to_musicxml.models import (
    Backup,
    Measure,
    MeasureAttributes,
    Note,
    ScoreDocument,
)


@pytest.mark.parametrize(
    "note_type,dotted,expected",
    [
        ("16th", False, 1),
        ("eighth", False, 2),
        ("quarter", False, 4),
        ("half", False, 8),
        ("whole", False, 16),
        ("16th", True, 1),
        ("eighth", True, 3),
        ("quarter", True, 6),
        ("half", True, 12),
    ],
)
def test_note_duration(note_type, dotted, expected):
    note = Note(step="C", octave=4, type=note_type, dotted=dotted)
    assert note.duration == expected


def test_note_defaults(valid_note):
    assert valid_note.alter == 0
    assert valid_note.voice == 1
    assert valid_note.staff == 1
    assert valid_note.beams == ()
    assert not valid_note.chord
    assert not valid_note.rest


def test_rest_of():
    rest = Note.rest_of(2, "half", True, 2)
    assert rest.rest
    assert rest.step is None
    assert rest.octave is None
    assert rest.voice == 2
    assert rest.staff == 2
    assert rest.duration == 12


@pytest.mark.parametrize(
    "kwargs",
    [
        {"step": "H", "octave": 4},
        {"step": "C", "octave": 10},
        {"step": "C", "octave": 4, "alter": 2},
        {"step": "C", "octave": 4, "type": "32nd"},
        {"step": "C", "octave": 4, "beams": ("begin", "begin", "begin")},
        {"step": "C", "octave": 4, "tie": "continue"},
    ],
)
def test_note_validation_raises(kwargs):
    with pytest.raises(ValidationError):
        Note(**kwargs)


def test_measure_is_empty_until_note_added(valid_note):
    measure = Measure(number=1)
    assert measure.is_empty
    measure.add_backup()
    assert measure.is_empty
    measure.add_note(valid_note)
    assert not measure.is_empty
    assert measure.notes == [valid_note]
    assert isinstance(measure.events[0], Backup)
    assert measure.events[0].duration == 16


def test_document_skips_empty_measures(valid_note):
    document = ScoreDocument()
    assert document.next_number == 1
    assert not document.add_measure(Measure(number=1))
    assert document.measures == []

    measure = Measure(number=1)
    measure.add_note(valid_note)
    assert document.add_measure(measure)
    assert document.next_number == 2


def test_measure_attributes_defaults():
    attributes = MeasureAttributes()
    assert attributes.divisions == 4
    assert attributes.fifths == 0
    assert (attributes.beats, attributes.beat_type) == (4, 4)
    assert attributes.clefs == []


@pytest.mark.parametrize("fifths", [-8, 8])
def test_measure_attributes_fifths_range(fifths):
    with pytest.raises(ValidationError):
        MeasureAttributes(fifths=fifths)
