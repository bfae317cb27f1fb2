import pytest
from image_to_musicxml.pitch import (
    AlterationState,
    next_key_accidental,
    position_to_pitch,
    position_y,
    staff_position,
)


@pytest.mark.parametrize(
    "y,expected",
    [
        (30, -1),
        (35, 0),
        (40, 1),
        (45, 2),
        (50, 3),
        (60, 5),
        (80, 9),
        (85, 10),
        (90, 11),
        (41, 1),
    ],
)
def test_staff_position(stave, y, expected):
    assert staff_position(y, stave, 10) == expected


@pytest.mark.parametrize("position", [-3, 0, 1, 2, 5, 8, 9, 12])
def test_position_y_is_inverse(stave, position):
    assert staff_position(position_y(position, stave, 10), stave, 10) == position


@pytest.mark.parametrize(
    "position,clef,expected",
    [
        (1, None, ("F", 5)),
        (5, "treble", ("B", 4)),
        (9, "treble", ("E", 4)),
        (0, None, ("G", 5)),
        (-3, None, ("C", 6)),
        (11, None, ("C", 4)),
        (12, None, ("B", 3)),
        (1, "bass", ("A", 3)),
        (5, "bass", ("D", 3)),
        (9, "bass", ("G", 2)),
        (-1, "bass", ("C", 4)),
    ],
)
def test_position_to_pitch(position, clef, expected):
    step, octave, _ = position_to_pitch(position, clef)
    assert (step, octave) == expected


def test_bass_clef_adjusts_position():
    assert position_to_pitch(3, "bass")[2] == 15
    assert position_to_pitch(3)[2] == 3


def test_next_key_accidental_sharps():
    assert next_key_accidental(0, "sharp") == ("F", 1)
    assert next_key_accidental(1, "sharp") == ("C", 4)
    assert next_key_accidental(0, "sharp", "bass") == ("F", 3)
    assert next_key_accidental(7, "sharp") is None


def test_next_key_accidental_flats():
    assert next_key_accidental(0, "flat") == ("B", 5)
    assert next_key_accidental(-1, "flat") == ("E", 2)
    assert next_key_accidental(-2, "flat", "bass") == ("A", 8)


def test_next_key_accidental_does_not_mix():
    assert next_key_accidental(2, "flat") is None
    assert next_key_accidental(-2, "sharp") is None


def test_alteration_state():
    state = AlterationState()
    state.key["F"] = 1
    assert state.resolve("F", 1, None) == 1
    assert state.resolve("F", 8, "natural") == 0
    # The explicit natural applies to that position only
    assert state.resolve("F", 8, None) == 0
    assert state.resolve("F", 1, None) == 1
    assert state.resolve("B", 5, "flat") == -1
    assert state.resolve("B", 5, None) == -1

    state.reset_bar()
    assert state.resolve("B", 5, None) == 0
    assert state.resolve("F", 8, None) == 1

