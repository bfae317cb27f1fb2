"""Staff positions, pitches, key signatures and accidental bookkeeping.

Staff positions count half staff spaces downwards: position 1 is the top
staff line, 2 the space below it, up to 9 for the bottom line. Positions above
the stave are zero or negative. In treble clef position 1 is F5; bass clef
shifts every position by 12, i.e. a twelfth down.
"""

from dataclasses import dataclass, field

from image_to_musicxml.models import Stave

BASS_CLEF_OFFSET = 12
LEDGER_POSITIONS = 10

# (position + 700) % 7 -> step; the offset keeps negative positions positive
STEPS = {4: "C", 3: "D", 2: "E", 1: "F", 0: "G", 6: "A", 5: "B"}

SHARP_ORDER = ("F", "C", "G", "D", "A", "E", "B")
FLAT_ORDER = ("B", "E", "A", "D", "G", "C", "F")
# Treble-clef staff positions of key-signature accidentals, in writing order
SHARP_POSITIONS = (1, 4, 0, 3, 6, 2, 5)
FLAT_POSITIONS = (5, 2, 6, 3, 7, 4, 8)
# Bass-clef key signatures sit one staff line lower
BASS_KEY_SIGNATURE_OFFSET = 2

ACCIDENTAL_ALTERATIONS = {"sharp": 1, "flat": -1, "natural": 0}


def staff_position(y: int, stave: Stave, spacing: int) -> int:
    """Convert a vertical pixel coordinate to a staff position.

    Candidate positions are tried above the stave first (top line upwards),
    then within the stave (spaces and lines downwards), then below it. A
    candidate matches when it is closer than a quarter staff space.

    Args:
        y: Vertical centre of a note head.
        stave: Stave the note belongs to.
        spacing: Staff spacing in pixels.

    Returns:
        The staff position.
    """
    tolerance = spacing // 4
    centres = [line.y_center for line in stave.lines]

    position = 1
    for i in range(LEDGER_POSITIONS + 1):
        if abs(y - (centres[0] - i * spacing // 2)) < tolerance:
            return position
        position -= 1

    position = 2
    for upper, lower in zip(centres, centres[1:]):
        if abs(y - (upper + lower) // 2) < tolerance:
            return position
        position += 1
        if abs(y - lower) < tolerance:
            return position
        position += 1

    for i in range(1, LEDGER_POSITIONS + 1):
        if abs(y - (centres[4] + i * spacing // 2)) < tolerance:
            return position
        position += 1
    return position


def position_y(position: int, stave: Stave, spacing: int) -> int:
    """Vertical pixel coordinate of a staff position on a given stave."""
    centres = [line.y_center for line in stave.lines]
    if position < 1:
        return centres[0] - (1 - position) * spacing // 2
    if position > 9:
        return centres[4] + (position - 9) * spacing // 2
    if position % 2 == 1:
        return centres[(position - 1) // 2]
    return (centres[(position - 2) // 2] + centres[position // 2]) // 2


def octave_of(position: int) -> int:
    if position <= -3:
        return 6
    if position <= 4:
        return 5
    if position <= 11:
        return 4
    if position <= 18:
        return 3
    if position <= 25:
        return 2
    return 1


def position_to_pitch(position: int, clef: str | None = None) -> tuple[str, int, int]:
    """Pitch of a staff position.

    Args:
        position: Staff position as returned by ``staff_position``.
        clef: ``"bass"`` shifts the position by a twelfth; anything else is
            read as treble clef.

    Returns:
        Tuple of (step letter, octave, clef-adjusted position).
    """
    if clef == "bass":
        position += BASS_CLEF_OFFSET
    return STEPS[(position + 700) % 7], octave_of(position), position


def next_key_accidental(
    fifths: int, accidental: str, clef: str | None = None
) -> tuple[str, int] | None:
    """The accidental that would extend the current key signature.

    Args:
        fifths: Key signature recognized so far.
        accidental: ``"sharp"`` or ``"flat"``.
        clef: Clef of the stave.

    Returns:
        Tuple of (step, staff position), or None if ``accidental`` cannot
        continue a key signature of ``fifths``.
    """
    offset = BASS_KEY_SIGNATURE_OFFSET if clef == "bass" else 0
    if accidental == "sharp" and 0 <= fifths < len(SHARP_ORDER):
        return SHARP_ORDER[fifths], SHARP_POSITIONS[fifths] + offset
    if accidental == "flat" and 0 <= -fifths < len(FLAT_ORDER):
        return FLAT_ORDER[-fifths], FLAT_POSITIONS[-fifths] + offset
    return None


@dataclass
class AlterationState:
    """Active alterations while reading one system.

    Attributes:
        key: Alteration per step from the key signature of the system.
        bar: Alteration per staff position set by an explicit accidental,
            reset for every stave of every bar.
    """

    key: dict[str, int] = field(default_factory=dict)
    bar: dict[int, int] = field(default_factory=dict)

    def reset_bar(self) -> None:
        self.bar.clear()

    def resolve(self, step: str, position: int, accidental: str | None) -> int:
        """Alteration of a note, recording explicit accidentals for the bar.

        Args:
            step: Step letter of the note.
            position: Clef-adjusted staff position of the note.
            accidental: Printed accidental, if any.

        Returns:
            Alteration in semitones.
        """
        if accidental is not None:
            alteration = ACCIDENTAL_ALTERATIONS[accidental]
            self.bar[position] = alteration
            return alteration
        if position in self.bar:
            return self.bar[position]
        return self.key.get(step, 0)
