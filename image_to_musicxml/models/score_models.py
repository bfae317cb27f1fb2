"""Symbolic score models produced by symbol recognition.

A recognition run accumulates ``Note`` and ``Backup`` events into ``Measure``
objects, which are collected by a ``ScoreDocument``. Durations are expressed
in divisions of a quarter note (four divisions per quarter), matching the
attributes block written to MusicXML.
"""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

NoteType = Literal["16th", "eighth", "quarter", "half", "whole"]
TieType = Literal["start", "stop"]
AccidentalType = Literal["sharp", "flat", "natural"]
BeamRole = Literal["begin", "continue", "end", "forward hook", "backward hook"]
ClefType = Literal["treble", "bass"]

DIVISIONS = 4
MEASURE_DURATION = 16

NOTE_DURATIONS: dict[str, int] = {
    "16th": 1,
    "eighth": 2,
    "quarter": 4,
    "half": 8,
    "whole": 16,
}


class Note(BaseModel):
    """A single recognized note or rest.

    Attributes:
        step: Pitch letter, ``None`` for rests.
        alter: Chromatic alteration in semitones.
        octave: Scientific octave number, ``None`` for rests.
        tie: Tie state, if the note starts or ends a tie.
        voice: Voice number (one voice per stave).
        type: Duration class.
        dotted: Whether the duration is extended by half.
        staff: Staff number within the system, starting at 1.
        beams: Beam roles, at most two.
        accidental: Printed accidental in front of the note head.
        chord: Whether the note sounds together with the previous one.
        rest: Whether this is a rest.
    """

    model_config = ConfigDict(frozen=True)

    step: str | None = Field(None, pattern="^[A-G]$", description="Pitch letter")
    alter: int = Field(0, ge=-1, le=1, description="Alteration in semitones")
    octave: int | None = Field(None, ge=0, le=9, description="Octave number")
    tie: TieType | None = None
    voice: int = Field(1, ge=1, description="Voice number")
    type: NoteType = "quarter"
    dotted: bool = False
    staff: int = Field(1, ge=1, description="Staff number within the system")
    beams: tuple[BeamRole, ...] = Field((), max_length=2)
    accidental: AccidentalType | None = None
    chord: bool = False
    rest: bool = False

    @classmethod
    def rest_of(
        cls, voice: int, note_type: NoteType, dotted: bool, staff: int
    ) -> "Note":
        return cls(voice=voice, type=note_type, dotted=dotted, staff=staff, rest=True)

    @property
    def duration(self) -> int:
        """Duration in divisions; dotted values are truncated to an integer."""
        duration = NOTE_DURATIONS[self.type]
        if self.dotted:
            duration = int(duration * 1.5)
        return duration


class Backup(BaseModel):
    """Moves the time cursor back so the next stave starts at the bar line."""

    model_config = ConfigDict(frozen=True)

    duration: int = Field(MEASURE_DURATION, ge=1)


class MeasureAttributes(BaseModel):
    """Key, time and clef information attached to the first measure of a system.

    Attributes:
        divisions: Divisions per quarter note.
        fifths: Signed number of key-signature accidentals.
        beats: Time-signature numerator.
        beat_type: Time-signature denominator.
        clefs: One clef per staff, top staff first.
        staves: Number of staves in the system.
    """

    divisions: int = Field(DIVISIONS, ge=1)
    fifths: int = Field(0, ge=-7, le=7)
    beats: int = Field(4, ge=1)
    beat_type: int = Field(4, ge=1)
    clefs: list[ClefType] = Field(default_factory=list)
    staves: int = Field(1, ge=1)


class Measure(BaseModel):
    """An ordered sequence of events between two bar lines.

    Attributes:
        number: One-based measure number.
        attributes: Attributes block, only set on the first measure of a system.
        events: Notes and backups in document order.
        new_system: Whether the measure starts a new system (line break).
        last: Whether this is the final measure of the score.
    """

    number: int = Field(..., ge=1)
    attributes: MeasureAttributes | None = None
    events: list[Union[Note, Backup]] = Field(default_factory=list)
    new_system: bool = False
    last: bool = False

    @property
    def notes(self) -> list[Note]:
        return [event for event in self.events if isinstance(event, Note)]

    @property
    def is_empty(self) -> bool:
        """A measure stays empty until its first note is added."""
        return not any(isinstance(event, Note) for event in self.events)

    def add_note(self, note: Note) -> None:
        self.events.append(note)

    def add_backup(self, duration: int = MEASURE_DURATION) -> None:
        self.events.append(Backup(duration=duration))


class ScoreDocument(BaseModel):
    """All measures recognized from one page, in reading order."""

    measures: list[Measure] = Field(default_factory=list)

    def add_measure(self, measure: Measure) -> bool:
        """Append a measure unless it holds no notes.

        Args:
            measure: The measure to append.

        Returns:
            True if the measure was appended.
        """
        if measure.is_empty:
            return False
        self.measures.append(measure)
        return True

    @property
    def next_number(self) -> int:
        return len(self.measures) + 1
