"""Second recognition pass: reading the score stave by stave.

The page is walked system by system, bar by bar and stave by stave. The
components between two bar lines and between the midpoints to the
neighbouring staves are sorted left to right and run through ``BAR_RULES``;
the first rule that consumes a box decides it. Every rule receives a
``StaveScan`` holding the state of the walk (current measure, key signature,
last note) instead of reading it from the recognizer.

Notes get their pitch from the stave geometry and their duration from the
note head shape and the stems, beams and tails found in the first pass.
Accidentals, dots and ties are attached by proximity.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from image_to_musicxml.cache import SubimageCache
from image_to_musicxml.classification import (
    ClassificationContext,
    ClassifiedSymbols,
    classify_components,
)
from image_to_musicxml.models import (
    BoundingBox,
    Measure,
    MeasureAttributes,
    Note,
    RecognitionParams,
    ScoreDocument,
    Stave,
    SymbolAnnotation,
    SymbolKind,
)
from image_to_musicxml.pitch import (
    AlterationState,
    next_key_accidental,
    position_to_pitch,
    position_y,
    staff_position,
)
from image_to_musicxml.symbols import (
    count_peaks,
    find_second_beam,
    find_stem,
    is_beam_shape,
    is_stem_for,
)
from image_to_musicxml.templates import TemplateSet

logger = logging.getLogger(__name__)

MAX_CHORD_SIZE = 15
ACCIDENTAL_DIRECTIONS = {"sharp": 1, "flat": -1}


@dataclass
class SystemState:
    """Key signature and alterations while reading one system.

    Attributes:
        first_stave: Index of the system's top stave.
        stave_count: Number of staves in the system.
        bar_lines: Bar lines of the system, left to right.
        fifths: Key signature recognized so far.
        last_key_x: Centre of the last key-signature accidental, -1 if none.
        alterations: Key and bar alterations.
    """

    first_stave: int
    stave_count: int
    bar_lines: list[BoundingBox]
    fifths: int = 0
    last_key_x: int = -1
    alterations: AlterationState = field(default_factory=AlterationState)


@dataclass
class NoteMarks:
    """Dot, tie and accidental found next to a note head."""

    dotted: bool = False
    tie: str | None = None
    accidental: str | None = None


@dataclass
class StaveScan:
    """State of the left-to-right walk over one stave within one bar.

    Attributes:
        context: Shared recognition geometry.
        symbols: Symbols classified so far.
        system: State of the current system.
        stave: The stave being read.
        stave_index: Index of the stave on the page.
        staff: Staff number within the system, starting at 1.
        measure: Measure receiving the notes.
        clefs: Clef per stave index, shared by the whole run.
        first_measure: Whether no measure has been stored yet.
        pending: Boxes still to be read, left to right.
        last_note_x: Horizontal position of the last note, -1 if none.
        last_type: Type of the last note, empty if none.
        time_signature_seen: Whether this stave's time signature was read.
    """

    context: ClassificationContext
    symbols: ClassifiedSymbols
    system: SystemState
    stave: Stave
    stave_index: int
    staff: int
    measure: Measure
    clefs: dict[int, str]
    first_measure: bool
    pending: list[BoundingBox] = field(default_factory=list)
    last_note_x: int = -1
    last_type: str = ""
    time_signature_seen: bool = False

    @property
    def spacing(self) -> int:
        return self.context.spacing

    @property
    def tolerance(self) -> int:
        return self.context.tolerance

    @property
    def clef(self) -> str | None:
        return self.clefs.get(self.stave_index)

    def line_y(self, index: int) -> int:
        return self.stave.line(index).y_center

    def annotate(self, box: BoundingBox, kind: SymbolKind) -> None:
        self.symbols.annotate(box, kind)


BarRule = Callable[[StaveScan, BoundingBox], bool]


def _clef(scan: StaveScan, box: BoundingBox) -> bool:
    s = scan.spacing
    if box.x_start - scan.stave.x_start > 1.5 * s:
        return False
    if box.height > 6 * s:
        clef = "treble"
    elif box.height > 3 * s:
        clef = "bass"
    else:
        return False
    scan.clefs[scan.stave_index] = clef
    scan.annotate(box, SymbolKind.CLEF)
    return True


def _extends_key_signature(scan: StaveScan, box: BoundingBox, accidental: str) -> bool:
    """Whether an accidental continues the key signature, recording it if so.

    The first accidental must sit 3.5 to 5.5 staff spaces after the stave
    start, every further one within 1.5 staff spaces of the previous one, and
    each at the staff position of the next sharp or flat in the circle of
    fifths.
    """
    s = scan.spacing
    system = scan.system
    if system.fifths == 0:
        if not 3.5 * s < box.x_center - scan.stave.x_start < 5.5 * s:
            return False
    elif box.x_center - system.last_key_x >= 1.5 * s:
        return False

    expected = next_key_accidental(system.fifths, accidental, scan.clef)
    if expected is None:
        return False
    step, position = expected
    if abs(box.y_center - position_y(position, scan.stave, s)) >= scan.tolerance:
        return False
    system.alterations.key[step] = ACCIDENTAL_DIRECTIONS[accidental]
    return True


def _place_accidental(scan: StaveScan, box: BoundingBox, accidental: str) -> None:
    system = scan.system
    if _extends_key_signature(scan, box, accidental):
        system.fifths += ACCIDENTAL_DIRECTIONS[accidental]
        system.last_key_x = box.x_center
        logger.debug(f"Key signature extended to {system.fifths} fifths")
    elif box.x_center > system.last_key_x + scan.spacing:
        if accidental == "sharp":
            scan.symbols.sharps.append(box)
        else:
            scan.symbols.flats.append(box)


def _is_sharp_stroke_size(box: BoundingBox, spacing: int) -> bool:
    return 0.8 * spacing < box.width < 1.5 * spacing and box.height < spacing


def _sharp(scan: StaveScan, box: BoundingBox) -> bool:
    """Pair the two thick strokes of a sharp into one accidental."""
    context = scan.context
    if not _is_sharp_stroke_size(box, scan.spacing):
        return False
    if not is_beam_shape(context.mask(box), scan.spacing):
        return False
    if context.ratio(box) >= context.ratio_threshold:
        return False

    strokes = scan.symbols.sharp_beams
    strokes.append(box)
    scan.annotate(box, SymbolKind.SHARP)
    for other in strokes:
        if other is box:
            continue
        if (
            abs(box.x_center - other.x_center) < scan.tolerance
            and abs(box.y_center - other.y_center) < 1.5 * scan.spacing
        ):
            sharp = BoundingBox(
                x_start=min(box.x_start, other.x_start),
                y_start=min(box.y_start, other.y_start),
                x_end=max(box.x_end, other.x_end),
                y_end=max(box.y_end, other.y_end),
                label=box.label,
            )
            strokes.remove(other)
            strokes.remove(box)
            _place_accidental(scan, sharp, "sharp")
            break
    return True


def _flat(scan: StaveScan, box: BoundingBox) -> bool:
    s = scan.spacing
    context = scan.context
    if _is_sharp_stroke_size(box, s):
        return False
    if not (0.9 * s < box.height < 1.5 * s and 0.5 * s < box.width < 1.2 * s):
        return False
    hole = context.region_ratio(
        box, 0, box.height // 3, box.width // 2, box.height // 3
    )
    if hole >= 1 - context.ratio_threshold:
        return False
    _place_accidental(scan, box, "flat")
    scan.annotate(box, SymbolKind.FLAT)
    return True


def _natural(scan: StaveScan, box: BoundingBox) -> bool:
    s = scan.spacing
    if not (0.5 * s < box.width < 0.9 * s and box.height < 0.8 * s):
        return False
    if not is_beam_shape(scan.context.mask(box), s):
        return False
    scan.symbols.natural_beams.append(box)
    scan.annotate(box, SymbolKind.NATURAL)
    return True


def _time_signature(scan: StaveScan, box: BoundingBox) -> bool:
    """Recognize a 4/4 or common-time signature at the start of the score."""
    s = scan.spacing
    if (
        scan.time_signature_seen
        or box.width <= s
        or scan.stave_index >= scan.system.stave_count
        or not scan.first_measure
    ):
        return False
    whole = (
        abs(box.y_start - scan.line_y(0)) < s // 4
        and abs(scan.line_y(4) - box.y_end) < s // 4
    )
    common = (
        abs(box.y_start - scan.line_y(1)) < s // 4
        and abs(scan.line_y(3) - box.y_end) < s // 4
    )
    if not (whole or common):
        return False
    scan.time_signature_seen = True
    scan.annotate(box, SymbolKind.TIME_SIGNATURE)
    return True


def _is_dotted(scan: StaveScan, box: BoundingBox) -> bool:
    s = scan.spacing
    return any(
        dot.x_start > box.x_end
        and dot.x_start - box.x_end < 3 * s // 4
        and abs(box.y_center - dot.y_center) < s
        for dot in scan.symbols.dots
    )


def _tie_type(scan: StaveScan, box: BoundingBox) -> str | None:
    s = scan.spacing
    for tie in scan.symbols.ties:
        if abs(tie.y_center - box.y_center) < 2 * s and abs(tie.x_center - box.x_center) < 2 * s:
            if tie.x_start > box.x_start:
                return "start"
            if box.x_start > tie.x_start:
                return "stop"
    return None


def _accidental(scan: StaveScan, box: BoundingBox) -> str | None:
    """Find the sharp, flat or natural printed just before a note head.

    A sharp wins over a flat, and a complete natural stroke pair overrides
    both.
    """
    s = scan.spacing
    symbols = scan.symbols
    accidental = None
    for kind, glyphs in (("sharp", symbols.sharps), ("flat", symbols.flats)):
        if any(
            glyph.x_end < box.x_start
            and box.x_start - glyph.x_end < 2 * s
            and abs(box.y_center - glyph.y_center) < scan.tolerance
            for glyph in glyphs
        ):
            accidental = kind
            break

    top = bottom = False
    for stroke in symbols.natural_beams:
        if not (box.x_start > stroke.x_end and box.x_start - stroke.x_end < 2 * s):
            continue
        if 0 < box.y_center - stroke.y_center < 0.8 * s:
            top = True
        if 0 < stroke.y_center - box.y_center < 0.8 * s:
            bottom = True
    if top and bottom:
        return "natural"
    return accidental


def _note_marks(scan: StaveScan, box: BoundingBox) -> NoteMarks:
    return NoteMarks(
        dotted=_is_dotted(scan, box),
        tie=_tie_type(scan, box),
        accidental=_accidental(scan, box),
    )


def _rest_type(scan: StaveScan, box: BoundingBox) -> str | None:
    s = scan.spacing
    context = scan.context
    templates = context.templates
    w, h = box.width, box.height
    half_space = s / 2

    if s < w < 2 * s and s // 2 < h < s:
        if abs(box.y_start - scan.line_y(1)) < scan.tolerance:
            if context.ratio(box) > context.ratio_threshold:
                return "whole"
        elif abs(box.y_end - scan.line_y(2)) < scan.tolerance:
            if context.ratio(box) > context.ratio_threshold:
                return "half"
    elif s < w < 1.3 * s and 2.5 * s < h < 3.5 * s:
        if abs(box.y_center - scan.line_y(2)) < half_space and templates.is_crotchet_rest(
            context.mask(box)
        ):
            return "quarter"
    elif 2 * s // 3 < w < 1.5 * s and 1.3 * s < h < 2 * s:
        if (
            abs(box.y_start - scan.line_y(1)) < half_space
            and abs(box.y_end - scan.line_y(3)) < half_space
            and templates.is_quaver_rest(context.mask(box))
        ):
            return "eighth"
    elif s < w < 2 * s and 2.3 * s < h < 3 * s:
        if (
            abs(box.y_start - scan.line_y(1)) < half_space
            and abs(box.y_end - scan.line_y(4)) < half_space
            and templates.is_semiquaver_rest(context.mask(box))
        ):
            return "16th"
    return None


def _rest(scan: StaveScan, box: BoundingBox) -> bool:
    rest_type = _rest_type(scan, box)
    if rest_type is None:
        return False
    note = Note.rest_of(scan.staff, rest_type, _is_dotted(scan, box), scan.staff)
    scan.measure.add_note(note)
    scan.annotate(box, SymbolKind.REST)
    return True


def chord_size(height: int, spacing: int) -> int:
    """Number of note heads stacked in a component of the given height.

    Returns:
        The first ``n`` in 1..15 whose expected height range contains
        ``height``, or 0 if none does.
    """
    for n in range(MAX_CHORD_SIZE):
        if n * spacing + 4 * spacing // 5 < height < n * spacing + 1.4 * spacing:
            return n + 1
    return 0


def split_chord(box: BoundingBox, count: int) -> list[BoundingBox]:
    """Cut a chord component into ``count`` equal horizontal slices, top first.

    This assumes equally spaced note heads and is only an approximation for
    chords with gaps or seconds.
    """
    parts = []
    for n in range(count):
        y_start = box.y_start + n * box.height // count
        y_end = max(y_start, box.y_start + (n + 1) * box.height // count - 1)
        parts.append(
            BoundingBox(
                x_start=box.x_start,
                y_start=y_start,
                x_end=box.x_end,
                y_end=y_end,
                label=box.label,
            )
        )
    return parts


def _is_tailed(scan: StaveScan, box: BoundingBox) -> bool:
    s = scan.spacing
    for tail in scan.symbols.tails:
        below_tail = (
            box.y_start > tail.y_end - s
            and box.y_start - tail.y_end < 4 * s
            and abs(box.x_end - tail.x_start) < 3 * s // 4
        )
        above_tail = (
            tail.y_start > box.y_end - s
            and tail.y_start - box.y_end < 4 * s
            and abs(box.x_start - tail.x_start) < 3 * s // 4
        )
        if below_tail or above_tail:
            return True
    return False


def beam_roles(scan: StaveScan, box: BoundingBox) -> list[str]:
    """Beam roles of a filled note head, one per beam reaching its stem.

    Args:
        scan: Current stave scan.
        box: Note head box.

    Returns:
        Up to two roles; the second comes from ``find_second_beam`` when only
        one beam component touches the stem.
    """
    s = scan.spacing
    context = scan.context
    roles: list[str] = []
    stem = beam = None
    for candidate in scan.symbols.beams:
        is_hook = candidate in scan.symbols.hooks
        for line in context.vertical_lines:
            if not (
                is_stem_for(box, line, s)
                and candidate.y_end > line.y_start - s // 2
                and candidate.y_start < line.y_end + s // 2
            ):
                continue
            if abs(line.x_center - candidate.x_start) < s:
                role = "forward hook" if is_hook else "begin"
            elif abs(line.x_center - candidate.x_end) < s:
                role = "backward hook" if is_hook else "end"
            elif candidate.x_start < line.x_center < candidate.x_end:
                role = "continue"
            else:
                continue
            roles.append(role)
            stem, beam = line, candidate
            break

    if len(roles) == 1:
        second = find_second_beam(context.mask(beam), beam, stem, s)
        if second is not None:
            roles.append(second)
    return roles[:2]


def _emit_note(
    scan: StaveScan,
    box: BoundingBox,
    note_type: str,
    marks: NoteMarks,
    chord: bool,
    beams: list[str] | None = None,
    x: int | None = None,
) -> bool:
    """Add a note unless it duplicates a differently typed note just before it.

    Args:
        scan: Current stave scan.
        box: Note head box.
        note_type: Duration class of the note.
        marks: Dot, tie and accidental of the note.
        chord: Whether the note joins the previous one.
        beams: Beam roles of the note.
        x: Horizontal position recorded for chord detection, the box centre
            by default.

    Returns:
        True if the note was added.
    """
    s = scan.spacing
    if (
        abs(scan.last_note_x - box.x_center) < 2 * s
        and scan.last_type
        and scan.last_type != note_type
    ):
        scan.annotate(box, SymbolKind.DISCARDED)
        return False

    position = staff_position(box.y_center, scan.stave, s)
    step, octave, position = position_to_pitch(position, scan.clef)
    alter = scan.system.alterations.resolve(step, position, marks.accidental)
    note = Note(
        step=step,
        alter=alter,
        octave=octave,
        tie=marks.tie,
        voice=scan.staff,
        type=note_type,
        dotted=marks.dotted,
        staff=scan.staff,
        beams=tuple(beams or ()),
        accidental=marks.accidental,
        chord=chord,
    )
    scan.measure.add_note(note)
    scan.last_note_x = box.x_center if x is None else x
    scan.last_type = note_type
    scan.annotate(box, SymbolKind.NOTE)
    return True


def _is_beside_ledger_lines(scan: StaveScan, box: BoundingBox, mask: np.ndarray) -> bool:
    s = scan.spacing
    outside = (
        box.y_center < scan.line_y(0) - 3 * s // 4
        or box.y_center > scan.line_y(4) + 3 * s // 4
    )
    if not outside:
        return True
    return count_peaks(mask, "x", scan.tolerance) in (1, 2)


def _semibreve_half(scan: StaveScan, box: BoundingBox, marks: NoteMarks, chord: bool) -> bool:
    """Read one side of a semibreve split in two by a removed ledger line."""
    s = scan.spacing
    for half in scan.symbols.semibreve_halves:
        gap = max(box.x_start - half.x_end, half.x_start - box.x_end)
        if gap < s // 5 and abs(half.y_center - box.y_center) < scan.tolerance:
            scan.annotate(box, SymbolKind.DISCARDED)
            return True

    note_x = box.x_center + s // 2
    if abs(scan.last_note_x - note_x) < scan.tolerance:
        chord = True
    if _emit_note(scan, box, "whole", marks, chord, x=note_x):
        scan.symbols.semibreve_halves.append(box)
    return True


def _note(scan: StaveScan, box: BoundingBox) -> bool:
    """Recognize note heads, splitting chords and deriving durations.

    Always consumes the box: whatever is not a note head is discarded.
    """
    s = scan.spacing
    context = scan.context

    count = chord_size(box.height, s)
    if count == 0:
        scan.annotate(box, SymbolKind.DISCARDED)
        return True
    if count > 1:
        # bottom note first
        scan.pending[0:0] = reversed(split_chord(box, count))
        return True

    mask = context.mask(box)
    if not _is_beside_ledger_lines(scan, box, mask):
        scan.annotate(box, SymbolKind.DISCARDED)
        return True

    marks = _note_marks(scan, box)
    chord = False
    w, h = box.width, box.height
    if 0.9 * s < h < 1.3 * s:
        if s < w < 3 * s:
            middle = context.region_ratio(box, w // 3, h // 3, w // 3, h // 3)
            if middle > context.ratio_threshold:
                if abs(scan.last_note_x - box.x_center) < s // 2:
                    chord = True
                if _is_tailed(scan, box):
                    _emit_note(scan, box, "eighth", marks, chord)
                    return True
                roles = beam_roles(scan, box)
                if roles:
                    note_type = "eighth" if len(roles) == 1 else "16th"
                    _emit_note(scan, box, note_type, marks, chord, beams=roles)
                    return True
                if find_stem(box, context.vertical_lines, s) is not None:
                    _emit_note(scan, box, "quarter", marks, chord)
                    return True

            peaks = count_peaks(mask, "y", scan.tolerance)
            if peaks in (0, 1) and find_stem(box, context.vertical_lines, s) is not None:
                if abs(scan.last_note_x - box.x_center) < s // 2:
                    chord = True
                _emit_note(scan, box, "half", marks, chord)
                return True
            if peaks == 2:
                if abs(scan.last_note_x - box.x_center) < s // 2:
                    chord = True
                _emit_note(scan, box, "whole", marks, chord)
                return True

        if 2 * s // 3 < w < 1.3 * s and count_peaks(mask, "y", scan.tolerance) == 1:
            return _semibreve_half(scan, box, marks, chord)

    scan.annotate(box, SymbolKind.DISCARDED)
    return True


BAR_RULES: tuple[tuple[str, BarRule], ...] = (
    ("clef", _clef),
    ("sharp", _sharp),
    ("flat", _flat),
    ("natural", _natural),
    ("time signature", _time_signature),
    ("rest", _rest),
    ("note", _note),
)


class SymbolRecognizer:
    """Turns the labelled components of a page into a score.

    Attributes:
        context: Geometry shared by all rules.
        boxes: Component bounding boxes.
        staves_in_system: Number of staves joined by the system bar lines.
        params: Recognition parameters.
    """

    def __init__(
        self,
        staves: list[Stave],
        bar_lines: list[BoundingBox],
        vertical_lines: list[BoundingBox],
        spacing: int,
        components: np.ndarray,
        boxes: list[BoundingBox],
        templates: TemplateSet,
        params: RecognitionParams | None = None,
    ):
        self.params = params or RecognitionParams()
        self.context = ClassificationContext(
            staves=staves,
            bar_lines=bar_lines,
            vertical_lines=vertical_lines,
            spacing=spacing,
            subimages=SubimageCache(components),
            templates=templates,
            ratio_threshold=self.params.pixel_ratio_threshold,
        )
        self.boxes = boxes
        self.clefs: dict[int, str] = {}
        self.staves_in_system = self._count_staves_in_system()

    def _count_staves_in_system(self) -> int:
        """Count the staves the first bar line reaches down to."""
        staves = self.context.staves
        bar_lines = self.context.bar_lines
        if not bar_lines:
            return 1
        for i, stave in enumerate(staves):
            if abs(bar_lines[0].y_end - stave.bottom.y_end) < self.context.spacing // 2:
                return i + 1
        logger.warning("First bar line does not end on a stave, assuming one stave per system")
        return 1

    def recognize(self) -> tuple[ScoreDocument, list[SymbolAnnotation]]:
        """Run both recognition passes.

        Returns:
            Tuple of (score document, symbol annotations in recognition order).
        """
        document = ScoreDocument()
        context = self.context
        if not context.staves or not context.bar_lines:
            logger.warning("No staves or bar lines found, nothing to recognize")
            return document, []

        try:
            symbols = classify_components(self.boxes, context)
            for first in range(0, len(context.staves), self.staves_in_system):
                self._recognize_system(document, symbols, first)
            if document.measures:
                document.measures[-1].last = True
        finally:
            logger.debug(
                f"Subimage cache: {context.subimages.hits} hits, "
                f"{context.subimages.misses} misses"
            )
            context.subimages.clear()

        logger.info(
            f"Recognized {len(document.measures)} measures, "
            f"{sum(len(m.notes) for m in document.measures)} notes and rests"
        )
        return document, symbols.annotations

    def _recognize_system(
        self, document: ScoreDocument, symbols: ClassifiedSymbols, first: int
    ) -> None:
        context = self.context
        tolerance = context.tolerance
        top = context.staves[first]
        system = SystemState(
            first_stave=first,
            stave_count=min(self.staves_in_system, len(context.staves) - first),
            bar_lines=[
                bar
                for bar in context.bar_lines
                if abs(bar.y_start - top.top.y_start) < tolerance
            ],
        )
        first_measure_index = len(document.measures)
        new_system = bool(document.measures)

        for j, bar in enumerate(system.bar_lines):
            if abs(bar.x_center - top.x_start) < 3 * context.spacing:
                continue
            left_bound = top.x_start if j == 0 else system.bar_lines[j - 1].x_center

            measure = Measure(number=document.next_number, new_system=new_system)
            for k in range(system.stave_count):
                scan = StaveScan(
                    context=context,
                    symbols=symbols,
                    system=system,
                    stave=context.staves[first + k],
                    stave_index=first + k,
                    staff=k + 1,
                    measure=measure,
                    clefs=self.clefs,
                    first_measure=not document.measures,
                )
                scan.pending = self._boxes_in_bar(
                    symbols.remaining, first + k, left_bound, bar.x_center
                )
                system.alterations.reset_bar()
                self._scan_stave(scan)
                measure.add_backup()

            if document.add_measure(measure):
                new_system = False

        clefs = []
        for k in range(system.stave_count):
            clef = self.clefs.get(first + k)
            if clef is None:
                logger.warning(f"No clef recognized on stave {first + k}")
            else:
                clefs.append(clef)

        if first_measure_index < len(document.measures):
            document.measures[first_measure_index].attributes = MeasureAttributes(
                fifths=system.fifths,
                beats=self.params.beats,
                beat_type=self.params.beat_type,
                clefs=clefs,
                staves=system.stave_count,
            )
        else:
            logger.warning(f"No measures recognized in the system starting at stave {first}")

    def _boxes_in_bar(
        self, boxes: list[BoundingBox], index: int, left: int, right: int
    ) -> list[BoundingBox]:
        """Select the boxes belonging to one stave between two bar lines.

        The vertical band reaches halfway to the neighbouring staves, or five
        staff spaces beyond the outermost staves of the page.
        """
        staves = self.context.staves
        s = self.context.spacing
        stave = staves[index]
        if index == 0:
            upper = stave.top.y_start - 5 * s
        else:
            upper = (stave.top.y_start + staves[index - 1].bottom.y_end) // 2
        if index == len(staves) - 1:
            lower = stave.bottom.y_end + 5 * s
        else:
            lower = (stave.bottom.y_end + staves[index + 1].top.y_start) // 2

        selected = [
            box
            for box in boxes
            if upper < box.y_center < lower and box.x_start > left and box.x_end < right
        ]
        return sorted(selected, key=lambda box: box.x_start)

    def _scan_stave(self, scan: StaveScan) -> None:
        while scan.pending:
            box = scan.pending.pop(0)
            for _, rule in BAR_RULES:
                if rule(scan, box):
                    break
