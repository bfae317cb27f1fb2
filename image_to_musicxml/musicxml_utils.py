"""MusicXML export of recognized scores.

This module converts a ``ScoreDocument`` into a MusicXML 3.1 partwise
document with a single part. All staves of a system are written as staves of
that part, separated by backups.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from image_to_musicxml.models import (
    Backup,
    Measure,
    MeasureAttributes,
    Note,
    ScoreDocument,
)

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="no"?>'
DOCTYPE = (
    '<!DOCTYPE score-partwise PUBLIC "-//Recordare//DTD MusicXML 3.1 Partwise//EN" '
    '"http://www.musicxml.org/dtds/partwise.dtd">'
)
PART_ID = "P1"
PART_NAME = "Music"

CLEF_SIGNS = {"treble": ("G", 2), "bass": ("F", 4)}


def _text(parent: ET.Element, tag: str, value) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = str(value)
    return element


def build_attributes_element(attributes: MeasureAttributes) -> ET.Element:
    """Build the ``<attributes>`` block of the first measure of a system."""
    element = ET.Element("attributes")
    _text(element, "divisions", attributes.divisions)

    key = ET.SubElement(element, "key")
    _text(key, "fifths", attributes.fifths)
    _text(key, "mode", "major")

    time = ET.SubElement(element, "time")
    _text(time, "beats", attributes.beats)
    _text(time, "beat-type", attributes.beat_type)

    _text(element, "staves", attributes.staves)
    for number, clef in enumerate(attributes.clefs, start=1):
        sign, line = CLEF_SIGNS[clef]
        clef_element = ET.SubElement(element, "clef", number=str(number))
        _text(clef_element, "sign", sign)
        _text(clef_element, "line", line)
    return element


def build_note_element(note: Note) -> ET.Element:
    """Build a ``<note>`` element.

    Args:
        note: Recognized note or rest.

    Returns:
        The element, with children in the order MusicXML requires.
    """
    element = ET.Element("note")
    if note.chord:
        ET.SubElement(element, "chord")

    if note.rest:
        ET.SubElement(element, "rest")
    else:
        pitch = ET.SubElement(element, "pitch")
        _text(pitch, "step", note.step)
        if note.alter != 0:
            _text(pitch, "alter", note.alter)
        _text(pitch, "octave", note.octave)

    _text(element, "duration", note.duration)
    if note.tie is not None:
        ET.SubElement(element, "tie", type=note.tie)
    _text(element, "voice", note.voice)
    _text(element, "type", note.type)
    if note.dotted:
        ET.SubElement(element, "dot")
    if note.accidental is not None:
        _text(element, "accidental", note.accidental)
    _text(element, "staff", note.staff)

    for number, role in enumerate(note.beams, start=1):
        beam = _text(element, "beam", role)
        beam.set("number", str(number))

    if note.tie is not None:
        notations = ET.SubElement(element, "notations")
        ET.SubElement(notations, "tied", type=note.tie)
    return element


def build_backup_element(backup: Backup) -> ET.Element:
    element = ET.Element("backup")
    _text(element, "duration", backup.duration)
    return element


def build_measure_element(measure: Measure) -> ET.Element:
    """Build a ``<measure>`` element with its print, attributes and events."""
    element = ET.Element("measure", number=str(measure.number))
    if measure.new_system:
        ET.SubElement(element, "print", {"new-system": "yes"})
    if measure.attributes is not None:
        element.append(build_attributes_element(measure.attributes))

    for event in measure.events:
        if isinstance(event, Note):
            element.append(build_note_element(event))
        else:
            element.append(build_backup_element(event))

    if measure.last:
        barline = ET.SubElement(element, "barline", location="right")
        _text(barline, "bar-style", "light-heavy")
    return element


def build_score_tree(document: ScoreDocument) -> ET.Element:
    """Build the ``<score-partwise>`` root for a document.

    Args:
        document: Recognized score.

    Returns:
        The root element holding the part list and the single part.
    """
    root = ET.Element("score-partwise", version="3.1")
    part_list = ET.SubElement(root, "part-list")
    score_part = ET.SubElement(part_list, "score-part", id=PART_ID)
    _text(score_part, "part-name", PART_NAME)

    part = ET.SubElement(root, "part", id=PART_ID)
    for measure in document.measures:
        part.append(build_measure_element(measure))
    return root


def render_musicxml(document: ScoreDocument) -> str:
    """Render a document as MusicXML text.

    Args:
        document: Recognized score.

    Returns:
        The XML declaration, the partwise DOCTYPE and the indented score.
    """
    root = build_score_tree(document)
    ET.indent(root, space="\t")
    body = ET.tostring(root, encoding="unicode")
    return "\n".join([XML_DECLARATION, DOCTYPE, body]) + "\n"


def save_musicxml(document: ScoreDocument, path: str | Path) -> Path:
    """Write a document to a MusicXML file.

    Args:
        document: Recognized score.
        path: Output file path; parent directories are created.

    Returns:
        The path written.
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_musicxml(document), encoding="utf-8")
    logger.info(f"Saved {len(document.measures)} measures to {output}")
    return output
