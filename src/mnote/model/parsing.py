"""String parsers for pitches and written durations.

Supported pitch formats
-----------------------
- Note name with octave: ``C4``, ``D#5``, ``Bb3``, ``F##4``
- MIDI number: ``midi:60`` (sharps are used for black keys)

Supported duration formats
--------------------------
- Named: ``whole``, ``half``, ``quarter``, ``eighth``, ``sixteenth``,
  ``32nd``, ``64th``
- Aliases: ``1n``, ``2n``, ``4n``, ``8n``, ``16n``, ``32n``, ``64n``
- Modifiers: ``dotted-quarter``, ``double-dotted-half``,
  ``triple-dotted-whole``, ``triplet-eighth``
"""

from __future__ import annotations

import re

from mnote.errors import ValidationError
from mnote.model.duration import NoteValue, TupletRef, WrittenDuration
from mnote.model.ids import new_id
from mnote.model.pitch import Pitch, Step

# Accidental offsets
_ACCIDENTAL_OFFSETS: dict[str, int] = {
    "": 0,
    "#": 1,
    "b": -1,
    "##": 2,
    "bb": -2,
}

# Regex: note name (A-G), optional accidental (##, bb, #, b), octave
_PITCH_RE = re.compile(r"^([A-Ga-g])(##|bb|#|b)?(\d)$")

# MIDI number mod 12 -> (step, alter), sharps for black keys
_MIDI_TO_NOTE: list[tuple[Step, int]] = [
    (Step.C, 0),
    (Step.C, 1),
    (Step.D, 0),
    (Step.D, 1),
    (Step.E, 0),
    (Step.F, 0),
    (Step.F, 1),
    (Step.G, 0),
    (Step.G, 1),
    (Step.A, 0),
    (Step.A, 1),
    (Step.B, 0),
]

_DURATION_NAMES: dict[str, NoteValue] = {v.value: v for v in NoteValue}

_DURATION_ALIASES: dict[str, str] = {
    "1n": "whole",
    "2n": "half",
    "4n": "quarter",
    "8n": "eighth",
    "16n": "sixteenth",
    "32n": "32nd",
    "64n": "64th",
}

_DOT_PREFIXES: tuple[tuple[str, int], ...] = (
    ("triple-dotted-", 3),
    ("double-dotted-", 2),
    ("dotted-", 1),
)


def parse_pitch(s: str) -> Pitch:
    """Parse a pitch string into a :class:`Pitch`.

    Raises
    ------
    ValidationError
        If the string cannot be parsed as a valid pitch.
    """
    if s.startswith("midi:"):
        try:
            midi_number = int(s[5:])
        except ValueError:
            raise ValidationError(f"Invalid MIDI number in '{s}'")
        return pitch_from_midi(midi_number)

    m = _PITCH_RE.match(s)
    if not m:
        raise ValidationError(f"Cannot parse pitch: '{s}'")

    step = Step(m.group(1).upper())
    alter = _ACCIDENTAL_OFFSETS[m.group(2) or ""]
    return Pitch(step=step, alter=alter, octave=int(m.group(3)))


def pitch_from_midi(midi_number: int) -> Pitch:
    """Create a Pitch from a raw MIDI number, using sharps for black keys."""
    if not 12 <= midi_number <= 127:
        raise ValidationError(
            f"MIDI number {midi_number} has no spelling in octaves 0-9"
        )
    step, alter = _MIDI_TO_NOTE[midi_number % 12]
    return Pitch(step=step, alter=alter, octave=midi_number // 12 - 1)


def parse_duration(s: str) -> WrittenDuration:
    """Parse a duration string into a :class:`WrittenDuration`.

    ``triplet-`` wraps the value in a fresh 3:2 tuplet reference.
    """
    name = s.strip().lower()
    dots = 0
    tuplet: TupletRef | None = None

    if name.startswith("triplet-"):
        tuplet = TupletRef(id=new_id(), actual=3, normal=2)
        name = name[8:]
    for prefix, count in _DOT_PREFIXES:
        if name.startswith(prefix):
            dots = count
            name = name[len(prefix):]
            break

    name = _DURATION_ALIASES.get(name, name)
    base = _DURATION_NAMES.get(name)
    if base is None:
        raise ValidationError(f"Unknown duration: '{s}'")
    return WrittenDuration(base=base, dots=dots, tuplet=tuplet)
