"""Three-way pitch model.

- :class:`Pitch` is the semantic identity (spelling preserved: C# != Db).
- :class:`NotatedPitch` adds how the accidental is engraved.
- :class:`PlaybackPitch` is the acoustic rendering (MIDI number plus an
  optional microtonal deviation in cents).

Middle C = C4 = MIDI 60.
"""

from __future__ import annotations

from dataclasses import KW_ONLY, dataclass
from enum import Enum

from mnote.errors import ValidationError


class Step(Enum):
    """Diatonic note name."""

    C = "C"
    D = "D"
    E = "E"
    F = "F"
    G = "G"
    A = "A"
    B = "B"

    @property
    def index(self) -> int:
        return _STEP_ORDER.index(self)


_STEP_ORDER: tuple[Step, ...] = tuple(Step)

# Semitone offsets for natural notes (C-based)
_STEP_SEMITONES: dict[Step, int] = {
    Step.C: 0,
    Step.D: 2,
    Step.E: 4,
    Step.F: 5,
    Step.G: 7,
    Step.A: 9,
    Step.B: 11,
}

_ALTER_SYMBOLS: dict[int, str] = {-2: "bb", -1: "b", 0: "", 1: "#", 2: "##"}


def semitone(step: Step) -> int:
    """Semitone offset of *step* above C."""
    return _STEP_SEMITONES[step]


def step_from_index(index: int) -> Step:
    return _STEP_ORDER[index % 7]


class AccidentalDisplay(Enum):
    """How an accidental is rendered, independent of the pitch value."""

    NONE = "none"  # implied by key signature
    SHOW = "show"
    COURTESY = "courtesy"  # parenthesised
    EDITORIAL = "editorial"  # bracketed


@dataclass(frozen=True)
class Pitch:
    """Spelled pitch; ``alter`` and ``octave`` are keyword-only."""

    step: Step
    _: KW_ONLY
    alter: int = 0  # -2 (double flat) to +2 (double sharp)
    octave: int  # 0-9, 4 = middle C octave

    def __post_init__(self) -> None:
        if not isinstance(self.step, Step):
            raise ValidationError(f"Invalid step: {self.step!r}")
        if not -2 <= self.alter <= 2:
            raise ValidationError(f"alter {self.alter} out of range (-2..2)")
        if not 0 <= self.octave <= 9:
            raise ValidationError(f"octave {self.octave} out of range (0..9)")

    @property
    def midi_pitch(self) -> int:
        return (self.octave + 1) * 12 + semitone(self.step) + self.alter

    @property
    def diatonic_index(self) -> int:
        """Steps above C0, ignoring the alteration."""
        return self.octave * 7 + self.step.index

    def __str__(self) -> str:
        return f"{self.step.value}{_ALTER_SYMBOLS[self.alter]}{self.octave}"


@dataclass(frozen=True)
class NotatedPitch:
    pitch: Pitch
    display: AccidentalDisplay = AccidentalDisplay.NONE


@dataclass(frozen=True)
class PlaybackPitch:
    midi_pitch: int  # 0-127
    cents: float | None = None  # deviation from equal temperament

    def __post_init__(self) -> None:
        if not 0 <= self.midi_pitch <= 127:
            raise ValidationError(
                f"MIDI pitch {self.midi_pitch} out of range (0-127)"
            )

    @classmethod
    def from_pitch(cls, pitch: Pitch, cents: float | None = None) -> PlaybackPitch:
        return cls(midi_pitch=pitch.midi_pitch, cents=cents)


def pitch_agrees(notated: NotatedPitch, playback: PlaybackPitch) -> bool:
    """True when *playback* is consistent with *notated*.

    The MIDI number must match the spelled pitch unless a microtonal
    override is recorded through ``cents``.
    """
    if playback.cents is not None:
        return True
    return notated.pitch.midi_pitch == playback.midi_pitch


def pitch_pair(
    pitch: Pitch,
    display: AccidentalDisplay = AccidentalDisplay.NONE,
    cents: float | None = None,
) -> tuple[NotatedPitch, PlaybackPitch]:
    """Build the matching (notated, playback) pair for *pitch*."""
    return NotatedPitch(pitch, display), PlaybackPitch.from_pitch(pitch, cents)
