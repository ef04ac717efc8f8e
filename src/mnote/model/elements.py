"""Musical elements that populate a voice slice.

The four element kinds form a tagged union via a ``kind`` string
discriminant over the shared {id, voice, staff} capability.  Code that
needs per-kind behaviour dispatches with ``match``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum

from mnote.errors import ValidationError
from mnote.model.duration import WrittenDuration
from mnote.model.ids import (
    MAX_VOICE,
    ChordId,
    GraceGroupId,
    NoteId,
    RestId,
    TickDuration,
    TieId,
    VoiceId,
)
from mnote.model.pitch import NotatedPitch, PlaybackPitch, pitch_agrees


class Articulation(Enum):
    STACCATO = "staccato"
    STACCATISSIMO = "staccatissimo"
    TENUTO = "tenuto"
    ACCENT = "accent"
    MARCATO = "marcato"
    FERMATA = "fermata"


class GraceType(Enum):
    ACCIACCATURA = "acciaccatura"  # no time stolen
    APPOGGIATURA = "appoggiatura"  # steals time from the principal note


def _check_placement(voice: int, staff: int) -> None:
    if not 1 <= voice <= MAX_VOICE:
        raise ValidationError(f"voice {voice} out of range (1..{MAX_VOICE})")
    if staff < 0:
        raise ValidationError(f"staff {staff} must be non-negative")


def _check_velocity(velocity: int) -> None:
    if not 0 <= velocity <= 127:
        raise ValidationError(f"velocity {velocity} out of range (0-127)")


@dataclass(frozen=True)
class Note:
    id: NoteId
    pitch: NotatedPitch
    playback_pitch: PlaybackPitch
    written: WrittenDuration
    voice: VoiceId = 1
    staff: int = 0
    velocity: int = 80
    articulations: frozenset[Articulation] = frozenset()
    tie_start: TieId | None = None
    tie_end: TieId | None = None
    ticks: TickDuration | None = None  # None -> derived from ``written``
    kind: str = field(default="note", init=False)

    def __post_init__(self) -> None:
        _check_placement(self.voice, self.staff)
        _check_velocity(self.velocity)
        if not pitch_agrees(self.pitch, self.playback_pitch):
            raise ValidationError(
                f"Playback pitch {self.playback_pitch.midi_pitch} disagrees with "
                f"{self.pitch.pitch} and no cents override is recorded"
            )
        if self.ticks is None:
            object.__setattr__(self, "ticks", self.written.ticks)
        elif self.ticks < 0:
            raise ValidationError(f"ticks {self.ticks} must be non-negative")


@dataclass(frozen=True)
class Chord:
    id: ChordId
    pitches: tuple[NotatedPitch, ...]
    playback_pitches: tuple[PlaybackPitch, ...]
    written: WrittenDuration
    voice: VoiceId = 1
    staff: int = 0
    velocity: int = 80
    articulations: frozenset[Articulation] = frozenset()
    ticks: TickDuration | None = None
    kind: str = field(default="chord", init=False)

    def __post_init__(self) -> None:
        _check_placement(self.voice, self.staff)
        _check_velocity(self.velocity)
        if not self.pitches:
            raise ValidationError("A chord needs at least one pitch")
        if len(self.pitches) != len(self.playback_pitches):
            raise ValidationError("Chord pitch and playback lists differ in length")
        for notated, playback in zip(self.pitches, self.playback_pitches):
            if not pitch_agrees(notated, playback):
                raise ValidationError(
                    f"Playback pitch {playback.midi_pitch} disagrees with {notated.pitch}"
                )
        if self.ticks is None:
            object.__setattr__(self, "ticks", self.written.ticks)


@dataclass(frozen=True)
class Rest:
    id: RestId
    written: WrittenDuration
    voice: VoiceId = 1
    staff: int = 0
    is_measure_rest: bool = False
    ticks: TickDuration | None = None
    kind: str = field(default="rest", init=False)

    def __post_init__(self) -> None:
        _check_placement(self.voice, self.staff)
        if self.ticks is None:
            object.__setattr__(self, "ticks", self.written.ticks)


@dataclass(frozen=True)
class GraceGroup:
    """Grace notes attached to a principal note.

    The notes carry zero ticks; how much time an appoggiatura takes from
    its principal note is decided at playback expansion.
    """

    id: GraceGroupId
    notes: tuple[Note, ...]
    principal_note_id: NoteId
    grace_type: GraceType = GraceType.ACCIACCATURA
    kind: str = field(default="grace", init=False)

    def __post_init__(self) -> None:
        if not self.notes:
            raise ValidationError("A grace group needs at least one note")
        for note in self.notes:
            if note.ticks != 0:
                raise ValidationError(f"Grace note {note.id} must have zero ticks")

    @property
    def voice(self) -> VoiceId:
        return self.notes[0].voice

    @property
    def staff(self) -> int:
        return self.notes[0].staff

    @property
    def ticks(self) -> TickDuration:
        return 0


Element = Note | Chord | Rest | GraceGroup


def element_ticks(element: Element) -> TickDuration:
    """Time the element occupies in its voice."""
    match element:
        case Note() | Chord() | Rest():
            return element.ticks
        case GraceGroup():
            return 0
    raise TypeError(f"Not a musical element: {element!r}")


def element_note_ids(element: Element) -> Iterator[NoteId]:
    """Ids of the individual notes inside *element* (including itself)."""
    match element:
        case Note():
            yield element.id
        case GraceGroup():
            for note in element.notes:
                yield note.id
        case Chord() | Rest():
            return


def grace_note(note: Note) -> Note:
    """Copy of *note* suitable for a grace group (zero ticks)."""
    return replace(note, ticks=0)
