"""Score, Measure, Segment and VoiceSlice.

The score is a tree keyed by tick and voice: measures hold segments, a
segment maps voice ids to voice slices, a voice slice lists elements.
Slurs and ties live in a separate :class:`Spanners` collection and refer
to notes by id only.

All timing is stored as absolute ticks.  Every class here is immutable;
the :mod:`mnote.model.mutable` working copy produces new instances.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property

from mnote.errors import ValidationError
from mnote.model.elements import Element, GraceGroup, Note, element_ticks
from mnote.model.ids import (
    TICKS_PER_QUARTER,
    EntityId,
    MeasureId,
    NoteId,
    PartId,
    ScoreId,
    SlurId,
    TickDuration,
    TickPosition,
    TieId,
    VoiceId,
    new_id,
)
from mnote.model.timing import ticks_per_measure


# ---------------------------------------------------------------------------
# Signatures, clefs, tempo
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeSignature:
    beats: int
    beat_type: int  # actual value (4, not power-of-2 exponent)

    def __post_init__(self) -> None:
        if self.beats <= 0:
            raise ValidationError(f"beats {self.beats} must be positive")
        if self.beat_type not in (1, 2, 4, 8, 16, 32, 64):
            raise ValidationError(f"beat type {self.beat_type} is not a power of two")

    @property
    def ticks_per_measure(self) -> int:
        return ticks_per_measure(self.beats, self.beat_type)

    def __str__(self) -> str:
        return f"{self.beats}/{self.beat_type}"


class KeyMode(Enum):
    MAJOR = "major"
    MINOR = "minor"


@dataclass(frozen=True)
class KeySignature:
    fifths: int  # -7 (7 flats) to +7 (7 sharps)
    mode: KeyMode = KeyMode.MAJOR

    def __post_init__(self) -> None:
        if not -7 <= self.fifths <= 7:
            raise ValidationError(f"fifths {self.fifths} out of range (-7..7)")


class ClefType(Enum):
    TREBLE = "treble"
    BASS = "bass"
    ALTO = "alto"
    TENOR = "tenor"
    PERCUSSION = "percussion"


@dataclass(frozen=True)
class Clef:
    type: ClefType
    line: int  # staff line 1-5, bottom to top

    def __post_init__(self) -> None:
        if not 1 <= self.line <= 5:
            raise ValidationError(f"clef line {self.line} out of range (1..5)")


TREBLE_CLEF = Clef(ClefType.TREBLE, 2)
BASS_CLEF = Clef(ClefType.BASS, 4)
ALTO_CLEF = Clef(ClefType.ALTO, 3)
TENOR_CLEF = Clef(ClefType.TENOR, 4)
PERCUSSION_CLEF = Clef(ClefType.PERCUSSION, 3)


@dataclass(frozen=True)
class Tempo:
    tick: TickPosition
    bpm: float

    def __post_init__(self) -> None:
        if self.tick < 0:
            raise ValidationError(f"tempo tick {self.tick} must be non-negative")
        if self.bpm <= 0:
            raise ValidationError(f"bpm {self.bpm} must be positive")

    @property
    def ms_per_tick(self) -> float:
        return 60000.0 / (self.bpm * TICKS_PER_QUARTER)


DEFAULT_TEMPO = Tempo(tick=0, bpm=120.0)


# ---------------------------------------------------------------------------
# Voice slices, segments, measures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VoiceSlice:
    elements: tuple[Element, ...] = ()

    @property
    def ticks(self) -> TickDuration:
        """Time the slice occupies: its longest element."""
        return max((element_ticks(e) for e in self.elements), default=0)


@dataclass(frozen=True)
class Segment:
    tick: TickPosition
    voices: Mapping[VoiceId, VoiceSlice] = field(default_factory=dict)

    def elements(self) -> Iterator[tuple[VoiceId, Element]]:
        for voice in sorted(self.voices):
            for element in self.voices[voice].elements:
                yield voice, element


def staff_extents(elements: Iterable[Element]) -> dict[int, TickDuration]:
    """Longest element per staff."""
    extents: dict[int, TickDuration] = {}
    for element in elements:
        extents[element.staff] = max(extents.get(element.staff, 0), element_ticks(element))
    return extents


def voice_overlap(segments: tuple[Segment, ...] | list[Segment]) -> str | None:
    """Describe the first overlap within one voice of one staff, or ``None``.

    The same voice number on two staves is two independent lines.
    *segments* must already be tick-ordered.
    """
    busy_until: dict[tuple[int, VoiceId], TickPosition] = {}
    for segment in segments:
        for voice, vslice in segment.voices.items():
            for staff, ticks in staff_extents(vslice.elements).items():
                until = busy_until.get((staff, voice), 0)
                if segment.tick < until:
                    return (
                        f"voice {voice} on staff {staff} at tick {segment.tick} "
                        f"overlaps content sounding until tick {until}"
                    )
                busy_until[(staff, voice)] = segment.tick + ticks
    return None


@dataclass(frozen=True)
class Measure:
    id: MeasureId
    number: int
    start_tick: TickPosition
    duration: TickDuration
    time_signature: TimeSignature | None = None  # only when it changes
    key_signature: KeySignature | None = None  # only when it changes
    clef: Clef | None = None  # only when it changes
    segments: tuple[Segment, ...] = ()

    def __post_init__(self) -> None:
        if self.start_tick < 0 or self.duration <= 0:
            raise ValidationError(
                f"Measure {self.number}: invalid extent "
                f"start={self.start_tick} duration={self.duration}"
            )
        previous: int | None = None
        for segment in self.segments:
            if not self.start_tick <= segment.tick < self.end_tick:
                raise ValidationError(
                    f"Segment tick {segment.tick} outside measure {self.number} "
                    f"[{self.start_tick}, {self.end_tick})"
                )
            if previous is not None and segment.tick <= previous:
                raise ValidationError(
                    f"Segments of measure {self.number} are not tick-ordered"
                )
            previous = segment.tick
        problem = voice_overlap(self.segments)
        if problem:
            raise ValidationError(f"Measure {self.number}: {problem}")

    @property
    def end_tick(self) -> TickPosition:
        return self.start_tick + self.duration

    def contains_tick(self, tick: TickPosition) -> bool:
        return self.start_tick <= tick < self.end_tick

    def segment_at(self, tick: TickPosition) -> Segment | None:
        ticks = [s.tick for s in self.segments]
        i = bisect.bisect_left(ticks, tick)
        if i < len(ticks) and ticks[i] == tick:
            return self.segments[i]
        return None


# ---------------------------------------------------------------------------
# Parts and spanners
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Part:
    id: PartId
    name: str
    abbreviation: str | None = None
    midi_program: int = 0
    staff_clefs: tuple[Clef, ...] = (TREBLE_CLEF,)

    def __post_init__(self) -> None:
        if not 0 <= self.midi_program <= 127:
            raise ValidationError(f"MIDI program {self.midi_program} out of range (0-127)")
        if not self.staff_clefs:
            raise ValidationError(f"Part {self.name!r} needs at least one staff")


class Placement(Enum):
    ABOVE = "above"
    BELOW = "below"


@dataclass(frozen=True)
class TimeRange:
    start_tick: TickPosition
    end_tick: TickPosition

    def __post_init__(self) -> None:
        if self.start_tick < 0 or self.end_tick < self.start_tick:
            raise ValidationError(
                f"Invalid time range [{self.start_tick}, {self.end_tick}]"
            )


@dataclass(frozen=True)
class Slur:
    id: SlurId
    start_note_id: NoteId
    end_note_id: NoteId
    range: TimeRange
    placement: Placement = Placement.ABOVE


@dataclass(frozen=True)
class Tie:
    id: TieId
    start_note_id: NoteId
    end_note_id: NoteId


@dataclass(frozen=True)
class Spanners:
    slurs: tuple[Slur, ...] = ()
    ties: tuple[Tie, ...] = ()

    def slur(self, slur_id: SlurId) -> Slur | None:
        return next((s for s in self.slurs if s.id == slur_id), None)

    def tie(self, tie_id: TieId) -> Tie | None:
        return next((t for t in self.ties if t.id == tie_id), None)

    def for_note(self, note_id: NoteId) -> tuple[list[Slur], list[Tie]]:
        """Slurs and ties that start or end on *note_id*."""
        slurs = [s for s in self.slurs if note_id in (s.start_note_id, s.end_note_id)]
        ties = [t for t in self.ties if note_id in (t.start_note_id, t.end_note_id)]
        return slurs, ties


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ElementLocation:
    """Where an element lives: measure, segment tick and voice."""

    measure_id: MeasureId
    tick: TickPosition
    voice: VoiceId


@dataclass(frozen=True)
class Score:
    id: ScoreId
    title: str = "Untitled"
    parts: tuple[Part, ...] = ()
    measures: tuple[Measure, ...] = ()
    spanners: Spanners = Spanners()
    tempos: tuple[Tempo, ...] = (DEFAULT_TEMPO,)
    revision: int = 0
    divisions: int = TICKS_PER_QUARTER

    def __post_init__(self) -> None:
        if self.divisions != TICKS_PER_QUARTER:
            raise ValidationError(
                f"divisions is fixed at {TICKS_PER_QUARTER}, got {self.divisions}"
            )
        for before, after in zip(self.measures, self.measures[1:]):
            if after.start_tick != before.end_tick:
                raise ValidationError(
                    f"Measure {after.number} starts at {after.start_tick}, "
                    f"expected {before.end_tick}"
                )

    # --- Factory ---

    @classmethod
    def empty(cls, title: str = "Untitled") -> Score:
        return cls(id=new_id(), title=title)

    @classmethod
    def create(
        cls,
        title: str = "Untitled",
        measure_count: int = 4,
        time_sig: tuple[int, int] = (4, 4),
        tempo: float = 120.0,
        key: KeySignature | None = None,
        clef: Clef | None = TREBLE_CLEF,
        parts: tuple[Part, ...] | None = None,
    ) -> Score:
        signature = TimeSignature(*time_sig)
        length = signature.ticks_per_measure
        measures = []
        for i in range(measure_count):
            first = i == 0
            measures.append(
                Measure(
                    id=new_id(),
                    number=i + 1,
                    start_tick=i * length,
                    duration=length,
                    time_signature=signature if first else None,
                    key_signature=key if first else None,
                    clef=clef if first else None,
                )
            )
        if parts is None:
            parts = (Part(id=new_id(), name="Part 1"),)
        return cls(
            id=new_id(),
            title=title,
            parts=parts,
            measures=tuple(measures),
            tempos=(Tempo(tick=0, bpm=tempo),),
        )

    # --- Time queries ---

    @property
    def total_duration(self) -> TickDuration:
        if not self.measures:
            return 0
        return self.measures[-1].end_tick

    def tempo_at(self, tick: TickPosition) -> Tempo:
        for tempo in reversed(self.tempos):
            if tempo.tick <= tick:
                return tempo
        return DEFAULT_TEMPO

    def measure_at(self, tick: TickPosition) -> Measure | None:
        """Measure whose ``[start_tick, end_tick)`` contains *tick*."""
        starts = [m.start_tick for m in self.measures]
        i = bisect.bisect_right(starts, tick) - 1
        if i >= 0 and self.measures[i].contains_tick(tick):
            return self.measures[i]
        return None

    def measure_by_id(self, measure_id: MeasureId) -> Measure | None:
        index = self._measure_index.get(measure_id)
        return None if index is None else self.measures[index]

    def measure_index(self, measure_id: MeasureId) -> int | None:
        return self._measure_index.get(measure_id)

    def time_signature_at(self, measure_id: MeasureId) -> TimeSignature:
        """Effective time signature of a measure (last override at or before it)."""
        index = self._measure_index.get(measure_id)
        if index is not None:
            for measure in reversed(self.measures[: index + 1]):
                if measure.time_signature is not None:
                    return measure.time_signature
        return TimeSignature(4, 4)

    def clefs_in_use(self) -> tuple[Clef, ...]:
        """Distinct clefs in first-seen order: part staves, then measure changes."""
        seen: list[Clef] = []
        for part in self.parts:
            for clef in part.staff_clefs:
                if clef not in seen:
                    seen.append(clef)
        for measure in self.measures:
            if measure.clef is not None and measure.clef not in seen:
                seen.append(measure.clef)
        return tuple(seen) or (TREBLE_CLEF,)

    # --- Element queries ---

    def iter_elements(self) -> Iterator[tuple[Measure, Segment, VoiceId, Element]]:
        for measure in self.measures:
            for segment in measure.segments:
                for voice, element in segment.elements():
                    yield measure, segment, voice, element

    def locate(self, entity_id: EntityId) -> ElementLocation | None:
        """Location of an element, or of a note inside a grace group."""
        return self._element_index.get(entity_id)

    def find_element(self, entity_id: EntityId) -> Element | None:
        loc = self._element_index.get(entity_id)
        if loc is None:
            return None
        measure = self.measure_by_id(loc.measure_id)
        segment = measure.segment_at(loc.tick) if measure else None
        if segment is None:
            return None
        for element in segment.voices[loc.voice].elements:
            if element.id == entity_id:
                return element
            if isinstance(element, GraceGroup):
                for note in element.notes:
                    if note.id == entity_id:
                        return note
        return None

    def find_note(self, note_id: NoteId) -> Note | None:
        element = self.find_element(note_id)
        return element if isinstance(element, Note) else None

    def part_by_id(self, part_id: PartId) -> Part | None:
        return next((p for p in self.parts if p.id == part_id), None)

    def element_locations(self) -> dict[EntityId, ElementLocation]:
        """Copy of the id -> location index (grace notes map to their group)."""
        return dict(self._element_index)

    # --- Indexes ---

    @cached_property
    def _measure_index(self) -> dict[MeasureId, int]:
        return {m.id: i for i, m in enumerate(self.measures)}

    @cached_property
    def _element_index(self) -> dict[EntityId, ElementLocation]:
        index: dict[EntityId, ElementLocation] = {}
        for measure, segment, voice, element in self.iter_elements():
            loc = ElementLocation(measure.id, segment.tick, voice)
            index[element.id] = loc
            if isinstance(element, GraceGroup):
                for note in element.notes:
                    index[note.id] = loc
        return index
