"""MutableScore: the working copy commands mutate.

Wraps an immutable :class:`~mnote.model.score.Score` with indices that make
entity-level edits local to the measure they touch:

- measures by id plus an ordered id list,
- a per-measure segment table (tick -> voice -> element list), expanded
  lazily the first time a measure is edited,
- an element location index (id -> measure, tick, voice),
- slurs and ties by id.

Reading :attr:`MutableScore.score` materializes a new immutable Score.
Only edited measures are rebuilt; every other ``Measure`` object is shared
with the previous snapshot, which is what the incremental layout engine
relies on to spot changed measures.

Every operation validates before it mutates and raises
:class:`~mnote.errors.StateError` on a bad reference, leaving the working
copy unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from mnote.errors import ErrorKind, StateError
from mnote.model.elements import Element, GraceGroup, Note, element_note_ids, element_ticks
from mnote.model.ids import EntityId, MeasureId, NoteId, PartId, SlurId, TickPosition, TieId, VoiceId
from mnote.model.score import (
    ElementLocation,
    Measure,
    Part,
    Score,
    Segment,
    Slur,
    Spanners,
    Tempo,
    Tie,
    TimeRange,
    VoiceSlice,
    staff_extents,
)

logger = logging.getLogger(__name__)

# tick -> voice -> elements
SegmentTable = dict[TickPosition, dict[VoiceId, list[Element]]]


class MutableScore:
    """Mutable builder over a Score snapshot."""

    def __init__(self, score: Score) -> None:
        self._id = score.id
        self._title = score.title
        self._parts: list[Part] = list(score.parts)
        self._order: list[MeasureId] = [m.id for m in score.measures]
        self._measures: dict[MeasureId, Measure] = {m.id: m for m in score.measures}
        self._tables: dict[MeasureId, SegmentTable] = {}
        self._locations: dict[EntityId, ElementLocation] = score.element_locations()
        self._slurs: dict[SlurId, Slur] = {s.id: s for s in score.spanners.slurs}
        self._ties: dict[TieId, Tie] = {t.id: t for t in score.spanners.ties}
        self._tempos: list[Tempo] = list(score.tempos)
        self._dirty: set[MeasureId] = set()
        self._touched: set[MeasureId] = set()
        self._revision = score.revision
        self._snapshot: Score | None = score

    # -- snapshot ------------------------------------------------------------

    @property
    def revision(self) -> int:
        return self._revision

    @revision.setter
    def revision(self, value: int) -> None:
        if value != self._revision:
            self._revision = value
            self._snapshot = None

    @property
    def score(self) -> Score:
        """Immutable snapshot of the current state."""
        if self._snapshot is None:
            for measure_id in self._dirty:
                self._materialize(measure_id)
            self._dirty.clear()
            self._snapshot = Score(
                id=self._id,
                title=self._title,
                parts=tuple(self._parts),
                measures=tuple(self._measures[mid] for mid in self._order),
                spanners=Spanners(
                    slurs=tuple(self._slurs.values()),
                    ties=tuple(self._ties.values()),
                ),
                tempos=tuple(self._tempos),
                revision=self._revision,
            )
        return self._snapshot

    def touched_measures(self) -> set[MeasureId]:
        """Drain the ids of measures changed since the previous call."""
        touched, self._touched = self._touched, set()
        return touched

    def _changed(self, measure_id: MeasureId | None = None) -> None:
        self._snapshot = None
        if measure_id is not None:
            self._dirty.add(measure_id)
            self._touched.add(measure_id)

    def _materialize(self, measure_id: MeasureId) -> None:
        table = self._tables.get(measure_id)
        measure = self._measures.get(measure_id)
        if table is None or measure is None:
            return
        segments = []
        for tick in sorted(table):
            voices = {
                voice: VoiceSlice(tuple(elements))
                for voice, elements in sorted(table[tick].items())
                if elements
            }
            if voices:
                segments.append(Segment(tick=tick, voices=voices))
        self._measures[measure_id] = replace(measure, segments=tuple(segments))

    def _table(self, measure_id: MeasureId) -> SegmentTable:
        table = self._tables.get(measure_id)
        if table is None:
            measure = self.measure(measure_id)
            table = {
                segment.tick: {
                    voice: list(vslice.elements)
                    for voice, vslice in segment.voices.items()
                }
                for segment in measure.segments
            }
            self._tables[measure_id] = table
        return table

    # -- lookups -------------------------------------------------------------

    @property
    def title(self) -> str:
        return self._title

    @property
    def measure_ids(self) -> list[MeasureId]:
        return list(self._order)

    def measure(self, measure_id: MeasureId) -> Measure:
        """Current measure header (segments may be stale while dirty)."""
        measure = self._measures.get(measure_id)
        if measure is None:
            raise StateError(f"Unknown measure {measure_id}", ErrorKind.UNKNOWN_ENTITY)
        return measure

    def has_measure(self, measure_id: MeasureId) -> bool:
        return measure_id in self._measures

    def location(self, entity_id: EntityId) -> ElementLocation:
        loc = self._locations.get(entity_id)
        if loc is None:
            raise StateError(f"Unknown element {entity_id}", ErrorKind.UNKNOWN_ENTITY)
        return loc

    def has_element(self, entity_id: EntityId) -> bool:
        return entity_id in self._locations

    def element(self, entity_id: EntityId) -> Element:
        """Top-level element, or a note inside a grace group."""
        loc = self.location(entity_id)
        for element in self._slice(loc):
            if element.id == entity_id:
                return element
            if isinstance(element, GraceGroup):
                for note in element.notes:
                    if note.id == entity_id:
                        return note
        raise StateError(f"Index points at missing element {entity_id}")

    def note(self, note_id: NoteId) -> Note:
        element = self.element(note_id)
        if not isinstance(element, Note):
            raise StateError(f"{note_id} is a {element.kind}, not a note")
        return element

    def is_top_level(self, entity_id: EntityId) -> bool:
        loc = self._locations.get(entity_id)
        return loc is not None and any(e.id == entity_id for e in self._slice(loc))

    def slur(self, slur_id: SlurId) -> Slur:
        slur = self._slurs.get(slur_id)
        if slur is None:
            raise StateError(f"Unknown slur {slur_id}", ErrorKind.UNKNOWN_ENTITY)
        return slur

    def tie(self, tie_id: TieId) -> Tie:
        tie = self._ties.get(tie_id)
        if tie is None:
            raise StateError(f"Unknown tie {tie_id}", ErrorKind.UNKNOWN_ENTITY)
        return tie

    def spanners_for(self, note_id: NoteId) -> tuple[list[Slur], list[Tie]]:
        slurs = [s for s in self._slurs.values() if note_id in (s.start_note_id, s.end_note_id)]
        ties = [t for t in self._ties.values() if note_id in (t.start_note_id, t.end_note_id)]
        return slurs, ties

    def tempo_at_tick(self, tick: TickPosition) -> Tempo | None:
        return next((t for t in self._tempos if t.tick == tick), None)

    @property
    def tempos(self) -> tuple[Tempo, ...]:
        return tuple(self._tempos)

    def slice_at(self, loc: ElementLocation) -> list[Element]:
        """Elements of the voice slice at *loc*, in order."""
        return list(self._slice(loc))

    def _slice(self, loc: ElementLocation) -> list[Element]:
        if loc.measure_id in self._tables:
            return self._tables[loc.measure_id].get(loc.tick, {}).get(loc.voice, [])
        segment = self.measure(loc.measure_id).segment_at(loc.tick)
        if segment is None or loc.voice not in segment.voices:
            return []
        return list(segment.voices[loc.voice].elements)

    # -- elements ------------------------------------------------------------

    def add_element(
        self,
        measure_id: MeasureId,
        tick: TickPosition,
        element: Element,
        index: int | None = None,
    ) -> None:
        """Insert *element* into its voice at *tick* of *measure_id*.

        *index* positions it inside the voice slice (default: append).
        """
        measure = self.measure(measure_id)
        ids = [element.id, *element_note_ids(element)]
        for entity_id in ids:
            if entity_id in self._locations:
                raise StateError(f"Id {entity_id} already in use", ErrorKind.DUPLICATE_ID)
        if not measure.contains_tick(tick):
            raise StateError(
                f"Tick {tick} outside measure {measure.number} "
                f"[{measure.start_tick}, {measure.end_tick})",
                ErrorKind.INVALID_TICK,
            )
        if tick + element_ticks(element) > measure.end_tick:
            raise StateError(
                f"Element of {element_ticks(element)} ticks at {tick} overruns "
                f"measure {measure.number} ending at {measure.end_tick}",
                ErrorKind.INVALID_TICK,
            )

        table = self._table(measure_id)
        elements = table.setdefault(tick, {}).setdefault(element.voice, [])
        position = len(elements) if index is None else min(index, len(elements))
        elements.insert(position, element)
        problem = _voice_problem(table, element.voice)
        if problem:
            elements.pop(position)
            _prune(table, tick, element.voice)
            raise StateError(problem, ErrorKind.INVALID_TICK)

        loc = ElementLocation(measure_id, tick, element.voice)
        for entity_id in ids:
            self._locations[entity_id] = loc
        self._changed(measure_id)
        self._refresh_slurs(ids)

    def remove_element(self, entity_id: EntityId) -> tuple[ElementLocation, Element, int]:
        """Remove a top-level element; return its location, payload and slice index."""
        loc = self.location(entity_id)
        table = self._table(loc.measure_id)
        elements = table.get(loc.tick, {}).get(loc.voice, [])
        for position, element in enumerate(elements):
            if element.id == entity_id:
                break
        else:
            raise StateError(
                f"{entity_id} is part of a grace group and cannot be removed on its own",
                ErrorKind.INVALID_REFERENCE,
            )
        elements.pop(position)
        _prune(table, loc.tick, loc.voice)
        for note_id in {element.id, *element_note_ids(element)}:
            self._locations.pop(note_id, None)
        self._changed(loc.measure_id)
        return loc, element, position

    def replace_element(self, entity_id: EntityId, new: Element) -> Element:
        """Swap a top-level element for *new* (same id and voice) in place."""
        loc = self.location(entity_id)
        if new.id != entity_id:
            raise StateError(f"Replacement id {new.id} differs from {entity_id}")
        if new.voice != loc.voice:
            raise StateError(
                f"Replacement moves {entity_id} to voice {new.voice}", ErrorKind.INVALID_VOICE
            )
        measure = self.measure(loc.measure_id)
        if loc.tick + element_ticks(new) > measure.end_tick:
            raise StateError(
                f"Element at {loc.tick} would overrun measure {measure.number}",
                ErrorKind.INVALID_TICK,
            )
        table = self._table(loc.measure_id)
        elements = table[loc.tick][loc.voice]
        position = next((i for i, e in enumerate(elements) if e.id == entity_id), None)
        if position is None:
            raise StateError(f"{entity_id} is not a top-level element")
        old = elements[position]
        old_ids = set(element_note_ids(old)) - {entity_id}
        new_ids = set(element_note_ids(new)) - {entity_id}
        for added in new_ids - old_ids:
            if added in self._locations:
                raise StateError(f"Id {added} already in use", ErrorKind.DUPLICATE_ID)
        elements[position] = new
        problem = _voice_problem(table, loc.voice)
        if problem:
            elements[position] = old
            raise StateError(problem, ErrorKind.INVALID_TICK)
        for removed in old_ids - new_ids:
            self._locations.pop(removed, None)
        for added in new_ids - old_ids:
            self._locations[added] = loc
        self._changed(loc.measure_id)
        self._refresh_slurs({entity_id, *new_ids})
        return old

    def replace_note(self, note: Note) -> Note:
        """Replace a note wherever it lives, including inside a grace group."""
        loc = self.location(note.id)
        if self.is_top_level(note.id):
            old = self.replace_element(note.id, note)
            assert isinstance(old, Note)
            return old
        for element in self._slice(loc):
            if isinstance(element, GraceGroup) and any(n.id == note.id for n in element.notes):
                old_note = next(n for n in element.notes if n.id == note.id)
                notes = tuple(note if n.id == note.id else n for n in element.notes)
                self.replace_element(element.id, replace(element, notes=notes))
                return old_note
        raise StateError(f"Unknown note {note.id}", ErrorKind.UNKNOWN_ENTITY)

    # -- measures ------------------------------------------------------------

    def add_measure(self, measure: Measure, index: int | None = None) -> None:
        """Insert *measure* at *index* (default: append), re-threading ticks.

        The measure's segments are rebased onto its new start tick, and every
        later measure shifts by its duration.
        """
        if measure.id in self._measures:
            raise StateError(f"Measure {measure.id} already exists", ErrorKind.DUPLICATE_ID)
        if index is None:
            index = len(self._order)
        if not 0 <= index <= len(self._order):
            raise StateError(f"Measure index {index} out of range", ErrorKind.INVALID_REFERENCE)
        contained = [
            entity_id
            for segment in measure.segments
            for _, element in segment.elements()
            for entity_id in (element.id, *element_note_ids(element))
        ]
        for entity_id in contained:
            if entity_id in self._locations:
                raise StateError(f"Id {entity_id} already in use", ErrorKind.DUPLICATE_ID)

        start = self._measures[self._order[index - 1]].end_tick if index > 0 else 0
        self._order.insert(index, measure.id)
        self._measures[measure.id] = measure
        self._shift_locations({measure.id: self._shift(measure.id, start, index + 1)})
        for segment in self.measure(measure.id).segments:
            for _, element in segment.elements():
                loc = ElementLocation(measure.id, segment.tick, element.voice)
                for entity_id in (element.id, *element_note_ids(element)):
                    self._locations[entity_id] = loc
        self._rethread(index + 1)
        # The tempo at tick 0 stays put; later changes move with their measures.
        self._tempos = [
            replace(t, tick=t.tick + measure.duration) if t.tick >= start and t.tick > 0 else t
            for t in self._tempos
        ]
        self._changed(measure.id)

    def remove_measure(self, measure_id: MeasureId) -> tuple[Measure, int]:
        """Remove a measure with its content; return the payload and index.

        Tempo changes inside the measure (other than one at tick 0) are
        dropped and later ones shift left with their measures.
        """
        self.measure(measure_id)
        if measure_id in self._dirty:
            self._materialize(measure_id)
            self._dirty.discard(measure_id)
        self._tables.pop(measure_id, None)
        measure = self._measures.pop(measure_id)
        index = self._order.index(measure_id)
        self._order.pop(index)
        for segment in measure.segments:
            for _, element in segment.elements():
                for entity_id in (element.id, *element_note_ids(element)):
                    self._locations.pop(entity_id, None)
        self._rethread(index)
        start, end = measure.start_tick, measure.end_tick
        dropped = [t for t in self._tempos if start <= t.tick < end and t.tick > 0]
        if dropped:
            logger.debug("Dropping %d tempo changes with measure %d", len(dropped), measure.number)
        shifted = [
            replace(t, tick=t.tick - measure.duration) if t.tick >= end else t
            for t in self._tempos
            if t not in dropped
        ]
        # A change shifted onto tick 0 replaces the one already there.
        self._tempos = [
            t for i, t in enumerate(shifted)
            if i + 1 == len(shifted) or shifted[i + 1].tick != t.tick
        ]
        self._touched.add(measure_id)
        self._changed()
        return measure, index

    def note_ids_in_measure(self, measure_id: MeasureId) -> list[NoteId]:
        return [
            entity_id
            for entity_id, loc in self._locations.items()
            if loc.measure_id == measure_id and self._is_note(entity_id)
        ]

    def _is_note(self, entity_id: EntityId) -> bool:
        return isinstance(self.element(entity_id), Note)

    def _rethread(self, start_index: int) -> None:
        deltas: dict[MeasureId, int] = {}
        for i in range(start_index, len(self._order)):
            previous_end = self._measures[self._order[i - 1]].end_tick if i > 0 else 0
            deltas[self._order[i]] = self._shift(self._order[i], previous_end, i + 1)
        self._shift_locations(deltas)

    def _shift_locations(self, deltas: dict[MeasureId, int]) -> None:
        deltas = {mid: d for mid, d in deltas.items() if d}
        if not deltas:
            return
        moved = []
        for entity_id, loc in self._locations.items():
            delta = deltas.get(loc.measure_id)
            if delta:
                self._locations[entity_id] = replace(loc, tick=loc.tick + delta)
                moved.append(entity_id)
        self._refresh_slurs(moved)

    def _shift(self, measure_id: MeasureId, start_tick: TickPosition, number: int) -> int:
        """Move a measure to *start_tick* and renumber it; return the tick delta."""
        measure = self._measures[measure_id]
        delta = start_tick - measure.start_tick
        if delta == 0 and measure.number == number:
            return 0
        if measure_id in self._dirty:
            self._materialize(measure_id)
            self._dirty.discard(measure_id)
            measure = self._measures[measure_id]
        segments = tuple(replace(s, tick=s.tick + delta) for s in measure.segments)
        self._measures[measure_id] = replace(
            measure, start_tick=start_tick, number=number, segments=segments
        )
        self._tables.pop(measure_id, None)
        self._touched.add(measure_id)
        self._changed()
        return delta

    def set_measure_attributes(self, measure_id: MeasureId, **changes) -> Measure:
        """Replace header fields (signatures, clef) of a measure; return the old header."""
        old = self.measure(measure_id)
        if "duration" in changes or "start_tick" in changes or "segments" in changes:
            raise StateError("Measure extent cannot be changed in place")
        if measure_id in self._dirty:
            self._materialize(measure_id)
            self._dirty.discard(measure_id)
            old = self._measures[measure_id]
        self._measures[measure_id] = replace(old, **changes)
        self._touched.add(measure_id)
        self._changed()
        return old

    # -- parts ---------------------------------------------------------------

    def add_part(self, part: Part, index: int | None = None) -> None:
        if any(p.id == part.id for p in self._parts):
            raise StateError(f"Part {part.id} already exists", ErrorKind.DUPLICATE_ID)
        self._parts.insert(len(self._parts) if index is None else index, part)
        self._changed()

    def remove_part(self, part_id: PartId) -> tuple[Part, int]:
        for i, part in enumerate(self._parts):
            if part.id == part_id:
                self._parts.pop(i)
                self._changed()
                return part, i
        raise StateError(f"Unknown part {part_id}", ErrorKind.UNKNOWN_ENTITY)

    def set_title(self, title: str) -> str:
        old, self._title = self._title, title
        self._changed()
        return old

    # -- spanners ------------------------------------------------------------

    def add_slur(self, slur: Slur, index: int | None = None) -> None:
        if slur.id in self._slurs:
            raise StateError(f"Slur {slur.id} already exists", ErrorKind.DUPLICATE_ID)
        for note_id in (slur.start_note_id, slur.end_note_id):
            self.note(note_id)
        slur = replace(slur, range=self.slur_range(slur.start_note_id, slur.end_note_id))
        self._slurs = _insert(self._slurs, slur.id, slur, index)
        self._changed()
        self._touch_notes(slur.start_note_id, slur.end_note_id)

    def remove_slur(self, slur_id: SlurId) -> tuple[Slur, int]:
        slur = self.slur(slur_id)
        index = list(self._slurs).index(slur_id)
        del self._slurs[slur_id]
        self._changed()
        for note_id in (slur.start_note_id, slur.end_note_id):
            if note_id in self._locations:
                self._touch_notes(note_id)
        return slur, index

    def add_tie(self, tie: Tie, index: int | None = None) -> None:
        """Register *tie* and stamp ``tie_start``/``tie_end`` on its notes."""
        if tie.id in self._ties:
            raise StateError(f"Tie {tie.id} already exists", ErrorKind.DUPLICATE_ID)
        start = self.note(tie.start_note_id)
        end = self.note(tie.end_note_id)
        if start.id == end.id:
            raise StateError("A tie needs two different notes")
        if start.playback_pitch.midi_pitch != end.playback_pitch.midi_pitch:
            raise StateError(
                f"Cannot tie {start.pitch.pitch} to {end.pitch.pitch}: pitches differ"
            )
        if start.tie_start is not None or end.tie_end is not None:
            raise StateError("Note is already tied", ErrorKind.INVALID_REFERENCE)
        if self.location(start.id).tick >= self.location(end.id).tick:
            raise StateError("A tie must run forward in time", ErrorKind.INVALID_TICK)
        self.replace_note(replace(start, tie_start=tie.id))
        self.replace_note(replace(end, tie_end=tie.id))
        self._ties = _insert(self._ties, tie.id, tie, index)
        self._changed()

    def remove_tie(self, tie_id: TieId) -> tuple[Tie, int]:
        tie = self.tie(tie_id)
        index = list(self._ties).index(tie_id)
        for note_id, attr in ((tie.start_note_id, "tie_start"), (tie.end_note_id, "tie_end")):
            if note_id in self._locations:
                note = self.note(note_id)
                if getattr(note, attr) == tie_id:
                    self.replace_note(replace(note, **{attr: None}))
        del self._ties[tie_id]
        self._changed()
        return tie, index

    def slur_range(self, start_note_id: NoteId, end_note_id: NoteId) -> TimeRange:
        """Ticks covered by two notes, from the earlier onset to the later end."""
        spans = []
        for note_id in (start_note_id, end_note_id):
            tick = self.location(note_id).tick
            spans.append((tick, tick + self.note(note_id).ticks))
        return TimeRange(min(s for s, _ in spans), max(e for _, e in spans))

    def _refresh_slurs(self, note_ids: Iterable[EntityId]) -> None:
        """Recompute the range of every slur attached to one of *note_ids*."""
        moved = set(note_ids)
        for slur_id, slur in self._slurs.items():
            ends = (slur.start_note_id, slur.end_note_id)
            if moved.isdisjoint(ends) or not all(n in self._locations for n in ends):
                continue
            span = self.slur_range(*ends)
            if span != slur.range:
                self._slurs[slur_id] = replace(slur, range=span)
                self._changed()

    def _touch_notes(self, *note_ids: NoteId) -> None:
        for note_id in note_ids:
            self._touched.add(self.location(note_id).measure_id)

    # -- tempo ---------------------------------------------------------------

    def set_tempo(self, tempo: Tempo) -> Tempo | None:
        """Insert or replace the tempo change at ``tempo.tick``; return the old one."""
        old = self.tempo_at_tick(tempo.tick)
        self._tempos = [t for t in self._tempos if t.tick != tempo.tick]
        self._tempos.append(tempo)
        self._tempos.sort(key=lambda t: t.tick)
        self._changed()
        return old

    def remove_tempo(self, tick: TickPosition) -> Tempo:
        old = self.tempo_at_tick(tick)
        if old is None:
            raise StateError(f"No tempo change at tick {tick}", ErrorKind.UNKNOWN_ENTITY)
        self._tempos.remove(old)
        self._changed()
        return old

    def restore_tempos(self, tempos: Iterable[Tempo]) -> None:
        """Replace the whole tempo map, e.g. when undoing a measure removal."""
        self._tempos = sorted(tempos, key=lambda t: t.tick)
        self._changed()


def _voice_problem(table: SegmentTable, voice: VoiceId) -> str | None:
    busy_until: dict[int, TickPosition] = {}
    for tick in sorted(table):
        elements = table[tick].get(voice)
        if not elements:
            continue
        for staff, ticks in staff_extents(elements).items():
            until = busy_until.get(staff, 0)
            if tick < until:
                return (
                    f"voice {voice} on staff {staff} at tick {tick} overlaps content "
                    f"sounding until tick {until}"
                )
            busy_until[staff] = tick + ticks
    return None


def _prune(table: SegmentTable, tick: TickPosition, voice: VoiceId) -> None:
    voices = table.get(tick)
    if voices is None:
        return
    if not voices.get(voice):
        voices.pop(voice, None)
    if not voices:
        del table[tick]


def _insert(mapping: dict, key, value, index: int | None) -> dict:
    if index is None or index >= len(mapping):
        mapping[key] = value
        return mapping
    items = list(mapping.items())
    items.insert(index, (key, value))
    return dict(items)
