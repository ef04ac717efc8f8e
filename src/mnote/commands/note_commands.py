"""Element-level commands: add, remove, re-pitch, move, re-time."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from mnote.commands.base import Command, CommandResult
from mnote.errors import ErrorKind, StateError
from mnote.model.duration import NoteValue, WrittenDuration
from mnote.model.elements import (
    Articulation,
    Chord,
    Element,
    GraceGroup,
    GraceType,
    Note,
    Rest,
    element_note_ids,
)
from mnote.model.ids import EntityId, MeasureId, NoteId, TickPosition, VoiceId, new_id
from mnote.model.mutable import MutableScore
from mnote.model.pitch import NotatedPitch, Pitch, PlaybackPitch
from mnote.model.score import ElementLocation, Slur, Tie
from mnote.serialization.codec import (
    element_from_dict,
    element_to_dict,
    notated_from_dict,
    notated_to_dict,
    playback_from_dict,
    playback_to_dict,
    written_from_dict,
    written_to_dict,
)


def _notated(pitch: Pitch | NotatedPitch) -> NotatedPitch:
    return pitch if isinstance(pitch, NotatedPitch) else NotatedPitch(pitch)


# ---------------------------------------------------------------------------
# Adding elements
# ---------------------------------------------------------------------------

class AddElementCommand(Command):
    """Insert a prebuilt element at a measure/tick; its voice comes from the element."""

    type = "AddElement"
    role = "elementId"

    def __init__(self, measure_id: MeasureId, tick: TickPosition, element: Element) -> None:
        self.measure_id = measure_id
        self.tick = tick
        self.element = element

    def _apply(self, score: MutableScore) -> CommandResult:
        score.add_element(self.measure_id, self.tick, self.element)
        return CommandResult.ok({self.role: self.element.id})

    def revert(self, score: MutableScore) -> None:
        score.remove_element(self.element.id)

    @property
    def description(self) -> str:
        return f"Add {self.element.kind}"

    def payload(self) -> dict[str, Any]:
        return {
            "measure_id": self.measure_id,
            "tick": self.tick,
            "element": element_to_dict(self.element),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddElementCommand:
        cmd = cls.__new__(cls)
        AddElementCommand.__init__(
            cmd, payload["measure_id"], payload["tick"], element_from_dict(payload["element"])
        )
        return cmd


class AddNoteCommand(AddElementCommand):
    type = "AddNote"
    role = "noteId"

    def __init__(
        self,
        measure_id: MeasureId,
        tick: TickPosition,
        pitch: Pitch | NotatedPitch,
        written: WrittenDuration,
        voice: VoiceId = 1,
        staff: int = 0,
        velocity: int = 80,
        articulations: Iterable[Articulation] = (),
        playback_pitch: PlaybackPitch | None = None,
        note_id: NoteId | None = None,
    ) -> None:
        notated = _notated(pitch)
        note = Note(
            id=note_id or new_id(),
            pitch=notated,
            playback_pitch=playback_pitch or PlaybackPitch.from_pitch(notated.pitch),
            written=written,
            voice=voice,
            staff=staff,
            velocity=velocity,
            articulations=frozenset(articulations),
        )
        super().__init__(measure_id, tick, note)

    @property
    def note_id(self) -> NoteId:
        return self.element.id

    @property
    def description(self) -> str:
        return f"Add note {self.element.pitch.pitch}"


class AddChordCommand(AddElementCommand):
    type = "AddChord"
    role = "chordId"

    def __init__(
        self,
        measure_id: MeasureId,
        tick: TickPosition,
        pitches: Iterable[Pitch | NotatedPitch],
        written: WrittenDuration,
        voice: VoiceId = 1,
        staff: int = 0,
        velocity: int = 80,
        articulations: Iterable[Articulation] = (),
        chord_id: EntityId | None = None,
    ) -> None:
        notated = tuple(_notated(p) for p in pitches)
        chord = Chord(
            id=chord_id or new_id(),
            pitches=notated,
            playback_pitches=tuple(PlaybackPitch.from_pitch(p.pitch) for p in notated),
            written=written,
            voice=voice,
            staff=staff,
            velocity=velocity,
            articulations=frozenset(articulations),
        )
        super().__init__(measure_id, tick, chord)

    @property
    def description(self) -> str:
        names = " ".join(str(p.pitch) for p in self.element.pitches)
        return f"Add chord {names}"


class AddRestCommand(AddElementCommand):
    type = "AddRest"
    role = "restId"

    def __init__(
        self,
        measure_id: MeasureId,
        tick: TickPosition,
        written: WrittenDuration,
        voice: VoiceId = 1,
        staff: int = 0,
        is_measure_rest: bool = False,
        rest_id: EntityId | None = None,
    ) -> None:
        rest = Rest(
            id=rest_id or new_id(),
            written=written,
            voice=voice,
            staff=staff,
            is_measure_rest=is_measure_rest,
        )
        super().__init__(measure_id, tick, rest)

    @property
    def description(self) -> str:
        return f"Add {self.element.written} rest"


class AddGraceGroupCommand(Command):
    """Attach grace notes in front of a principal note, in its voice slice."""

    type = "AddGraceGroup"

    def __init__(
        self,
        principal_note_id: NoteId,
        pitches: Iterable[Pitch | NotatedPitch] = (),
        written: WrittenDuration | None = None,
        grace_type: GraceType = GraceType.ACCIACCATURA,
        group_id: EntityId | None = None,
        notes: Iterable[Note] | None = None,
    ) -> None:
        self.principal_note_id = principal_note_id
        self.grace_type = grace_type
        self.group_id = group_id or new_id()
        if notes is None:
            written = written or WrittenDuration(NoteValue.EIGHTH)
            notes = [
                Note(
                    id=new_id(),
                    pitch=_notated(p),
                    playback_pitch=PlaybackPitch.from_pitch(_notated(p).pitch),
                    written=written,
                    ticks=0,
                )
                for p in pitches
            ]
        self.notes = tuple(notes)
        self._group: GraceGroup | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        principal = score.note(self.principal_note_id)
        if not score.is_top_level(principal.id):
            raise StateError("Grace notes cannot be attached to a grace note")
        loc = score.location(principal.id)
        notes = tuple(
            replace(n, voice=principal.voice, staff=principal.staff) for n in self.notes
        )
        group = GraceGroup(
            id=self.group_id,
            notes=notes,
            principal_note_id=principal.id,
            grace_type=self.grace_type,
        )
        slice_ids = [e.id for e in score.slice_at(loc)]
        score.add_element(loc.measure_id, loc.tick, group, index=slice_ids.index(principal.id))
        self._group = group
        return CommandResult.ok({"graceGroupId": group.id})

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._group)
        score.remove_element(self.group_id)

    @property
    def description(self) -> str:
        return f"Add {len(self.notes)} grace note(s)"

    def payload(self) -> dict[str, Any]:
        return {
            "principal_note_id": self.principal_note_id,
            "grace_type": self.grace_type.value,
            "group_id": self.group_id,
            "notes": [element_to_dict(n) for n in self.notes],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddGraceGroupCommand:
        return cls(
            principal_note_id=payload["principal_note_id"],
            grace_type=GraceType(payload["grace_type"]),
            group_id=payload["group_id"],
            notes=[element_from_dict(n) for n in payload["notes"]],
        )


# ---------------------------------------------------------------------------
# Removing elements
# ---------------------------------------------------------------------------

class RemoveElementCommand(Command):
    """Remove a top-level element.

    Slurs and ties that reference any note of the element are removed with
    it, as are grace groups attached to it; revert restores all of them in
    their original positions.
    """

    type = "RemoveElement"

    def __init__(self, element_id: EntityId) -> None:
        self.element_id = element_id
        self._removed: tuple[ElementLocation, Element, int] | None = None
        self._graces: list[tuple[ElementLocation, Element, int]] = []
        self._slurs: list[tuple[Slur, int]] = []
        self._ties: list[tuple[Tie, int]] = []

    def _check(self, element: Element) -> None:
        """Hook for subclasses restricting the element kind."""

    def _apply(self, score: MutableScore) -> CommandResult:
        if not score.is_top_level(self.element_id):
            score.location(self.element_id)
            raise StateError(
                f"{self.element_id} is inside a grace group", ErrorKind.INVALID_REFERENCE
            )
        element = score.element(self.element_id)
        self._check(element)

        note_ids = set(element_note_ids(element))
        loc = score.location(self.element_id)
        graces = [
            e.id
            for e in score.slice_at(loc)
            if isinstance(e, GraceGroup) and e.principal_note_id in note_ids
        ]
        for grace_id in graces:
            note_ids.update(element_note_ids(score.element(grace_id)))
        slur_ids: list[EntityId] = []
        tie_ids: list[EntityId] = []
        for note_id in sorted(note_ids):
            slurs, ties = score.spanners_for(note_id)
            slur_ids += [s.id for s in slurs if s.id not in slur_ids]
            tie_ids += [t.id for t in ties if t.id not in tie_ids]

        self._ties = [score.remove_tie(t) for t in tie_ids]
        self._slurs = [score.remove_slur(s) for s in slur_ids]
        self._graces = [score.remove_element(g) for g in graces]
        self._removed = score.remove_element(self.element_id)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._removed)
        loc, element, index = self._removed
        score.add_element(loc.measure_id, loc.tick, element, index=index)
        for grace_loc, grace, grace_index in reversed(self._graces):
            score.add_element(grace_loc.measure_id, grace_loc.tick, grace, index=grace_index)
        for slur, slur_index in reversed(self._slurs):
            score.add_slur(slur, slur_index)
        for tie, tie_index in reversed(self._ties):
            score.add_tie(tie, tie_index)

    @property
    def description(self) -> str:
        return "Remove element"

    def payload(self) -> dict[str, Any]:
        return {"element_id": self.element_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RemoveElementCommand:
        return cls(payload["element_id"])


class RemoveNoteCommand(RemoveElementCommand):
    type = "RemoveNote"

    def __init__(self, note_id: NoteId) -> None:
        super().__init__(note_id)

    @property
    def note_id(self) -> NoteId:
        return self.element_id

    def _check(self, element: Element) -> None:
        if not isinstance(element, Note):
            raise StateError(f"{self.element_id} is a {element.kind}, not a note")

    @property
    def description(self) -> str:
        return "Remove note"

    def payload(self) -> dict[str, Any]:
        return {"note_id": self.element_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RemoveNoteCommand:
        return cls(payload["note_id"])


# ---------------------------------------------------------------------------
# Changing elements
# ---------------------------------------------------------------------------

class ChangePitchCommand(Command):
    """Re-spell and/or re-voice a note (grace notes included).

    A tie to a note that no longer sounds the same pitch is removed and comes
    back on revert; enharmonic re-spellings keep their ties.
    """

    type = "ChangePitch"

    def __init__(
        self,
        note_id: NoteId,
        new_pitch: Pitch | NotatedPitch,
        new_playback_pitch: PlaybackPitch | None = None,
    ) -> None:
        self.note_id = note_id
        self.new_pitch = _notated(new_pitch)
        self.new_playback_pitch = new_playback_pitch or PlaybackPitch.from_pitch(
            self.new_pitch.pitch
        )
        self._old: tuple[NotatedPitch, PlaybackPitch] | None = None
        self._broken: list[tuple[Tie, int]] = []

    def _apply(self, score: MutableScore) -> CommandResult:
        note = score.note(self.note_id)
        # Validate the new pitch pair before touching any tie.
        replace(note, pitch=self.new_pitch, playback_pitch=self.new_playback_pitch)
        midi = self.new_playback_pitch.midi_pitch
        broken = []
        for tie_id in (note.tie_start, note.tie_end):
            if tie_id is None:
                continue
            tie = score.tie(tie_id)
            partner = tie.end_note_id if tie.start_note_id == self.note_id else tie.start_note_id
            if score.note(partner).playback_pitch.midi_pitch != midi:
                broken.append(score.remove_tie(tie_id))
        current = score.note(self.note_id)
        score.replace_note(
            replace(current, pitch=self.new_pitch, playback_pitch=self.new_playback_pitch)
        )
        self._old = (note.pitch, note.playback_pitch)
        self._broken = broken
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._old)
        pitch, playback = self._old
        score.replace_note(replace(score.note(self.note_id), pitch=pitch, playback_pitch=playback))
        for tie, index in reversed(self._broken):
            score.add_tie(tie, index)

    @property
    def description(self) -> str:
        return f"Change pitch to {self.new_pitch.pitch}"

    def payload(self) -> dict[str, Any]:
        return {
            "note_id": self.note_id,
            "new_pitch": notated_to_dict(self.new_pitch),
            "new_playback_pitch": playback_to_dict(self.new_playback_pitch),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChangePitchCommand:
        return cls(
            payload["note_id"],
            notated_from_dict(payload["new_pitch"]),
            playback_from_dict(payload["new_playback_pitch"]),
        )


class ChangeDurationCommand(Command):
    """Give a note, chord or rest a new written duration (ticks follow)."""

    type = "ChangeDuration"

    def __init__(self, element_id: EntityId, written: WrittenDuration) -> None:
        self.element_id = element_id
        self.written = written
        self._old: tuple[WrittenDuration, int] | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        element = score.element(self.element_id)
        if not isinstance(element, (Note, Chord, Rest)) or not score.is_top_level(element.id):
            raise StateError(f"{self.element_id} has no duration of its own")
        score.replace_element(element.id, replace(element, written=self.written, ticks=None))
        self._old = (element.written, element.ticks)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._old)
        written, ticks = self._old
        current = score.element(self.element_id)
        score.replace_element(self.element_id, replace(current, written=written, ticks=ticks))

    @property
    def description(self) -> str:
        return f"Change duration to {self.written}"

    def payload(self) -> dict[str, Any]:
        return {"element_id": self.element_id, "written": written_to_dict(self.written)}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChangeDurationCommand:
        return cls(payload["element_id"], written_from_dict(payload["written"]))


class MoveNoteCommand(Command):
    """Move a top-level element to another measure, tick and/or voice."""

    type = "MoveNote"

    def __init__(
        self,
        element_id: EntityId,
        measure_id: MeasureId,
        tick: TickPosition,
        voice: VoiceId | None = None,
    ) -> None:
        self.element_id = element_id
        self.measure_id = measure_id
        self.tick = tick
        self.voice = voice
        self._prior: tuple[ElementLocation, Element, int] | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        element = score.element(self.element_id)
        if isinstance(element, GraceGroup) or not score.is_top_level(element.id):
            raise StateError(f"{self.element_id} moves with its principal note")
        score.measure(self.measure_id)
        moved = element if self.voice is None else replace(element, voice=self.voice)
        prior = score.remove_element(self.element_id)
        try:
            score.add_element(self.measure_id, self.tick, moved)
        except StateError:
            loc, old, index = prior
            score.add_element(loc.measure_id, loc.tick, old, index=index)
            raise
        self._prior = prior
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._prior)
        loc, old, index = self._prior
        current = score.element(self.element_id)
        score.remove_element(self.element_id)
        score.add_element(loc.measure_id, loc.tick, replace(current, voice=old.voice), index=index)

    @property
    def description(self) -> str:
        return f"Move to tick {self.tick}"

    def payload(self) -> dict[str, Any]:
        return {
            "element_id": self.element_id,
            "measure_id": self.measure_id,
            "tick": self.tick,
            "voice": self.voice,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> MoveNoteCommand:
        return cls(
            payload["element_id"], payload["measure_id"], payload["tick"], payload.get("voice")
        )
