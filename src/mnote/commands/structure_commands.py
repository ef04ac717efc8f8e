"""Measure, part, tempo and title commands."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from mnote.commands.base import Command, CommandResult
from mnote.errors import StateError
from mnote.model.ids import MeasureId, PartId, TickPosition, new_id
from mnote.model.mutable import MutableScore
from mnote.model.score import (
    TREBLE_CLEF,
    Clef,
    KeyMode,
    KeySignature,
    Measure,
    Part,
    Slur,
    Tempo,
    Tie,
    TimeSignature,
)
from mnote.serialization.codec import (
    clef_from_dict,
    clef_to_dict,
    measure_from_dict,
    measure_to_dict,
    part_from_dict,
    part_to_dict,
)


class AddMeasureCommand(Command):
    """Insert an empty measure before *before_measure_id* (default: append).

    Without an explicit time signature the measure takes the signature in
    effect where it lands.  Later measures shift right by its duration.
    """

    type = "AddMeasure"

    def __init__(
        self,
        before_measure_id: MeasureId | None = None,
        time_signature: TimeSignature | None = None,
        measure_id: MeasureId | None = None,
    ) -> None:
        self.before_measure_id = before_measure_id
        self.time_signature = time_signature
        self.measure_id = measure_id or new_id()

    def _apply(self, score: MutableScore) -> CommandResult:
        order = score.measure_ids
        if self.before_measure_id is None:
            index = len(order)
        else:
            score.measure(self.before_measure_id)
            index = order.index(self.before_measure_id)
        signature = self.time_signature or _signature_before(score, order[:index])
        measure = Measure(
            id=self.measure_id,
            number=index + 1,
            start_tick=0,
            duration=signature.ticks_per_measure,
            time_signature=self.time_signature,
        )
        score.add_measure(measure, index)
        return CommandResult.ok({"measureId": self.measure_id})

    def revert(self, score: MutableScore) -> None:
        score.remove_measure(self.measure_id)

    @property
    def description(self) -> str:
        return "Add measure"

    def payload(self) -> dict[str, Any]:
        ts = self.time_signature
        return {
            "before_measure_id": self.before_measure_id,
            "time_signature": [ts.beats, ts.beat_type] if ts else None,
            "measure_id": self.measure_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddMeasureCommand:
        ts = payload.get("time_signature")
        return cls(
            before_measure_id=payload.get("before_measure_id"),
            time_signature=TimeSignature(*ts) if ts else None,
            measure_id=payload["measure_id"],
        )


def _signature_before(score: MutableScore, earlier: list[MeasureId]) -> TimeSignature:
    for measure_id in reversed(earlier):
        signature = score.measure(measure_id).time_signature
        if signature is not None:
            return signature
    return TimeSignature(4, 4)


class RemoveMeasureCommand(Command):
    """Remove a measure with its content; later measures shift left.

    Spanners touching notes of the measure are removed too, and tempo
    changes inside it are dropped; both come back on revert.
    """

    type = "RemoveMeasure"

    def __init__(self, measure_id: MeasureId) -> None:
        self.measure_id = measure_id
        self._removed: tuple[Measure, int] | None = None
        self._slurs: list[tuple[Slur, int]] = []
        self._ties: list[tuple[Tie, int]] = []
        self._tempos: tuple[Tempo, ...] = ()

    def _apply(self, score: MutableScore) -> CommandResult:
        score.measure(self.measure_id)
        slur_ids: list[str] = []
        tie_ids: list[str] = []
        for note_id in score.note_ids_in_measure(self.measure_id):
            slurs, ties = score.spanners_for(note_id)
            slur_ids += [s.id for s in slurs if s.id not in slur_ids]
            tie_ids += [t.id for t in ties if t.id not in tie_ids]
        self._ties = [score.remove_tie(t) for t in tie_ids]
        self._slurs = [score.remove_slur(s) for s in slur_ids]
        self._tempos = score.tempos
        self._removed = score.remove_measure(self.measure_id)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._removed)
        measure, index = self._removed
        score.add_measure(measure, index)
        score.restore_tempos(self._tempos)
        for slur, slur_index in reversed(self._slurs):
            score.add_slur(slur, slur_index)
        for tie, tie_index in reversed(self._ties):
            score.add_tie(tie, tie_index)

    @property
    def description(self) -> str:
        return "Remove measure"

    def payload(self) -> dict[str, Any]:
        return {"measure_id": self.measure_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RemoveMeasureCommand:
        return cls(payload["measure_id"])


class InsertMeasureCommand(Command):
    """Insert a fully built measure (content included) at a position.

    Used for paste and for replaying measures captured elsewhere.
    """

    type = "InsertMeasure"

    def __init__(self, measure: Measure, before_measure_id: MeasureId | None = None) -> None:
        self.measure = measure
        self.before_measure_id = before_measure_id

    def _apply(self, score: MutableScore) -> CommandResult:
        order = score.measure_ids
        index = len(order)
        if self.before_measure_id is not None:
            score.measure(self.before_measure_id)
            index = order.index(self.before_measure_id)
        score.add_measure(self.measure, index)
        return CommandResult.ok({"measureId": self.measure.id})

    def revert(self, score: MutableScore) -> None:
        score.remove_measure(self.measure.id)

    @property
    def description(self) -> str:
        return "Insert measure"

    def payload(self) -> dict[str, Any]:
        return {
            "measure": measure_to_dict(self.measure),
            "before_measure_id": self.before_measure_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> InsertMeasureCommand:
        return cls(measure_from_dict(payload["measure"]), payload.get("before_measure_id"))


class _SetMeasureAttribute(Command):
    attribute = ""

    def __init__(self, measure_id: MeasureId, value: Any) -> None:
        self.measure_id = measure_id
        self.value = value
        self._old: Measure | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        self._old = score.set_measure_attributes(self.measure_id, **{self.attribute: self.value})
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._old)
        score.set_measure_attributes(
            self.measure_id, **{self.attribute: getattr(self._old, self.attribute)}
        )


class SetClefCommand(_SetMeasureAttribute):
    """Set or clear (``None``) the clef change at the start of a measure."""

    type = "SetClef"
    attribute = "clef"

    @property
    def description(self) -> str:
        return f"Set clef to {self.value.type.value}" if self.value else "Clear clef change"

    def payload(self) -> dict[str, Any]:
        return {
            "measure_id": self.measure_id,
            "clef": clef_to_dict(self.value) if self.value else None,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SetClefCommand:
        clef = payload.get("clef")
        return cls(payload["measure_id"], clef_from_dict(clef) if clef else None)


class SetKeySignatureCommand(_SetMeasureAttribute):
    """Set or clear (``None``) the key signature change of a measure."""

    type = "SetKeySignature"
    attribute = "key_signature"

    @property
    def description(self) -> str:
        return f"Set key to {self.value.fifths:+d} fifths" if self.value else "Clear key change"

    def payload(self) -> dict[str, Any]:
        ks: KeySignature | None = self.value
        return {
            "measure_id": self.measure_id,
            "key_signature": {"fifths": ks.fifths, "mode": ks.mode.value} if ks else None,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SetKeySignatureCommand:
        ks = payload.get("key_signature")
        return cls(
            payload["measure_id"],
            KeySignature(ks["fifths"], KeyMode(ks["mode"])) if ks else None,
        )


class AddPartCommand(Command):
    type = "AddPart"

    def __init__(
        self,
        name: str,
        abbreviation: str | None = None,
        midi_program: int = 0,
        staff_clefs: Iterable[Clef] = (TREBLE_CLEF,),
        part_id: PartId | None = None,
    ) -> None:
        self.part = Part(
            id=part_id or new_id(),
            name=name,
            abbreviation=abbreviation,
            midi_program=midi_program,
            staff_clefs=tuple(staff_clefs),
        )

    def _apply(self, score: MutableScore) -> CommandResult:
        score.add_part(self.part)
        return CommandResult.ok({"partId": self.part.id})

    def revert(self, score: MutableScore) -> None:
        score.remove_part(self.part.id)

    @property
    def description(self) -> str:
        return f"Add part {self.part.name}"

    def payload(self) -> dict[str, Any]:
        return {"part": part_to_dict(self.part)}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddPartCommand:
        part = part_from_dict(payload["part"])
        return cls(
            part.name,
            part.abbreviation,
            part.midi_program,
            part.staff_clefs,
            part_id=part.id,
        )


class SetTempoCommand(Command):
    """Insert or replace the tempo change at a tick."""

    type = "SetTempo"

    def __init__(self, tick: TickPosition, bpm: float) -> None:
        self.tempo = Tempo(tick=tick, bpm=bpm)
        self._applied = False
        self._old: Tempo | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        order = score.measure_ids
        if order and self.tempo.tick >= score.measure(order[-1]).end_tick:
            raise StateError(
                f"Tempo tick {self.tempo.tick} is past the end of the score"
            )
        self._old = score.set_tempo(self.tempo)
        self._applied = True
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        if not self._applied:
            raise StateError(f"{self.type} has not been applied")
        if self._old is None:
            score.remove_tempo(self.tempo.tick)
        else:
            score.set_tempo(self._old)

    @property
    def description(self) -> str:
        return f"Set tempo {self.tempo.bpm:g} bpm"

    def payload(self) -> dict[str, Any]:
        return {"tick": self.tempo.tick, "bpm": self.tempo.bpm}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SetTempoCommand:
        return cls(payload["tick"], payload["bpm"])


class SetTitleCommand(Command):
    type = "SetTitle"

    def __init__(self, title: str) -> None:
        self.title = title
        self._old: str | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        self._old = score.set_title(self.title)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._old)
        score.set_title(self._old)

    @property
    def description(self) -> str:
        return f"Rename to {self.title!r}"

    def payload(self) -> dict[str, Any]:
        return {"title": self.title}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SetTitleCommand:
        return cls(payload["title"])
