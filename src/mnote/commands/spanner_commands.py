"""Slur and tie commands."""

from __future__ import annotations

from typing import Any

from mnote.commands.base import Command, CommandResult
from mnote.errors import ErrorKind, StateError
from mnote.model.ids import NoteId, SlurId, TieId, new_id
from mnote.model.mutable import MutableScore
from mnote.model.score import Placement, Slur, Tie


class AddSlurCommand(Command):
    """Slur two notes; the time range runs from the first note's tick to the
    end of the last note and follows the notes when they move."""

    type = "AddSlur"

    def __init__(
        self,
        start_note_id: NoteId,
        end_note_id: NoteId,
        placement: Placement = Placement.ABOVE,
        slur_id: SlurId | None = None,
    ) -> None:
        self.start_note_id = start_note_id
        self.end_note_id = end_note_id
        self.placement = placement
        self.slur_id = slur_id or new_id()

    def _apply(self, score: MutableScore) -> CommandResult:
        score.note(self.start_note_id)
        end_note = score.note(self.end_note_id)
        start_tick = score.location(self.start_note_id).tick
        end_tick = score.location(self.end_note_id).tick + end_note.ticks
        if end_tick < start_tick:
            raise StateError("A slur must run forward in time", ErrorKind.INVALID_TICK)
        slur = Slur(
            id=self.slur_id,
            start_note_id=self.start_note_id,
            end_note_id=self.end_note_id,
            range=score.slur_range(self.start_note_id, self.end_note_id),
            placement=self.placement,
        )
        score.add_slur(slur)
        return CommandResult.ok({"slurId": self.slur_id})

    def revert(self, score: MutableScore) -> None:
        score.remove_slur(self.slur_id)

    @property
    def description(self) -> str:
        return "Add slur"

    def payload(self) -> dict[str, Any]:
        return {
            "start_note_id": self.start_note_id,
            "end_note_id": self.end_note_id,
            "placement": self.placement.value,
            "slur_id": self.slur_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddSlurCommand:
        return cls(
            payload["start_note_id"],
            payload["end_note_id"],
            Placement(payload.get("placement", "above")),
            payload["slur_id"],
        )


class RemoveSlurCommand(Command):
    type = "RemoveSlur"

    def __init__(self, slur_id: SlurId) -> None:
        self.slur_id = slur_id
        self._removed: tuple[Slur, int] | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        self._removed = score.remove_slur(self.slur_id)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._removed)
        slur, index = self._removed
        score.add_slur(slur, index)

    @property
    def description(self) -> str:
        return "Remove slur"

    def payload(self) -> dict[str, Any]:
        return {"slur_id": self.slur_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RemoveSlurCommand:
        return cls(payload["slur_id"])


class AddTieCommand(Command):
    """Tie two notes of the same pitch; both notes record the tie id."""

    type = "AddTie"

    def __init__(
        self, start_note_id: NoteId, end_note_id: NoteId, tie_id: TieId | None = None
    ) -> None:
        self.start_note_id = start_note_id
        self.end_note_id = end_note_id
        self.tie_id = tie_id or new_id()

    def _apply(self, score: MutableScore) -> CommandResult:
        score.add_tie(Tie(self.tie_id, self.start_note_id, self.end_note_id))
        return CommandResult.ok({"tieId": self.tie_id})

    def revert(self, score: MutableScore) -> None:
        score.remove_tie(self.tie_id)

    @property
    def description(self) -> str:
        return "Add tie"

    def payload(self) -> dict[str, Any]:
        return {
            "start_note_id": self.start_note_id,
            "end_note_id": self.end_note_id,
            "tie_id": self.tie_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AddTieCommand:
        return cls(payload["start_note_id"], payload["end_note_id"], payload["tie_id"])


class RemoveTieCommand(Command):
    type = "RemoveTie"

    def __init__(self, tie_id: TieId) -> None:
        self.tie_id = tie_id
        self._removed: tuple[Tie, int] | None = None

    def _apply(self, score: MutableScore) -> CommandResult:
        self._removed = score.remove_tie(self.tie_id)
        return CommandResult.ok()

    def revert(self, score: MutableScore) -> None:
        self._require_applied(self._removed)
        tie, index = self._removed
        score.add_tie(tie, index)

    @property
    def description(self) -> str:
        return "Remove tie"

    def payload(self) -> dict[str, Any]:
        return {"tie_id": self.tie_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RemoveTieCommand:
        return cls(payload["tie_id"])
