"""Command type registry: maps serialized type tags to command classes."""

from __future__ import annotations

from typing import Any

from mnote.commands.base import Command, CompoundCommand
from mnote.commands.note_commands import (
    AddChordCommand,
    AddElementCommand,
    AddGraceGroupCommand,
    AddNoteCommand,
    AddRestCommand,
    ChangeDurationCommand,
    ChangePitchCommand,
    MoveNoteCommand,
    RemoveElementCommand,
    RemoveNoteCommand,
)
from mnote.commands.spanner_commands import (
    AddSlurCommand,
    AddTieCommand,
    RemoveSlurCommand,
    RemoveTieCommand,
)
from mnote.commands.structure_commands import (
    AddMeasureCommand,
    AddPartCommand,
    InsertMeasureCommand,
    RemoveMeasureCommand,
    SetClefCommand,
    SetKeySignatureCommand,
    SetTempoCommand,
    SetTitleCommand,
)
from mnote.errors import SerializationError

COMMAND_TYPES: dict[str, type[Command]] = {
    cls.type: cls
    for cls in (
        CompoundCommand,
        AddElementCommand,
        AddNoteCommand,
        AddChordCommand,
        AddRestCommand,
        AddGraceGroupCommand,
        RemoveElementCommand,
        RemoveNoteCommand,
        ChangePitchCommand,
        ChangeDurationCommand,
        MoveNoteCommand,
        AddMeasureCommand,
        InsertMeasureCommand,
        RemoveMeasureCommand,
        SetClefCommand,
        SetKeySignatureCommand,
        AddPartCommand,
        SetTempoCommand,
        SetTitleCommand,
        AddSlurCommand,
        RemoveSlurCommand,
        AddTieCommand,
        RemoveTieCommand,
    )
}


def deserialize_command(data: dict[str, Any]) -> Command:
    """Rebuild a command from ``Command.serialize()`` output."""
    tag = data.get("type")
    cls = COMMAND_TYPES.get(tag)
    if cls is None:
        raise SerializationError(f"Unknown command type: {tag!r}")
    try:
        return cls.from_payload(data.get("payload", {}))
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"Malformed {tag} payload: {e}") from e
