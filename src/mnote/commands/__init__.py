"""Command system: the only mutation path for a score."""

from mnote.commands.base import Command, CommandResult, CompoundCommand
from mnote.commands.history import CommandHistory
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
from mnote.commands.registry import COMMAND_TYPES, deserialize_command
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

__all__ = [
    "Command",
    "CommandResult",
    "CompoundCommand",
    "CommandHistory",
    "COMMAND_TYPES",
    "deserialize_command",
    "AddChordCommand",
    "AddElementCommand",
    "AddGraceGroupCommand",
    "AddNoteCommand",
    "AddRestCommand",
    "ChangeDurationCommand",
    "ChangePitchCommand",
    "MoveNoteCommand",
    "RemoveElementCommand",
    "RemoveNoteCommand",
    "AddSlurCommand",
    "AddTieCommand",
    "RemoveSlurCommand",
    "RemoveTieCommand",
    "AddMeasureCommand",
    "AddPartCommand",
    "InsertMeasureCommand",
    "RemoveMeasureCommand",
    "SetClefCommand",
    "SetKeySignatureCommand",
    "SetTempoCommand",
    "SetTitleCommand",
]
