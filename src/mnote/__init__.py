"""mnote: tick-authoritative music model, reversible commands and layout."""

from mnote.model.ids import TICKS_PER_QUARTER, new_id
from mnote.model.pitch import AccidentalDisplay, NotatedPitch, Pitch, PlaybackPitch, Step
from mnote.model.duration import NoteValue, TupletRef, WrittenDuration
from mnote.model.score import Score
from mnote.model.mutable import MutableScore
from mnote.commands.base import Command, CommandResult, CompoundCommand
from mnote.commands.history import CommandHistory
from mnote.layout.constraints import LayoutConstraints
from mnote.layout.engine import IncrementalLayoutEngine, ProportionalLayoutEngine

__all__ = [
    "TICKS_PER_QUARTER",
    "new_id",
    "AccidentalDisplay",
    "NotatedPitch",
    "Pitch",
    "PlaybackPitch",
    "Step",
    "NoteValue",
    "TupletRef",
    "WrittenDuration",
    "Score",
    "MutableScore",
    "Command",
    "CommandResult",
    "CompoundCommand",
    "CommandHistory",
    "LayoutConstraints",
    "IncrementalLayoutEngine",
    "ProportionalLayoutEngine",
]
