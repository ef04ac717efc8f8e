"""Command interface.

All score mutations go through commands.  A command is semantic, not
positional: it names measures, voices, ticks and entity ids, never list
indices, so a serialized command log can be replayed anywhere.

``apply`` captures whatever it overwrites so that ``revert`` needs no
further context.  A failed ``apply`` leaves the working score unchanged
and reports the reason in the returned :class:`CommandResult`; no
exception crosses the apply boundary for a bad reference.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from mnote.errors import ErrorKind, StateError, ValidationError
from mnote.model.ids import EntityId
from mnote.model.mutable import MutableScore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    success: bool
    error: str | None = None
    kind: ErrorKind | None = None
    created_ids: dict[str, EntityId] = field(default_factory=dict)

    @classmethod
    def ok(cls, created_ids: dict[str, EntityId] | None = None) -> CommandResult:
        return cls(success=True, created_ids=dict(created_ids or {}))

    @classmethod
    def fail(cls, error: str, kind: ErrorKind = ErrorKind.INVALID_REFERENCE) -> CommandResult:
        return cls(success=False, error=error, kind=kind)


class Command(ABC):
    """Base class for all commands."""

    type: ClassVar[str] = ""

    def apply(self, score: MutableScore) -> CommandResult:
        """Apply to the working *score*; never raises for a bad reference."""
        try:
            return self._apply(score)
        except StateError as e:
            logger.debug("%s rejected: %s", self.type, e)
            return CommandResult.fail(str(e), e.kind)
        except ValidationError as e:
            logger.debug("%s rejected: %s", self.type, e)
            return CommandResult.fail(str(e), ErrorKind.INVALID_VALUE)

    @abstractmethod
    def _apply(self, score: MutableScore) -> CommandResult:
        """Validate, capture prior state, then mutate.

        Implementations raise StateError *before* mutating anything.
        """

    @abstractmethod
    def revert(self, score: MutableScore) -> None:
        """Perform the exact inverse of the last successful apply."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable label for history UIs."""

    @abstractmethod
    def payload(self) -> dict[str, Any]:
        """Key/value payload sufficient to rebuild the command."""

    @classmethod
    @abstractmethod
    def from_payload(cls, payload: dict[str, Any]) -> Command:
        """Inverse of :meth:`payload`."""

    def serialize(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload()}

    def _require_applied(self, captured: object) -> None:
        if captured is None:
            raise StateError(f"{self.type} has not been applied")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.description!r}>"


class CompoundCommand(Command):
    """Atomic sequence of sub-commands.

    If a sub-command fails, the ones already applied are reverted in
    reverse order and the first failure is returned.
    """

    type = "Compound"

    def __init__(self, commands: list[Command], description: str = "") -> None:
        self.commands = list(commands)
        self._description = description or ", ".join(c.description for c in commands)

    def _apply(self, score: MutableScore) -> CommandResult:
        created: dict[str, EntityId] = {}
        applied: list[Command] = []
        for cmd in self.commands:
            result = cmd.apply(score)
            if not result.success:
                for done in reversed(applied):
                    done.revert(score)
                logger.debug(
                    "Compound %r rolled back %d sub-command(s)", self._description, len(applied)
                )
                return result
            applied.append(cmd)
            created.update(result.created_ids)
        return CommandResult.ok(created)

    def revert(self, score: MutableScore) -> None:
        for cmd in reversed(self.commands):
            cmd.revert(score)

    @property
    def description(self) -> str:
        return self._description

    def payload(self) -> dict[str, Any]:
        return {
            "description": self._description,
            "commands": [c.serialize() for c in self.commands],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CompoundCommand:
        from mnote.commands.registry import deserialize_command

        return cls(
            [deserialize_command(c) for c in payload["commands"]],
            description=payload.get("description", ""),
        )
