"""Undo/redo history.

Two stacks and a revision counter.  The revision strictly increases on
every successful execute, undo and redo, and is stamped onto the working
score so layout caches can compare it.  Any new execute clears the redo
stack; branching history is not supported.
"""

from __future__ import annotations

import logging

from mnote.commands.base import Command, CommandResult
from mnote.model.mutable import MutableScore

logger = logging.getLogger(__name__)


class CommandHistory:
    """Linear command history with undo/redo stacks."""

    def __init__(self) -> None:
        self._undo: list[Command] = []
        self._redo: list[Command] = []
        self._revision = 0

    # -- properties ----------------------------------------------------------

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_description(self) -> str | None:
        return self._undo[-1].description if self._undo else None

    @property
    def redo_description(self) -> str | None:
        return self._redo[-1].description if self._redo else None

    @property
    def applied(self) -> list[Command]:
        """Commands currently applied, oldest first."""
        return list(self._undo)

    # -- operations ----------------------------------------------------------

    def execute(self, cmd: Command, score: MutableScore) -> CommandResult:
        """Apply *cmd*; on success record it and advance the revision."""
        result = cmd.apply(score)
        if not result.success:
            logger.debug("execute %r failed: %s", cmd.description, result.error)
            return result
        self._undo.append(cmd)
        self._redo.clear()
        self._advance(score)
        logger.debug("execute %r -> revision %d", cmd.description, self._revision)
        return result

    def undo(self, score: MutableScore) -> Command | None:
        """Revert the most recent command; no-op on an empty stack."""
        if not self._undo:
            return None
        cmd = self._undo.pop()
        cmd.revert(score)
        self._redo.append(cmd)
        self._advance(score)
        logger.debug("undo %r -> revision %d", cmd.description, self._revision)
        return cmd

    def redo(self, score: MutableScore) -> CommandResult | None:
        """Re-apply the most recently undone command; no-op on an empty stack."""
        if not self._redo:
            return None
        cmd = self._redo[-1]
        result = cmd.apply(score)
        if not result.success:
            logger.warning("redo %r failed: %s", cmd.description, result.error)
            return result
        self._redo.pop()
        self._undo.append(cmd)
        self._advance(score)
        logger.debug("redo %r -> revision %d", cmd.description, self._revision)
        return result

    def clear(self) -> None:
        """Forget both stacks; the revision keeps counting."""
        self._undo.clear()
        self._redo.clear()

    def _advance(self, score: MutableScore) -> None:
        self._revision = max(self._revision, score.revision) + 1
        score.revision = self._revision
