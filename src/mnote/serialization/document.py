"""Score documents (.mnote).

A document is the authoritative persisted form of a score: a metadata
map, the ordered log of serialized commands, an optional snapshot score
and the index of the first command the snapshot does not include.
Rebuilding starts from the snapshot (or an empty score) and replays the
log from that index through ``Command.apply``.

Files are MessagePack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import msgpack

from mnote.commands.history import CommandHistory
from mnote.commands.registry import deserialize_command
from mnote.errors import SerializationError
from mnote.model.ids import new_id
from mnote.model.mutable import MutableScore
from mnote.model.score import Score
from mnote.serialization.codec import score_from_dict, score_to_dict

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1
SUFFIX = ".mnote"


@dataclass
class ScoreDocument:
    metadata: dict[str, Any] = field(default_factory=dict)
    commands: list[dict[str, Any]] = field(default_factory=list)
    snapshot: dict[str, Any] | None = None
    snapshot_revision_index: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.snapshot_revision_index <= len(self.commands):
            raise SerializationError(
                f"Snapshot index {self.snapshot_revision_index} outside the "
                f"command log (0..{len(self.commands)})"
            )

    # -- building ------------------------------------------------------------

    @classmethod
    def record(
        cls,
        history: CommandHistory,
        base: Score | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ScoreDocument:
        """Capture *history*'s applied commands on top of *base*.

        *base* is the score the history started from; redo entries are not
        recorded.
        """
        meta = dict(metadata or {})
        if base is not None:
            meta.setdefault("score_id", base.id)
            meta.setdefault("title", base.title)
        return cls(
            metadata=meta,
            commands=[cmd.serialize() for cmd in history.applied],
            snapshot=score_to_dict(base) if base is not None else None,
            snapshot_revision_index=0,
        )

    def append(self, serialized: dict[str, Any]) -> None:
        self.commands.append(serialized)

    def checkpoint(self, score: Score) -> None:
        """Fold the whole log into a snapshot of *score*.

        The log itself is kept; a rebuild replays nothing.
        """
        self.snapshot = score_to_dict(score)
        self.snapshot_revision_index = len(self.commands)

    # -- replay --------------------------------------------------------------

    def base_score(self) -> Score:
        if self.snapshot is not None:
            return score_from_dict(self.snapshot)
        return Score(
            id=self.metadata.get("score_id") or new_id(),
            title=self.metadata.get("title", "Untitled"),
        )

    def restore(self) -> tuple[MutableScore, CommandHistory]:
        """Working copy and history with every logged command re-applied.

        Replayed commands are undoable back to the snapshot.
        """
        working = MutableScore(self.base_score())
        history = CommandHistory()
        for position, data in enumerate(
            self.commands[self.snapshot_revision_index :], start=self.snapshot_revision_index
        ):
            cmd = deserialize_command(data)
            result = history.execute(cmd, working)
            if not result.success:
                raise SerializationError(
                    f"Command {position} ({data.get('type')}) failed on replay: {result.error}"
                )
        logger.debug(
            "Replayed %d commands from index %d",
            len(self.commands) - self.snapshot_revision_index,
            self.snapshot_revision_index,
        )
        return working, history

    def rebuild(self) -> Score:
        """The score this document describes."""
        working, _history = self.restore()
        return working.score

    # -- encoding ------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": DOCUMENT_VERSION,
            "metadata": self.metadata,
            "commands": self.commands,
            "snapshot": self.snapshot,
            "snapshot_revision_index": self.snapshot_revision_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreDocument:
        if not isinstance(data, dict):
            raise SerializationError("Document root must be a map")
        version = data.get("version")
        if version != DOCUMENT_VERSION:
            raise SerializationError(f"Incompatible document version: {version!r}")
        return cls(
            metadata=dict(data.get("metadata") or {}),
            commands=list(data.get("commands") or []),
            snapshot=data.get("snapshot"),
            snapshot_revision_index=data.get("snapshot_revision_index", 0),
        )


def save_document(document: ScoreDocument, path: str | Path) -> Path:
    """Write *document* to *path*, adding the ``.mnote`` suffix if missing."""
    path = Path(path)
    if path.suffix != SUFFIX:
        path = path.with_suffix(SUFFIX)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        packed = msgpack.packb(document.to_dict(), use_bin_type=True)
        with open(path, "wb") as f:
            f.write(packed)
    except (OSError, TypeError, ValueError) as e:
        raise SerializationError(f"Failed to save document to {path}: {e}") from e
    logger.debug("Saved %d commands to %s", len(document.commands), path)
    return path


def load_document(path: str | Path) -> ScoreDocument:
    path = Path(path)
    if not path.exists():
        raise SerializationError(f"Document not found: {path}")
    try:
        with open(path, "rb") as f:
            data = msgpack.unpackb(f.read(), raw=False)
    except (OSError, ValueError, msgpack.exceptions.UnpackException) as e:
        raise SerializationError(f"Invalid {SUFFIX} file {path}: {e}") from e
    document = ScoreDocument.from_dict(data)
    logger.debug("Loaded %d commands from %s", len(document.commands), path)
    return document
