"""Identity and time primitives.

Every addressable entity carries an opaque string id generated at creation
time.  Ids follow the UUIDv7 bit layout (48-bit unix-millisecond timestamp
first), so sorting ids as strings sorts them by creation time.  All
absolute positions in the model are integer ticks at 480 per quarter note.
"""

from __future__ import annotations

import os
import threading
import time
import uuid

EntityId = str
ScoreId = EntityId
PartId = EntityId
MeasureId = EntityId
NoteId = EntityId
ChordId = EntityId
RestId = EntityId
GraceGroupId = EntityId
SlurId = EntityId
TieId = EntityId
TupletId = EntityId

VoiceId = int  # 1-4 per staff, sparse
TickPosition = int  # absolute, never measure-relative
TickDuration = int

TICKS_PER_QUARTER = 480

MAX_VOICE = 4

_lock = threading.Lock()
_last_ms = 0
_counter = 0


def new_id() -> EntityId:
    """Return a fresh, chronologically sortable identifier.

    Ids minted within the same millisecond keep strict ordering through a
    12-bit counter stored in the ``rand_a`` field.
    """
    global _last_ms, _counter
    with _lock:
        ms = time.time_ns() // 1_000_000
        if ms <= _last_ms:
            ms = _last_ms
            _counter += 1
            if _counter > 0xFFF:
                ms += 1
                _counter = 0
        else:
            _counter = 0
        _last_ms = ms
        counter = _counter

    tail = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= counter << 64
    value |= 0b10 << 62
    value |= tail
    return uuid.UUID(int=value).hex


def id_timestamp_ms(entity_id: EntityId) -> int:
    """Unix-millisecond creation time embedded in *entity_id*."""
    return uuid.UUID(hex=entity_id).int >> 80
