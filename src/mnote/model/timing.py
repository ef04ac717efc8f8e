"""Tick arithmetic: beats, measures and tempo-map conversion to seconds.

All public helpers work on absolute ticks at ``TICKS_PER_QUARTER``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from mnote.model.ids import TICKS_PER_QUARTER

if TYPE_CHECKING:
    from mnote.model.score import Tempo


def ticks_per_beat(denominator: int, ppqn: int = TICKS_PER_QUARTER) -> int:
    """Ticks for one beat given *denominator*.

    For 4/4 a beat is a quarter note => ppqn.
    For 6/8 a beat is an eighth note  => ppqn // 2.
    """
    return ppqn * 4 // denominator


def ticks_per_measure(
    numerator: int, denominator: int, ppqn: int = TICKS_PER_QUARTER
) -> int:
    """Total ticks in one measure with the given time signature."""
    return numerator * ticks_per_beat(denominator, ppqn)


DEFAULT_BPM = 120.0


def _tempo_map(tempos: Sequence[Tempo]) -> list[tuple[int, float]]:
    """``(tick, bpm)`` pairs in tick order, starting at tick 0."""
    ordered = sorted((t.tick, t.bpm) for t in tempos)
    if not ordered or ordered[0][0] > 0:
        ordered.insert(0, (0, DEFAULT_BPM))
    return ordered


def ticks_to_seconds(
    tick: int,
    tempos: Sequence[Tempo],
    ppqn: int = TICKS_PER_QUARTER,
) -> float:
    """Convert absolute *tick* to seconds using the tempo list."""
    ordered = _tempo_map(tempos)
    seconds = 0.0
    for i, (start, bpm) in enumerate(ordered):
        next_tick = ordered[i + 1][0] if i + 1 < len(ordered) else None
        secs_per_tick = 60.0 / (bpm * ppqn)
        if next_tick is not None and tick >= next_tick:
            seconds += (next_tick - start) * secs_per_tick
        else:
            return seconds + (tick - start) * secs_per_tick
    return seconds


def seconds_to_ticks(
    seconds: float,
    tempos: Sequence[Tempo],
    ppqn: int = TICKS_PER_QUARTER,
) -> int:
    """Convert *seconds* to the nearest absolute tick using the tempo list."""
    ordered = _tempo_map(tempos)
    remaining = seconds
    for i, (start, bpm) in enumerate(ordered):
        secs_per_tick = 60.0 / (bpm * ppqn)
        if i + 1 < len(ordered):
            region = (ordered[i + 1][0] - start) * secs_per_tick
            if remaining > region:
                remaining -= region
                continue
        return round(start + remaining / secs_per_tick)
    return 0
