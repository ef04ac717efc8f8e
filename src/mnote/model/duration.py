"""Two-way duration model.

- :class:`WrittenDuration` is the rhythmic spelling used for engraving.
- Its :attr:`~WrittenDuration.ticks` is the playback length.

Dots add a geometric series (1/2, 1/4, 1/8 of the base) and an enclosing
tuplet scales the dotted total by ``normal / actual``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction

from mnote.errors import ValidationError
from mnote.model.ids import TICKS_PER_QUARTER, TickDuration, TupletId


class NoteValue(Enum):
    WHOLE = "whole"
    HALF = "half"
    QUARTER = "quarter"
    EIGHTH = "eighth"
    SIXTEENTH = "sixteenth"
    THIRTY_SECOND = "32nd"
    SIXTY_FOURTH = "64th"

    @property
    def ticks(self) -> int:
        return NOTE_VALUE_TICKS[self]


# Base ticks at 480 ticks per quarter
NOTE_VALUE_TICKS: dict[NoteValue, int] = {
    NoteValue.WHOLE: TICKS_PER_QUARTER * 4,
    NoteValue.HALF: TICKS_PER_QUARTER * 2,
    NoteValue.QUARTER: TICKS_PER_QUARTER,
    NoteValue.EIGHTH: TICKS_PER_QUARTER // 2,
    NoteValue.SIXTEENTH: TICKS_PER_QUARTER // 4,
    NoteValue.THIRTY_SECOND: TICKS_PER_QUARTER // 8,
    NoteValue.SIXTY_FOURTH: TICKS_PER_QUARTER // 16,
}

MAX_DOTS = 3


@dataclass(frozen=True)
class TupletRef:
    id: TupletId
    actual: int  # 3 in 3:2
    normal: int  # 2 in 3:2

    def __post_init__(self) -> None:
        if self.actual <= 0 or self.normal <= 0:
            raise ValidationError(
                f"Tuplet ratio must be positive, got {self.actual}:{self.normal}"
            )

    @property
    def ratio(self) -> Fraction:
        """Multiplier applied to written ticks (2/3 for a triplet)."""
        return Fraction(self.normal, self.actual)


@dataclass(frozen=True)
class WrittenDuration:
    base: NoteValue
    dots: int = 0
    tuplet: TupletRef | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.dots <= MAX_DOTS:
            raise ValidationError(f"dots {self.dots} out of range (0..{MAX_DOTS})")

    @property
    def ticks(self) -> TickDuration:
        base_ticks = NOTE_VALUE_TICKS[self.base]
        total = Fraction(base_ticks)
        dot_value = Fraction(base_ticks)
        for _ in range(self.dots):
            dot_value /= 2
            total += dot_value
        if self.tuplet is not None:
            total *= self.tuplet.ratio
        return _round_half_up(total)

    def __str__(self) -> str:
        tuplet = ""
        if self.tuplet is not None:
            tuplet = f" ({self.tuplet.actual}:{self.tuplet.normal})"
        return f"{self.base.value}{'.' * self.dots}{tuplet}"


def _round_half_up(value: Fraction) -> int:
    # Python's round() is banker's rounding; tick rounding is half-up.
    return int((value + Fraction(1, 2)) // 1)
