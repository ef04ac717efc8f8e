"""Layout geometry: systems, measures, staves and the queries over them.

Y grows downwards.  A staff's ``y`` is its top line; staff position 0 is
the bottom line and every step of position is half a line spacing.
"""

from __future__ import annotations

import bisect
import math
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import NamedTuple

from mnote.model.ids import EntityId, MeasureId, TickPosition
from mnote.model.pitch import Pitch, step_from_index
from mnote.model.score import Clef, ClefType


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, point: Point) -> bool:
        return self.x <= point.x < self.right and self.y <= point.y < self.bottom

    def union(self, other: Rect) -> Rect:
        x, y = min(self.x, other.x), min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)


def _round(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Measures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MeasureLayout:
    measure_id: MeasureId
    x: float
    width: float
    start_tick: TickPosition
    end_tick: TickPosition

    @property
    def right(self) -> float:
        return self.x + self.width

    def contains_tick(self, tick: TickPosition) -> bool:
        return self.start_tick <= tick < self.end_tick

    def contains_x(self, x: float) -> bool:
        return self.x <= x < self.right

    def tick_to_x(self, tick: TickPosition) -> float:
        span = self.end_tick - self.start_tick
        return self.x + (tick - self.start_tick) / span * self.width

    def x_to_tick(self, x: float) -> TickPosition:
        """Inverse of :meth:`tick_to_x`, rounded to the nearest tick."""
        if self.width == 0:
            return self.start_tick
        progress = (x - self.x) / self.width
        return self.start_tick + _round(progress * (self.end_tick - self.start_tick))


# ---------------------------------------------------------------------------
# Staves
# ---------------------------------------------------------------------------

# Staff position of middle C for each clef on its standard line.
_MIDDLE_C_POSITION: dict[ClefType, int] = {
    ClefType.TREBLE: -2,
    ClefType.BASS: 10,
    ClefType.ALTO: 4,
    ClefType.TENOR: 6,
}

# Line each clef type's offset above is measured on
_STANDARD_LINE: dict[ClefType, int] = {
    ClefType.TREBLE: 2,
    ClefType.BASS: 4,
    ClefType.ALTO: 3,
    ClefType.TENOR: 4,
}

_CENTRE_LINE = 4


def middle_c_position(clef: Clef) -> int:
    """Staff position of C4 under *clef*.

    Moving a clef up one line moves every pitch down two positions.
    Percussion staves read like a treble staff.
    """
    if clef.type is ClefType.PERCUSSION:
        return _MIDDLE_C_POSITION[ClefType.TREBLE]
    shift = clef.line - _STANDARD_LINE[clef.type]
    return _MIDDLE_C_POSITION[clef.type] + 2 * shift


@dataclass(frozen=True)
class StaffLayout:
    index: int
    y: float
    line_spacing: float
    clef: Clef

    @property
    def height(self) -> float:
        return 4 * self.line_spacing

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def staff_position(self, pitch: Pitch) -> int:
        if self.clef.type is ClefType.PERCUSSION:
            return _CENTRE_LINE
        return pitch.step.index + 7 * (pitch.octave - 4) + middle_c_position(self.clef)

    def position_to_y(self, position: float) -> float:
        return self.bottom - position * self.line_spacing / 2

    def pitch_to_y(self, pitch: Pitch) -> float:
        return self.position_to_y(self.staff_position(pitch))

    def y_to_pitch(self, y: float) -> Pitch | None:
        """Natural pitch of the line or space nearest to *y*.

        Returns ``None`` when that position lies outside octaves 0-9.
        """
        position = _round((self.bottom - y) / (self.line_spacing / 2))
        steps = position - middle_c_position(self.clef)
        octave = 4 + steps // 7
        if not 0 <= octave <= 9:
            return None
        return Pitch(step_from_index(steps % 7), octave=octave)


# ---------------------------------------------------------------------------
# Systems and the full result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SystemLayout:
    index: int
    y: float
    height: float
    measures: tuple[MeasureLayout, ...]
    staves: tuple[StaffLayout, ...]

    @property
    def start_tick(self) -> TickPosition:
        return self.measures[0].start_tick

    @property
    def end_tick(self) -> TickPosition:
        return self.measures[-1].end_tick

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def measure_at_tick(self, tick: TickPosition) -> MeasureLayout | None:
        return next((m for m in self.measures if m.contains_tick(tick)), None)

    def measure_at_x(self, x: float) -> MeasureLayout | None:
        return next((m for m in self.measures if m.contains_x(x)), None)


@dataclass(frozen=True)
class LayoutResult:
    """Immutable output of a layout pass.

    ``measure_bounds`` maps each measure id to the bounding boxes of the
    elements it holds; :attr:`element_bounds` flattens them in score order.
    """

    systems: tuple[SystemLayout, ...]
    measure_bounds: Mapping[MeasureId, Mapping[EntityId, Rect]]
    system_spacing: float = 0.0

    @cached_property
    def element_bounds(self) -> dict[EntityId, Rect]:
        bounds: dict[EntityId, Rect] = {}
        for measure in self.measures:
            bounds.update(self.measure_bounds.get(measure.measure_id, {}))
        return bounds

    @cached_property
    def measures(self) -> tuple[MeasureLayout, ...]:
        return tuple(m for s in self.systems for m in s.measures)

    @cached_property
    def _by_id(self) -> dict[MeasureId, tuple[SystemLayout, MeasureLayout]]:
        return {m.measure_id: (s, m) for s in self.systems for m in s.measures}

    @cached_property
    def _system_starts(self) -> list[TickPosition]:
        return [s.start_tick for s in self.systems]

    def measure_layout(self, measure_id: MeasureId) -> MeasureLayout | None:
        found = self._by_id.get(measure_id)
        return found[1] if found else None

    def system_of(self, measure_id: MeasureId) -> SystemLayout | None:
        found = self._by_id.get(measure_id)
        return found[0] if found else None

    def system_at_tick(self, tick: TickPosition) -> SystemLayout | None:
        i = bisect.bisect_right(self._system_starts, tick) - 1
        if i >= 0 and tick < self.systems[i].end_tick:
            return self.systems[i]
        return None

    def system_at_y(self, y: float) -> SystemLayout | None:
        """System whose band contains *y*; bands split the spacing evenly."""
        margin = self.system_spacing / 2
        for system in self.systems:
            if system.y - margin <= y < system.bottom + margin:
                return system
        return None

    def tick_to_position(self, tick: TickPosition, staff: int = 0) -> Point | None:
        """X of *tick* and Y of the top line of *staff*, or ``None``."""
        system = self.system_at_tick(tick)
        if system is None or not 0 <= staff < len(system.staves):
            return None
        measure = system.measure_at_tick(tick)
        if measure is None:
            return None
        return Point(measure.tick_to_x(tick), system.staves[staff].y)

    def position_to_tick(self, pos: Point, staff: int = 0) -> TickPosition | None:
        system = self.system_at_y(pos.y)
        if system is None or not 0 <= staff < len(system.staves):
            return None
        measure = system.measure_at_x(pos.x)
        if measure is None:
            return None
        return measure.x_to_tick(pos.x)

    def hit_test(self, pos: Point) -> EntityId | None:
        """Id of the first element whose bounding box contains *pos*."""
        for entity_id, rect in self.element_bounds.items():
            if rect.contains(pos):
                return entity_id
        return None

    def element_rect(self, entity_id: EntityId) -> Rect | None:
        return self.element_bounds.get(entity_id)
