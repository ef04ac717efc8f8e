"""Layout engines.

:class:`ProportionalLayoutEngine` is a pure function of (score, constraints):
every measure gets an ideal width from its segment density, measures are
packed greedily into systems and each system is justified to the page
width.

:class:`IncrementalLayoutEngine` caches the previous result under
``(score.revision, constraints)``.  Dirty measures come from explicit
:meth:`~IncrementalLayoutEngine.mark_dirty` calls and from comparing
``Measure`` objects by identity with the previous score, which works
because snapshots share every measure a command did not touch.  Systems
before the first dirty measure are reused as they are, and trailing
systems are reused once packing lines up with the cached result again.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from mnote.layout.constraints import LayoutConstraints
from mnote.layout.geometry import LayoutResult, MeasureLayout, Rect, StaffLayout, SystemLayout
from mnote.model.elements import Chord, Element, GraceGroup, Note, Rest
from mnote.model.ids import TICKS_PER_QUARTER, EntityId, MeasureId
from mnote.model.score import Clef, Measure, Score

logger = logging.getLogger(__name__)

HEAD_WIDTH = 1.2  # in line spacings
GRACE_SCALE = 0.6

MeasureBounds = dict[EntityId, Rect]


# ---------------------------------------------------------------------------
# Building blocks shared by both engines
# ---------------------------------------------------------------------------

def ideal_width(measure: Measure, c: LayoutConstraints) -> float:
    """Width proportional to segments per quarter note, clamped to the bounds."""
    density = len(measure.segments) / (measure.duration / TICKS_PER_QUARTER)
    width = c.measure_min_width + density * c.density_scale
    return min(max(width, c.measure_min_width), c.measure_max_width)


def pack(
    widths: Sequence[float], c: LayoutConstraints, start: int = 0
) -> Iterator[tuple[int, int]]:
    """Yield ``(first, stop)`` index ranges, one per system.

    A system always takes at least one measure, even one wider than the page.
    """
    cap = c.measures_per_system
    first, used = start, 0.0
    for i in range(start, len(widths)):
        full = i > first and (used + widths[i] > c.page_width or (cap and i - first >= cap))
        if full:
            yield first, i
            first, used = i, 0.0
        used += widths[i]
    if first < len(widths):
        yield first, len(widths)


def system_y(index: int, c: LayoutConstraints, staff_count: int) -> float:
    return index * (c.system_height(staff_count) + c.system_spacing)


def staff_stack(
    index: int, clefs: Sequence[Clef], c: LayoutConstraints
) -> tuple[StaffLayout, ...]:
    top = system_y(index, c, len(clefs))
    return tuple(
        StaffLayout(
            index=i,
            y=top + i * (c.staff_height + c.staff_gap),
            line_spacing=c.line_spacing,
            clef=clef,
        )
        for i, clef in enumerate(clefs)
    )


def justify(
    measures: Sequence[Measure], widths: Sequence[float], c: LayoutConstraints
) -> tuple[MeasureLayout, ...]:
    """Scale *widths* so the measures exactly fill the page width."""
    total = sum(widths)
    layouts = []
    x = 0.0
    for measure, width in zip(measures, widths):
        scaled = width * c.page_width / total
        layouts.append(
            MeasureLayout(
                measure_id=measure.id,
                x=x,
                width=scaled,
                start_tick=measure.start_tick,
                end_tick=measure.end_tick,
            )
        )
        x += scaled
    return tuple(layouts)


def measure_bounds(
    measure: Measure, layout: MeasureLayout, staves: Sequence[StaffLayout]
) -> MeasureBounds:
    """Bounding boxes of every element in *measure*.

    Grace notes come before their group so a hit test finds the note.
    """
    bounds: MeasureBounds = {}
    for segment in measure.segments:
        x = layout.tick_to_x(segment.tick)
        for _voice, element in segment.elements():
            staff = staves[min(element.staff, len(staves) - 1)]
            _element_bounds(element, x, layout, staff, bounds)
    return bounds


def _element_bounds(
    element: Element,
    x: float,
    layout: MeasureLayout,
    staff: StaffLayout,
    out: MeasureBounds,
) -> None:
    ls = staff.line_spacing
    head = ls * HEAD_WIDTH
    match element:
        case Note():
            out[element.id] = _head(x, staff.pitch_to_y(element.pitch.pitch), head, ls)
        case Chord():
            rects = [_head(x, staff.pitch_to_y(p.pitch), head, ls) for p in element.pitches]
            rect = rects[0]
            for other in rects[1:]:
                rect = rect.union(other)
            out[element.id] = rect
        case Rest():
            if element.is_measure_rest:
                x = layout.x + (layout.width - head) / 2
            out[element.id] = Rect(x, staff.y + ls, head, 2 * ls)
        case GraceGroup():
            width, height = head * GRACE_SCALE, ls * GRACE_SCALE
            count = len(element.notes)
            group = None
            for i, note in enumerate(element.notes):
                gx = x - (count - i) * width
                rect = _head(gx, staff.pitch_to_y(note.pitch.pitch), width, height)
                out[note.id] = rect
                group = rect if group is None else group.union(rect)
            out[element.id] = group


def _head(x: float, y: float, width: float, height: float) -> Rect:
    return Rect(x, y - height / 2, width, height)


def build_system(
    index: int,
    measures: Sequence[Measure],
    widths: Sequence[float],
    clefs: Sequence[Clef],
    c: LayoutConstraints,
) -> SystemLayout:
    staves = staff_stack(index, clefs, c)
    return SystemLayout(
        index=index,
        y=staves[0].y,
        height=c.system_height(len(clefs)),
        measures=justify(measures, widths, c),
        staves=staves,
    )


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------

class LayoutEngine(ABC):
    @abstractmethod
    def layout(self, score: Score, constraints: LayoutConstraints) -> LayoutResult:
        """Compute the geometry of *score* under *constraints*."""


class ProportionalLayoutEngine(LayoutEngine):
    """Stateless proportional layout."""

    def layout(self, score: Score, constraints: LayoutConstraints) -> LayoutResult:
        c = constraints
        measures = score.measures
        clefs = score.clefs_in_use()
        widths = [ideal_width(m, c) for m in measures]
        systems = []
        bounds: dict[MeasureId, MeasureBounds] = {}
        for index, (first, stop) in enumerate(pack(widths, c)):
            system = build_system(index, measures[first:stop], widths[first:stop], clefs, c)
            for measure, ml in zip(measures[first:stop], system.measures):
                bounds[measure.id] = measure_bounds(measure, ml, system.staves)
            systems.append(system)
        logger.debug("Laid out %d measures in %d systems", len(measures), len(systems))
        return LayoutResult(
            systems=tuple(systems),
            measure_bounds=bounds,
            system_spacing=c.system_spacing,
        )


@dataclass
class LayoutStats:
    """Counters describing what the incremental engine did."""

    cache_hits: int = 0
    full_layouts: int = 0
    incremental_layouts: int = 0
    last_recomputed: frozenset[MeasureId] = field(default_factory=frozenset)
    last_reused_systems: int = 0


class IncrementalLayoutEngine(LayoutEngine):
    def __init__(self) -> None:
        self._dirty: set[MeasureId] = set()
        self._all_dirty = False
        self._cached: LayoutResult | None = None
        self._key: tuple[int, LayoutConstraints] | None = None
        self._measures: dict[MeasureId, Measure] = {}
        self._order: list[MeasureId] = []
        self._clefs: tuple[Clef, ...] = ()
        self._widths: dict[MeasureId, float] = {}
        self.stats = LayoutStats()

    @property
    def cached(self) -> LayoutResult | None:
        return self._cached

    @property
    def dirty(self) -> frozenset[MeasureId]:
        return frozenset(self._dirty)

    def mark_dirty(self, measure_id: MeasureId) -> None:
        self._dirty.add(measure_id)

    def mark_all_dirty(self) -> None:
        self._all_dirty = True

    def invalidate_all(self) -> None:
        """Drop the cache entirely."""
        self._cached = None
        self._key = None
        self._dirty.clear()
        self._all_dirty = False
        self._measures.clear()
        self._order = []
        self._widths.clear()

    def layout(self, score: Score, constraints: LayoutConstraints) -> LayoutResult:
        key = (score.revision, constraints)
        cached = self._cached
        if cached is not None and key == self._key and not self._dirty and not self._all_dirty:
            self.stats.cache_hits += 1
            return cached

        clefs = score.clefs_in_use()
        full = (
            cached is None
            or self._all_dirty
            or self._key is None
            or self._key[1] != constraints
            or clefs != self._clefs
            or not cached.systems
        )
        if full:
            result = self._full(score, constraints, clefs)
        else:
            result = self._incremental(score, constraints, clefs, cached)

        self._remember(score, clefs, key, result)
        return result

    # -- internals -----------------------------------------------------------

    def _remember(
        self,
        score: Score,
        clefs: tuple[Clef, ...],
        key: tuple[int, LayoutConstraints],
        result: LayoutResult,
    ) -> None:
        self._cached = result
        self._key = key
        self._clefs = clefs
        self._measures = {m.id: m for m in score.measures}
        self._order = [m.id for m in score.measures]
        self._dirty.clear()
        self._all_dirty = False

    def _full(
        self, score: Score, c: LayoutConstraints, clefs: tuple[Clef, ...]
    ) -> LayoutResult:
        self._widths = {m.id: ideal_width(m, c) for m in score.measures}
        result = ProportionalLayoutEngine().layout(score, c)
        self.stats.full_layouts += 1
        self.stats.last_recomputed = frozenset(self._widths)
        self.stats.last_reused_systems = 0
        logger.debug("Full layout at revision %d", score.revision)
        return result

    def _changed_measures(self, score: Score) -> set[int]:
        """Indices (in the new score) of measures that need a new layout."""
        changed = set()
        for i, measure in enumerate(score.measures):
            if measure.id in self._dirty or self._measures.get(measure.id) is not measure:
                changed.add(i)
        return changed

    def _incremental(
        self,
        score: Score,
        c: LayoutConstraints,
        clefs: tuple[Clef, ...],
        cached: LayoutResult,
    ) -> LayoutResult:
        measures = score.measures
        order = [m.id for m in measures]
        changed = self._changed_measures(score)
        diverge = next(
            (i for i, (a, b) in enumerate(zip(order, self._order)) if a != b),
            None if len(order) == len(self._order) else min(len(order), len(self._order)),
        )
        if not changed and diverge is None:
            self.stats.cache_hits += 1
            self.stats.last_recomputed = frozenset()
            self.stats.last_reused_systems = len(cached.systems)
            return cached
        if not measures:
            return self._full(score, c, clefs)

        first_changed = min(changed | ({diverge} if diverge is not None else set()))
        last_changed = max(changed, default=first_changed)
        widths = self._update_widths(measures, changed, c)

        # Re-pack from the start of the system that held the first change.
        old_systems = cached.systems
        if first_changed < len(self._order):
            anchor = self._order[first_changed]
            first_system = cached.system_of(anchor).index
            # The previous system broke before the anchor; after the change
            # the measure now at that position may fit there instead.
            if first_system > 0 and old_systems[first_system].measures[0].measure_id == anchor:
                first_system -= 1
        else:
            first_system = old_systems[-1].index
        # Everything before first_changed is identical in both orders.
        start = self._order.index(old_systems[first_system].measures[0].measure_id)

        old_start = {
            s.measures[0].measure_id: (s, self._order.index(s.measures[0].measure_id))
            for s in old_systems[first_system:]
        }
        systems = list(old_systems[:first_system])
        bounds: dict[MeasureId, MeasureBounds] = {
            ml.measure_id: cached.measure_bounds[ml.measure_id]
            for s in systems
            for ml in s.measures
        }
        recomputed: set[MeasureId] = set()
        reused = len(systems)
        for index, (first, stop) in enumerate(pack(widths, c, start), start=first_system):
            old = old_start.get(order[first])
            if (
                old is not None
                and first > last_changed
                and old[0].index == index
                and order[first:] == self._order[old[1]:]
            ):
                for system in old_systems[index:]:
                    systems.append(system)
                    for ml in system.measures:
                        bounds[ml.measure_id] = cached.measure_bounds[ml.measure_id]
                reused += len(old_systems) - index
                break
            system = build_system(index, measures[first:stop], widths[first:stop], clefs, c)
            for measure, ml in zip(measures[first:stop], system.measures):
                bounds[measure.id] = self._bounds_for(measure, ml, system, cached)
                recomputed.add(measure.id)
            systems.append(system)

        self.stats.incremental_layouts += 1
        self.stats.last_recomputed = frozenset(recomputed)
        self.stats.last_reused_systems = reused
        logger.debug(
            "Incremental layout at revision %d: %d measures recomputed, %d systems reused",
            score.revision,
            len(recomputed),
            reused,
        )
        return LayoutResult(
            systems=tuple(systems),
            measure_bounds=bounds,
            system_spacing=c.system_spacing,
        )

    def _update_widths(
        self, measures: Sequence[Measure], changed: set[int], c: LayoutConstraints
    ) -> list[float]:
        live = {m.id for m in measures}
        for stale in set(self._widths) - live:
            del self._widths[stale]
        for i in changed:
            self._widths[measures[i].id] = ideal_width(measures[i], c)
        for m in measures:
            if m.id not in self._widths:
                self._widths[m.id] = ideal_width(m, c)
        return [self._widths[m.id] for m in measures]

    def _bounds_for(
        self,
        measure: Measure,
        layout: MeasureLayout,
        system: SystemLayout,
        cached: LayoutResult,
    ) -> MeasureBounds:
        """Reuse cached boxes when neither the measure nor its frame moved."""
        if self._measures.get(measure.id) is measure and measure.id not in self._dirty:
            old_system = cached.system_of(measure.id)
            if (
                old_system is not None
                and cached.measure_layout(measure.id) == layout
                and old_system.staves == system.staves
            ):
                return cached.measure_bounds[measure.id]
        return measure_bounds(measure, layout, system.staves)
