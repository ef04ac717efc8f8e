"""Tests for the proportional layout engine and layout geometry queries."""

from __future__ import annotations

import pytest

from mnote.commands import AddChordCommand, AddGraceGroupCommand, AddNoteCommand, AddRestCommand
from mnote.errors import ValidationError
from mnote.layout import (
    LayoutConstraints,
    MeasureLayout,
    Point,
    ProportionalLayoutEngine,
    Rect,
    StaffLayout,
)
from mnote.layout.engine import ideal_width, pack
from mnote.model.duration import NoteValue, WrittenDuration
from mnote.model.ids import new_id
from mnote.model.mutable import MutableScore
from mnote.model.parsing import parse_pitch
from mnote.model.score import (
    ALTO_CLEF,
    BASS_CLEF,
    PERCUSSION_CLEF,
    TREBLE_CLEF,
    Clef,
    ClefType,
    Part,
    Score,
)

QUARTER = WrittenDuration(NoteValue.QUARTER)


def _fixed(page_width: float = 800.0, width: float = 300.0, **kw) -> LayoutConstraints:
    """Constraints where every measure wants exactly *width*."""
    return LayoutConstraints(
        page_width=page_width, measure_min_width=width, measure_max_width=width, **kw
    )


def _staff(clef: Clef = TREBLE_CLEF) -> StaffLayout:
    return StaffLayout(index=0, y=0.0, line_spacing=10.0, clef=clef)


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


class TestConstraints:
    def test_defaults(self):
        c = LayoutConstraints(page_width=1000)
        assert c.line_spacing == 10.0
        assert c.system_height(1) == 40.0
        assert c.system_height(2) == 100.0

    def test_rejects_bad_bounds(self):
        with pytest.raises(ValidationError):
            LayoutConstraints(page_width=0)
        with pytest.raises(ValidationError):
            LayoutConstraints(page_width=800, measure_min_width=400, measure_max_width=300)
        with pytest.raises(ValidationError):
            LayoutConstraints(page_width=800, measures_per_system=-1)


# ---------------------------------------------------------------------------
# Widths and packing
# ---------------------------------------------------------------------------


class TestWidths:
    def test_empty_measure_gets_minimum(self, score: Score):
        assert ideal_width(score.measures[0], LayoutConstraints(page_width=800)) == 80.0

    def test_density(self, working: MutableScore, first_measure):
        for tick in (0, 480, 960, 1440):
            AddNoteCommand(first_measure, tick, parse_pitch("C4"), QUARTER).apply(working)
        measure = working.score.measures[0]
        # four segments over four quarters
        assert ideal_width(measure, LayoutConstraints(page_width=800)) == 130.0

    def test_clamped_to_max(self, working: MutableScore, first_measure):
        sixteenth = WrittenDuration(NoteValue.SIXTEENTH)
        for tick in range(0, 1920, 120):
            AddNoteCommand(first_measure, tick, parse_pitch("C4"), sixteenth).apply(working)
        c = LayoutConstraints(page_width=800, measure_max_width=200)
        assert ideal_width(working.score.measures[0], c) == 200.0


class TestPack:
    def test_fills_page(self):
        assert list(pack([300, 300, 300], _fixed())) == [(0, 2), (2, 3)]

    def test_oversized_measure_gets_own_system(self):
        assert list(pack([900, 900], _fixed(page_width=800, width=900))) == [(0, 1), (1, 2)]

    def test_cap(self):
        c = _fixed(page_width=10_000, width=100, measures_per_system=2)
        assert list(pack([100] * 5, c)) == [(0, 2), (2, 4), (4, 5)]

    def test_no_cap(self):
        c = _fixed(page_width=10_000, width=100, measures_per_system=0)
        assert list(pack([100] * 9, c)) == [(0, 9)]

    def test_start_offset(self):
        assert list(pack([300, 300, 300, 300], _fixed(), start=1)) == [(1, 3), (3, 4)]


# ---------------------------------------------------------------------------
# Proportional engine
# ---------------------------------------------------------------------------


class TestProportionalLayout:
    def test_justified_widths(self):
        score = Score.create(measure_count=3)
        result = ProportionalLayoutEngine().layout(score, _fixed())
        assert len(result.systems) == 2
        assert [m.width for m in result.systems[0].measures] == [400.0, 400.0]
        assert [m.x for m in result.systems[0].measures] == [0.0, 400.0]
        assert result.systems[1].measures[0].width == 800.0

    def test_every_system_fills_page(self, score: Score):
        result = ProportionalLayoutEngine().layout(score, LayoutConstraints(page_width=700))
        for system in result.systems:
            assert system.measures[-1].right == pytest.approx(700.0)

    def test_wide_measure_squeezed(self):
        score = Score.create(measure_count=2)
        result = ProportionalLayoutEngine().layout(score, _fixed(page_width=100))
        assert [len(s.measures) for s in result.systems] == [1, 1]
        assert result.systems[0].measures[0].width == 100.0

    def test_system_positions(self):
        score = Score.create(measure_count=3)
        result = ProportionalLayoutEngine().layout(score, _fixed())
        assert [s.y for s in result.systems] == [0.0, 100.0]
        assert result.systems[0].height == 40.0

    def test_multi_staff_stack(self):
        piano = Part(id=new_id(), name="Piano", staff_clefs=(TREBLE_CLEF, BASS_CLEF))
        score = Score.create(measure_count=3, parts=(piano,))
        result = ProportionalLayoutEngine().layout(score, _fixed())
        first, second = result.systems
        assert [s.y for s in first.staves] == [0.0, 60.0]
        assert first.height == 100.0
        assert second.y == 160.0
        assert [s.clef for s in second.staves] == [TREBLE_CLEF, BASS_CLEF]

    def test_measure_ticks(self, score: Score):
        result = ProportionalLayoutEngine().layout(score, LayoutConstraints(page_width=800))
        assert [(m.start_tick, m.end_tick) for m in result.measures] == [
            (0, 1920), (1920, 3840), (3840, 5760), (5760, 7680)
        ]

    def test_empty_score(self):
        result = ProportionalLayoutEngine().layout(Score.empty(), LayoutConstraints(page_width=800))
        assert result.systems == ()
        assert result.tick_to_position(0) is None


# ---------------------------------------------------------------------------
# Staff geometry
# ---------------------------------------------------------------------------


class TestStaffGeometry:
    def test_treble_bottom_line_is_e4(self):
        staff = _staff()
        assert staff.staff_position(parse_pitch("E4")) == 0
        assert staff.pitch_to_y(parse_pitch("E4")) == staff.bottom == 40.0
        assert staff.pitch_to_y(parse_pitch("F5")) == 0.0

    def test_bass_bottom_line_is_g2(self):
        staff = _staff(BASS_CLEF)
        assert staff.staff_position(parse_pitch("G2")) == 0
        assert staff.staff_position(parse_pitch("A3")) == 8

    def test_alto_middle_c_on_centre_line(self):
        assert _staff(ALTO_CLEF).pitch_to_y(parse_pitch("C4")) == 20.0

    def test_moved_clef(self):
        soprano = Clef(ClefType.ALTO, 1)
        assert _staff(soprano).staff_position(parse_pitch("C4")) == 0

    def test_accidentals_share_the_line(self):
        staff = _staff()
        assert staff.pitch_to_y(parse_pitch("G#4")) == staff.pitch_to_y(parse_pitch("G4"))

    def test_percussion_on_centre_line(self):
        staff = _staff(PERCUSSION_CLEF)
        assert staff.pitch_to_y(parse_pitch("C2")) == staff.pitch_to_y(parse_pitch("A5")) == 20.0

    @pytest.mark.parametrize("clef", [TREBLE_CLEF, BASS_CLEF, ALTO_CLEF])
    def test_y_to_pitch_inverts(self, clef):
        staff = _staff(clef)
        for name in ("C3", "D4", "E4", "B4", "F5", "A5"):
            pitch = parse_pitch(name)
            assert staff.y_to_pitch(staff.pitch_to_y(pitch)) == pitch

    def test_y_to_pitch_snaps(self):
        assert _staff().y_to_pitch(38.0) == parse_pitch("E4")

    def test_y_to_pitch_out_of_range(self):
        assert _staff().y_to_pitch(2000.0) is None
        assert _staff().y_to_pitch(-2000.0) is None


class TestMeasureGeometry:
    def test_tick_x_roundtrip(self):
        layout = MeasureLayout(measure_id="m", x=120.0, width=400.0, start_tick=1920, end_tick=3840)
        for tick in range(1920, 3840, 7):
            assert layout.x_to_tick(layout.tick_to_x(tick)) == tick

    def test_half_open(self):
        layout = MeasureLayout(measure_id="m", x=0.0, width=100.0, start_tick=0, end_tick=1920)
        assert layout.contains_x(0.0)
        assert not layout.contains_x(100.0)
        assert not layout.contains_tick(1920)

    def test_rect(self):
        rect = Rect(0.0, 0.0, 10.0, 10.0)
        assert rect.contains(Point(0.0, 0.0))
        assert not rect.contains(Point(10.0, 5.0))
        assert rect.union(Rect(20.0, -5.0, 5.0, 5.0)) == Rect(0.0, -5.0, 25.0, 15.0)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_tick_to_position(self):
        result = ProportionalLayoutEngine().layout(Score.create(measure_count=3), _fixed())
        assert result.tick_to_position(0) == Point(0.0, 0.0)
        assert result.tick_to_position(1920) == Point(400.0, 0.0)
        assert result.tick_to_position(3840) == Point(0.0, 100.0)
        assert result.tick_to_position(5760) is None
        assert result.tick_to_position(0, staff=3) is None

    def test_position_to_tick(self):
        result = ProportionalLayoutEngine().layout(Score.create(measure_count=3), _fixed())
        assert result.position_to_tick(Point(400.0, 10.0)) == 1920
        assert result.position_to_tick(Point(600.0, 20.0)) == 2880
        assert result.position_to_tick(Point(400.0, 110.0)) == 4800
        assert result.position_to_tick(Point(400.0, 1000.0)) is None
        assert result.position_to_tick(Point(900.0, 10.0)) is None

    def test_spacing_split_between_systems(self):
        result = ProportionalLayoutEngine().layout(Score.create(measure_count=3), _fixed())
        # gap runs from 40 to 100; its upper half belongs to the first system
        assert result.system_at_y(69.0).index == 0
        assert result.system_at_y(70.0).index == 1

    def test_roundtrip_through_position(self, score: Score):
        result = ProportionalLayoutEngine().layout(score, LayoutConstraints(page_width=640))
        for tick in range(0, score.total_duration, 240):
            assert result.position_to_tick(result.tick_to_position(tick)) == tick

    def test_hit_test_note(self, working: MutableScore, first_measure):
        cmd = AddNoteCommand(first_measure, 480, parse_pitch("E4"), QUARTER)
        cmd.apply(working)
        result = ProportionalLayoutEngine().layout(working.score, LayoutConstraints(page_width=800))
        rect = result.element_rect(cmd.note_id)
        # head centred on the bottom line
        assert rect.y + rect.height / 2 == 40.0
        assert result.hit_test(Point(rect.x + 1, rect.y + 1)) == cmd.note_id
        assert result.hit_test(Point(rect.x + 1, rect.bottom + 30)) is None

    def test_chord_rect_spans_heads(self, working: MutableScore, first_measure):
        chord = AddChordCommand(first_measure, 0, [parse_pitch("E4"), parse_pitch("E5")], QUARTER)
        chord.apply(working)
        result = ProportionalLayoutEngine().layout(working.score, LayoutConstraints(page_width=800))
        rect = result.element_rect(chord.element.id)
        assert rect.bottom == 45.0
        assert rect.y == 0.0

    def test_measure_rest_centred(self, working: MutableScore, first_measure):
        rest = AddRestCommand(first_measure, 0, WrittenDuration(NoteValue.WHOLE), is_measure_rest=True)
        rest.apply(working)
        result = ProportionalLayoutEngine().layout(working.score, LayoutConstraints(page_width=800))
        measure = result.measure_layout(first_measure)
        rect = result.element_rect(rest.element.id)
        assert rect.x + rect.width / 2 == pytest.approx(measure.x + measure.width / 2)

    def test_grace_notes_hit_first(self, working: MutableScore, first_measure):
        principal = AddNoteCommand(first_measure, 480, parse_pitch("C5"), QUARTER)
        principal.apply(working)
        grace = AddGraceGroupCommand(principal.note_id, [parse_pitch("D5")])
        grace.apply(working)
        result = ProportionalLayoutEngine().layout(working.score, LayoutConstraints(page_width=800))
        note_rect = result.element_rect(grace.notes[0].id)
        head = result.element_rect(principal.note_id)
        assert note_rect.right == pytest.approx(head.x)
        assert note_rect.width < head.width
        centre = Point(note_rect.x + note_rect.width / 2, note_rect.y + note_rect.height / 2)
        assert result.hit_test(centre) == grace.notes[0].id
        assert result.element_rect(grace.group_id) == note_rect

    def test_lower_staff_element(self):
        piano = Part(id=new_id(), name="Piano", staff_clefs=(TREBLE_CLEF, BASS_CLEF))
        working = MutableScore(Score.create(parts=(piano,)))
        cmd = AddNoteCommand(working.measure_ids[0], 0, parse_pitch("G2"), QUARTER, staff=1)
        cmd.apply(working)
        result = ProportionalLayoutEngine().layout(working.score, LayoutConstraints(page_width=800))
        rect = result.element_rect(cmd.note_id)
        assert rect.y + rect.height / 2 == 100.0
