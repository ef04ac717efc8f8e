"""Tests for elements, measures and the immutable Score aggregate."""

from __future__ import annotations

import pytest

from mnote.errors import ValidationError
from mnote.model.duration import NoteValue, WrittenDuration
from mnote.model.elements import (
    Chord,
    GraceGroup,
    Note,
    Rest,
    element_note_ids,
    element_ticks,
    grace_note,
)
from mnote.model.ids import new_id
from mnote.model.pitch import NotatedPitch, Pitch, PlaybackPitch, Step
from mnote.model.score import (
    BASS_CLEF,
    TREBLE_CLEF,
    Clef,
    ClefType,
    KeySignature,
    Measure,
    Part,
    Score,
    Segment,
    Tempo,
    TimeRange,
    TimeSignature,
    VoiceSlice,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

QUARTER = WrittenDuration(NoteValue.QUARTER)


def _note(step: Step = Step.C, octave: int = 4, written: WrittenDuration = QUARTER, **kw) -> Note:
    pitch = Pitch(step, octave=octave)
    return Note(
        id=new_id(),
        pitch=NotatedPitch(pitch),
        playback_pitch=PlaybackPitch.from_pitch(pitch),
        written=written,
        **kw,
    )


def _segment(tick: int, *elements, voice: int = 1) -> Segment:
    return Segment(tick=tick, voices={voice: VoiceSlice(tuple(elements))})


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------


class TestElements:
    def test_note_ticks_from_written(self):
        assert _note(written=WrittenDuration(NoteValue.HALF, dots=1)).ticks == 1440

    def test_note_kind(self):
        assert _note().kind == "note"

    def test_note_pitch_disagreement(self):
        with pytest.raises(ValidationError):
            Note(
                id=new_id(),
                pitch=NotatedPitch(Pitch(Step.C, octave=4)),
                playback_pitch=PlaybackPitch(62),
                written=QUARTER,
            )

    def test_voice_range(self):
        with pytest.raises(ValidationError):
            _note(voice=5)
        with pytest.raises(ValidationError):
            _note(voice=0)

    def test_chord_needs_pitches(self):
        with pytest.raises(ValidationError):
            Chord(id=new_id(), pitches=(), playback_pitches=(), written=QUARTER)

    def test_chord_ticks(self):
        pitches = (NotatedPitch(Pitch(Step.C, octave=4)), NotatedPitch(Pitch(Step.E, octave=4)))
        chord = Chord(
            id=new_id(),
            pitches=pitches,
            playback_pitches=(PlaybackPitch(60), PlaybackPitch(64)),
            written=QUARTER,
        )
        assert element_ticks(chord) == 480
        assert list(element_note_ids(chord)) == []

    def test_rest(self):
        rest = Rest(id=new_id(), written=WrittenDuration(NoteValue.EIGHTH))
        assert element_ticks(rest) == 240
        assert rest.kind == "rest"

    def test_grace_group_zero_ticks(self):
        notes = (grace_note(_note(Step.D, 5)), grace_note(_note(Step.E, 5)))
        group = GraceGroup(id=new_id(), notes=notes, principal_note_id=new_id())
        assert group.ticks == 0
        assert element_ticks(group) == 0
        assert list(element_note_ids(group)) == [n.id for n in notes]

    def test_grace_group_rejects_timed_notes(self):
        with pytest.raises(ValidationError):
            GraceGroup(id=new_id(), notes=(_note(),), principal_note_id=new_id())

    def test_grace_group_needs_notes(self):
        with pytest.raises(ValidationError):
            GraceGroup(id=new_id(), notes=(), principal_note_id=new_id())


# ---------------------------------------------------------------------------
# Signatures, clefs, tempo
# ---------------------------------------------------------------------------


class TestHeaders:
    def test_time_signature_ticks(self):
        assert TimeSignature(4, 4).ticks_per_measure == 1920
        assert TimeSignature(6, 8).ticks_per_measure == 1440
        assert str(TimeSignature(3, 4)) == "3/4"

    def test_time_signature_rejects_bad_beat_type(self):
        with pytest.raises(ValidationError):
            TimeSignature(4, 3)

    def test_key_signature_range(self):
        KeySignature(-7)
        with pytest.raises(ValidationError):
            KeySignature(8)

    def test_clef_line_range(self):
        with pytest.raises(ValidationError):
            Clef(ClefType.TREBLE, 6)

    def test_tempo(self):
        assert Tempo(0, 120.0).ms_per_tick == pytest.approx(60000 / (120 * 480))
        with pytest.raises(ValidationError):
            Tempo(0, 0)

    def test_time_range(self):
        with pytest.raises(ValidationError):
            TimeRange(100, 50)


# ---------------------------------------------------------------------------
# Measure
# ---------------------------------------------------------------------------


class TestMeasure:
    def test_segment_bounds(self):
        with pytest.raises(ValidationError):
            Measure(id=new_id(), number=1, start_tick=0, duration=1920,
                    segments=(_segment(1920, _note()),))

    def test_segment_order(self):
        with pytest.raises(ValidationError):
            Measure(id=new_id(), number=1, start_tick=0, duration=1920,
                    segments=(_segment(480, _note()), _segment(0, _note())))

    def test_voice_overlap(self):
        half = WrittenDuration(NoteValue.HALF)
        with pytest.raises(ValidationError):
            Measure(id=new_id(), number=1, start_tick=0, duration=1920,
                    segments=(_segment(0, _note(written=half)), _segment(480, _note())))

    def test_voices_may_overlap_each_other(self):
        half = WrittenDuration(NoteValue.HALF)
        measure = Measure(
            id=new_id(), number=1, start_tick=0, duration=1920,
            segments=(_segment(0, _note(written=half)), _segment(480, _note(voice=2), voice=2)),
        )
        assert len(measure.segments) == 2

    def test_voice_overlap_is_per_staff(self):
        half = WrittenDuration(NoteValue.HALF)
        measure = Measure(
            id=new_id(), number=1, start_tick=0, duration=1920,
            segments=(_segment(0, _note(octave=3, written=half, staff=1)), _segment(480, _note())),
        )
        assert len(measure.segments) == 2
        with pytest.raises(ValidationError, match="staff 1"):
            Measure(
                id=new_id(), number=1, start_tick=0, duration=1920,
                segments=(
                    _segment(0, _note(octave=3, written=half, staff=1)),
                    _segment(480, _note(octave=3, staff=1)),
                ),
            )

    def test_segment_at(self):
        note = _note()
        measure = Measure(id=new_id(), number=1, start_tick=1920, duration=1920,
                          segments=(_segment(2400, note),))
        assert measure.segment_at(2400).voices[1].elements == (note,)
        assert measure.segment_at(1920) is None
        assert measure.end_tick == 3840
        assert measure.contains_tick(1920)
        assert not measure.contains_tick(3840)


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------


class TestScoreCreate:
    def test_defaults(self):
        s = Score.create()
        assert s.title == "Untitled"
        assert s.divisions == 480
        assert len(s.measures) == 4
        assert s.measures[0].time_signature == TimeSignature(4, 4)
        assert s.measures[1].time_signature is None
        assert s.tempos == (Tempo(0, 120.0),)
        assert len(s.parts) == 1

    def test_contiguous_ticks(self):
        s = Score.create(measure_count=3, time_sig=(3, 4))
        assert [m.start_tick for m in s.measures] == [0, 1440, 2880]
        assert s.total_duration == 4320

    def test_rejects_gaps(self):
        m1 = Measure(id=new_id(), number=1, start_tick=0, duration=1920)
        m2 = Measure(id=new_id(), number=2, start_tick=2000, duration=1920)
        with pytest.raises(ValidationError):
            Score(id=new_id(), measures=(m1, m2))

    def test_fixed_divisions(self):
        with pytest.raises(ValidationError):
            Score(id=new_id(), divisions=960)

    def test_empty(self):
        s = Score.empty("Blank")
        assert s.measures == ()
        assert s.total_duration == 0
        assert s.measure_at(0) is None


class TestScoreQueries:
    def test_measure_at(self, score: Score):
        assert score.measure_at(0) is score.measures[0]
        assert score.measure_at(1919) is score.measures[0]
        assert score.measure_at(1920) is score.measures[1]
        assert score.measure_at(score.total_duration) is None

    def test_measure_by_id(self, score: Score):
        m = score.measures[2]
        assert score.measure_by_id(m.id) is m
        assert score.measure_index(m.id) == 2
        assert score.measure_by_id("missing") is None

    def test_tempo_at(self):
        s = Score(id=new_id(), tempos=(Tempo(0, 100.0), Tempo(960, 80.0)))
        assert s.tempo_at(959).bpm == 100.0
        assert s.tempo_at(960).bpm == 80.0

    def test_time_signature_at(self, score: Score):
        assert score.time_signature_at(score.measures[3].id) == TimeSignature(4, 4)

    def test_clefs_in_use(self):
        piano = Part(id=new_id(), name="Piano", staff_clefs=(TREBLE_CLEF, BASS_CLEF))
        s = Score.create(parts=(piano,))
        assert s.clefs_in_use() == (TREBLE_CLEF, BASS_CLEF)

    def test_part_by_id(self):
        piano = Part(id=new_id(), name="Piano", staff_clefs=(TREBLE_CLEF, BASS_CLEF))
        s = Score.create(parts=(piano,))
        assert s.part_by_id(piano.id) is piano
        assert s.part_by_id("missing") is None

    def test_find_element_and_grace_notes(self):
        principal = _note()
        grace = grace_note(_note(Step.B, 4))
        group = GraceGroup(id=new_id(), notes=(grace,), principal_note_id=principal.id)
        measure = Measure(id=new_id(), number=1, start_tick=0, duration=1920,
                          segments=(_segment(0, group, principal),))
        s = Score(id=new_id(), measures=(measure,))
        assert s.find_note(principal.id) == principal
        assert s.find_note(grace.id) == grace
        assert s.find_element(group.id) == group
        assert s.locate(grace.id) == s.locate(group.id)
        assert s.find_element("missing") is None

    def test_iter_elements_order(self):
        a, b = _note(), _note(Step.D)
        measure = Measure(id=new_id(), number=1, start_tick=0, duration=1920,
                          segments=(_segment(0, a), _segment(480, b)))
        s = Score(id=new_id(), measures=(measure,))
        assert [e.id for _, _, _, e in s.iter_elements()] == [a.id, b.id]
