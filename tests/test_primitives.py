"""Tests for ids, pitches, written durations, parsing and tick/second timing."""

from __future__ import annotations

import time

import pytest

from mnote.errors import ValidationError
from mnote.model.duration import NoteValue, TupletRef, WrittenDuration
from mnote.model.ids import id_timestamp_ms, new_id
from mnote.model.parsing import parse_duration, parse_pitch, pitch_from_midi
from mnote.model.pitch import (
    AccidentalDisplay,
    NotatedPitch,
    Pitch,
    PlaybackPitch,
    Step,
    pitch_agrees,
    pitch_pair,
)
from mnote.model.score import Tempo
from mnote.model.timing import (
    seconds_to_ticks,
    ticks_per_beat,
    ticks_per_measure,
    ticks_to_seconds,
)


# ---------------------------------------------------------------------------
# Ids
# ---------------------------------------------------------------------------


class TestNewId:
    def test_ids_are_unique(self):
        ids = {new_id() for _ in range(2000)}
        assert len(ids) == 2000

    def test_ids_sort_by_creation(self):
        ids = [new_id() for _ in range(500)]
        assert ids == sorted(ids)

    def test_hex_format(self):
        entity_id = new_id()
        assert len(entity_id) == 32
        int(entity_id, 16)
        assert entity_id[12] == "7"  # version nibble

    def test_timestamp_roundtrip(self):
        before = time.time_ns() // 1_000_000
        entity_id = new_id()
        after = time.time_ns() // 1_000_000
        assert before <= id_timestamp_ms(entity_id) <= after + 1


# ---------------------------------------------------------------------------
# Pitch
# ---------------------------------------------------------------------------


class TestPitch:
    def test_middle_c(self):
        assert Pitch(Step.C, octave=4).midi_pitch == 60

    def test_c_sharp(self):
        assert Pitch(Step.C, octave=4, alter=1).midi_pitch == 61

    def test_b_flat_3(self):
        assert Pitch(Step.B, octave=3, alter=-1).midi_pitch == 58

    def test_str(self):
        assert str(Pitch(Step.F, octave=5, alter=1)) == "F#5"
        assert str(Pitch(Step.E, octave=2, alter=-2)) == "Ebb2"

    def test_diatonic_index(self):
        assert Pitch(Step.C, octave=4).diatonic_index == 28
        assert Pitch(Step.D, octave=4, alter=1).diatonic_index == 29

    def test_octave_out_of_range(self):
        with pytest.raises(ValidationError):
            Pitch(Step.C, octave=10)

    def test_alter_out_of_range(self):
        with pytest.raises(ValidationError):
            Pitch(Step.C, octave=4, alter=3)

    def test_alter_and_octave_are_keyword_only(self):
        with pytest.raises(TypeError):
            Pitch(Step.C, 1, 4)
        assert Pitch(Step.C, alter=1, octave=4) == Pitch(Step.C, octave=4, alter=1)


class TestPlaybackPitch:
    def test_range(self):
        with pytest.raises(ValidationError):
            PlaybackPitch(128)
        with pytest.raises(ValidationError):
            PlaybackPitch(-1)

    def test_from_pitch(self):
        assert PlaybackPitch.from_pitch(Pitch(Step.A, octave=4)).midi_pitch == 69

    def test_agreement(self):
        notated = NotatedPitch(Pitch(Step.C, octave=4))
        assert pitch_agrees(notated, PlaybackPitch(60))
        assert not pitch_agrees(notated, PlaybackPitch(61))
        # A cents override records an intentional deviation.
        assert pitch_agrees(notated, PlaybackPitch(61, cents=-50.0))

    def test_pitch_pair(self):
        notated, playback = pitch_pair(Pitch(Step.G, octave=4, alter=1), AccidentalDisplay.SHOW)
        assert notated.display is AccidentalDisplay.SHOW
        assert playback.midi_pitch == 68


# ---------------------------------------------------------------------------
# WrittenDuration
# ---------------------------------------------------------------------------


class TestWrittenDuration:
    def test_plain_values(self):
        assert WrittenDuration(NoteValue.WHOLE).ticks == 1920
        assert WrittenDuration(NoteValue.QUARTER).ticks == 480
        assert WrittenDuration(NoteValue.SIXTY_FOURTH).ticks == 30

    def test_single_dot(self):
        assert WrittenDuration(NoteValue.QUARTER, dots=1).ticks == 720

    def test_double_dot(self):
        assert WrittenDuration(NoteValue.QUARTER, dots=2).ticks == 840

    def test_triple_dot(self):
        assert WrittenDuration(NoteValue.QUARTER, dots=3).ticks == 900

    def test_eighth_triplet(self):
        tuplet = TupletRef(id=new_id(), actual=3, normal=2)
        assert WrittenDuration(NoteValue.EIGHTH, tuplet=tuplet).ticks == 160

    def test_quintuplet(self):
        tuplet = TupletRef(id=new_id(), actual=5, normal=4)
        assert WrittenDuration(NoteValue.SIXTEENTH, tuplet=tuplet).ticks == 96
        assert WrittenDuration(NoteValue.SIXTY_FOURTH, tuplet=tuplet).ticks == 24

    def test_rounds_half_up(self):
        # dotted 64th = 45 ticks, halved = 22.5
        tuplet = TupletRef(id=new_id(), actual=2, normal=1)
        assert WrittenDuration(NoteValue.SIXTY_FOURTH, dots=1, tuplet=tuplet).ticks == 23

    def test_septuplet_rounding(self):
        # 480 * 4/7 = 274.28... -> 274
        tuplet = TupletRef(id=new_id(), actual=7, normal=4)
        assert WrittenDuration(NoteValue.QUARTER, tuplet=tuplet).ticks == 274

    def test_dots_out_of_range(self):
        with pytest.raises(ValidationError):
            WrittenDuration(NoteValue.QUARTER, dots=4)
        with pytest.raises(ValidationError):
            WrittenDuration(NoteValue.QUARTER, dots=-1)

    def test_bad_tuplet(self):
        with pytest.raises(ValidationError):
            TupletRef(id=new_id(), actual=0, normal=2)

    def test_str(self):
        assert str(WrittenDuration(NoteValue.HALF, dots=1)) == "half."


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsePitch:
    def test_natural(self):
        assert parse_pitch("C4") == Pitch(Step.C, octave=4)

    def test_accidentals(self):
        assert parse_pitch("F#3") == Pitch(Step.F, octave=3, alter=1)
        assert parse_pitch("Bb5") == Pitch(Step.B, octave=5, alter=-1)
        assert parse_pitch("G##2").alter == 2

    def test_lowercase(self):
        assert parse_pitch("e4") == Pitch(Step.E, octave=4)

    def test_midi_form(self):
        assert parse_pitch("midi:61") == Pitch(Step.C, octave=4, alter=1)

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_pitch("H4")
        with pytest.raises(ValidationError):
            parse_pitch("midi:abc")

    def test_pitch_from_midi_range(self):
        assert pitch_from_midi(12) == Pitch(Step.C, octave=0)
        with pytest.raises(ValidationError):
            pitch_from_midi(11)


class TestParseDuration:
    def test_names(self):
        assert parse_duration("quarter").base is NoteValue.QUARTER
        assert parse_duration("32nd").base is NoteValue.THIRTY_SECOND

    def test_aliases(self):
        assert parse_duration("8n") == WrittenDuration(NoteValue.EIGHTH)
        assert parse_duration("1n").ticks == 1920

    def test_dots(self):
        assert parse_duration("dotted-quarter").ticks == 720
        assert parse_duration("double-dotted-half").dots == 2
        assert parse_duration("triple-dotted-whole").dots == 3

    def test_triplet(self):
        d = parse_duration("triplet-eighth")
        assert d.tuplet is not None
        assert (d.tuplet.actual, d.tuplet.normal) == (3, 2)
        assert d.ticks == 160

    def test_unknown(self):
        with pytest.raises(ValidationError):
            parse_duration("crotchet")


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


class TestTicksPerBeat:
    def test_quarter_note(self):
        assert ticks_per_beat(4) == 480

    def test_eighth_note(self):
        assert ticks_per_beat(8) == 240

    def test_half_note(self):
        assert ticks_per_beat(2) == 960

    def test_measures(self):
        assert ticks_per_measure(4, 4) == 1920
        assert ticks_per_measure(6, 8) == 1440
        assert ticks_per_measure(3, 4) == 1440


class TestTickSeconds:
    def test_constant_tempo(self):
        tempos = [Tempo(0, 120.0)]
        assert ticks_to_seconds(480, tempos) == pytest.approx(0.5)
        assert ticks_to_seconds(1920, tempos) == pytest.approx(2.0)

    def test_tempo_change(self):
        tempos = [Tempo(0, 120.0), Tempo(1920, 60.0)]
        # 2s for the first measure, then 1s per quarter
        assert ticks_to_seconds(2400, tempos) == pytest.approx(3.0)

    def test_default_when_empty(self):
        assert ticks_to_seconds(960, []) == pytest.approx(1.0)

    def test_inverse(self):
        tempos = [Tempo(0, 120.0), Tempo(1920, 60.0)]
        for tick in (0, 240, 1920, 2400, 5000):
            assert seconds_to_ticks(ticks_to_seconds(tick, tempos), tempos) == tick
