"""Playback expansion and Standard MIDI export.

:func:`expand_playback` turns a score into tick-addressed note events:

- ties merge into a single event spanning the whole tied chain,
- acciaccaturas are played just before their principal note and steal no
  time from it,
- an appoggiatura group takes the first half of its principal note, which
  then sounds for the remaining half,
- staccato shortens a note to half its length, staccatissimo to a
  quarter; an accent adds to the velocity.

:func:`score_to_midi_file` writes those events into a ``mido.MidiFile``
with one tempo/meta track followed by one track per part.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

import mido

from mnote.model.elements import Articulation, Chord, GraceGroup, GraceType, Note
from mnote.model.ids import TICKS_PER_QUARTER, EntityId, NoteId, TickDuration, TickPosition, TieId
from mnote.model.score import ClefType, KeyMode, Score
from mnote.model.timing import ticks_to_seconds

logger = logging.getLogger(__name__)

ACCIACCATURA_TICKS = TICKS_PER_QUARTER // 8  # a 32nd note
ACCENT_BOOST = 20
DRUM_CHANNEL = 9

_MAJOR_KEYS = ["Cb", "Gb", "Db", "Ab", "Eb", "Bb", "F", "C", "G", "D", "A", "E", "B", "F#", "C#"]
_MINOR_KEYS = ["Abm", "Ebm", "Bbm", "Fm", "Cm", "Gm", "Dm", "Am", "Em", "Bm", "F#m", "C#m", "G#m", "D#m", "A#m"]


@dataclass(frozen=True)
class PlaybackEvent:
    tick: TickPosition
    duration: TickDuration
    midi_pitch: int
    velocity: int
    source_id: EntityId  # note, chord or grace note that produced it
    staff: int = 0
    cents: float | None = None

    @property
    def end_tick(self) -> TickPosition:
        return self.tick + self.duration


def event_seconds(event: PlaybackEvent, score: Score) -> tuple[float, float]:
    """Start and end of *event* in seconds under the score's tempo map."""
    return (
        ticks_to_seconds(event.tick, score.tempos),
        ticks_to_seconds(event.end_tick, score.tempos),
    )


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

def _sounding(duration: TickDuration, articulations: frozenset[Articulation]) -> TickDuration:
    if Articulation.STACCATISSIMO in articulations:
        return max(1, duration // 4)
    if Articulation.STACCATO in articulations:
        return max(1, duration // 2)
    return duration


def _velocity(velocity: int, articulations: frozenset[Articulation]) -> int:
    if Articulation.ACCENT in articulations:
        return min(127, velocity + ACCENT_BOOST)
    return velocity


def _appoggiatura_shifts(score: Score) -> dict[NoteId, TickDuration]:
    """Ticks each principal note gives up to its appoggiatura group."""
    shifts: dict[NoteId, TickDuration] = {}
    for _measure, _segment, _voice, element in score.iter_elements():
        if isinstance(element, GraceGroup) and element.grace_type is GraceType.APPOGGIATURA:
            principal = score.find_note(element.principal_note_id)
            if principal is not None:
                shifts[principal.id] = principal.ticks // 2
    return shifts


def _grace_events(
    group: GraceGroup, tick: TickPosition, shifts: dict[NoteId, TickDuration]
) -> list[PlaybackEvent]:
    count = len(group.notes)
    if group.grace_type is GraceType.APPOGGIATURA:
        span = shifts.get(group.principal_note_id, 0)
        start = tick
    else:
        span = ACCIACCATURA_TICKS * count
        start = max(0, tick - span)
    if span <= 0:
        return []
    each = max(1, span // count)
    events = []
    for i, note in enumerate(group.notes):
        events.append(
            PlaybackEvent(
                tick=start + i * each,
                duration=each if i < count - 1 else span - i * each,
                midi_pitch=note.playback_pitch.midi_pitch,
                velocity=note.velocity,
                source_id=note.id,
                staff=note.staff,
                cents=note.playback_pitch.cents,
            )
        )
    return events


def expand_playback(score: Score) -> list[PlaybackEvent]:
    """Note events of *score* in tick order."""
    shifts = _appoggiatura_shifts(score)
    events: list[PlaybackEvent] = []
    open_ties: dict[TieId, int] = {}  # tie id -> index of the event it extends
    merged = 0

    for _measure, segment, _voice, element in score.iter_elements():
        tick = segment.tick
        match element:
            case Note():
                shift = shifts.get(element.id, 0)
                length = element.ticks - shift
                if element.tie_end is not None and element.tie_end in open_ties:
                    index = open_ties.pop(element.tie_end)
                    head = events[index]
                    events[index] = replace(head, duration=tick + length - head.tick)
                    merged += 1
                else:
                    index = len(events)
                    events.append(
                        PlaybackEvent(
                            tick=tick + shift,
                            duration=length,
                            midi_pitch=element.playback_pitch.midi_pitch,
                            velocity=_velocity(element.velocity, element.articulations),
                            source_id=element.id,
                            staff=element.staff,
                            cents=element.playback_pitch.cents,
                        )
                    )
                if element.tie_start is not None:
                    open_ties[element.tie_start] = index
                elif element.tie_end is None:
                    events[index] = replace(
                        events[index],
                        duration=_sounding(events[index].duration, element.articulations),
                    )
            case Chord():
                for playback in element.playback_pitches:
                    events.append(
                        PlaybackEvent(
                            tick=tick,
                            duration=_sounding(element.ticks, element.articulations),
                            midi_pitch=playback.midi_pitch,
                            velocity=_velocity(element.velocity, element.articulations),
                            source_id=element.id,
                            staff=element.staff,
                            cents=playback.cents,
                        )
                    )
            case GraceGroup():
                events.extend(_grace_events(element, tick, shifts))

    events = [e for e in events if e.duration > 0]
    events.sort(key=lambda e: (e.tick, e.midi_pitch))
    logger.debug("Expanded %d playback events (%d tie merges)", len(events), merged)
    return events


# ---------------------------------------------------------------------------
# MIDI
# ---------------------------------------------------------------------------

def _key_name(fifths: int, mode: KeyMode) -> str:
    names = _MINOR_KEYS if mode is KeyMode.MINOR else _MAJOR_KEYS
    return names[fifths + 7]


def _staff_owners(score: Score) -> list[int]:
    """Part index for each global staff index."""
    owners = []
    for i, part in enumerate(score.parts):
        owners.extend([i] * len(part.staff_clefs))
    return owners or [0]


def _channels(score: Score) -> list[int]:
    melodic = (c for c in range(16) if c != DRUM_CHANNEL)
    channels = []
    for part in score.parts:
        if all(clef.type is ClefType.PERCUSSION for clef in part.staff_clefs):
            channels.append(DRUM_CHANNEL)
        else:
            channels.append(next(melodic, 0))
    return channels or [0]


def _meta_track(score: Score) -> mido.MidiTrack:
    timed: list[tuple[int, mido.MetaMessage]] = [
        (0, mido.MetaMessage("track_name", name=score.title, time=0))
    ]
    for tempo in score.tempos:
        timed.append((tempo.tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tempo.bpm))))
    for measure in score.measures:
        if measure.time_signature is not None:
            ts = measure.time_signature
            timed.append(
                (
                    measure.start_tick,
                    mido.MetaMessage("time_signature", numerator=ts.beats, denominator=ts.beat_type),
                )
            )
        if measure.key_signature is not None:
            ks = measure.key_signature
            timed.append(
                (measure.start_tick, mido.MetaMessage("key_signature", key=_key_name(ks.fifths, ks.mode)))
            )
    return _to_track(timed, score.total_duration)


def _to_track(timed: list[tuple[int, mido.Message]], end: int) -> mido.MidiTrack:
    """Convert absolute-tick messages to a delta-timed track.

    The sort is stable, so messages at the same tick keep their order.
    """
    track = mido.MidiTrack()
    now = 0
    for tick, msg in sorted(timed, key=lambda e: e[0]):
        track.append(msg.copy(time=tick - now))
        now = tick
    track.append(mido.MetaMessage("end_of_track", time=max(0, end - now)))
    return track


def score_to_midi_file(score: Score) -> mido.MidiFile:
    """Build a type-1 MIDI file at the score's own resolution."""
    mid = mido.MidiFile(type=1, ticks_per_beat=score.divisions)
    mid.tracks.append(_meta_track(score))

    owners = _staff_owners(score)
    channels = _channels(score)
    parts = score.parts
    per_part: dict[int, list[tuple[int, int, mido.Message]]] = {}
    for event in expand_playback(score):
        part = owners[min(event.staff, len(owners) - 1)]
        channel = channels[part]
        bucket = per_part.setdefault(part, [])
        bucket.append(
            (event.tick, 1, mido.Message(
                "note_on", note=event.midi_pitch, velocity=event.velocity, channel=channel
            ))
        )
        bucket.append(
            (event.end_tick, 0, mido.Message(
                "note_off", note=event.midi_pitch, velocity=0, channel=channel
            ))
        )

    for i in range(max(len(parts), 1)):
        part = parts[i] if parts else None
        channel = channels[i]
        timed: list[tuple[int, mido.Message]] = [
            (0, mido.MetaMessage("track_name", name=part.name if part else "Part 1"))
        ]
        if channel != DRUM_CHANNEL:
            program = part.midi_program if part else 0
            timed.append((0, mido.Message("program_change", program=program, channel=channel)))
        # Offs sort before ons at the same tick so repeated notes retrigger.
        for tick, _order, msg in sorted(per_part.get(i, []), key=lambda e: (e[0], e[1])):
            timed.append((tick, msg))
        mid.tracks.append(_to_track(timed, score.total_duration))

    logger.debug("Built MIDI file with %d tracks", len(mid.tracks))
    return mid


def write_midi(score: Score, path: str | Path) -> Path:
    """Write *score* as a ``.mid`` file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    score_to_midi_file(score).save(path)
    return path
