"""Plain-dict codec for model values.

Produces JSON/msgpack-friendly structures (str, int, float, bool, None,
list, dict with str keys).  Voice ids become string keys because msgpack
maps and JSON objects both round-trip string keys most reliably.
"""

from __future__ import annotations

from typing import Any

from mnote.errors import SerializationError
from mnote.model.duration import NoteValue, TupletRef, WrittenDuration
from mnote.model.elements import Articulation, Chord, Element, GraceGroup, GraceType, Note, Rest
from mnote.model.pitch import AccidentalDisplay, NotatedPitch, Pitch, PlaybackPitch, Step
from mnote.model.score import (
    TREBLE_CLEF,
    Clef,
    ClefType,
    KeyMode,
    KeySignature,
    Measure,
    Part,
    Placement,
    Score,
    Segment,
    Slur,
    Spanners,
    Tempo,
    Tie,
    TimeRange,
    TimeSignature,
    VoiceSlice,
)

FORMAT_VERSION = 1


# ---------------------------------------------------------------------------
# Pitch and duration
# ---------------------------------------------------------------------------

def pitch_to_dict(pitch: Pitch) -> dict[str, Any]:
    return {"step": pitch.step.value, "alter": pitch.alter, "octave": pitch.octave}


def pitch_from_dict(data: dict[str, Any]) -> Pitch:
    return Pitch(step=Step(data["step"]), alter=data.get("alter", 0), octave=data["octave"])


def notated_to_dict(notated: NotatedPitch) -> dict[str, Any]:
    return {**pitch_to_dict(notated.pitch), "display": notated.display.value}


def notated_from_dict(data: dict[str, Any]) -> NotatedPitch:
    return NotatedPitch(
        pitch=pitch_from_dict(data),
        display=AccidentalDisplay(data.get("display", "none")),
    )


def playback_to_dict(playback: PlaybackPitch) -> dict[str, Any]:
    return {"midi_pitch": playback.midi_pitch, "cents": playback.cents}


def playback_from_dict(data: dict[str, Any]) -> PlaybackPitch:
    return PlaybackPitch(midi_pitch=data["midi_pitch"], cents=data.get("cents"))


def written_to_dict(written: WrittenDuration) -> dict[str, Any]:
    tuplet = None
    if written.tuplet is not None:
        tuplet = {
            "id": written.tuplet.id,
            "actual": written.tuplet.actual,
            "normal": written.tuplet.normal,
        }
    return {"base": written.base.value, "dots": written.dots, "tuplet": tuplet}


def written_from_dict(data: dict[str, Any]) -> WrittenDuration:
    tuplet = data.get("tuplet")
    return WrittenDuration(
        base=NoteValue(data["base"]),
        dots=data.get("dots", 0),
        tuplet=TupletRef(**tuplet) if tuplet else None,
    )


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

def _articulations(values: list[str] | None) -> frozenset[Articulation]:
    return frozenset(Articulation(v) for v in values or ())


def _articulation_names(values: frozenset[Articulation]) -> list[str]:
    return sorted(a.value for a in values)


def element_to_dict(element: Element) -> dict[str, Any]:
    match element:
        case Note():
            return {
                "kind": "note",
                "id": element.id,
                "pitch": notated_to_dict(element.pitch),
                "playback_pitch": playback_to_dict(element.playback_pitch),
                "written": written_to_dict(element.written),
                "ticks": element.ticks,
                "voice": element.voice,
                "staff": element.staff,
                "velocity": element.velocity,
                "articulations": _articulation_names(element.articulations),
                "tie_start": element.tie_start,
                "tie_end": element.tie_end,
            }
        case Chord():
            return {
                "kind": "chord",
                "id": element.id,
                "pitches": [notated_to_dict(p) for p in element.pitches],
                "playback_pitches": [playback_to_dict(p) for p in element.playback_pitches],
                "written": written_to_dict(element.written),
                "ticks": element.ticks,
                "voice": element.voice,
                "staff": element.staff,
                "velocity": element.velocity,
                "articulations": _articulation_names(element.articulations),
            }
        case Rest():
            return {
                "kind": "rest",
                "id": element.id,
                "written": written_to_dict(element.written),
                "ticks": element.ticks,
                "voice": element.voice,
                "staff": element.staff,
                "is_measure_rest": element.is_measure_rest,
            }
        case GraceGroup():
            return {
                "kind": "grace",
                "id": element.id,
                "notes": [element_to_dict(n) for n in element.notes],
                "principal_note_id": element.principal_note_id,
                "grace_type": element.grace_type.value,
            }
    raise SerializationError(f"Cannot encode element {element!r}")


def note_from_dict(data: dict[str, Any]) -> Note:
    return Note(
        id=data["id"],
        pitch=notated_from_dict(data["pitch"]),
        playback_pitch=playback_from_dict(data["playback_pitch"]),
        written=written_from_dict(data["written"]),
        ticks=data.get("ticks"),
        voice=data.get("voice", 1),
        staff=data.get("staff", 0),
        velocity=data.get("velocity", 80),
        articulations=_articulations(data.get("articulations")),
        tie_start=data.get("tie_start"),
        tie_end=data.get("tie_end"),
    )


def element_from_dict(data: dict[str, Any]) -> Element:
    kind = data.get("kind")
    if kind == "note":
        return note_from_dict(data)
    if kind == "chord":
        return Chord(
            id=data["id"],
            pitches=tuple(notated_from_dict(p) for p in data["pitches"]),
            playback_pitches=tuple(playback_from_dict(p) for p in data["playback_pitches"]),
            written=written_from_dict(data["written"]),
            ticks=data.get("ticks"),
            voice=data.get("voice", 1),
            staff=data.get("staff", 0),
            velocity=data.get("velocity", 80),
            articulations=_articulations(data.get("articulations")),
        )
    if kind == "rest":
        return Rest(
            id=data["id"],
            written=written_from_dict(data["written"]),
            ticks=data.get("ticks"),
            voice=data.get("voice", 1),
            staff=data.get("staff", 0),
            is_measure_rest=data.get("is_measure_rest", False),
        )
    if kind == "grace":
        return GraceGroup(
            id=data["id"],
            notes=tuple(note_from_dict(n) for n in data["notes"]),
            principal_note_id=data["principal_note_id"],
            grace_type=GraceType(data.get("grace_type", "acciaccatura")),
        )
    raise SerializationError(f"Unknown element kind: {kind!r}")


# ---------------------------------------------------------------------------
# Measures, parts, spanners
# ---------------------------------------------------------------------------

def clef_to_dict(clef: Clef) -> dict[str, Any]:
    return {"type": clef.type.value, "line": clef.line}


def clef_from_dict(data: dict[str, Any]) -> Clef:
    return Clef(type=ClefType(data["type"]), line=data["line"])


def measure_to_dict(measure: Measure) -> dict[str, Any]:
    ts = measure.time_signature
    ks = measure.key_signature
    return {
        "id": measure.id,
        "number": measure.number,
        "start_tick": measure.start_tick,
        "duration": measure.duration,
        "time_signature": [ts.beats, ts.beat_type] if ts else None,
        "key_signature": {"fifths": ks.fifths, "mode": ks.mode.value} if ks else None,
        "clef": clef_to_dict(measure.clef) if measure.clef else None,
        "segments": [
            {
                "tick": segment.tick,
                "voices": {
                    str(voice): [element_to_dict(e) for e in vslice.elements]
                    for voice, vslice in segment.voices.items()
                },
            }
            for segment in measure.segments
        ],
    }


def measure_from_dict(data: dict[str, Any]) -> Measure:
    ts = data.get("time_signature")
    ks = data.get("key_signature")
    clef = data.get("clef")
    segments = tuple(
        Segment(
            tick=seg["tick"],
            voices={
                int(voice): VoiceSlice(tuple(element_from_dict(e) for e in elements))
                for voice, elements in seg["voices"].items()
            },
        )
        for seg in data.get("segments", [])
    )
    return Measure(
        id=data["id"],
        number=data["number"],
        start_tick=data["start_tick"],
        duration=data["duration"],
        time_signature=TimeSignature(*ts) if ts else None,
        key_signature=KeySignature(ks["fifths"], KeyMode(ks["mode"])) if ks else None,
        clef=clef_from_dict(clef) if clef else None,
        segments=segments,
    )


def part_to_dict(part: Part) -> dict[str, Any]:
    return {
        "id": part.id,
        "name": part.name,
        "abbreviation": part.abbreviation,
        "midi_program": part.midi_program,
        "staff_clefs": [clef_to_dict(c) for c in part.staff_clefs],
    }


def part_from_dict(data: dict[str, Any]) -> Part:
    return Part(
        id=data["id"],
        name=data["name"],
        abbreviation=data.get("abbreviation"),
        midi_program=data.get("midi_program", 0),
        staff_clefs=tuple(clef_from_dict(c) for c in data.get("staff_clefs", []))
        or (TREBLE_CLEF,),
    )


def slur_to_dict(slur: Slur) -> dict[str, Any]:
    return {
        "id": slur.id,
        "start_note_id": slur.start_note_id,
        "end_note_id": slur.end_note_id,
        "range": [slur.range.start_tick, slur.range.end_tick],
        "placement": slur.placement.value,
    }


def slur_from_dict(data: dict[str, Any]) -> Slur:
    start, end = data["range"]
    return Slur(
        id=data["id"],
        start_note_id=data["start_note_id"],
        end_note_id=data["end_note_id"],
        range=TimeRange(start, end),
        placement=Placement(data.get("placement", "above")),
    )


def tie_to_dict(tie: Tie) -> dict[str, Any]:
    return {"id": tie.id, "start_note_id": tie.start_note_id, "end_note_id": tie.end_note_id}


def tie_from_dict(data: dict[str, Any]) -> Tie:
    return Tie(id=data["id"], start_note_id=data["start_note_id"], end_note_id=data["end_note_id"])


def tempo_to_dict(tempo: Tempo) -> dict[str, Any]:
    return {"tick": tempo.tick, "bpm": tempo.bpm}


def tempo_from_dict(data: dict[str, Any]) -> Tempo:
    return Tempo(tick=data["tick"], bpm=data["bpm"])


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------

def score_to_dict(score: Score) -> dict[str, Any]:
    """Encode a full score snapshot."""
    return {
        "format": FORMAT_VERSION,
        "id": score.id,
        "title": score.title,
        "revision": score.revision,
        "divisions": score.divisions,
        "parts": [part_to_dict(p) for p in score.parts],
        "measures": [measure_to_dict(m) for m in score.measures],
        "slurs": [slur_to_dict(s) for s in score.spanners.slurs],
        "ties": [tie_to_dict(t) for t in score.spanners.ties],
        "tempos": [tempo_to_dict(t) for t in score.tempos],
    }


def score_from_dict(data: dict[str, Any]) -> Score:
    """Decode a score snapshot produced by :func:`score_to_dict`."""
    version = data.get("format")
    if version != FORMAT_VERSION:
        raise SerializationError(f"Unsupported score format: {version!r}")
    try:
        return Score(
            id=data["id"],
            title=data.get("title", "Untitled"),
            parts=tuple(part_from_dict(p) for p in data.get("parts", [])),
            measures=tuple(measure_from_dict(m) for m in data.get("measures", [])),
            spanners=Spanners(
                slurs=tuple(slur_from_dict(s) for s in data.get("slurs", [])),
                ties=tuple(tie_from_dict(t) for t in data.get("ties", [])),
            ),
            tempos=tuple(tempo_from_dict(t) for t in data.get("tempos", [])),
            revision=data.get("revision", 0),
            divisions=data.get("divisions", 480),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"Malformed score snapshot: {e}") from e
