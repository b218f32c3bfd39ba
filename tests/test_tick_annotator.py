"""Unit tests for tick annotation, PitchNote expansion and sounding pitch."""

import pytest

from mmlfix.errors import MalformedInputError
from mmlfix.mml_models import Token, TokenKind
from mmlfix.serializer import serialize_track
from mmlfix.tick_annotator import (
    annotate,
    expand_pitch_notes,
    note_ticks,
    parse_track,
    sounding_pitch,
    track_duration,
)


def _assert_contiguous(text: str) -> None:
    track = parse_track(text)
    for current, following in zip(track, track[1:]):
        assert following.start_tick == current.start_tick + current.duration_ticks


def test_note_ticks() -> None:
    assert note_ticks(1, False) == 384
    assert note_ticks(4, False) == 96
    assert note_ticks(4, True) == 144
    assert note_ticks(3, False) == 128
    assert note_ticks(64, False) == 6


def test_annotate_uses_default_and_explicit_lengths() -> None:
    track = parse_track("l8c4.d")
    assert [t.duration_ticks for t in track] == [0, 144, 48]
    assert [t.start_tick for t in track] == [0, 0, 144]
    assert track_duration(track) == 192


def test_annotate_dotted_default_length() -> None:
    track = parse_track("l8.cd4")
    assert [t.duration_ticks for t in track] == [0, 72, 96]


def test_annotate_tracks_octave() -> None:
    track = parse_track("o5c>c<<c")
    notes = [t for t in track if t.text == "c"]
    assert [t.octave for t in notes] == [5, 6, 4]


def test_annotate_keeps_ticks_contiguous() -> None:
    _assert_contiguous("t120l16cde8.&e32r4n60>g<a2")


def test_annotate_pitch_note_uses_default_length() -> None:
    track = parse_track("l8n60")
    assert track[1].duration_ticks == 48
    assert track[1].octave == 5


def test_annotate_rejects_zero_length() -> None:
    with pytest.raises(MalformedInputError):
        parse_track("c0")
    with pytest.raises(MalformedInputError):
        parse_track("l0c")


def test_sounding_pitch() -> None:
    track = parse_track("c>c+<b-n72r")
    assert [sounding_pitch(t) for t in track] == [48, None, 61, None, 58, 72, None]


def test_expand_pitch_notes_wraps_octave_shifts() -> None:
    assert serialize_track(expand_pitch_notes(parse_track("l8n60"))) == "l8>c8<"
    assert serialize_track(expand_pitch_notes(parse_track("o5n49d"))) == "o5<c+4>d"


def test_expand_pitch_notes_preserves_pitch_and_duration() -> None:
    original = parse_track("l4.n62r8n50")
    expanded = expand_pitch_notes(original)
    assert track_duration(expanded) == track_duration(original)
    assert [sounding_pitch(t) for t in expanded if t.text[0] in "abcdefg"] == [62, 50]


def test_annotate_keeps_default_for_length_command_without_digits() -> None:
    track = annotate([Token(TokenKind.COMMAND, "l"), Token(TokenKind.NOTE, "c")])
    assert track[1].length == 4
    assert track[1].duration_ticks == 96


def test_sounding_pitch_of_unreadable_note_is_none() -> None:
    assert sounding_pitch(Token(TokenKind.NOTE, "x")) is None
