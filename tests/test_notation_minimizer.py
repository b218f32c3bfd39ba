"""Unit tests for NotationMinimizer passes."""

from mmlfix.mml_models import TokenKind
from mmlfix.notation_minimizer import NotationMinimizer, expand_length_defaults
from mmlfix.serializer import serialize_track
from mmlfix.tick_annotator import parse_track, sounding_pitch, track_duration


def _run(method_name: str, text: str) -> str:
    minimizer = NotationMinimizer()
    return serialize_track(getattr(minimizer, method_name)(parse_track(text)))


def _pitches(text: str) -> list[int | None]:
    return [sounding_pitch(t) for t in parse_track(text) if t.kind in (TokenKind.NOTE, TokenKind.PITCH_NOTE)]


def test_expand_length_defaults() -> None:
    assert serialize_track(expand_length_defaults(parse_track("l8cd4e"))) == "c8d4e8"
    assert serialize_track(expand_length_defaults(parse_track("l8.rn60"))) == "r8.>c8.<"


def test_introduce_length_defaults_over_long_run() -> None:
    assert _run("introduce_length_defaults", "c8d8e8f8") == "l8cdef"


def test_introduce_length_defaults_restores_previous_default() -> None:
    assert _run("introduce_length_defaults", "c16d16e16f16g16a4") == "l16cdefgl4a4"


def test_introduce_length_defaults_skips_unprofitable_run() -> None:
    assert _run("introduce_length_defaults", "c8&c8d4") == "c8&c8d4"


def test_drop_default_lengths() -> None:
    assert _run("drop_default_lengths", "c4d8l8e8f4") == "cd8l8ef4"


def test_remove_redundant_defaults() -> None:
    assert _run("remove_redundant_defaults", "l8c") == "c8"
    assert _run("remove_redundant_defaults", "l8cdefl4g") == "l8cdefg4"


def test_remove_redundant_defaults_is_idempotent() -> None:
    minimizer = NotationMinimizer()
    once = minimizer.remove_redundant_defaults(parse_track("l8cl16dl8el4fl8g"))
    twice = minimizer.remove_redundant_defaults(once)
    assert serialize_track(once) == serialize_track(twice)


def test_remove_redundant_defaults_keeps_pitch_note_lengths() -> None:
    assert _run("remove_redundant_defaults", "l8n60") == "l8n60"


def test_elide_octave_roundtrips() -> None:
    assert _run("elide_octave_roundtrips", ">>c<<") == "n72"
    assert _run("elide_octave_roundtrips", ">c4<") == ">c4<"
    assert _run("elide_octave_roundtrips", ">c<") == ">c<"


def test_substitute_enharmonics() -> None:
    assert _run("substitute_enharmonics", ">c4<") == "b+4"
    assert _run("substitute_enharmonics", "<b8>") == "c-8"
    assert _run("substitute_enharmonics", ">c+<") == ">c+<"


def test_minimize_preserves_pitch_and_duration() -> None:
    text = "t120c8d8e8f8g4>c<a16b16>>d<<r4"
    minimized = serialize_track(NotationMinimizer().minimize(parse_track(text)))
    assert len(minimized) < len(text)
    assert track_duration(parse_track(minimized)) == track_duration(parse_track(text))
    assert _pitches(minimized) == _pitches(text)


def test_minimize_spells_roundtrip_as_enharmonic() -> None:
    assert serialize_track(NotationMinimizer().minimize(parse_track(">c<"))) == "b+"
