"""End-to-end tests for MMLFixer."""

import pytest

from mmlfix.errors import MalformedInputError, PipelineError
from mmlfix.fixer import FixResult, MMLFixer
from mmlfix.lexer import split_document
from mmlfix.segment_analyzer import SegmentAnalyzer, count_events
from mmlfix.tick_annotator import parse_track, track_duration


def _fix(mml: str, **kwargs) -> FixResult:
    return MMLFixer(**kwargs).fix(mml)


def test_fix_adds_starting_tempo_and_equalizes() -> None:
    result = _fix("MML@l4cdefg,l4cdefgr;")
    assert result.mml == "MML@t120c8&c8defg,t120cdefgr;"
    assert all(track.startswith("t120") for track in result.tracks)
    assert result.lengths_before == [7, 8]
    assert result.lengths_after == [13, 10]

    tracks = [parse_track(text) for text in result.tracks]
    assert [count_events(track, 0, 576) for track in tracks] == [6, 6]


def test_fix_splits_short_track_to_match_event_count() -> None:
    result = _fix("MML@l4ccccl8cccc,l4cc;")
    assert result.tracks == ["t120ccccl8cccc", "t120l16c&c&c&cc&c&c&c"]

    second = parse_track(result.tracks[1])
    assert count_events(second, 0, 192) == 8
    assert track_duration(second) == 192


def test_fix_inserts_missing_tempo_change() -> None:
    result = _fix("MML@t120c2t150c2,c1;")
    assert result.tracks == ["t120c2t150c2", "t120c2t150&c2"]
    assert result.choices == ["B", "B"]


def test_fix_drops_shared_trailing_tempo() -> None:
    assert _fix("MML@c4t150,r4t150;").mml == "MML@t120c,t120r;"


def test_fix_expands_pitch_notes() -> None:
    result = _fix("MML@l8n60d,l8cd;")
    tracks = [parse_track(text) for text in result.tracks]
    assert track_duration(tracks[0]) == track_duration(tracks[1]) == 96


def test_fix_balances_every_segment_but_the_last() -> None:
    result = _fix("MML@t120l8cdefgab>c<t150c2r2,t120c1c1,r1l16cdef;")
    tracks = [parse_track(text) for text in split_document(result.mml)]
    segments = SegmentAnalyzer().analyze(tracks)
    assert len(segments) == 2
    assert set(segments[0].event_counts) == {8}
    assert segments[1].event_counts == (2, 1, 4)


def test_fix_leaves_final_segment_unsplit() -> None:
    result = _fix("MML@t120c4c4t150c4,t120c2t150c8c8;")
    assert result.tracks == ["t120cct150c", "t120c&ct150c8c8"]


def test_fix_cuts_segments_only_at_real_tempo_changes() -> None:
    result = _fix("MML@c4c4c4c4t150c4,c1c4,c2;")
    tracks = [parse_track(text) for text in result.tracks]
    assert [count_events(track, 0, 384) for track in tracks] == [4, 4, 4]
    assert [track_duration(track) for track in tracks] == [480, 480, 192]


def test_fix_streams_log_to_sink() -> None:
    lines: list[str] = []
    result = _fix("MML@t120c2t150c2,c1;", sink=lines.append)
    assert lines == result.log
    assert lines[0] == "Processing MML code..."
    assert "Found 2 track(s)." in lines
    assert lines[-1].startswith("Track 2 length")


def test_fix_warns_on_long_tracks() -> None:
    result = _fix("MML@cdefgab;", max_track_length=5)
    assert any(line.startswith("[WARNING] Track 1 length") for line in result.log)


@pytest.mark.parametrize("mml", ["", "cdef", "MML@cdef", "MML@l0c;"])
def test_fix_rejects_malformed_input(mml: str) -> None:
    with pytest.raises(MalformedInputError):
        _fix(mml)


def test_fix_wraps_unexpected_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(self, tracks, points=None):
        raise RuntimeError("analyzer exploded")

    monkeypatch.setattr(SegmentAnalyzer, "analyze", boom)
    with pytest.raises(PipelineError) as excinfo:
        _fix("MML@c,d;")

    assert "analyzer exploded" in str(excinfo.value)
    assert excinfo.value.log_lines[-1] == "[ERROR] Fatal error while processing: analyzer exploded"
