"""Unit tests for the event-count equalizers."""

import pytest

from mmlfix.equalize_strategy import (
    ExponentialSplitEqualizer,
    GroupSplitEqualizer,
    can_halve,
    split_single_token,
)
from mmlfix.mml_models import TempoPoint, Track
from mmlfix.progress_log import ProgressLog
from mmlfix.segment_analyzer import SegmentAnalyzer, count_events
from mmlfix.serializer import serialize_track
from mmlfix.tick_annotator import parse_track, track_duration


def _equalize(strategy, *texts: str) -> tuple[list[Track], ProgressLog]:
    log = ProgressLog()
    tracks = [parse_track(text) for text in texts]
    segments = SegmentAnalyzer(log).analyze(tracks, [TempoPoint(0, 120)])
    return strategy.equalize(tracks, segments, log), log


def test_can_halve() -> None:
    assert can_halve(parse_track("c4")[0])
    assert can_halve(parse_track("r4.")[0])
    assert can_halve(parse_track("c3")[0])
    assert not can_halve(parse_track("c64")[0])
    assert not can_halve(parse_track("c13")[0])
    assert not can_halve(parse_track("t120")[0])


def test_split_single_token_ties_notes_only() -> None:
    assert serialize_track(split_single_token(parse_track("c4")[0])) == "c8&c8"
    assert serialize_track(split_single_token(parse_track("r4.")[0])) == "r8.r8."


def test_split_single_token_rejects_unsplittable() -> None:
    with pytest.raises(ValueError):
        split_single_token(parse_track("c64")[0])


def test_group_split_splits_whole_group() -> None:
    tracks, _ = _equalize(GroupSplitEqualizer(), "c4c4c4c4", "c4c4")
    assert serialize_track(tracks[1]) == "c8&c8c8&c8"
    assert serialize_track(tracks[0]) == "c4c4c4c4"


def test_group_split_prefers_rests() -> None:
    tracks, _ = _equalize(GroupSplitEqualizer(), "c4c4c4", "r4c4")
    assert serialize_track(tracks[1]) == "r8r8c4"


def test_group_split_reaches_target_in_rounds() -> None:
    tracks, _ = _equalize(GroupSplitEqualizer(), "c16c16c16c16c16c16c16c16", "c4c4")
    assert count_events(tracks[1], 0, 192) == 8
    assert track_duration(tracks[1]) == 192


def test_exponential_split_halves_one_token_repeatedly() -> None:
    tracks, _ = _equalize(ExponentialSplitEqualizer(), "c8c8c8c8", "c2")
    assert serialize_track(tracks[1]) == "c8&c8&c8&c8"


def test_exponential_split_prefers_rests_then_naturals() -> None:
    equalizer = ExponentialSplitEqualizer()
    track = parse_track("c+2d4r8")
    assert equalizer._pick_token(track, [0, 1, 2]) == 2
    assert equalizer._pick_token(track, [0, 1]) == 1
    assert equalizer._pick_token(track, [0]) == 0


def test_exponential_split_stops_at_iteration_guard() -> None:
    tracks, log = _equalize(ExponentialSplitEqualizer(max_iterations=1), "c8c8c8c8", "c4c4")
    assert count_events(tracks[1], 0, 192) == 3
    assert any(line.startswith("[ERROR]") and "guard" in line for line in log.lines)


@pytest.mark.parametrize("strategy", [GroupSplitEqualizer(), ExponentialSplitEqualizer()])
def test_equalize_warns_when_nothing_is_splittable(strategy) -> None:
    tracks, log = _equalize(strategy, "c64c64", "c32")
    assert serialize_track(tracks[1]) == "c64&c64"
    tracks, log = _equalize(strategy, "c64c64", "c64")
    assert serialize_track(tracks[1]) == "c64"
    assert any(line.startswith("[WARNING]") for line in log.lines)


@pytest.mark.parametrize("strategy", [GroupSplitEqualizer(), ExponentialSplitEqualizer()])
def test_equalize_matches_counts_and_keeps_durations(strategy) -> None:
    texts = ("l8cdefgab>c<", "c2r4.e8", "r1")
    tracks, _ = _equalize(strategy, *texts)
    for before, after in zip(texts, tracks):
        assert track_duration(after) == track_duration(parse_track(before))
    assert {count_events(track, 0, 384) for track in tracks} == {8}


@pytest.mark.parametrize("strategy", [GroupSplitEqualizer(), ExponentialSplitEqualizer()])
def test_equalize_leaves_final_segment_as_is(strategy) -> None:
    log = ProgressLog()
    tracks = [parse_track("c8c8c8c8"), parse_track("c4c4")]
    segments = SegmentAnalyzer(log).analyze(tracks, [TempoPoint(0, 120), TempoPoint(96, 150)])
    equalized = strategy.equalize(tracks, segments, log)

    assert serialize_track(equalized[1]) == "c8&c8c4"
    assert count_events(equalized[1], 96, 192) == 1
    assert any("final segment left as is" in line for line in log.lines)


def test_equalize_single_segment_is_not_final() -> None:
    tracks, log = _equalize(GroupSplitEqualizer(), "c8c8", "c4")
    assert serialize_track(tracks[1]) == "c8&c8"
    assert not any("left as is" in line for line in log.lines)


def test_prepare_spells_out_lengths_for_group_split() -> None:
    track = parse_track("l8cd4e")
    assert serialize_track(GroupSplitEqualizer().prepare(track)) == "c8d4e8"
    assert serialize_track(ExponentialSplitEqualizer().prepare(track)) == "l8cd4e"


def test_group_split_counts_events_after_each_round() -> None:
    tracks, _ = _equalize(GroupSplitEqualizer(), "c16c16c16c16c16c16", "r4.c8")
    assert count_events(tracks[1], 0, 192) == 6
    assert track_duration(tracks[1]) == 192
