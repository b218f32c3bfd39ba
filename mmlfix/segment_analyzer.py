"""Segment Analyzer: partitions the timeline at tempo changes and counts events."""

from mmlfix.mml_models import TempoPoint, TempoSegment, Track
from mmlfix.progress_log import ProgressLog
from mmlfix.tempo_sync import find_tempo_points


def count_events(track: Track, start_tick: int, end_tick: int) -> int:
    """Number of Note/Rest tokens starting inside ``[start_tick, end_tick)``."""
    return sum(
        1 for token in track if token.is_sounding and start_tick <= token.start_tick < end_tick
    )


class SegmentAnalyzer:
    """
    Builds the tempo segments of a synchronized document.

    Several tempo commands at the same tick form a single boundary, named by
    the last of them. The final segment ends at the latest token end of any
    track. Segments starting where no track sounds anything any more are
    dropped.
    """

    def __init__(self, log: ProgressLog | None = None) -> None:
        self.log = log if log is not None else ProgressLog()

    def analyze(
        self,
        tracks: list[Track],
        points: list[TempoPoint] | None = None,
    ) -> list[TempoSegment]:
        """
        Args:
            tracks: Annotated, tempo-synchronized tracks.
            points: Tempo points to cut at; collected from ``tracks`` if omitted.

        Returns:
            Segments in timeline order with per-track Note+Rest counts.
        """
        if points is None:
            points = find_tempo_points(tracks)

        boundaries: dict[int, int] = {}
        for point in points:
            boundaries[point.tick] = point.tempo
        starts = sorted(boundaries)

        piece_end = max((token.end_tick for track in tracks for token in track), default=0)
        last_sounding_end = max(
            (token.end_tick for track in tracks for token in track if token.is_sounding),
            default=0,
        )

        segments: list[TempoSegment] = []
        for index, start in enumerate(starts):
            end = piece_end if index == len(starts) - 1 else starts[index + 1]
            if start >= last_sounding_end:
                self.log.info(f"Tempo segment at tick {start} has no sounding events after it; skipping it.")
                continue

            counts = tuple(count_events(track, start, end) for track in tracks)
            segments.append(TempoSegment(start, end, boundaries[start], counts))

        return segments
