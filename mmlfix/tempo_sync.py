"""Tempo Synchronizer: makes every track carry every tempo change at the same tick."""

from mmlfix.errors import UnresolvableDurationError
from mmlfix.mml_models import DEFAULT_TEMPO, TempoPoint, Token, TokenKind, Track
from mmlfix.notation_resolver import resolve
from mmlfix.progress_log import ProgressLog
from mmlfix.tick_annotator import reparse, track_duration


def find_tempo_points(tracks: list[Track]) -> list[TempoPoint]:
    """
    Collect every tempo command across all tracks.

    Exact ``(tick, tempo)`` duplicates are dropped; the result is sorted by
    tick, keeping discovery order among points that share a tick.
    """
    points: list[TempoPoint] = []
    for track in tracks:
        for token in track:
            if not token.is_tempo():
                continue
            point = TempoPoint(token.start_tick, token.value or 0)
            if point not in points:
                points.append(point)
    return sorted(points, key=lambda p: p.tick)


def tempo_token(tempo: int) -> Token:
    return Token(TokenKind.COMMAND, f"t{tempo}")


def _tie() -> Token:
    return Token(TokenKind.TIE, "&")


def _fragment_tokens(original: Token, ticks: int) -> list[Token]:
    fragments = resolve(ticks)
    if fragments is None:
        raise UnresolvableDurationError(ticks)

    pieces: list[Token] = []
    for index, fragment in enumerate(fragments):
        if index > 0 and original.kind is TokenKind.NOTE:
            pieces.append(_tie())
        pieces.append(Token(original.kind, f"{original.pitch}{fragment.text}"))
    return pieces


def split_around(token: Token, tick: int, marker: Token) -> list[Token]:
    """
    Split a Note/Rest at ``tick`` and put ``marker`` at the cut.

    Both halves are re-notated with the shortest fragment chains; the pieces of
    a Note are tied together across the marker so the pitch keeps sounding.

    Raises:
        UnresolvableDurationError: If either half cannot be notated exactly.
    """
    before = _fragment_tokens(token, tick - token.start_tick)
    after = _fragment_tokens(token, token.end_tick - tick)

    pieces = before + [marker]
    if token.kind is TokenKind.NOTE:
        pieces.append(_tie())
    return pieces + after


class TempoSynchronizer:
    """
    Inserts the global tempo timeline into every track, then normalizes it.

    Args:
        log: Progress sink; a private one is used when omitted.
    """

    def __init__(self, log: ProgressLog | None = None) -> None:
        self.log = log if log is not None else ProgressLog()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _has_point(self, track: Track, point: TempoPoint) -> bool:
        return any(
            token.start_tick == point.tick and token.is_tempo() and token.value == point.tempo
            for token in track
        )

    def _insert_point(self, track: Track, point: TempoPoint, track_index: int) -> Track:
        if self._has_point(track, point):
            return track

        marker = tempo_token(point.tempo)

        exact = next((i for i, token in enumerate(track) if token.start_tick == point.tick), None)
        if exact is not None:
            return reparse(track[:exact] + [marker] + track[exact:])

        straddle = next(
            (i for i, token in enumerate(track) if token.start_tick < point.tick < token.end_tick),
            None,
        )
        if straddle is None:
            return reparse(track + [marker])

        token = track[straddle]
        if not token.is_sounding:
            replacement = [token, marker]
        else:
            try:
                replacement = split_around(token, point.tick, marker)
            except UnresolvableDurationError as exc:
                self.log.warning(
                    f"[Track {track_index + 1}] Cannot split '{token.text}' at tick {point.tick} "
                    f"({exc}); placing {marker.text} after it."
                )
                replacement = [token, marker]
            else:
                self.log.info(
                    f"[Track {track_index + 1}] Split '{token.text}' at tick {point.tick}: "
                    f"{''.join(piece.text for piece in replacement)}"
                )

        return reparse(track[:straddle] + replacement + track[straddle + 1:])

    def _trailing_tempo_index(self, track: Track) -> int | None:
        """Index of the first tempo command after the last timed token."""
        last_timed = -1
        for index, token in enumerate(track):
            if token.kind in (TokenKind.NOTE, TokenKind.REST, TokenKind.PITCH_NOTE):
                last_timed = index
        for index in range(last_timed + 1, len(track)):
            if track[index].is_tempo():
                return index
        return None

    def _add_starting_tempo(self, tracks: list[Track]) -> tuple[list[Track], bool]:
        added = False
        result: list[Track] = []
        for index, track in enumerate(tracks):
            if track and not (track[0].start_tick == 0 and track[0].is_tempo()):
                self.log.info(f"[Track {index + 1}] No starting tempo; adding t{DEFAULT_TEMPO}.")
                track = reparse([tempo_token(DEFAULT_TEMPO)] + track)
                added = True
            result.append(list(track))
        return result, added

    def _drop_shared_trailing_tempo(self, tracks: list[Track]) -> tuple[list[Track], int | None]:
        """Remove the trailing tempo every track agrees on; returns its value if removed."""
        if not tracks:
            return tracks, None

        trailing = [self._trailing_tempo_index(track) for track in tracks]
        if any(index is None for index in trailing):
            return tracks, None

        values = {track[index].value for track, index in zip(tracks, trailing) if index is not None}
        if len(values) != 1:
            return tracks, None

        value = values.pop()
        self.log.info(f"Every track ends with the same tempo t{value}; removing it.")
        stripped = [
            reparse(track[:index] + track[index + 1:])
            for track, index in zip(tracks, trailing)
            if index is not None
        ]
        return stripped, value

    def _timeline(
        self,
        points: list[TempoPoint],
        tracks: list[Track],
        added_start: bool,
        dropped_tempo: int | None,
    ) -> list[TempoPoint]:
        timeline = list(points)
        start = TempoPoint(0, DEFAULT_TEMPO)
        if added_start and start not in timeline:
            timeline.insert(0, start)

        if dropped_tempo is not None:
            end = max((track_duration(track) for track in tracks), default=0)
            dropped = next(
                (p for p in timeline if p.tick >= end and p.tempo == dropped_tempo),
                None,
            )
            if dropped is not None:
                timeline.remove(dropped)
        return timeline

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def insert_tempo_points(
        self,
        track: Track,
        points: list[TempoPoint],
        track_index: int = 0,
    ) -> Track:
        """
        Return a copy of ``track`` carrying every tempo point at its tick.

        Points inside the track are applied from the highest tick down so
        earlier positions are unaffected by each insertion. Points at or past
        the track's end are appended afterwards in tick order.
        """
        end = track_duration(track)
        result = list(track)
        inside = [point for point in points if point.tick < end]
        for point in sorted(inside, key=lambda p: p.tick, reverse=True):
            result = self._insert_point(result, point, track_index)

        for point in sorted((p for p in points if p.tick >= end), key=lambda p: p.tick):
            if not self._has_point(result, point):
                result = reparse(result + [tempo_token(point.tempo)])
        return result

    def normalize(self, tracks: list[Track]) -> list[Track]:
        """
        Give every track a starting tempo and drop a shared trailing tempo.

        A non-empty track that does not open with a tempo command gets ``t120``
        prepended. If every track has a tempo command after its last timed
        token and those commands agree, they are removed everywhere.
        """
        tracks, _ = self._add_starting_tempo(tracks)
        tracks, _ = self._drop_shared_trailing_tempo(tracks)
        return tracks

    def synchronize(self, tracks: list[Track]) -> tuple[list[Track], list[TempoPoint]]:
        """
        Insert the shared tempo timeline into every track and normalize.

        Returns:
            The synchronized tracks and the tempo points they share, at their
            true ticks: a prepended ``t120`` adds ``(0, 120)`` and a removed
            trailing tempo is left out.
        """
        points = find_tempo_points(tracks)
        self.log.info(f"Found {len(points)} distinct tempo change point(s).")
        synced = [
            self.insert_tempo_points(track, points, track_index)
            for track_index, track in enumerate(tracks)
        ]
        synced, added_start = self._add_starting_tempo(synced)
        synced, dropped_tempo = self._drop_shared_trailing_tempo(synced)
        return synced, self._timeline(points, synced, added_start, dropped_tempo)
