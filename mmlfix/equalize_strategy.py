"""EqualizeStrategy: Strategy pattern for evening out event counts per tempo segment."""

from abc import ABC, abstractmethod
from dataclasses import replace

from mmlfix.mml_models import MAX_DENOMINATOR, TempoSegment, Token, TokenKind, Track
from mmlfix.notation_minimizer import expand_length_defaults
from mmlfix.progress_log import ProgressLog
from mmlfix.segment_analyzer import count_events
from mmlfix.tick_annotator import note_ticks, reparse

DEFAULT_SPLIT_GUARD = 1000


# ── Single-token split ──────────────────────────────────────────────────────

def can_halve(token: Token) -> bool:
    """
    True if a Note/Rest can be cut into two exact halves.

    The doubled denominator must stay within 64 and the halved tick value must
    add back up to the original, so a split never changes the duration.
    """
    if not token.is_sounding or token.length is None:
        return False
    doubled = token.length * 2
    if doubled > MAX_DENOMINATOR:
        return False
    return 2 * note_ticks(doubled, token.dotted) == token.duration_ticks


def split_single_token(token: Token) -> list[Token]:
    """
    Halve a Note/Rest: ``c4`` becomes ``c8&c8``, ``r4.`` becomes ``r8.r8.``.

    Notes are tied so the pitch sounds continuously; rests are not.

    Raises:
        ValueError: If the token cannot be halved exactly.
    """
    if token.length is None or not can_halve(token):
        raise ValueError(f"'{token.text}' cannot be split into two equal halves.")

    length = token.length * 2
    ticks = note_ticks(length, token.dotted)
    text = f"{token.pitch}{length}{'.' if token.dotted else ''}"

    first = replace(token, text=text, length=length, duration_ticks=ticks)
    second = replace(first, start_tick=token.start_tick + ticks)
    if token.kind is not TokenKind.NOTE:
        return [first, second]

    tie = Token(TokenKind.TIE, "&", start_tick=second.start_tick, octave=token.octave)
    return [first, tie, second]


# ── Abstract base ────────────────────────────────────────────────────────────

class EqualizeStrategy(ABC):
    """
    Abstract Strategy for raising every track to the segment's event count.

    For each tempo segment the target is the largest Note+Rest count of any
    track. Tracks below it get existing notes and rests split until they reach
    the target; total duration is never changed. The last segment is left as
    written unless it is the only one. Concrete subclasses decide which tokens
    to split and how far.
    """

    label: str = ""

    def prepare(self, track: Track) -> Track:
        """Rewrite a track into the form this strategy splits best; a copy by default."""
        return list(track)

    def _splittable_indices(self, track: Track, segment: TempoSegment) -> list[int]:
        return [
            index
            for index, token in enumerate(track)
            if segment.contains(token) and can_halve(token)
        ]

    def _exhausted(
        self,
        log: ProgressLog,
        track_index: int,
        segment_index: int,
        reached: int,
        target: int,
    ) -> None:
        log.warning(
            f"[Track {track_index + 1}] No splittable notes or rests left in segment "
            f"{segment_index + 1}; stopping at {reached}/{target}."
        )

    @abstractmethod
    def _raise_track(
        self,
        track: Track,
        segment: TempoSegment,
        segment_index: int,
        track_index: int,
        log: ProgressLog,
    ) -> Track:
        """
        Split tokens of one track inside ``segment`` up to ``segment.target``.

        Returns:
            The rewritten, re-annotated track.
        """

    def equalize(
        self,
        tracks: list[Track],
        segments: list[TempoSegment],
        log: ProgressLog | None = None,
    ) -> list[Track]:
        """
        Return new tracks whose per-segment event counts match the targets.

        Args:
            tracks:   Annotated, tempo-synchronized tracks (left unmodified).
            segments: Segments from ``SegmentAnalyzer.analyze``.
            log:      Progress sink.
        """
        log = log if log is not None else ProgressLog()
        result = [list(track) for track in tracks]

        for segment_index, segment in enumerate(segments):
            header = f"[Segment {segment_index + 1}] Ticks {segment.start_tick}-{segment.end_tick}"
            if len(segments) > 1 and segment_index == len(segments) - 1:
                log.info(f"{header}: final segment left as is.")
                continue

            log.info(f"{header}, target event count {segment.target}.")
            for track_index, track in enumerate(result):
                count = count_events(track, segment.start_tick, segment.end_tick)
                if count >= segment.target:
                    continue
                log.info(
                    f"  [Track {track_index + 1}] {count} -> {segment.target} "
                    f"({segment.target - count} to add)"
                )
                result[track_index] = self._raise_track(track, segment, segment_index, track_index, log)

        return result


# ── Concrete strategies ──────────────────────────────────────────────────────

class GroupSplitEqualizer(EqualizeStrategy):
    """
    Strategy A: split whole groups of same-length neighbours at once.

    Splitting every member of a run such as ``r8r8r8`` keeps the run uniform,
    which the default-length elision can later fold back into one ``l``
    command.

    Selection per round
    -------------------
    1. Pool: splittable rests in the segment, or splittable notes if there
       are none.
    2. Groups: maximal runs of pool tokens with the same length and dot, with
       no Note, Rest, PitchNote or ``l`` command between members.
    3. Pick a group that lands exactly on the target (rests first); else the
       first rest group that stays under it; else the largest group that
       stays under it.
    4. No group fits: split the first pool token on its own.
    """

    label = "A"

    def prepare(self, track: Track) -> Track:
        """Spell every length out so groups compare by what is written."""
        return expand_length_defaults(track)

    def _breaks_run(self, token: Token) -> bool:
        return token.kind in (TokenKind.NOTE, TokenKind.REST, TokenKind.PITCH_NOTE) or token.is_length_default()

    def _contiguous_groups(self, track: Track, pool: list[int]) -> list[list[int]]:
        groups: list[list[int]] = []
        for index in pool:
            if groups:
                last = groups[-1][-1]
                same_length = track[last].length_key == track[index].length_key
                interrupted = any(self._breaks_run(track[j]) for j in range(last + 1, index))
                if same_length and not interrupted:
                    groups[-1].append(index)
                    continue
            groups.append([index])
        return groups

    def _pick_group(
        self,
        track: Track,
        groups: list[list[int]],
        current: int,
        target: int,
    ) -> list[int] | None:
        def is_rest_group(group: list[int]) -> bool:
            return track[group[0]].kind is TokenKind.REST

        exact = [group for group in groups if current + len(group) == target]
        if exact:
            return next((group for group in exact if is_rest_group(group)), exact[0])

        under = [group for group in groups if current + len(group) < target]
        if not under:
            return None
        rest_group = next((group for group in under if is_rest_group(group)), None)
        if rest_group is not None:
            return rest_group
        return max(under, key=len)

    def _split_indices(self, track: Track, indices: list[int]) -> Track:
        chosen = set(indices)
        pieces: list[Token] = []
        for index, token in enumerate(track):
            pieces.extend(split_single_token(token) if index in chosen else [token])
        return reparse(pieces)

    def _raise_track(
        self,
        track: Track,
        segment: TempoSegment,
        segment_index: int,
        track_index: int,
        log: ProgressLog,
    ) -> Track:
        target = segment.target
        current = count_events(track, segment.start_tick, segment.end_tick)

        while current < target:
            splittable = self._splittable_indices(track, segment)
            if not splittable:
                self._exhausted(log, track_index, segment_index, current, target)
                break

            rests = [index for index in splittable if track[index].kind is TokenKind.REST]
            pool = rests or splittable

            group = self._pick_group(track, self._contiguous_groups(track, pool), current, target)
            if group is None:
                group = [pool[0]]
                log.info(f"    Splitting single token '{track[pool[0]].text}'")
            else:
                log.info(f"    Splitting group of '{track[group[0]].text}' (count: {len(group)})")

            track = self._split_indices(track, group)
            current = count_events(track, segment.start_tick, segment.end_tick)

        return track


class ExponentialSplitEqualizer(EqualizeStrategy):
    """
    Strategy B: take one token and keep halving it while the target allows.

    ``c4`` becomes ``c8&c8``, then ``c16&c16&c16&c16``, and so on, as long as
    the next halving does not overshoot the target and every piece can still
    be halved. Other tokens are left as written.

    Token priority
    --------------
    Rests, then notes without an accidental, then notes with one; within each
    tier the longest token first (earliest on a tie).

    Args:
        max_iterations: Upper bound on rounds per track and segment.
    """

    label = "B"

    def __init__(self, max_iterations: int = DEFAULT_SPLIT_GUARD) -> None:
        self.max_iterations = max_iterations

    def _pick_token(self, track: Track, candidates: list[int]) -> int:
        rests = [i for i in candidates if track[i].kind is TokenKind.REST]
        natural = [i for i in candidates if track[i].kind is TokenKind.NOTE and not track[i].has_accidental]
        accidental = [i for i in candidates if track[i].kind is TokenKind.NOTE and track[i].has_accidental]

        for tier in (rests, natural, accidental):
            if tier:
                return max(tier, key=lambda i: track[i].duration_ticks)
        return candidates[0]

    def _raise_track(
        self,
        track: Track,
        segment: TempoSegment,
        segment_index: int,
        track_index: int,
        log: ProgressLog,
    ) -> Track:
        target = segment.target
        current = count_events(track, segment.start_tick, segment.end_tick)
        iterations = 0

        while current < target:
            if iterations >= self.max_iterations:
                log.error(
                    f"[Track {track_index + 1}] Iteration guard ({self.max_iterations}) reached in "
                    f"segment {segment_index + 1}; stopping at {current}/{target}."
                )
                break
            iterations += 1

            candidates = self._splittable_indices(track, segment)
            if not candidates:
                self._exhausted(log, track_index, segment_index, current, target)
                break

            index = self._pick_token(track, candidates)
            group = [track[index]]
            projected = current
            while True:
                sounding = [token for token in group if token.kind is not TokenKind.TIE]
                if projected + len(sounding) > target:
                    break
                if not all(can_halve(token) for token in sounding):
                    break
                group = [
                    piece
                    for token in group
                    for piece in (split_single_token(token) if token.kind is not TokenKind.TIE else [token])
                ]
                projected += len(sounding)

            log.info(f"    Split '{track[index].text}' -> {''.join(token.text for token in group)}")
            track = reparse(track[:index] + group + track[index + 1:])
            current = count_events(track, segment.start_tick, segment.end_tick)

        return track
