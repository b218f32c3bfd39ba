"""MMLFixer: runs the full repair pipeline and picks the shorter result per track."""

from collections.abc import Callable
from dataclasses import dataclass, field

from mmlfix.equalize_strategy import (
    DEFAULT_SPLIT_GUARD,
    EqualizeStrategy,
    ExponentialSplitEqualizer,
    GroupSplitEqualizer,
)
from mmlfix.errors import MalformedInputError, PipelineError
from mmlfix.lexer import split_document
from mmlfix.mml_models import TempoSegment, Track
from mmlfix.notation_minimizer import NotationMinimizer
from mmlfix.progress_log import ProgressLog
from mmlfix.segment_analyzer import SegmentAnalyzer
from mmlfix.serializer import join_document, serialize_track
from mmlfix.tempo_sync import TempoSynchronizer
from mmlfix.tick_annotator import expand_pitch_notes, parse_track


@dataclass(frozen=True)
class FixResult:
    """
    Outcome of one ``MMLFixer.fix`` run.

    Attributes:
        mml:            Final ``MML@...;`` document.
        tracks:         Final serialized text per track.
        lengths_before: Character count of each input track.
        choices:        Label of the strategy picked per track (``"A"``/``"B"``).
        log:            Chronological progress lines.
    """

    mml: str
    tracks: list[str]
    lengths_before: list[int]
    choices: list[str]
    log: list[str] = field(default_factory=list)

    @property
    def lengths_after(self) -> list[int]:
        return [len(track) for track in self.tracks]


class MMLFixer:
    """
    Repairs tempo desync in a multi-track MML document and shortens it again.

    Pipeline
    --------
    1. Split the document, parse every track and expand ``n`` notes.
    2. Insert every tempo change into every track at the same tick, splitting
       notes and rests that straddle it, and normalize start/end tempos.
    3. Count Note+Rest events per track in each tempo segment.
    4. Equalize the counts twice, independently: Strategy A on tracks with all
       lengths written out, Strategy B on the tracks as they are.
    5. Minimize both candidates and keep, per track, the strictly shorter one
       (Strategy B on a tie).

    Args:
        split_guard:        Iteration guard for Strategy B.
        max_track_length:   Warn when a final track is longer than this.
        sink:               Callable receiving each log line as it happens.
    """

    DEFAULT_MAX_TRACK_LENGTH = 1200

    def __init__(
        self,
        split_guard: int = DEFAULT_SPLIT_GUARD,
        max_track_length: int = DEFAULT_MAX_TRACK_LENGTH,
        sink: Callable[[str], None] | None = None,
    ) -> None:
        self.split_guard = split_guard
        self.max_track_length = max_track_length
        self.sink = sink

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run_strategy(
        self,
        strategy: EqualizeStrategy,
        tracks: list[Track],
        segments: list[TempoSegment],
        log: ProgressLog,
    ) -> list[str]:
        log.info(f"--- Strategy {strategy.label}: {type(strategy).__name__} ---")
        tracks = [strategy.prepare(track) for track in tracks]

        equalized = strategy.equalize(tracks, segments, log)
        log.info("Equalized event counts per tempo segment.")

        minimizer = NotationMinimizer(log)
        texts = [serialize_track(minimizer.minimize(track)) for track in equalized]
        log.info(f"--- Strategy {strategy.label} done ---")
        return texts

    def _run(self, track_texts: list[str], log: ProgressLog) -> FixResult:
        log.info("Processing MML code...")
        log.info(f"Found {len(track_texts)} track(s).")

        tracks = [expand_pitch_notes(parse_track(text)) for text in track_texts]
        synced, points = TempoSynchronizer(log).synchronize(tracks)

        segments = SegmentAnalyzer(log).analyze(synced, points)
        log.info(f"Analyzed {len(segments)} tempo segment(s).")

        strategies: list[EqualizeStrategy] = [
            GroupSplitEqualizer(),
            ExponentialSplitEqualizer(max_iterations=self.split_guard),
        ]
        group_texts, exponential_texts = (
            self._run_strategy(strategy, synced, segments, log) for strategy in strategies
        )

        final_tracks: list[str] = []
        choices: list[str] = []
        for index, (text_a, text_b) in enumerate(zip(group_texts, exponential_texts)):
            if len(text_a) < len(text_b):
                final_tracks.append(text_a)
                choices.append(strategies[0].label)
                log.info(f"Track {index + 1}: strategy A chosen (length {len(text_a)} < {len(text_b)})")
            else:
                final_tracks.append(text_b)
                choices.append(strategies[1].label)
                log.info(f"Track {index + 1}: strategy B chosen (length {len(text_a)} >= {len(text_b)})")

        log.info("Done.")
        lengths_before = [len(text) for text in track_texts]
        for index, (before, text) in enumerate(zip(lengths_before, final_tracks)):
            message = f"Track {index + 1} length: {before} -> {len(text)}"
            if len(text) > self.max_track_length:
                log.warning(f"{message} (over {self.max_track_length} characters)")
            else:
                log.info(message)

        return FixResult(
            mml=join_document(final_tracks),
            tracks=final_tracks,
            lengths_before=lengths_before,
            choices=choices,
            log=list(log.lines),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fix(self, mml: str) -> FixResult:
        """
        Run the whole pipeline over one ``MML@...;`` document.

        Raises:
            MalformedInputError: If the document envelope or a length is invalid.
            PipelineError: If anything else fails; nothing partial is returned.
        """
        log = ProgressLog(self.sink)
        try:
            track_texts = split_document(mml)
            return self._run(track_texts, log)
        except MalformedInputError as exc:
            log.error(str(exc))
            raise
        except Exception as exc:
            log.error(f"Fatal error while processing: {exc}")
            raise PipelineError(str(exc), log.lines) from exc
