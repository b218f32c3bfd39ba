"""MidiExporter: renders annotated MML tracks into a multi-track MIDI preview."""

import logging
from dataclasses import dataclass

from midiutil import MIDIFile

from mmlfix.mml_models import WHOLE_NOTE_TICKS, TokenKind, Track
from mmlfix.tempo_sync import find_tempo_points
from mmlfix.tick_annotator import sounding_pitch

logger = logging.getLogger(__name__)

# Track 0 is the conductor track (tempo only); MML track n goes to MIDI track n + 1.
TRACK_CONDUCTOR = 0

# General MIDI reserves channel 9 for percussion.
PERCUSSION_CHANNEL = 9
MIDI_CHANNELS = 16

TICKS_PER_BEAT = WHOLE_NOTE_TICKS // 4
MAX_VOLUME = 15
MAX_MIDI = 127


@dataclass
class _PendingNote:
    pitch: int
    start_tick: int
    duration_ticks: int
    velocity: int

    @property
    def end_tick(self) -> int:
        return self.start_tick + self.duration_ticks


def _channel_for(track_index: int) -> int:
    channel = track_index if track_index < PERCUSSION_CHANNEL else track_index + 1
    return channel % MIDI_CHANNELS


class MidiExporter:
    """
    Writes one MIDI track per MML track so a document can be auditioned.

    Track layout (Format 1)
    -----------------------
    Track 0: conductor track with every tempo change of the document, or
    ``tempo`` at beat 0 when the document sets none.

    Track n: MML track n, on its own channel (skipping the percussion
    channel).

    Timing
    ------
    Ticks map to beats as ``beats = ticks / 96`` (a quarter note is one beat).
    A Tie joins the next Note to the previous one when both have the same
    pitch and touch, so ``c8&c8`` sounds as one quarter note. ``v`` commands
    (0-15) scale the note velocity.
    """

    DEFAULT_TEMPO = 120
    DEFAULT_VELOCITY = 100

    def __init__(self, tempo: int = DEFAULT_TEMPO, velocity: int = DEFAULT_VELOCITY) -> None:
        """
        Args:
            tempo:    Tempo in BPM used when the document sets none at tick 0.
            velocity: MIDI velocity of notes played at full ``v15`` volume.
        """
        self.tempo = tempo
        self.velocity = velocity

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ticks_to_beats(self, ticks: int) -> float:
        """Convert a tick offset to beats (quarter notes)."""
        return ticks / TICKS_PER_BEAT

    def _volume_to_velocity(self, volume: int) -> int:
        volume = max(0, min(volume, MAX_VOLUME))
        return round(self.velocity * volume / MAX_VOLUME)

    def _collect_notes(self, track: Track) -> list[_PendingNote]:
        notes: list[_PendingNote] = []
        velocity = self.velocity
        tied = False

        for token in track:
            if token.kind is TokenKind.COMMAND and token.command == "v":
                velocity = self._volume_to_velocity(token.value or 0)
            elif token.kind is TokenKind.TIE:
                tied = True
                continue
            elif token.kind is TokenKind.REST:
                tied = False
            elif token.kind in (TokenKind.NOTE, TokenKind.PITCH_NOTE):
                pitch = sounding_pitch(token)
                if pitch is None or not 0 <= pitch <= MAX_MIDI:
                    logger.warning("Skipping '%s': pitch %s is outside the MIDI range.", token.text, pitch)
                    tied = False
                    continue

                previous = notes[-1] if notes else None
                if (
                    tied
                    and previous is not None
                    and previous.pitch == pitch
                    and previous.end_tick == token.start_tick
                ):
                    previous.duration_ticks += token.duration_ticks
                else:
                    notes.append(_PendingNote(pitch, token.start_tick, token.duration_ticks, velocity))
                tied = False

        return notes

    def _tempo_changes(self, tracks: list[Track]) -> dict[int, int]:
        changes: dict[int, int] = {}
        for point in find_tempo_points(tracks):
            changes[point.tick] = point.tempo
        changes.setdefault(0, self.tempo)
        return dict(sorted(changes.items()))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def export(self, tracks: list[Track], output_path: str) -> None:
        """
        Render annotated tracks to a Standard MIDI File (format 1).

        Args:
            tracks:      Annotated tracks, e.g. from ``parse_track``.
            output_path: Destination file path (e.g. "preview.mid").

        Raises:
            OSError: If the output file cannot be opened for writing.
        """
        midi = MIDIFile(numTracks=len(tracks) + 1, removeDuplicates=False, deinterleave=False)

        for tick, tempo in self._tempo_changes(tracks).items():
            midi.addTempo(TRACK_CONDUCTOR, self._ticks_to_beats(tick), tempo)

        for index, track in enumerate(tracks):
            midi_track = index + 1
            channel = _channel_for(index)
            midi.addTrackName(midi_track, 0, f"Track {index + 1}")

            for note in self._collect_notes(track):
                if note.velocity == 0 or note.duration_ticks == 0:
                    continue
                midi.addNote(
                    track=midi_track,
                    channel=channel,
                    pitch=note.pitch,
                    time=self._ticks_to_beats(note.start_tick),
                    duration=self._ticks_to_beats(note.duration_ticks),
                    volume=note.velocity,
                )

        with open(output_path, "wb") as f:
            midi.writeFile(f)
