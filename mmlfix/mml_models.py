"""Data models for the MML tick model."""

import re
from dataclasses import dataclass
from enum import Enum

# ── Timing constants ────────────────────────────────────────────────────────
WHOLE_NOTE_TICKS = 384
MAX_DENOMINATOR = 64
DEFAULT_LENGTH = 4
DEFAULT_OCTAVE = 4
DEFAULT_TEMPO = 120

_SOUNDING_TEXT_RE = re.compile(r"^([a-gr][#+\-]?)(\d*)(\.*)$", re.IGNORECASE)


class TokenKind(Enum):
    """Lexical category of a single MML token."""

    COMMAND = "command"
    TIE = "tie"
    OCTAVE_SHIFT = "octave_shift"
    NOTE = "note"
    REST = "rest"
    PITCH_NOTE = "pitch_note"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Token:
    """
    One lexical unit of one track, with its position in the tick model.

    Attributes:
        kind:           Lexical category.
        text:           Notation fragment written back on serialization.
        length:         Notated denominator (Note/Rest/PitchNote only).
        dotted:         True when the duration carries the dotted extension.
        duration_ticks: Ticks the token occupies; 0 for non-sounding tokens.
        start_tick:     Absolute tick offset from the start of the track.
        octave:         Octave in effect at (and after) this token.
    """

    kind: TokenKind
    text: str
    length: int | None = None
    dotted: bool = False
    duration_ticks: int = 0
    start_tick: int = 0
    octave: int = DEFAULT_OCTAVE

    @property
    def end_tick(self) -> int:
        return self.start_tick + self.duration_ticks

    @property
    def is_sounding(self) -> bool:
        """True for Note and Rest tokens, the events the engine counts."""
        return self.kind in (TokenKind.NOTE, TokenKind.REST)

    @property
    def command(self) -> str | None:
        """Lower-case command letter (``t``, ``v``, ``o`` or ``l``)."""
        if self.kind is not TokenKind.COMMAND:
            return None
        return self.text[0].lower()

    @property
    def value(self) -> int | None:
        """Numeric argument of a command or the MIDI number of a PitchNote."""
        if self.kind not in (TokenKind.COMMAND, TokenKind.PITCH_NOTE):
            return None
        return int(self.text[1:].rstrip("."))

    def is_tempo(self) -> bool:
        return self.command == "t"

    def is_length_default(self) -> bool:
        return self.command == "l"

    @property
    def default_key(self) -> str | None:
        """Length key set by an ``l`` command, e.g. ``"8."`` for ``l8.``."""
        if not self.is_length_default():
            return None
        return f"{self.value}{'.' if '.' in self.text else ''}"

    @property
    def length_key(self) -> str | None:
        """Length and dot of a timed token as a key, e.g. ``"4."``."""
        if self.length is None:
            return None
        return f"{self.length}{'.' if self.dotted else ''}"

    @property
    def pitch(self) -> str | None:
        """Pitch letter plus accidental of a Note/Rest, e.g. ``"c+"`` or ``"r"``."""
        match = _SOUNDING_TEXT_RE.match(self.text) if self.is_sounding else None
        return match.group(1) if match else None

    @property
    def has_explicit_length(self) -> bool:
        """True when the Note/Rest text spells its own length digits."""
        match = _SOUNDING_TEXT_RE.match(self.text) if self.is_sounding else None
        return bool(match and match.group(2))

    @property
    def has_accidental(self) -> bool:
        pitch = self.pitch
        return pitch is not None and len(pitch) > 1


Track = list[Token]


@dataclass(frozen=True)
class TempoPoint:
    """A tempo command found at an absolute tick in some track."""

    tick: int
    tempo: int


@dataclass(frozen=True)
class TempoSegment:
    """
    Tick interval between two tempo changes and its per-track event counts.

    Attributes:
        start_tick:   First tick of the interval (inclusive).
        end_tick:     Last tick of the interval (exclusive).
        tempo:        Tempo value in effect during the interval.
        event_counts: Note+Rest count per track, in track order.
    """

    start_tick: int
    end_tick: int
    tempo: int
    event_counts: tuple[int, ...]

    @property
    def target(self) -> int:
        """Event count every track must reach inside this segment."""
        return max(self.event_counts, default=0)

    def contains(self, token: Token) -> bool:
        return self.start_tick <= token.start_tick < self.end_tick
