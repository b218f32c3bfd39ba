"""Tick Annotator: assigns duration, start tick and octave to every token."""

import re
from collections.abc import Iterable
from dataclasses import replace

from mmlfix.errors import MalformedInputError
from mmlfix.lexer import tokenize_track
from mmlfix.mml_models import (
    DEFAULT_LENGTH,
    DEFAULT_OCTAVE,
    WHOLE_NOTE_TICKS,
    Token,
    TokenKind,
    Track,
)
from mmlfix.serializer import serialize_track

SEMITONES_PER_OCTAVE = 12

#: Pitch classes used when spelling a MIDI number as a note name.
PITCH_NAMES: list[str] = ["c", "c+", "d", "d+", "e", "f", "f+", "g", "g+", "a", "a+", "b"]

_NATURAL_PITCH_CLASSES: dict[str, int] = {"c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11}
_ACCIDENTAL_OFFSETS: dict[str, int] = {"#": 1, "+": 1, "-": -1}

_DIGITS_RE = re.compile(r"\d+")


def note_ticks(length: int, dotted: bool) -> int:
    """
    Tick duration of a notated length.

    A whole note spans 384 ticks; denominator ``n`` lasts ``384 // n`` and the
    dot adds half of that, rounded down.
    """
    base = WHOLE_NOTE_TICKS // length
    if dotted:
        base += base // 2
    return base


def _explicit_length(token: Token) -> int | None:
    match = _DIGITS_RE.search(token.text)
    if match is None:
        return None
    length = int(match.group())
    if length <= 0:
        raise MalformedInputError(f"Length must be 1 or more in '{token.text}'.")
    return length


def annotate(tokens: Iterable[Token]) -> Track:
    """
    Walk a token list left to right and return a fully annotated copy.

    The walk tracks the default length and dot (``l``), the running octave
    (``o``, ``<``, ``>``) and the accumulated tick. The annotation depends only
    on each token's kind and text, so it can be recomputed after any rewrite.

    Raises:
        MalformedInputError: If a length of zero is written.
    """
    default_length = DEFAULT_LENGTH
    default_dotted = False
    octave = DEFAULT_OCTAVE
    tick = 0
    annotated: Track = []

    for token in tokens:
        length: int | None = None
        dotted = False
        duration = 0
        token_octave: int | None = None

        if token.kind is TokenKind.COMMAND:
            if token.command == "o":
                octave = token.value or 0
            elif token.command == "l":
                value = _explicit_length(token)
                if value is not None:
                    default_length = value
                    default_dotted = "." in token.text
        elif token.kind is TokenKind.OCTAVE_SHIFT:
            octave += 1 if token.text == ">" else -1
        elif token.kind in (TokenKind.NOTE, TokenKind.REST):
            explicit = _explicit_length(token)
            length = explicit if explicit is not None else default_length
            dotted = "." in token.text or (explicit is None and default_dotted)
            duration = note_ticks(length, dotted)
        elif token.kind is TokenKind.PITCH_NOTE:
            length = default_length
            dotted = default_dotted
            duration = note_ticks(length, dotted)
            token_octave = (token.value or 0) // SEMITONES_PER_OCTAVE

        annotated.append(
            replace(
                token,
                length=length,
                dotted=dotted,
                duration_ticks=duration,
                start_tick=tick,
                octave=octave if token_octave is None else token_octave,
            )
        )
        tick += duration

    return annotated


def parse_track(text: str) -> Track:
    """Tokenize and annotate one track's text."""
    return annotate(tokenize_track(text))


def reparse(tokens: Iterable[Token]) -> Track:
    """Re-derive the annotation of a rewritten track from its serialized text."""
    return parse_track(serialize_track(tokens))


def track_duration(track: Track) -> int:
    return sum(token.duration_ticks for token in track)


def sounding_pitch(token: Token) -> int | None:
    """
    MIDI number sounded by a Note or PitchNote, ``None`` for anything else.

    MML octave numbering puts ``o4c`` at MIDI 48, so ``>c<`` played from the
    default octave sounds MIDI 60, the same as ``n60``.
    """
    if token.kind is TokenKind.PITCH_NOTE:
        return token.value
    pitch = token.pitch if token.kind is TokenKind.NOTE else None
    if pitch is None:
        return None

    pitch_class = _NATURAL_PITCH_CLASSES[pitch[0].lower()]
    if len(pitch) > 1:
        pitch_class += _ACCIDENTAL_OFFSETS[pitch[1]]
    return token.octave * SEMITONES_PER_OCTAVE + pitch_class


def _octave_shifts(count: int) -> list[Token]:
    char = ">" if count > 0 else "<"
    return [Token(TokenKind.OCTAVE_SHIFT, char) for _ in range(abs(count))]


def expand_pitch_notes(track: Track) -> Track:
    """
    Rewrite every PitchNote (``n<midi>``) as an ordinary Note.

    The note gets an explicit length and is wrapped in the octave shifts that
    move from the running octave to its own octave and back, so the running
    octave of the following tokens is unchanged. Returns the track unchanged
    (as a new list) when it holds no PitchNote.
    """
    if not any(token.kind is TokenKind.PITCH_NOTE for token in track):
        return list(track)

    rewritten: list[Token] = []
    running_octave = DEFAULT_OCTAVE
    for token in track:
        if token.kind is not TokenKind.PITCH_NOTE:
            running_octave = token.octave
            rewritten.append(token)
            continue

        midi = token.value or 0
        note_octave, pitch_class = divmod(midi, SEMITONES_PER_OCTAVE)
        text = f"{PITCH_NAMES[pitch_class]}{token.length}{'.' if token.dotted else ''}"
        shift = note_octave - running_octave
        rewritten.extend(_octave_shifts(shift))
        rewritten.append(Token(TokenKind.NOTE, text))
        rewritten.extend(_octave_shifts(-shift))

    return reparse(rewritten)
