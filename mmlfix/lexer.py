"""Lexer: splits an MML document into tracks and a track into tokens."""

import re
from typing import Final

from mmlfix.errors import MalformedInputError
from mmlfix.mml_models import Token, TokenKind

DOCUMENT_PREFIX: Final[str] = "MML@"
DOCUMENT_SUFFIX: Final[str] = ";"
TRACK_SEPARATOR: Final[str] = ","

# Alternatives are tried in priority order at each position.
_TOKEN_RE: Final[re.Pattern[str]] = re.compile(
    r"""
      (?P<length>l\d+\.?)
    | (?P<command>[tvo]\d+)
    | (?P<tie>&)
    | (?P<shift>[<>])
    | (?P<rest>r\d*\.*)
    | (?P<note>[a-g][#+\-]?\d*\.*)
    | (?P<pitch_note>n\d+)
    """,
    re.IGNORECASE | re.VERBOSE,
)

_GROUP_KINDS: Final[dict[str, TokenKind]] = {
    "length": TokenKind.COMMAND,
    "command": TokenKind.COMMAND,
    "tie": TokenKind.TIE,
    "shift": TokenKind.OCTAVE_SHIFT,
    "rest": TokenKind.REST,
    "note": TokenKind.NOTE,
    "pitch_note": TokenKind.PITCH_NOTE,
}

_CONCATENATED_RE: Final[re.Pattern[str]] = re.compile(r";MML@", re.IGNORECASE)


def split_document(mml: str) -> list[str]:
    """
    Validate the ``MML@...;`` envelope and return the raw track texts.

    Whitespace is removed and several pasted documents (``...;MML@...``) are
    merged into one track list.

    Raises:
        MalformedInputError: If the input is empty or lacks the envelope.
    """
    compact = re.sub(r"\s", "", mml)
    if not compact:
        raise MalformedInputError("No MML code was given.")

    compact = _CONCATENATED_RE.sub(TRACK_SEPARATOR, compact)
    if not (compact.upper().startswith(DOCUMENT_PREFIX) and compact.endswith(DOCUMENT_SUFFIX)):
        raise MalformedInputError("MML code must have the form 'MML@...;'.")

    body = compact[len(DOCUMENT_PREFIX):-len(DOCUMENT_SUFFIX)]
    return body.split(TRACK_SEPARATOR)


def tokenize_track(text: str) -> list[Token]:
    """
    Turn one track's text into a flat token list without timing fields.

    Unrecognized characters become single-character Unknown tokens, so this
    never fails.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue

        match = _TOKEN_RE.match(text, pos)
        if match is None:
            tokens.append(Token(TokenKind.UNKNOWN, text[pos]))
            pos += 1
            continue

        kind = _GROUP_KINDS.get(match.lastgroup or "", TokenKind.UNKNOWN)
        tokens.append(Token(kind, match.group()))
        pos = match.end()

    return tokens
