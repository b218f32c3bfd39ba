"""Serializer: token lists back to MML text."""

from collections.abc import Iterable

from mmlfix.lexer import DOCUMENT_PREFIX, DOCUMENT_SUFFIX, TRACK_SEPARATOR
from mmlfix.mml_models import Token


def serialize_track(tokens: Iterable[Token]) -> str:
    return "".join(token.text for token in tokens)


def join_document(track_texts: Iterable[str]) -> str:
    """Wrap serialized tracks as ``MML@track1,track2,...;``."""
    return f"{DOCUMENT_PREFIX}{TRACK_SEPARATOR.join(track_texts)}{DOCUMENT_SUFFIX}"
