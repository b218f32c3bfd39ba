"""Notation Minimizer: shortens serialized tracks without changing what they play."""

import re
from dataclasses import replace
from typing import Final

from mmlfix.mml_models import DEFAULT_LENGTH, Token, TokenKind, Track
from mmlfix.progress_log import ProgressLog
from mmlfix.tick_annotator import expand_pitch_notes, reparse, sounding_pitch

DEFAULT_KEY: Final[str] = str(DEFAULT_LENGTH)
MAX_MIDI: Final[int] = 127

_LENGTH_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"\d+\.?")

#: (shift before, natural pitch, shift after) -> same-octave spelling
_ENHARMONICS: Final[dict[tuple[str, str, str], str]] = {
    (">", "c", "<"): "b+",
    ("<", "b", ">"): "c-",
}


def _strip_length(text: str) -> str:
    return _LENGTH_TEXT_RE.sub("", text, count=1)


def _length_text_cost(text: str) -> int:
    return len(text) - len(_strip_length(text))


def expand_length_defaults(track: Track) -> Track:
    """
    Remove every ``l`` command and spell each note and rest length explicitly.

    PitchNotes depend on the default length, so they are expanded into
    ordinary notes first.
    """
    expanded: list[Token] = []
    for token in expand_pitch_notes(track):
        if token.is_length_default():
            continue
        if token.is_sounding and not token.has_explicit_length:
            token = replace(token, text=f"{token.pitch}{token.length_key}")
        expanded.append(token)
    return reparse(expanded)


class NotationMinimizer:
    """
    Rewrites a track into shorter MML with identical timing and pitches.

    Passes, in order:

    1. Default-length elision: introduce ``l`` commands over runs of equal
       lengths, drop lengths that match the active default, then remove ``l``
       commands that do not pay for themselves.
    2. Octave-roundtrip elision: ``>c<`` style excursions become ``n<midi>``
       when that is shorter.
    3. Enharmonic substitution: ``>c<`` becomes ``b+`` and ``<b>`` becomes
       ``c-``.
    """

    def __init__(self, log: ProgressLog | None = None) -> None:
        self.log = log if log is not None else ProgressLog()

    # ------------------------------------------------------------------
    # Default-length elision
    # ------------------------------------------------------------------

    def introduce_length_defaults(self, track: Track) -> Track:
        """
        Phase 1: put an ``l`` command in front of runs of equal lengths.

        A run starts at a Note/Rest and extends over every following Note/Rest
        with the same length and dot; other tokens may sit inside it, but an
        ``l`` command, a PitchNote or a different length ends it. The rewrite
        pays for the new ``l`` and for restoring the previous default after
        the run, and is applied only when the track gets shorter.
        """
        active_before: list[str] = []
        active = DEFAULT_KEY
        for token in track:
            active_before.append(active)
            if token.is_length_default():
                active = token.default_key or DEFAULT_KEY

        rewritten: list[Token] = []
        i = 0
        while i < len(track):
            token = track[i]
            if not token.is_sounding:
                rewritten.append(token)
                i += 1
                continue

            key = token.length_key
            members: list[Token] = []
            j = i
            while j < len(track):
                candidate = track[j]
                if candidate.is_sounding:
                    if candidate.length_key != key:
                        break
                    members.append(candidate)
                elif candidate.is_length_default() or candidate.kind is TokenKind.PITCH_NOTE:
                    break
                j += 1

            if len(members) > 1:
                before = active_before[i]
                command = f"l{key}"
                following = track[j] if j < len(track) else None
                needs_command = key != before
                needs_restore = (
                    needs_command and following is not None and not following.is_length_default()
                )

                cost = len(command) if needs_command else 0
                if needs_restore:
                    cost += len(f"l{before}")
                gain = sum(_length_text_cost(member.text) for member in members) - cost

                if gain > 0:
                    self.log.debug(f"Introducing {command} over {len(members)} token(s) (gain: {gain})")
                    if needs_command:
                        rewritten.append(Token(TokenKind.COMMAND, command))
                    for member in track[i:j]:
                        if member.is_sounding:
                            member = replace(member, text=_strip_length(member.text))
                        rewritten.append(member)
                    if needs_restore:
                        rewritten.append(Token(TokenKind.COMMAND, f"l{before}"))
                    i = j
                    continue

            rewritten.append(token)
            i += 1

        return reparse(rewritten)

    def drop_default_lengths(self, track: Track) -> Track:
        """Phase 2: drop explicit lengths equal to the active default."""
        rewritten: list[Token] = []
        active = DEFAULT_KEY
        for token in track:
            if token.is_length_default():
                active = token.default_key or DEFAULT_KEY
            elif token.is_sounding and token.has_explicit_length and token.length_key == active:
                token = replace(token, text=_strip_length(token.text))
            rewritten.append(token)
        return reparse(rewritten)

    def _respell(self, token: Token, default_key: str) -> Token:
        if not token.is_sounding:
            return token
        if token.length_key == default_key:
            return replace(token, text=f"{token.pitch}")
        return replace(token, text=f"{token.pitch}{token.length_key}")

    def _remove_one_default(self, track: Track) -> tuple[Track, bool]:
        positions = [index for index, token in enumerate(track) if token.is_length_default()]
        previous = DEFAULT_KEY

        for n, index in enumerate(positions):
            command = track[index]
            current = command.default_key or DEFAULT_KEY
            stop = positions[n + 1] if n + 1 < len(positions) else len(track)
            span = track[index + 1:stop]

            # PitchNotes take their duration from the default length.
            if current != previous and any(token.kind is TokenKind.PITCH_NOTE for token in span):
                previous = current
                continue

            respelled = [self._respell(token, previous) for token in span]
            original = len(command.text) + sum(len(token.text) for token in span)
            simulated = sum(len(token.text) for token in respelled)
            if simulated < original:
                self.log.debug(
                    f"Removing {command.text} (gain: {original - simulated}): "
                    f"{command.text}{''.join(t.text for t in span)} -> {''.join(t.text for t in respelled)}"
                )
                return reparse(track[:index] + respelled + track[stop:]), True

            previous = current

        return track, False

    def remove_redundant_defaults(self, track: Track) -> Track:
        """
        Phase 3: remove ``l`` commands that cost more than they save.

        Each pass tries the commands in order, applies the first removal that
        shortens the track and re-parses it; passes repeat until none applies.
        """
        changed = True
        while changed:
            track, changed = self._remove_one_default(track)
        return track

    def elide_default_lengths(self, track: Track) -> Track:
        track = self.introduce_length_defaults(track)
        track = self.drop_default_lengths(track)
        return self.remove_redundant_defaults(track)

    # ------------------------------------------------------------------
    # Octave handling
    # ------------------------------------------------------------------

    def _roundtrip_end(self, track: Track, start: int) -> int | None:
        """End index of a net-zero ``(shift)+ note (shift)+`` span at ``start``."""
        j = start
        shift = 0
        while j < len(track) and track[j].kind is TokenKind.OCTAVE_SHIFT:
            shift += 1 if track[j].text == ">" else -1
            j += 1
        if shift == 0 or j >= len(track):
            return None

        note = track[j]
        if note.kind is not TokenKind.NOTE or note.has_explicit_length or "." in note.text:
            return None

        k = j + 1
        while k < len(track) and track[k].kind is TokenKind.OCTAVE_SHIFT:
            shift += 1 if track[k].text == ">" else -1
            k += 1
            if shift == 0:
                return k
        return None

    def elide_octave_roundtrips(self, track: Track) -> Track:
        """Replace ``>c<``-style excursions by ``n<midi>`` where shorter."""
        rewritten: list[Token] = []
        i = 0
        while i < len(track):
            end = self._roundtrip_end(track, i)
            if end is not None:
                note = next(token for token in track[i:end] if token.kind is TokenKind.NOTE)
                midi = sounding_pitch(note)
                original = "".join(token.text for token in track[i:end])
                if midi is not None and 0 <= midi <= MAX_MIDI and len(f"n{midi}") < len(original):
                    self.log.debug(f"Octave roundtrip: {original} -> n{midi}")
                    rewritten.append(Token(TokenKind.PITCH_NOTE, f"n{midi}"))
                    i = end
                    continue
            rewritten.append(track[i])
            i += 1
        return reparse(rewritten)

    def _enharmonic(self, first: Token, note: Token, last: Token) -> Token | None:
        if first.kind is not TokenKind.OCTAVE_SHIFT or last.kind is not TokenKind.OCTAVE_SHIFT:
            return None
        if note.kind is not TokenKind.NOTE or note.has_accidental:
            return None

        pitch = note.pitch or ""
        spelling = _ENHARMONICS.get((first.text, pitch.lower(), last.text))
        if spelling is None:
            return None
        return Token(TokenKind.NOTE, f"{spelling}{note.text[len(pitch):]}")

    def substitute_enharmonics(self, track: Track) -> Track:
        """Rewrite ``>c<`` as ``b+`` and ``<b>`` as ``c-``, keeping the length text."""
        rewritten: list[Token] = []
        i = 0
        while i < len(track):
            if i + 2 < len(track):
                replacement = self._enharmonic(track[i], track[i + 1], track[i + 2])
                if replacement is not None:
                    self.log.debug(
                        f"Enharmonic: {''.join(t.text for t in track[i:i + 3])} -> {replacement.text}"
                    )
                    rewritten.append(replacement)
                    i += 3
                    continue
            rewritten.append(track[i])
            i += 1
        return reparse(rewritten)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def minimize(self, track: Track) -> Track:
        """Run every pass over one track and return the shortened copy."""
        track = self.elide_default_lengths(track)
        track = self.elide_octave_roundtrips(track)
        return self.substitute_enharmonics(track)
