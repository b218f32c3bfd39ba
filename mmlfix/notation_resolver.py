"""Notation Resolver: writes a tick count as the shortest chain of note lengths."""

from dataclasses import dataclass
from functools import lru_cache

from mmlfix.mml_models import MAX_DENOMINATOR
from mmlfix.tick_annotator import note_ticks

#: Lengths that read as plain binary subdivisions.
PRIMARY_LENGTHS: frozenset[int] = frozenset({1, 2, 4, 8, 16, 32, 64})

#: Triplet-family lengths, preferred over irregular ones.
SECONDARY_LENGTHS: frozenset[int] = frozenset({3, 6, 12, 24, 48})


@dataclass(frozen=True)
class NotatedFragment:
    """A single notated length (``"8"``, ``"4."``) and the ticks it spans."""

    length: int
    dotted: bool
    ticks: int
    priority: int

    @property
    def text(self) -> str:
        return f"{self.length}{'.' if self.dotted else ''}"


def length_priority(length: int) -> int:
    if length in PRIMARY_LENGTHS:
        return 2
    if length in SECONDARY_LENGTHS:
        return 1
    return 0


def _beats(candidate: NotatedFragment, incumbent: NotatedFragment) -> bool:
    """True if ``candidate`` should replace a fragment with the same tick value."""
    if candidate.priority != incumbent.priority:
        return candidate.priority > incumbent.priority
    if len(candidate.text) != len(incumbent.text):
        return len(candidate.text) < len(incumbent.text)
    return candidate.length > incumbent.length


@lru_cache(maxsize=1)
def candidate_fragments() -> tuple[NotatedFragment, ...]:
    """One best fragment per distinct tick value, longest first."""
    by_ticks: dict[int, NotatedFragment] = {}
    for length in range(1, MAX_DENOMINATOR + 1):
        priority = length_priority(length)
        plain = NotatedFragment(length, False, note_ticks(length, False), priority)
        dotted = NotatedFragment(length, True, note_ticks(length, True), priority)

        options = [plain]
        if dotted.ticks > plain.ticks:
            options.append(dotted)
        for fragment in options:
            incumbent = by_ticks.get(fragment.ticks)
            if incumbent is None or _beats(fragment, incumbent):
                by_ticks[fragment.ticks] = fragment

    return tuple(sorted(by_ticks.values(), key=lambda f: f.ticks, reverse=True))


@dataclass(frozen=True)
class _Plan:
    fragments: tuple[NotatedFragment, ...]
    priority_sum: int
    text_length: int
    min_length: int
    max_length: int

    @property
    def score(self) -> tuple[int, int, int, int]:
        """Lower is better: count, priority (negated), text length, spread."""
        spread = self.max_length - self.min_length if len(self.fragments) > 1 else 0
        return (len(self.fragments), -self.priority_sum, self.text_length, spread)

    def extend(self, fragment: NotatedFragment) -> "_Plan":
        if not self.fragments:
            return _Plan((fragment,), fragment.priority, len(fragment.text), fragment.length, fragment.length)
        return _Plan(
            self.fragments + (fragment,),
            self.priority_sum + fragment.priority,
            self.text_length + len(fragment.text),
            min(self.min_length, fragment.length),
            max(self.max_length, fragment.length),
        )


class NotationResolver:
    """
    Bottom-up DP from tick counts to notation fragment chains.

    ``best[i]`` holds the best chain summing to exactly ``i`` ticks. The table
    only ever grows, so answers are shared between calls.

    Chains are ranked by:

    1. fewer fragments,
    2. higher summed length priority,
    3. shorter summed text,
    4. smaller spread between the largest and smallest denominator.

    On a full tie the chain found first (longest last fragment) is kept.
    """

    def __init__(self) -> None:
        self._best: list[_Plan | None] = [_Plan((), 0, 0, 0, 0)]

    def _grow(self, target_ticks: int) -> None:
        candidates = candidate_fragments()
        for tick in range(len(self._best), target_ticks + 1):
            best: _Plan | None = None
            for fragment in candidates:
                if fragment.ticks > tick:
                    continue
                previous = self._best[tick - fragment.ticks]
                if previous is None:
                    continue
                plan = previous.extend(fragment)
                if best is None or plan.score < best.score:
                    best = plan
            self._best.append(best)

    def resolve(self, target_ticks: int) -> list[NotatedFragment] | None:
        """
        Return the best fragment chain for ``target_ticks``.

        Returns:
            The fragments in chain order, ``[]`` for zero ticks, or ``None``
            if no combination of lengths adds up exactly.
        """
        if target_ticks < 0:
            return None
        self._grow(target_ticks)
        plan = self._best[target_ticks]
        return None if plan is None else list(plan.fragments)


_DEFAULT_RESOLVER = NotationResolver()


def resolve(target_ticks: int) -> list[NotatedFragment] | None:
    """Module-level shortcut over a shared ``NotationResolver``."""
    return _DEFAULT_RESOLVER.resolve(target_ticks)
