"""ProgressLog: chronological, one-line-per-event record of a pipeline run."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ProgressLog:
    """
    Collects human-readable progress lines and forwards them as they happen.

    Every line is appended to ``lines``, passed to the standard ``logging``
    module and, if given, handed to ``sink`` for live display.

    Usage:

        log = ProgressLog(sink=print)
        log.info("Found 3 track(s).")
        log.warning("Nothing left to split.")
    """

    def __init__(self, sink: Callable[[str], None] | None = None) -> None:
        self.lines: list[str] = []
        self._sink = sink

    def info(self, message: str) -> None:
        self._emit(logging.INFO, message)

    def warning(self, message: str) -> None:
        self._emit(logging.WARNING, message)

    def error(self, message: str) -> None:
        self._emit(logging.ERROR, message)

    def debug(self, message: str) -> None:
        """Diagnostic detail: goes to ``logging`` only, not to ``lines``."""
        logger.debug(message)

    def _emit(self, level: int, message: str) -> None:
        line = message if level == logging.INFO else f"[{logging.getLevelName(level)}] {message}"
        self.lines.append(line)
        logger.log(level, message)
        if self._sink is not None:
            self._sink(line)
