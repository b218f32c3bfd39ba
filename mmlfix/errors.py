"""Exception hierarchy raised by the mmlfix pipeline."""


class MMLFixError(Exception):
    """Base class for every error raised by mmlfix."""


class MalformedInputError(MMLFixError, ValueError):
    """The input is not an ``MML@...;`` document or carries an unusable length."""


class UnresolvableDurationError(MMLFixError):
    """A tick count cannot be written as a chain of notated lengths."""

    def __init__(self, ticks: int) -> None:
        super().__init__(f"No notation adds up to {ticks} tick(s).")
        self.ticks = ticks


class PipelineError(MMLFixError):
    """An unexpected failure aborted a run; carries the log collected so far."""

    def __init__(self, message: str, log_lines: list[str] | None = None) -> None:
        super().__init__(message)
        self.log_lines = list(log_lines or [])
