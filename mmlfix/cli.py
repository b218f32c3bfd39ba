"""mmlfix CLI entry point."""

import sys
from pathlib import Path
from typing import TextIO

import click

from mmlfix import __version__
from mmlfix.equalize_strategy import DEFAULT_SPLIT_GUARD
from mmlfix.errors import MalformedInputError, PipelineError
from mmlfix.fixer import MMLFixer
from mmlfix.lexer import split_document
from mmlfix.midi_exporter import MidiExporter
from mmlfix.tick_annotator import parse_track

EXIT_MALFORMED = 1
EXIT_PIPELINE = 2
EXIT_OUTPUT = 3


def _echo_err(line: str) -> None:
    click.echo(line, err=True)


def _midi_filename(source: TextIO) -> str:
    """Derive a ``.mid`` path from the source file name (``output.mid`` for stdin)."""
    name = getattr(source, "name", "-")
    if name in ("-", "<stdin>"):
        return "output.mid"
    return str(Path(name).with_suffix(".mid"))


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="mmlfix")
def main() -> None:
    """mmlfix: MML tempo-desync repair and length optimizer."""


# ── fix subcommand ─────────────────────────────────────────────────────────────

@main.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Write the fixed MML here instead of standard output.",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not stream progress lines to stderr.")
@click.option(
    "--split-guard",
    type=click.IntRange(1),
    default=DEFAULT_SPLIT_GUARD,
    show_default=True,
    metavar="N",
    help="Maximum split rounds per track and segment for Strategy B.",
)
@click.option(
    "--max-track-length",
    type=click.IntRange(1),
    default=MMLFixer.DEFAULT_MAX_TRACK_LENGTH,
    show_default=True,
    metavar="N",
    help="Warn when a fixed track is longer than N characters.",
)
def fix(
    source: TextIO,
    output: str | None,
    quiet: bool,
    split_guard: int,
    max_track_length: int,
) -> None:
    """
    Repair tempo desync in an MML document and shorten it.

    SOURCE is a file holding 'MML@...;' code, or '-' for standard input.

    \b
    Examples:
      mmlfix fix song.mml
      mmlfix fix song.mml -o fixed.mml --quiet
      echo "MML@t120c2t150c2,c1;" | mmlfix fix
    """
    fixer = MMLFixer(
        split_guard=split_guard,
        max_track_length=max_track_length,
        sink=None if quiet else _echo_err,
    )

    try:
        result = fixer.fix(source.read())
    except MalformedInputError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(EXIT_MALFORMED)
    except PipelineError as exc:
        click.echo(f"  ERROR: Could not fix the MML code: {exc}", err=True)
        sys.exit(EXIT_PIPELINE)

    if output is None:
        click.echo(result.mml)
        return

    try:
        Path(output).write_text(result.mml + "\n", encoding="utf-8")
    except OSError as exc:
        click.echo(f"  ERROR: Could not write output file: {exc}", err=True)
        sys.exit(EXIT_OUTPUT)
    if not quiet:
        click.echo(f"Done!  Fixed MML written to '{output}'.", err=True)


# ── midi subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination MIDI file path. Defaults to <source>.mid.",
)
@click.option(
    "--fix/--no-fix",
    "apply_fix",
    default=True,
    show_default=True,
    help="Run the repair pipeline before rendering.",
)
@click.option(
    "--tempo",
    type=click.IntRange(20, 300),
    default=MidiExporter.DEFAULT_TEMPO,
    show_default=True,
    help="Tempo in BPM used when the document sets none.",
)
def midi(source: TextIO, output: str | None, apply_fix: bool, tempo: int) -> None:
    """
    Render an MML document as a MIDI file for listening.

    SOURCE is a file holding 'MML@...;' code, or '-' for standard input.

    \b
    Examples:
      mmlfix midi song.mml
      mmlfix midi song.mml --no-fix -o original.mid
    """
    resolved_output = output if output is not None else _midi_filename(source)
    mml = source.read()

    click.echo(f"mmlfix v{__version__}", err=True)
    click.echo(f"  Output : {resolved_output}", err=True)
    click.echo(err=True)

    try:
        if apply_fix:
            click.echo("[1/3] Fixing MML code...", err=True)
            mml = MMLFixer().fix(mml).mml
        else:
            click.echo("[1/3] Skipping the repair pipeline.", err=True)

        click.echo("[2/3] Parsing tracks...", err=True)
        tracks = [parse_track(text) for text in split_document(mml)]
    except MalformedInputError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(EXIT_MALFORMED)
    except PipelineError as exc:
        click.echo(f"  ERROR: Could not fix the MML code: {exc}", err=True)
        sys.exit(EXIT_PIPELINE)

    click.echo(f"[3/3] Writing MIDI file → '{resolved_output}'...", err=True)
    try:
        MidiExporter(tempo=tempo).export(tracks, resolved_output)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write MIDI file: {exc}", err=True)
        sys.exit(EXIT_OUTPUT)

    click.echo(err=True)
    click.echo(f"Done!  Open '{resolved_output}' in any MIDI player.", err=True)
