"""chaptertrack CLI - Main entry point.

Provides the ``chaptertrack`` command-line interface.
Sub-commands are grouped by domain: chapters, resolve, tiers, queue.

Usage:
    chaptertrack chapters normalize "Ch. 10.5"
    chaptertrack resolve enqueue <entry-id>
    chaptertrack tiers demote
    chaptertrack queue stats
"""

import typer

from chaptertrack_cli.commands.chapters import app as chapters_app
from chaptertrack_cli.commands.queue import app as queue_app
from chaptertrack_cli.commands.resolve import app as resolve_app
from chaptertrack_cli.commands.tiers import app as tiers_app
from chaptertrack_common import configure_logging

# ---------------------------------------------------------------------------
# Root Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="chaptertrack",
    help="Operate the chapter tracking catalog: chapters, metadata resolution, activity tiers and jobs.",
    add_completion=False,
)

app.add_typer(chapters_app, name="chapters")
app.add_typer(resolve_app, name="resolve")
app.add_typer(tiers_app, name="tiers")
app.add_typer(queue_app, name="queue")


@app.callback()
def _configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    configure_logging(level="DEBUG" if verbose else None)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
