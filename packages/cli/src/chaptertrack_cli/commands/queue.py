"""Job queue commands for chaptertrack.

Commands:
    stats  Job counts per queue and state
"""

import asyncio

import typer

from chaptertrack_cli._shared import OutputFormat, echo_json, init_pool
from chaptertrack_contracts import JobState
from chaptertrack_storage import QueueStore

app = typer.Typer(help="Inspect the job queue")


@app.command()
def stats(
    output_format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show job counts per queue and state.

    Examples:

        chaptertrack queue stats
    """

    async def _stats():
        await init_pool()
        return await QueueStore.get_stats()

    try:
        counts = asyncio.run(_stats())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if output_format == OutputFormat.json:
        echo_json(counts)
        return

    if not counts:
        typer.echo("Queue is empty.")
        return

    states = [s.value for s in JobState]
    typer.echo(f"{'queue':24}" + "".join(f"{s:>11}" for s in states))
    typer.echo("-" * (24 + 11 * len(states)))
    for queue, by_state in counts.items():
        typer.echo(f"{queue:24}" + "".join(f"{by_state.get(s, 0):>11}" for s in states))
