"""Metadata resolution commands for chaptertrack.

Commands:
    enqueue  Queue a resolution job for a library entry
    run      Resolve a library entry in-process
    heal     Re-queue unavailable/failed entries that are due again
"""

import asyncio

import typer

from chaptertrack_cli._shared import init_pool, parse_uuid
from chaptertrack_resolver import MetadataResolver, enqueue_resolution, run_metadata_healing

app = typer.Typer(help="Resolve library entries against the metadata provider")


@app.command()
def enqueue(
    entry_id: str = typer.Argument(..., help="Library entry UUID"),
    priority: int = typer.Option(0, "--priority", "-p", help="Queue priority (lower runs first)"),
):
    """Queue a resolution job. No-op while one is already pending.

    Examples:

        chaptertrack resolve enqueue 0b7e...
    """
    entry_uuid = parse_uuid(entry_id, "entry id")

    async def _enqueue():
        await init_pool()
        return await enqueue_resolution(entry_uuid, priority=priority)

    try:
        added = asyncio.run(_enqueue())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if added:
        typer.echo(f"Queued resolution for {entry_uuid}")
    else:
        typer.echo(f"Resolution already pending for {entry_uuid}")


@app.command()
def run(entry_id: str = typer.Argument(..., help="Library entry UUID")):
    """Run one resolution attempt now, bypassing the queue.

    Examples:

        chaptertrack resolve run 0b7e...
    """
    entry_uuid = parse_uuid(entry_id, "entry id")

    async def _resolve():
        from md_client import MDClient

        await init_pool()
        async with MDClient.from_settings() as provider:
            return await MetadataResolver(provider).resolve(entry_uuid)

    try:
        result = asyncio.run(_resolve())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Outcome: {result.outcome.value}")
    if result.series_id is not None:
        typer.echo(f"Series:  {result.series_id}")
    if result.strategy is not None:
        typer.echo(f"Attempt: {result.attempt} ({result.strategy})")
    if result.similarity is not None:
        typer.echo(f"Similarity: {result.similarity:.3f}")
    if result.needs_review:
        typer.echo("Flagged for review")
    if result.reason:
        typer.echo(f"Reason:  {result.reason}")


@app.command()
def heal():
    """Re-queue unavailable and failed entries whose last attempt is old enough.

    Examples:

        chaptertrack resolve heal
    """

    async def _heal():
        await init_pool()
        return await run_metadata_healing()

    try:
        enqueued = asyncio.run(_heal())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Enqueued {enqueued} resolution jobs")
