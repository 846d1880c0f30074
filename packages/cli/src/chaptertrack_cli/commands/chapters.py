"""Chapter commands for chaptertrack.

Commands:
    normalize  Show the canonical identity of a raw chapter label
    dedupe     Merge live chapters of a series that share a canonical key
    sync       Queue a scrape-and-sync of one source listing
"""

import asyncio
from typing import Optional

import typer

from chaptertrack_cli._shared import OutputFormat, echo_json, init_pool, parse_uuid
from chaptertrack_sync import chapter_key, merge_duplicate_chapters, normalize

app = typer.Typer(help="Inspect and repair chapters")


@app.command(name="normalize")
def normalize_label(
    label: str = typer.Argument(..., help="Raw chapter label, e.g. 'Vol. 2 Ch. 10.5'"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Chapter title"),
    output_format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show how a raw label is classified, numbered and keyed.

    Examples:

        chaptertrack chapters normalize "Chapter 10.5"

        chaptertrack chapters normalize "Side Story 3" --format json
    """
    chapter = normalize(label, title)
    key = chapter_key(chapter)

    if output_format == OutputFormat.json:
        echo_json(
            {
                "type": chapter.type.value,
                "number": str(chapter.number) if chapter.number is not None else None,
                "slug": chapter.slug,
                "key": key,
            }
        )
        return

    typer.echo(f"Type:   {chapter.type.value}")
    typer.echo(f"Number: {chapter.number if chapter.number is not None else '-'}")
    typer.echo(f"Slug:   {chapter.slug}")
    typer.echo(f"Key:    {key}")


@app.command()
def dedupe(
    series_id: str = typer.Argument(..., help="Series UUID"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report the plan without writing"),
):
    """Merge duplicate live chapters of a series.

    Examples:

        chaptertrack chapters dedupe 6f1c... --dry-run
    """
    series_uuid = parse_uuid(series_id, "series id")

    async def _dedupe():
        await init_pool()
        return await merge_duplicate_chapters(series_uuid, dry_run=dry_run)

    try:
        report = asyncio.run(_dedupe())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    prefix = "[dry run] " if report.dry_run else ""
    typer.echo(
        f"{prefix}Merged {report.groups_merged} groups: "
        f"{report.chapters_deleted} chapters removed, {report.links_moved} links moved, "
        f"{report.renumbered} renumbered"
    )
    for detail in report.details:
        typer.echo(f"  {detail['key']}: kept {detail['primary']}, merged {len(detail['merged'])}")


@app.command()
def sync(
    source_name: str = typer.Argument(..., help="Source name, e.g. mangadex"),
    source_id: str = typer.Argument(..., help="Provider-side series id"),
):
    """Queue a scrape-and-sync job for one source listing.

    Examples:

        chaptertrack chapters sync mangadex a1c7c817-4e59-43b7-9365-09675a149a6f
    """
    from chaptertrack_worker import enqueue_sync

    async def _enqueue():
        await init_pool()
        return await enqueue_sync(source_name, source_id)

    try:
        added = asyncio.run(_enqueue())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if added:
        typer.echo(f"Queued sync for {source_name}/{source_id}")
    else:
        typer.echo(f"Sync already pending for {source_name}/{source_id}")
