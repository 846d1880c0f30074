"""Activity tier commands for chaptertrack.

Commands:
    refresh  Recompute a series' activity score and promotions
    demote   Run the stale-series refresh and tier A demotion check
"""

import asyncio

import typer

from chaptertrack_activity import ActivityEngine
from chaptertrack_cli._shared import init_pool, parse_uuid

app = typer.Typer(help="Activity scores and catalog tiers")


@app.command()
def refresh(series_id: str = typer.Argument(..., help="Series UUID")):
    """Recompute the activity score of one series.

    Examples:

        chaptertrack tiers refresh 6f1c...
    """
    series_uuid = parse_uuid(series_id, "series id")

    async def _refresh():
        await init_pool()
        return await ActivityEngine().refresh_activity_score(series_uuid)

    try:
        score = asyncio.run(_refresh())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if score is None:
        typer.echo(f"Series not found: {series_uuid}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Activity score: {score:.2f}")


@app.command()
def demote():
    """Refresh stale series and demote long-inactive tier A series.

    Examples:

        chaptertrack tiers demote
    """

    async def _demote():
        await init_pool()
        return await ActivityEngine().run_tier_demotion_check()

    try:
        report = asyncio.run(_demote())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Refreshed: {report.refreshed} ({report.refresh_failures} failed)")
    typer.echo(f"Demoted:   {len(report.demoted)}")
    for series_id in report.demoted:
        typer.echo(f"  {series_id}")
