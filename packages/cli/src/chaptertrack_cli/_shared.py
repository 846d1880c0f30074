"""Shared enums and helpers for CLI commands."""

import json
from enum import Enum
from typing import Any
from uuid import UUID

import typer

from chaptertrack_storage import get_connection_pool


class OutputFormat(str, Enum):
    """Output format options."""

    text = "text"
    json = "json"


async def init_pool() -> None:
    """Open the process pool from settings before running a command."""
    await get_connection_pool()


def parse_uuid(value: str, label: str = "id") -> UUID:
    """Parse a UUID argument or exit with a usage error."""
    try:
        return UUID(value)
    except ValueError:
        typer.echo(f"Error: invalid {label}: {value}", err=True)
        raise typer.Exit(2)


def echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))
