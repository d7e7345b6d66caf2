"""Add command for storing a link and queueing its archive job."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from linkradar.cli.context import load_settings, open_database
from linkradar.core.config import Settings
from linkradar.services.links import LinkService
from linkradar.services.queue import QueueManager
from linkradar.storage.models import Link


def add_command(
    url: str = typer.Argument(..., help="URL to bookmark"),
    note: str | None = typer.Option(None, "-n", "--note", help="Note stored with the link"),
) -> None:
    """Store a link and enqueue archival of its content."""
    if not url.strip():
        typer.echo("No URL provided")
        raise typer.Exit(code=1)

    settings = load_settings()
    link = asyncio.run(_add_link(settings, url, note))

    console = Console()
    console.print(f"Added link [bold]{link.id}[/bold] {link.url}")
    console.print("Archive: [yellow]pending[/yellow]")


async def _add_link(settings: Settings, url: str, note: str | None) -> Link:
    engine, session_factory = open_database(settings)
    queue = QueueManager(settings.redis_url)
    try:
        service = LinkService(session_factory, queue)
        return await service.create_link(url, note=note)
    finally:
        await queue.close()
        await engine.dispose()
