"""Archive command for running one link's archive job in the foreground."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

import typer
from rich.console import Console

from linkradar.archiving.models import ArchiveOutcome, OutcomeStatus
from linkradar.cli.context import load_archive_config, load_settings, open_database
from linkradar.core.config import ArchiveConfig, Settings, log_config_summary
from linkradar.services.archive_job import ArchiveJob

logger = logging.getLogger(__name__)


def archive_command(
    link_id: str = typer.Argument(..., help="Identifier of the link to archive"),
) -> None:
    """Archive a link's content now, retrying timeouts like the worker does."""
    try:
        link_uuid = UUID(link_id)
    except ValueError as exc:
        raise typer.BadParameter(f"Not a link id: {link_id}") from exc

    console = Console()
    settings = load_settings()
    config = load_archive_config(console)

    outcome = asyncio.run(_archive(settings, config, link_uuid))
    if outcome is None:
        console.print(f"Nothing to archive for link {link_id}")
        return

    if outcome.status is OutcomeStatus.COMPLETED:
        console.print(f"[green]completed[/green] archive {outcome.archive_id}")
        return

    failure = outcome.failure
    reason = failure.reason.value if failure else "unknown"
    message = failure.message if failure else ""
    console.print(f"[red]failed[/red] ({reason}) {message}")
    raise typer.Exit(code=1)


async def _archive(
    settings: Settings, config: ArchiveConfig, link_id: UUID
) -> ArchiveOutcome | None:
    log_config_summary(config, logger)
    engine, session_factory = open_database(settings)
    try:
        return await ArchiveJob(session_factory, config).run(link_id)
    finally:
        await engine.dispose()
