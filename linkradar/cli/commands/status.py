"""Status command for inspecting a link's content archive."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from linkradar.cli.context import load_settings, open_database
from linkradar.core.config import Settings
from linkradar.core.metadata import MetadataKeys
from linkradar.services.links import LinkService
from linkradar.storage.models import ContentArchive, ContentArchiveTransition
from linkradar.storage.state_machine import ArchiveState, ArchiveStateMachine


@dataclass
class ArchiveStatus:
    archive: ContentArchive
    state: ArchiveState
    history: list[ContentArchiveTransition]


def status_command(
    link_id: str = typer.Argument(..., help="Identifier of the link"),
) -> None:
    """Show archive state, stored fields and transition history."""
    try:
        link_uuid = UUID(link_id)
    except ValueError as exc:
        raise typer.BadParameter(f"Not a link id: {link_id}") from exc

    settings = load_settings()
    status = asyncio.run(_fetch_status(settings, link_uuid))

    console = Console()
    if status is None:
        console.print(f"No archive found for link {link_id}")
        raise typer.Exit(code=1)

    _print_archive(console, status)
    _print_history(console, status.history)


def _state_style(state: ArchiveState) -> str:
    return {
        ArchiveState.PENDING: "yellow",
        ArchiveState.PROCESSING: "blue",
        ArchiveState.COMPLETED: "green",
        ArchiveState.FAILED: "red",
    }[state]


async def _fetch_status(settings: Settings, link_id: UUID) -> ArchiveStatus | None:
    engine, session_factory = open_database(settings)
    try:
        archive = await LinkService(session_factory).get_archive(link_id)
        if archive is None:
            return None
        async with session_factory() as session:
            machine = ArchiveStateMachine(session, archive.id)
            return ArchiveStatus(
                archive=archive,
                state=await machine.current_state(),
                history=await machine.history(),
            )
    finally:
        await engine.dispose()


def _print_archive(console: Console, status: ArchiveStatus) -> None:
    archive = status.archive
    color = _state_style(status.state)
    console.print(f"Archive {archive.id} [{color}]{status.state.value}[/{color}]")

    table = Table(show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Title", archive.title or "-")
    table.add_row("Description", archive.description or "-")
    table.add_row("Image", archive.image_url or "-")
    table.add_row("Final URL", str((archive.metadata_ or {}).get(MetadataKeys.FINAL_URL) or "-"))
    table.add_row("Fetched", archive.fetched_at.isoformat() if archive.fetched_at else "-")
    table.add_row("Text", f"{len(archive.content_text or '')} chars")
    table.add_row("Error", archive.error_message or "-")
    console.print(table)


def _print_history(console: Console, history: list[ContentArchiveTransition]) -> None:
    table = Table(title="Transitions")
    table.add_column("#")
    table.add_column("State")
    table.add_column("At")
    table.add_column("Details")
    for transition in history:
        state = ArchiveState(transition.to_state)
        color = _state_style(state)
        details = ", ".join(
            f"{key}={value}" for key, value in (transition.metadata_ or {}).items()
        )
        table.add_row(
            str(transition.sort_key),
            f"[{color}]{state.value}[/{color}]",
            transition.created_at.isoformat() if transition.created_at else "-",
            details or "-",
        )
    console.print(table)
