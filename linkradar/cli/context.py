"""Shared setup for CLI commands."""

from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from linkradar.core.config import ArchiveConfig, Settings
from linkradar.core.logger import configure_logging
from linkradar.storage.database import create_engine_and_sessionmaker


def load_settings() -> Settings:
    """Read settings and configure the ``linkradar`` logger from them."""
    settings = Settings()
    configure_logging(settings)
    return settings


def load_archive_config(console: Console) -> ArchiveConfig:
    """Read ``CONTENT_ARCHIVE_*`` settings, exiting with code 1 when invalid."""
    try:
        return ArchiveConfig()
    except ValidationError as exc:
        console.print(f"[red]Invalid archive configuration:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def open_database(
    settings: Settings,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    return create_engine_and_sessionmaker(settings.database_url)
