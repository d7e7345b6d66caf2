"""Init-db command for creating the archive tables."""

from __future__ import annotations

import asyncio

from rich.console import Console

from linkradar.cli.context import load_settings, open_database
from linkradar.core.config import Settings
from linkradar.storage.database import init_models


def init_db_command() -> None:
    """Create the link and archive tables if they do not exist."""
    settings = load_settings()
    asyncio.run(_init_db(settings))
    Console().print(f"Database ready: {settings.database_url}")


async def _init_db(settings: Settings) -> None:
    engine, _ = open_database(settings)
    try:
        await init_models(engine)
    finally:
        await engine.dispose()
