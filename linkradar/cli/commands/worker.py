"""Worker command for draining the archive queue."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console

from linkradar.cli.context import load_archive_config, load_settings, open_database
from linkradar.core.config import ArchiveConfig, Settings, log_config_summary
from linkradar.services.archive_job import ArchiveJob
from linkradar.services.queue import QueueManager
from linkradar.services.worker import ArchiveWorker

logger = logging.getLogger(__name__)


def worker_command(
    concurrency: int | None = typer.Option(
        None, "-c", "--concurrency", min=1, help="Jobs run at once"
    ),
) -> None:
    """Run archive jobs from the queue until interrupted."""
    console = Console()
    settings = load_settings()
    config = load_archive_config(console)

    try:
        asyncio.run(_run_worker(settings, config, concurrency or settings.worker_concurrency))
    except KeyboardInterrupt:
        console.print("Worker stopped")


async def _run_worker(settings: Settings, config: ArchiveConfig, concurrency: int) -> None:
    log_config_summary(config, logger)
    engine, session_factory = open_database(settings)
    queue = QueueManager(settings.redis_url)
    try:
        if not await queue.is_available():
            raise typer.Exit(code=1)
        worker = ArchiveWorker(
            queue,
            ArchiveJob(session_factory, config),
            concurrency=concurrency,
            poll_timeout=settings.queue_poll_timeout,
        )
        await worker.run()
    finally:
        await queue.close()
        await engine.dispose()
