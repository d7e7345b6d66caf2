"""Link creation and deletion, the trigger for content archival."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkradar.services.queue import QueueManager
from linkradar.storage.models import ContentArchive, Link
from linkradar.storage.state_machine import initial_transition

logger = logging.getLogger(__name__)


class LinkService:
    """Create and delete links along with their content archives.

    Creating a link always succeeds once the row is stored: the archive record
    is written in the same transaction and the archive job is enqueued
    afterwards, with queueing problems logged rather than raised.

    Args:
        session_factory: Async session factory
        queue: Archive job queue (None skips enqueueing)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: QueueManager | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue

    async def create_link(self, url: str, note: str | None = None) -> Link:
        """Store a link with a ``pending`` archive and enqueue its archive job.

        Args:
            url: Submitted URL, stored as given
            note: Optional user note

        Returns:
            The created Link
        """
        async with self.session_factory() as session, session.begin():
            link = Link(url=url.strip(), submitted_url=url, note=note)
            archive = ContentArchive(link=link, metadata_={})
            session.add_all([link, archive, initial_transition(archive)])

        await self._enqueue(link.id)
        return link

    async def delete_link(self, link_id: UUID) -> bool:
        """Delete a link; its archive and transitions go with it.

        Returns:
            True if a link was deleted, False if none existed
        """
        async with self.session_factory() as session, session.begin():
            link = await session.get(Link, link_id)
            if link is None:
                return False
            await session.delete(link)
        logger.info("Deleted link %s", link_id)
        return True

    async def get_archive(self, link_id: UUID) -> ContentArchive | None:
        """Return the content archive of a link, if any."""
        async with self.session_factory() as session:
            return await session.scalar(
                select(ContentArchive).where(ContentArchive.link_id == link_id)
            )

    async def _enqueue(self, link_id: UUID) -> None:
        if self.queue is None:
            logger.debug("No archive queue configured; link %s not enqueued", link_id)
            return
        try:
            queued = await self.queue.enqueue_archive(link_id)
        except Exception:
            logger.exception("Failed to enqueue archive job for link %s", link_id)
            return
        if not queued:
            logger.warning("Archive job for link %s was not queued", link_id)
