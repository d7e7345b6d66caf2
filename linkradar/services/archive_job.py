"""Background unit of work that archives one link with bounded retries."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkradar.archiving.archiver import Archiver
from linkradar.archiving.models import ArchiveFailure, ArchiveOutcome, ErrorReason
from linkradar.core.config import ArchiveConfig
from linkradar.resilience.retry import RetryPolicy
from linkradar.storage.models import ContentArchive, Link
from linkradar.storage.state_machine import (
    ArchiveNotFoundError,
    ArchiveStateMachine,
    TransitionNotAllowedError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveTarget:
    """Archive row and URL a job operates on."""

    archive_id: UUID
    url: str


class ArchiveJob:
    """Job shell around the Archiver.

    Loads the link's archive, runs the Archiver under the retry policy and
    records ``network_error`` itself when every attempt timed out. Jobs whose
    link is gone or whose archive is already terminal are discarded without
    touching the database.

    Args:
        session_factory: Async session factory
        config: Archival configuration, read once for this job
        archiver: Archiver to invoke per attempt
        retry_policy: Retry schedule (defaults to one derived from ``config``)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ArchiveConfig,
        archiver: Archiver | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.archiver = archiver or Archiver(session_factory, config)
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)

    async def run(self, link_id: UUID | str) -> ArchiveOutcome | None:
        """Archive the content of one link.

        Args:
            link_id: Link identifier as queued

        Returns:
            Final outcome, or None when the job was discarded
        """
        try:
            link_uuid = link_id if isinstance(link_id, UUID) else UUID(str(link_id))
        except ValueError:
            logger.warning("Discarding archive job with malformed link id %r", link_id)
            return None

        target = await self._load_target(link_uuid)
        if target is None:
            return None

        try:
            outcome = await self.retry_policy.execute_async(
                lambda attempt: self.archiver.archive(
                    target.archive_id, target.url, attempt=attempt
                ),
                operation_name=f"Archive of link {link_uuid}",
            )
            if outcome.retryable:
                outcome = await self._give_up(target, outcome)
        except (ArchiveNotFoundError, TransitionNotAllowedError) as e:
            logger.info("Discarding archive job for link %s: %s", link_uuid, e)
            return None

        return outcome

    async def _load_target(self, link_id: UUID) -> ArchiveTarget | None:
        async with self.session_factory() as session:
            link = await session.get(Link, link_id)
            if link is None:
                logger.info("Discarding archive job: link %s no longer exists", link_id)
                return None

            archive = await session.scalar(
                select(ContentArchive).where(ContentArchive.link_id == link_id)
            )
            if archive is None:
                logger.info("Discarding archive job: link %s has no archive", link_id)
                return None

            state = await ArchiveStateMachine(session, archive.id).current_state()
            if state.is_terminal:
                logger.info(
                    "Discarding archive job: archive %s already %s", archive.id, state.value
                )
                return None

            return ArchiveTarget(archive_id=archive.id, url=link.url)

    async def _give_up(self, target: ArchiveTarget, outcome: ArchiveOutcome) -> ArchiveOutcome:
        attempts = self.retry_policy.max_retries
        last_error = outcome.failure.message if outcome.failure else "timeout"
        failure = ArchiveFailure(
            reason=ErrorReason.NETWORK_ERROR,
            message=f"Network error after {attempts} attempts: {last_error}",
            url=target.url,
            details={"attempts": attempts},
        )
        await self.archiver.record_failure(target.archive_id, failure, retry_count=attempts)
        return ArchiveOutcome.failed(target.archive_id, failure)
