"""Archival orchestrator: validate, fetch, classify, extract and record.

One call to ``Archiver.archive`` is one attempt. Every terminal outcome is
written together with its state transition inside a single transaction. Fetch
timeouts are not recorded; they come back as a ``RETRYABLE`` outcome and the
archive stays in ``processing`` until the job shell retries or gives up.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkradar.archiving.content_extractor import ContentExtractor
from linkradar.archiving.http_fetcher import HttpFetcher
from linkradar.archiving.models import (
    ArchiveFailure,
    ArchiveOutcome,
    ErrorReason,
    ExtractionFailure,
    FetchedContent,
    FetchFailure,
)
from linkradar.core.config import ArchiveConfig
from linkradar.core.metadata import MetadataKeys
from linkradar.storage.models import ContentArchive
from linkradar.storage.state_machine import (
    ArchiveNotFoundError,
    ArchiveState,
    ArchiveStateMachine,
    TransitionNotAllowedError,
)

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "Content archival disabled"


class Archiver:
    """Drives one content archive from ``pending`` to a terminal state.

    Args:
        session_factory: Async session factory; each persisted step opens its
            own short transaction
        config: Archival budgets and the global enable flag
        fetcher: HTTP fetcher (built from ``config`` when omitted)
        extractor: HTML content extractor
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ArchiveConfig,
        fetcher: HttpFetcher | None = None,
        extractor: ContentExtractor | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.fetcher = fetcher or HttpFetcher(config)
        self.extractor = extractor or ContentExtractor()

    async def archive(self, archive_id: UUID, url: str, attempt: int = 1) -> ArchiveOutcome:
        """Run one archival attempt.

        Args:
            archive_id: Archive to drive (must be ``pending``, or ``processing``
                when resuming after a retryable failure)
            url: URL to archive
            attempt: 1-based attempt number, recorded on the processing transition

        Returns:
            ArchiveOutcome tagged COMPLETED, FAILED or RETRYABLE

        Raises:
            ArchiveNotFoundError: If the archive was deleted
            TransitionNotAllowedError: If the archive is already terminal
        """
        try:
            if not self.config.enabled:
                failure = ArchiveFailure(
                    reason=ErrorReason.DISABLED, message=DISABLED_MESSAGE, url=url
                )
                await self.record_failure(archive_id, failure)
                return ArchiveOutcome.failed(archive_id, failure)

            await self._start_processing(archive_id, attempt)
            return await self._run(archive_id, url)
        except (ArchiveNotFoundError, TransitionNotAllowedError):
            raise
        except Exception as e:
            logger.exception("Unexpected error archiving %s (archive %s)", url, archive_id)
            failure = ArchiveFailure(
                reason=ErrorReason.UNEXPECTED_ERROR,
                message=f"Unexpected error: {type(e).__name__} - {e}",
                url=url,
                details={"error_class": type(e).__name__},
            )
            await self.record_failure(archive_id, failure)
            return ArchiveOutcome.failed(archive_id, failure)

    async def record_failure(
        self,
        archive_id: UUID,
        failure: ArchiveFailure,
        retry_count: int | None = None,
    ) -> None:
        """Store ``failure`` on the archive and transition it to ``failed``.

        Args:
            archive_id: Archive to fail
            failure: Classified failure; its message becomes ``error_message``
            retry_count: Attempts made, when the job shell gave up retrying
        """
        metadata: dict[str, Any] = {
            MetadataKeys.ERROR_REASON: failure.reason.value,
            MetadataKeys.ERROR_MESSAGE: failure.message,
        }
        http_status = getattr(failure, "http_status", None)
        if http_status is not None:
            metadata[MetadataKeys.HTTP_STATUS] = http_status
        if retry_count is not None:
            metadata[MetadataKeys.RETRY_COUNT] = retry_count

        async with self.session_factory() as session, session.begin():
            archive = await self._get_archive(session, archive_id)
            archive.error_message = failure.message
            await ArchiveStateMachine(session, archive_id).transition_to(
                ArchiveState.FAILED, metadata
            )

        logger.warning(
            "Archive %s failed (%s): %s", archive_id, failure.reason.value, failure.message
        )

    async def _start_processing(self, archive_id: UUID, attempt: int) -> None:
        async with self.session_factory() as session, session.begin():
            await self._get_archive(session, archive_id)
            machine = ArchiveStateMachine(session, archive_id)
            state = await machine.current_state()
            if state is ArchiveState.PROCESSING:
                # Resuming after a retryable failure left it in processing
                logger.debug("Resuming archive %s at attempt %d", archive_id, attempt)
                return
            await machine.transition_to(
                ArchiveState.PROCESSING, {MetadataKeys.ATTEMPT: attempt}
            )

    async def _run(self, archive_id: UUID, url: str) -> ArchiveOutcome:
        started = time.monotonic()
        result = await self.fetcher.fetch(url)
        fetch_duration_ms = int((time.monotonic() - started) * 1000)

        if isinstance(result, FetchFailure):
            if result.retryable:
                logger.warning("Retryable fetch failure for %s: %s", url, result.message)
                return ArchiveOutcome.retry(archive_id, result)
            await self.record_failure(archive_id, result)
            return ArchiveOutcome.failed(archive_id, result)

        if result.is_html:
            return await self._archive_html(archive_id, result, fetch_duration_ms)
        return await self._archive_binary(archive_id, result, fetch_duration_ms)

    async def _archive_html(
        self, archive_id: UUID, fetched: FetchedContent, fetch_duration_ms: int
    ) -> ArchiveOutcome:
        # Parsing is CPU bound; keep other jobs on the loop moving
        parsed = await asyncio.to_thread(
            self.extractor.extract, fetched.text, fetched.final_url
        )
        if isinstance(parsed, ExtractionFailure):
            await self.record_failure(archive_id, parsed)
            return ArchiveOutcome.failed(archive_id, parsed)

        await self._complete(
            archive_id,
            fetched,
            fetch_duration_ms,
            content_html=parsed.content_html,
            content_text=parsed.content_text,
            title=parsed.title,
            description=parsed.description,
            image_url=parsed.image_url,
            metadata_=parsed.metadata.to_dict(),
        )
        return ArchiveOutcome.completed(archive_id)

    async def _archive_binary(
        self, archive_id: UUID, fetched: FetchedContent, fetch_duration_ms: int
    ) -> ArchiveOutcome:
        await self._complete(
            archive_id,
            fetched,
            fetch_duration_ms,
            metadata_={
                MetadataKeys.CONTENT_TYPE: fetched.content_type,
                MetadataKeys.FINAL_URL: fetched.final_url,
            },
        )
        return ArchiveOutcome.completed(archive_id)

    async def _complete(
        self,
        archive_id: UUID,
        fetched: FetchedContent,
        fetch_duration_ms: int,
        **fields: Any,
    ) -> None:
        async with self.session_factory() as session, session.begin():
            archive = await self._get_archive(session, archive_id)
            for name, value in fields.items():
                setattr(archive, name, value)
            archive.error_message = None
            archive.fetched_at = datetime.now(timezone.utc)
            await ArchiveStateMachine(session, archive_id).transition_to(
                ArchiveState.COMPLETED,
                {
                    MetadataKeys.FETCH_DURATION_MS: fetch_duration_ms,
                    MetadataKeys.CONTENT_TYPE: fetched.content_type,
                },
            )

        logger.info(
            "Archived %s (%s) in %dms",
            fetched.final_url,
            fetched.content_type or "unknown type",
            fetch_duration_ms,
        )

    async def _get_archive(self, session: AsyncSession, archive_id: UUID) -> ContentArchive:
        archive = await session.get(ContentArchive, archive_id)
        if archive is None:
            raise ArchiveNotFoundError(archive_id)
        return archive
