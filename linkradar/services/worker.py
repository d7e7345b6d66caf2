"""Queue consumer that runs archive jobs with bounded concurrency."""

import asyncio
import logging

from linkradar.services.archive_job import ArchiveJob
from linkradar.services.queue import REDIS_ERRORS, QueueManager

logger = logging.getLogger(__name__)


class ArchiveWorker:
    """Drain the archive queue, running up to ``concurrency`` jobs at once.

    Jobs share nothing but the database; each one opens its own sessions and
    its own HTTP client.

    Args:
        queue: Archive job queue
        job: Job shell invoked once per dequeued link id
        concurrency: Maximum jobs in flight
        poll_timeout: Seconds to block on an empty queue before checking for stop
    """

    def __init__(
        self,
        queue: QueueManager,
        job: ArchiveJob,
        concurrency: int = 4,
        poll_timeout: int = 5,
    ) -> None:
        self.queue = queue
        self.job = job
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        """Stop taking new jobs; in-flight jobs run to completion."""
        self._stopping.set()

    async def run(self, max_jobs: int | None = None) -> int:
        """Consume jobs until stopped or ``max_jobs`` have been dispatched.

        Returns:
            Number of jobs dispatched
        """
        dispatched = 0
        logger.info("Archive worker started (concurrency=%d)", self.concurrency)

        while not self._stopping.is_set():
            if max_jobs is not None and dispatched >= max_jobs:
                break

            await self._semaphore.acquire()
            try:
                link_id = await self.queue.dequeue_archive(timeout=self.poll_timeout)
            except REDIS_ERRORS as exc:
                self._semaphore.release()
                logger.warning("Archive queue unavailable, backing off: %s", exc)
                await asyncio.sleep(self.poll_timeout)
                continue

            if link_id is None:
                self._semaphore.release()
                continue

            task = asyncio.create_task(self._run_job(link_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched += 1

        if self._tasks:
            await asyncio.gather(*self._tasks)
        logger.info("Archive worker stopped after %d jobs", dispatched)
        return dispatched

    async def _run_job(self, link_id: str) -> None:
        try:
            outcome = await self.job.run(link_id)
            if outcome is not None:
                logger.debug("Link %s archive outcome: %s", link_id, outcome.status.value)
        except Exception:
            # One broken job must not take the worker down
            logger.exception("Archive job for link %s crashed", link_id)
        finally:
            self._semaphore.release()
