"""Queue manager for Redis-backed archive jobs."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable
from typing import TypeVar
from uuid import UUID

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUEUE_KEY = "linkradar:archive_queue"

# redis-py raises its own ConnectionError/TimeoutError, both RedisError subclasses
REDIS_ERRORS = (RedisError, ConnectionError, TimeoutError, OSError)


class QueueManager:
    """Manage the archive job queue in Redis.

    Each job is the link identifier; one job is pushed per created link.
    """

    def __init__(self, redis_url: str) -> None:
        """Initialize the queue manager.

        Args:
            redis_url: Redis connection URL
        """
        self._client: redis.Redis = redis.from_url(redis_url, decode_responses=False)

    async def is_available(self) -> bool:
        """Check if Redis connection is available.

        Returns:
            True if Redis is reachable, False otherwise
        """
        try:
            await self._await(self._client.ping())
            return True
        except REDIS_ERRORS:
            logger.warning("Redis is unavailable - archive jobs cannot be queued")
            return False

    async def _await(self, result: Awaitable[T] | T) -> T:
        if inspect.isawaitable(result):
            return await result
        return result

    async def enqueue_archive(self, link_id: UUID | str) -> bool:
        """Enqueue an archive job for a link.

        Args:
            link_id: Link identifier

        Returns:
            True if the job was queued, False if Redis was unavailable

        Note:
            Never raises on Redis errors (logs warning)
        """
        try:
            await self._await(self._client.lpush(QUEUE_KEY, str(link_id)))
            return True
        except REDIS_ERRORS as exc:
            logger.warning("Failed to enqueue archive job for link %s: %s", link_id, exc)
            return False

    async def dequeue_archive(self, timeout: int = 5) -> str | None:
        """Dequeue the next archive job.

        Args:
            timeout: Seconds to block while waiting for work

        Returns:
            The link identifier, or None when no job arrived in time
        """
        item = await self._await(self._client.brpop([QUEUE_KEY], timeout=timeout))
        if not item:
            return None
        _, value = item
        return value.decode() if isinstance(value, bytes) else value

    async def close(self) -> None:
        """Close the Redis client connection."""
        await self._await(self._client.aclose())

    async def get_queue_length(self) -> int:
        """Return the number of archive jobs waiting."""
        length = await self._await(self._client.llen(QUEUE_KEY))
        return int(length)
