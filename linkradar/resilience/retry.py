"""Retry policy for archival attempts.

Attempts report whether they may be retried through a ``retryable`` flag on
their result instead of raising, so the policy inspects return values rather
than catching exceptions.

Example:
    Default schedule from configuration (attempt 1 immediate, then 2s, then 4s):
        >>> policy = RetryPolicy.from_config(config)
        >>> outcome = await policy.execute_async(
        ...     lambda attempt: archiver.archive(archive_id, url, attempt=attempt)
        ... )

    Custom schedule:
        >>> policy = RetryPolicy(max_retries=5, delays=[1.0, 2.0, 4.0, 8.0])
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from linkradar.core.config import ArchiveConfig


class Retryable(Protocol):
    @property
    def retryable(self) -> bool: ...


T = TypeVar("T", bound=Retryable)


class RetryPolicy:
    """Bounded retry with exponential backoff and jitter.

    Attributes:
        max_retries: Total number of attempts, including the first (default: 3)
        delays: Delay in seconds before each retry; ``delays[0]`` precedes the
                second attempt (default: [2.0, 4.0])
    """

    def __init__(
        self,
        max_retries: int = 3,
        delays: list[float] | None = None,
    ):
        """Initialize retry policy.

        Args:
            max_retries: Total number of attempts
            delays: Optional custom delay sequence (seconds). If not provided,
                   uses [2.0, 4.0].
        """
        self.max_retries = max_retries
        self.delays = delays or [2.0, 4.0]
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: ArchiveConfig) -> "RetryPolicy":
        """Build the schedule ``base * 2**n`` for n = 0 .. max_retries - 2."""
        delays = [
            config.retry_backoff_base * 2**retry for retry in range(config.max_retries - 1)
        ]
        return cls(max_retries=config.max_retries, delays=delays or None)

    async def execute_async(
        self,
        operation: Callable[[int], Awaitable[T]],
        operation_name: str = "operation",
    ) -> T:
        """Run ``operation`` until it succeeds, fails terminally or runs out of attempts.

        Args:
            operation: Async callable receiving the 1-based attempt number
            operation_name: Human-readable operation name for logging

        Returns:
            The last result; still ``retryable`` only when attempts ran out
        """
        for attempt in range(1, self.max_retries + 1):
            result = await operation(attempt)
            if not result.retryable:
                return result

            if attempt < self.max_retries:
                delay = self._get_delay(attempt - 1)
                self._logger.warning(
                    f"{operation_name} failed (attempt {attempt}/{self.max_retries}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
            else:
                self._logger.error(
                    f"{operation_name} failed after {self.max_retries} attempts"
                )

        return result

    def _get_delay(self, retry: int) -> float:
        """Calculate delay before a retry with jitter.

        Args:
            retry: Retry number (0-indexed)

        Returns:
            Delay in seconds with up to 10% added jitter
        """
        base_delay = self.delays[min(retry, len(self.delays) - 1)]
        jitter = random.uniform(0, base_delay * 0.1)
        return base_delay + jitter
