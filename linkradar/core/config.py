"""Configuration module for the LinkRadar archival pipeline.

Provides Pydantic-based configuration management with environment variable support
and field validation. Two settings objects exist:

- ``Settings``: infrastructure wiring (database, Redis, logging, worker sizing)
- ``ArchiveConfig``: the archival budgets and feature flag, read once per job and
  passed explicitly into every pipeline component

Example:
    >>> from linkradar.core.config import ArchiveConfig
    >>> config = ArchiveConfig(user_agent_contact_url="https://linkradar.example.com")
    >>> config.user_agent
    'LinkRadar/1.0.0 (+https://linkradar.example.com)'
"""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from linkradar import SERVICE_NAME, __version__

MEBIBYTE = 1024 * 1024

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Infrastructure configuration for the archival worker and CLI.

    Attributes:
        database_url: SQLAlchemy async database URL
        redis_url: Redis URL backing the archive job queue
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to the rotating log file
        worker_concurrency: Maximum archive jobs run at once by one worker
        queue_poll_timeout: Seconds a worker blocks waiting for a queued job

    Example:
        >>> settings = Settings(database_url="sqlite+aiosqlite:///:memory:")
        >>> settings.worker_concurrency
        4
    """

    database_url: str = "sqlite+aiosqlite:///./linkradar.db"
    redis_url: str = "redis://localhost:6379/0"

    log_level: str = "INFO"
    log_file: Path = Path(".cache/linkradar.log")

    worker_concurrency: int = 4
    queue_poll_timeout: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls: type["Settings"], v: str) -> str:
        """Normalize and validate the log level name.

        Raises:
            ValueError: If the level is not one of the standard logging levels
        """
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @field_validator("worker_concurrency", "queue_poll_timeout")
    @classmethod
    def validate_positive(cls: type["Settings"], v: int) -> int:
        """Worker sizing values must be at least 1."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v


class ArchiveConfig(BaseSettings):
    """Budgets and switches for content archival.

    Values come from ``CONTENT_ARCHIVE_*`` environment variables. The object is
    frozen: a job shell reads it once and hands the same instance to the
    archiver, fetcher and retry policy for the whole unit of work.

    Attributes:
        user_agent_contact_url: Contact URL embedded in the User-Agent (required)
        connect_timeout: Seconds to wait for a TCP/TLS connection
        read_timeout: Seconds to wait for response data
        max_redirects: Maximum redirect hops followed per fetch
        max_content_size: Largest response body accepted, in bytes
        max_retries: Total attempts (including the first) for timed-out fetches
        retry_backoff_base: Base delay in seconds for exponential backoff
        enabled: Global archival switch

    Raises:
        ValidationError: If the contact URL is missing or a limit is out of range
    """

    user_agent_contact_url: str

    connect_timeout: float = 10.0
    read_timeout: float = 15.0

    max_redirects: int = 5
    max_content_size: int = 10 * MEBIBYTE

    max_retries: int = 3
    retry_backoff_base: float = 2.0

    enabled: bool = True

    model_config = SettingsConfigDict(
        env_prefix="CONTENT_ARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("user_agent_contact_url")
    @classmethod
    def validate_contact_url(cls: type["ArchiveConfig"], v: str) -> str:
        """Require a non-empty contact URL for the User-Agent header."""
        v = v.strip()
        if not v:
            raise ValueError("user_agent_contact_url must not be empty")
        return v

    @field_validator(
        "connect_timeout",
        "read_timeout",
        "max_content_size",
        "max_retries",
        "retry_backoff_base",
    )
    @classmethod
    def validate_positive(cls: type["ArchiveConfig"], v: float) -> float:
        """Timeouts, size limits and retry settings must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("max_redirects")
    @classmethod
    def validate_max_redirects(cls: type["ArchiveConfig"], v: int) -> int:
        """Zero disables redirect following; negative values are invalid."""
        if v < 0:
            raise ValueError("max_redirects must not be negative")
        return v

    @property
    def user_agent(self) -> str:
        """User-Agent header value, e.g. ``LinkRadar/1.0.0 (+https://...)``."""
        return f"{SERVICE_NAME}/{__version__} (+{self.user_agent_contact_url})"

    @property
    def max_content_size_mb(self) -> float:
        """Size limit in MiB, rounded for human-readable messages."""
        return round(self.max_content_size / MEBIBYTE, 1)


def log_config_summary(config: ArchiveConfig, logger: logging.Logger) -> None:
    """Log the effective archival budgets at DEBUG level."""
    logger.debug(
        "Archive config: enabled=%s connect_timeout=%.1fs read_timeout=%.1fs "
        "max_redirects=%d max_content_size=%d max_retries=%d backoff_base=%.1fs",
        config.enabled,
        config.connect_timeout,
        config.read_timeout,
        config.max_redirects,
        config.max_content_size,
        config.max_retries,
        config.retry_backoff_base,
    )
