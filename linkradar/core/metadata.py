"""Centralized metadata key definitions for the archival pipeline.

This module provides a single source of truth for the keys written into the
JSON ``metadata`` columns of archives and transitions. Using these constants
instead of hardcoded strings keeps the writers (archiver, job shell) and the
readers (status command, tests) in agreement.

Usage:
    from linkradar.core.metadata import MetadataKeys

    transition.metadata_[MetadataKeys.ERROR_REASON]
"""


class MetadataKeys:
    """Constants for archive and transition metadata keys."""

    __slots__ = ()

    # Archive metadata (content_archives.metadata)
    CONTENT_TYPE = "content_type"  # "html" or the raw MIME type for binary content
    FINAL_URL = "final_url"  # URL after redirects
    OPENGRAPH = "opengraph"  # og:* properties, prefix stripped
    TWITTER = "twitter"  # twitter:* properties, prefix stripped
    CANONICAL_URL = "canonical_url"  # <link rel="canonical">

    # Transition metadata (content_archive_transitions.metadata)
    ERROR_REASON = "error_reason"  # ErrorReason value
    ERROR_MESSAGE = "error_message"  # Human-readable failure
    HTTP_STATUS = "http_status"  # Final HTTP status, when there was one
    RETRY_COUNT = "retry_count"  # Attempts made before giving up
    ATTEMPT = "attempt"  # Attempt number that entered processing
    FETCH_DURATION_MS = "fetch_duration_ms"  # Wall time of the fetch step
