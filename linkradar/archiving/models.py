"""Value objects passed between the archival pipeline stages."""

import codecs
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from bs4 import UnicodeDammit

from linkradar.core.metadata import MetadataKeys


def _is_known_codec(name: str) -> bool:
    # Servers send labels like "utf8mb4" that Python cannot decode with
    try:
        codecs.lookup(name)
    except LookupError:
        return False
    return True


class ErrorReason(str, Enum):
    """Why an archive ended in the ``failed`` state."""

    INVALID_URL = "invalid_url"
    BLOCKED = "blocked"
    NETWORK_ERROR = "network_error"
    SIZE_LIMIT = "size_limit"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    EXTRACTION_ERROR = "extraction_error"
    DISABLED = "disabled"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class ArchiveFailure:
    """Structured failure produced by a pipeline stage.

    Args:
        reason: Classified failure kind
        message: Human-readable description, persisted on the archive
        url: URL being processed when the failure occurred
        details: Additional context (hostnames, limits, redirect hops)
    """

    reason: ErrorReason
    message: str
    url: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchFailure(ArchiveFailure):
    """Failure from URL validation or the HTTP fetch.

    Args:
        http_status: Final HTTP status code, when a response was received
        retryable: True only for connect/read timeouts of the main fetch
    """

    http_status: int | None = None
    retryable: bool = False


@dataclass(frozen=True)
class ExtractionFailure(ArchiveFailure):
    """Failure while extracting or sanitizing fetched HTML."""


@dataclass(frozen=True)
class FetchedContent:
    """Successful HTTP fetch.

    Args:
        body: Raw response body
        status: Final HTTP status code
        final_url: URL after all redirects
        content_type: Content-Type header value (may be empty)
        encoding: Charset reported by the response, if any
    """

    body: bytes
    status: int
    final_url: str
    content_type: str
    encoding: str | None = None

    @property
    def text(self) -> str:
        """Body decoded the way a browser would pick the charset.

        The HTTP charset wins when Python knows it; otherwise a BOM or the
        document's ``<meta charset>`` declaration decides, then detection.
        """
        known = [self.encoding] if self.encoding and _is_known_codec(self.encoding) else []
        dammit = UnicodeDammit(self.body, known_definite_encodings=known, is_html=True)
        if dammit.unicode_markup is None:
            return self.body.decode("utf-8", errors="replace")
        return dammit.unicode_markup

    @property
    def is_html(self) -> bool:
        """Whether the Content-Type names an HTML document."""
        content_type = self.content_type.lower()
        return "text/html" in content_type or "application/xhtml+xml" in content_type


@dataclass(frozen=True)
class ContentMetadata:
    """Page-level metadata collected from an HTML document."""

    final_url: str
    opengraph: dict[str, str] | None = None
    twitter: dict[str, str] | None = None
    canonical_url: str | None = None
    content_type: str = "html"

    def to_dict(self) -> dict[str, Any]:
        return {
            MetadataKeys.OPENGRAPH: self.opengraph,
            MetadataKeys.TWITTER: self.twitter,
            MetadataKeys.CANONICAL_URL: self.canonical_url,
            MetadataKeys.FINAL_URL: self.final_url,
            MetadataKeys.CONTENT_TYPE: self.content_type,
        }


@dataclass(frozen=True)
class ParsedContent:
    """Extracted page content.

    ``content_html`` is always sanitized; callers persist it as-is.
    """

    content_html: str
    content_text: str
    metadata: ContentMetadata
    title: str | None = None
    description: str | None = None
    image_url: str | None = None


class OutcomeStatus(str, Enum):
    """Tag on an archival attempt's result."""

    COMPLETED = "completed"
    FAILED = "failed"
    RETRYABLE = "retryable"


@dataclass(frozen=True)
class ArchiveOutcome:
    """Result of one archival attempt.

    ``FAILED`` is terminal and already recorded on the archive. ``RETRYABLE``
    leaves the archive in ``processing`` for the job shell to retry.

    Args:
        archive_id: Archive the attempt ran against
        status: Outcome tag
        failure: Structured failure for FAILED/RETRYABLE outcomes
    """

    archive_id: UUID
    status: OutcomeStatus
    failure: ArchiveFailure | None = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED

    @property
    def retryable(self) -> bool:
        return self.status is OutcomeStatus.RETRYABLE

    @classmethod
    def completed(cls, archive_id: UUID) -> "ArchiveOutcome":
        return cls(archive_id=archive_id, status=OutcomeStatus.COMPLETED)

    @classmethod
    def failed(cls, archive_id: UUID, failure: ArchiveFailure) -> "ArchiveOutcome":
        return cls(archive_id=archive_id, status=OutcomeStatus.FAILED, failure=failure)

    @classmethod
    def retry(cls, archive_id: UUID, failure: ArchiveFailure) -> "ArchiveOutcome":
        return cls(archive_id=archive_id, status=OutcomeStatus.RETRYABLE, failure=failure)
