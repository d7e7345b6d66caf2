"""Content archival components: URL validation, fetching and extraction."""

from linkradar.archiving.content_extractor import ContentExtractor
from linkradar.archiving.http_fetcher import HttpFetcher
from linkradar.archiving.models import (
    ArchiveFailure,
    ArchiveOutcome,
    ErrorReason,
    ExtractionFailure,
    FetchedContent,
    FetchFailure,
    OutcomeStatus,
    ParsedContent,
)
from linkradar.archiving.url_validator import UrlValidator, ValidationError

__all__ = [
    "ArchiveFailure",
    "ArchiveOutcome",
    "ContentExtractor",
    "ErrorReason",
    "ExtractionFailure",
    "FetchedContent",
    "FetchFailure",
    "HttpFetcher",
    "OutcomeStatus",
    "ParsedContent",
    "UrlValidator",
    "ValidationError",
]
