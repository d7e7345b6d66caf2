"""Tests for linkradar.archiving.archiver module."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from sqlalchemy.exc import OperationalError

from linkradar.archiving.archiver import Archiver
from linkradar.archiving.http_fetcher import HttpFetcher
from linkradar.archiving.models import (
    ArchiveFailure,
    ErrorReason,
    ExtractionFailure,
    OutcomeStatus,
)
from linkradar.core.config import ArchiveConfig
from linkradar.services.links import LinkService
from linkradar.storage.models import ContentArchive
from linkradar.storage.state_machine import (
    ArchiveNotFoundError,
    ArchiveState,
    ArchiveStateMachine,
    TransitionNotAllowedError,
)

ARTICLE_URL = "https://example.com/article"
PDF_URL = "https://example.com/paper.pdf"

PARAGRAPH = (
    "Link rot is the slow decay of the web: pages move, sites shut down and "
    "content changes without notice, which is why a bookmark alone is not enough."
)

ARTICLE_HTML = f"""
<html>
  <head>
    <title>Link rot</title>
    <meta property="og:title" content="Link rot explained">
    <meta property="og:image" content="https://cdn.example/cover.png">
  </head>
  <body>
    <article>
      <p>{PARAGRAPH}</p>
      <script>alert(1)</script>
      <p onclick="track()">{PARAGRAPH}</p>
      <p>{PARAGRAPH}</p>
    </article>
  </body>
</html>
"""


@pytest.fixture
def fetcher(archive_config: ArchiveConfig, validator) -> HttpFetcher:
    return HttpFetcher(archive_config, validator)


@pytest.fixture
def archiver(session_factory, archive_config: ArchiveConfig, fetcher: HttpFetcher) -> Archiver:
    return Archiver(session_factory, archive_config, fetcher=fetcher)


async def _create_archive(link_service: LinkService, url: str) -> uuid.UUID:
    link = await link_service.create_link(url)
    archive = await link_service.get_archive(link.id)
    return archive.id


async def _load(session_factory, archive_id: uuid.UUID):
    async with session_factory() as session:
        archive = await session.get(ContentArchive, archive_id)
        history = await ArchiveStateMachine(session, archive_id).history()
    return archive, [(t.to_state, t.metadata_) for t in history]


@respx.mock
async def test_html_page_is_archived(archiver, link_service, session_factory) -> None:
    """Verify the HTML path stores sanitized content, metadata and timestamps."""
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    respx.get(ARTICLE_URL).mock(return_value=httpx.Response(200, html=ARTICLE_HTML))

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.success is True

    archive, history = await _load(session_factory, archive_id)
    assert "<script" not in archive.content_html
    assert "onclick" not in archive.content_html
    assert "Link rot is the slow decay" in archive.content_text
    assert archive.title == "Link rot explained"
    assert archive.image_url == "https://cdn.example/cover.png"
    assert archive.fetched_at is not None
    assert archive.error_message is None
    assert archive.metadata_["final_url"] == ARTICLE_URL
    assert archive.metadata_["content_type"] == "html"
    assert archive.metadata_["opengraph"]["title"] == "Link rot explained"

    assert [state for state, _ in history] == ["pending", "processing", "completed"]
    assert history[1][1] == {"attempt": 1}
    completed = history[2][1]
    assert completed["content_type"].startswith("text/html")
    assert isinstance(completed["fetch_duration_ms"], int)


@respx.mock
async def test_binary_content_stores_only_type_and_url(
    link_service, session_factory, archive_config, fetcher
) -> None:
    """Verify non-HTML content skips extraction entirely."""
    extractor = MagicMock()
    archiver = Archiver(session_factory, archive_config, fetcher=fetcher, extractor=extractor)
    archive_id = await _create_archive(link_service, PDF_URL)
    respx.head(PDF_URL).mock(return_value=httpx.Response(200))
    respx.get(PDF_URL).mock(
        return_value=httpx.Response(
            200, headers={"Content-Type": "application/pdf"}, content=b"%PDF-1.7"
        )
    )

    outcome = await archiver.archive(archive_id, PDF_URL)

    assert outcome.success is True
    extractor.extract.assert_not_called()
    archive, history = await _load(session_factory, archive_id)
    assert archive.metadata_ == {"content_type": "application/pdf", "final_url": PDF_URL}
    assert archive.content_html is None
    assert archive.content_text is None
    assert archive.fetched_at is not None
    assert history[-1][0] == "completed"


@respx.mock
async def test_private_address_is_blocked(archiver, link_service, session_factory) -> None:
    archive_id = await _create_archive(link_service, "http://127.0.0.1/admin")

    outcome = await archiver.archive(archive_id, "http://127.0.0.1/admin")

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure.reason is ErrorReason.BLOCKED
    assert respx.calls.call_count == 0

    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "URL resolves to private IP address (SSRF protection)"
    assert [state for state, _ in history] == ["pending", "processing", "failed"]
    assert history[-1][1]["error_reason"] == "blocked"


@respx.mock
async def test_http_404_fails_with_status(archiver, link_service, session_factory) -> None:
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(404))
    respx.get(ARTICLE_URL).mock(return_value=httpx.Response(404))

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.FAILED
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "HTTP 404: Not Found"
    assert history[-1] == (
        "failed",
        {"error_reason": "network_error", "error_message": "HTTP 404: Not Found", "http_status": 404},
    )


@respx.mock
async def test_redirect_exhaustion_fails(archiver, link_service, session_factory) -> None:
    def hop(request: httpx.Request) -> httpx.Response:
        n = int(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(302, headers={"Location": f"/r/{n + 1}"})

    url = "https://example.com/r/0"
    archive_id = await _create_archive(link_service, url)
    respx.head(url).mock(return_value=httpx.Response(200))
    respx.get(url__regex=r"https://example\.com/r/\d+").mock(side_effect=hop)

    outcome = await archiver.archive(archive_id, url)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure.reason is ErrorReason.TOO_MANY_REDIRECTS
    archive, history = await _load(session_factory, archive_id)
    assert "6" in archive.error_message
    assert "5" in archive.error_message
    assert history[-1][1]["error_reason"] == "too_many_redirects"


@respx.mock
async def test_disabled_archival_makes_no_requests(
    link_service, session_factory, validator
) -> None:
    """Verify the disabled flag fails the archive straight from pending."""
    config = ArchiveConfig(
        user_agent_contact_url="https://lr.example.com", enabled=False, _env_file=None
    )
    archiver = Archiver(session_factory, config, fetcher=HttpFetcher(config, validator))
    archive_id = await _create_archive(link_service, ARTICLE_URL)

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure.reason is ErrorReason.DISABLED
    assert respx.calls.call_count == 0
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "Content archival disabled"
    assert [state for state, _ in history] == ["pending", "failed"]
    assert history[-1][1]["error_reason"] == "disabled"


@respx.mock
async def test_extraction_failure(link_service, session_factory, archive_config, fetcher) -> None:
    extractor = MagicMock()
    extractor.extract.return_value = ExtractionFailure(
        reason=ErrorReason.EXTRACTION_ERROR,
        message="Content extraction error: empty document",
        url=ARTICLE_URL,
    )
    archiver = Archiver(session_factory, archive_config, fetcher=fetcher, extractor=extractor)
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    respx.get(ARTICLE_URL).mock(return_value=httpx.Response(200, html="<html></html>"))

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.FAILED
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "Content extraction error: empty document"
    assert archive.content_html is None
    assert history[-1][1]["error_reason"] == "extraction_error"


async def test_unexpected_error_is_recorded(link_service, session_factory, archive_config) -> None:
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=RuntimeError("boom"))
    archiver = Archiver(session_factory, archive_config, fetcher=fetcher)
    archive_id = await _create_archive(link_service, ARTICLE_URL)

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure.reason is ErrorReason.UNEXPECTED_ERROR
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "Unexpected error: RuntimeError - boom"
    assert history[-1][1]["error_reason"] == "unexpected_error"


@respx.mock
async def test_timeout_is_retryable_and_leaves_processing(
    archiver, link_service, session_factory
) -> None:
    """Verify a timeout is handed back to the caller instead of being recorded."""
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    get_route = respx.get(ARTICLE_URL)
    get_route.side_effect = [
        httpx.ReadTimeout("read timed out"),
        httpx.Response(200, html=ARTICLE_HTML),
    ]

    first = await archiver.archive(archive_id, ARTICLE_URL, attempt=1)

    assert first.status is OutcomeStatus.RETRYABLE
    assert first.retryable is True
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message is None
    assert [state for state, _ in history] == ["pending", "processing"]

    second = await archiver.archive(archive_id, ARTICLE_URL, attempt=2)

    assert second.success is True
    _, history = await _load(session_factory, archive_id)
    assert [state for state, _ in history] == ["pending", "processing", "completed"]


@respx.mock
async def test_terminal_archive_rejects_second_run(
    archiver, link_service, session_factory
) -> None:
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    respx.get(ARTICLE_URL).mock(return_value=httpx.Response(200, html=ARTICLE_HTML))
    await archiver.archive(archive_id, ARTICLE_URL)

    with pytest.raises(TransitionNotAllowedError):
        await archiver.archive(archive_id, ARTICLE_URL)

    _, history = await _load(session_factory, archive_id)
    assert len(history) == 3


async def test_missing_archive_raises(archiver) -> None:
    with pytest.raises(ArchiveNotFoundError):
        await archiver.archive(uuid.uuid4(), ARTICLE_URL)


async def test_record_failure_with_retry_count(archiver, link_service, session_factory) -> None:
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    failure = ArchiveFailure(
        reason=ErrorReason.NETWORK_ERROR, message="gave up", url=ARTICLE_URL
    )

    await archiver.record_failure(archive_id, failure, retry_count=3)

    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message == "gave up"
    assert history[-1][1] == {
        "error_reason": "network_error",
        "error_message": "gave up",
        "retry_count": 3,
    }


def _titled_page(title: str, charset_meta: str = "") -> str:
    return (
        f"<html><head>{charset_meta}<title>{title}</title></head>"
        f"<body><article><p>{PARAGRAPH}</p><p>{PARAGRAPH}</p></article></body></html>"
    )


@respx.mock
async def test_unknown_charset_label_is_still_archived(
    archiver, link_service, session_factory
) -> None:
    """Verify a charset Python cannot decode with does not fail the archive."""
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    respx.get(ARTICLE_URL).mock(
        return_value=httpx.Response(
            200,
            headers={"Content-Type": "text/html; charset=utf8mb4"},
            content=_titled_page("Café culture").encode("utf-8"),
        )
    )

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.status is OutcomeStatus.COMPLETED
    archive, _ = await _load(session_factory, archive_id)
    assert archive.title == "Café culture"


@respx.mock
async def test_meta_declared_charset_is_respected(
    archiver, link_service, session_factory
) -> None:
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    page = _titled_page("Café", '<meta charset="windows-1252">')
    respx.head(ARTICLE_URL).mock(return_value=httpx.Response(200))
    respx.get(ARTICLE_URL).mock(
        return_value=httpx.Response(
            200, headers={"Content-Type": "text/html"}, content=page.encode("cp1252")
        )
    )

    outcome = await archiver.archive(archive_id, ARTICLE_URL)

    assert outcome.success is True
    archive, _ = await _load(session_factory, archive_id)
    assert archive.title == "Café"
    assert "�" not in archive.content_text


async def test_processing_transition_error_is_recorded(
    archiver, link_service, session_factory
) -> None:
    """Verify a database error while entering processing still ends the archive."""
    archive_id = await _create_archive(link_service, ARTICLE_URL)
    original = ArchiveStateMachine.transition_to

    async def locked_on_processing(self, state, metadata=None):
        if state is ArchiveState.PROCESSING:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return await original(self, state, metadata)

    with respx.mock, patch.object(ArchiveStateMachine, "transition_to", locked_on_processing):
        outcome = await archiver.archive(archive_id, ARTICLE_URL)
        assert respx.calls.call_count == 0

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure.reason is ErrorReason.UNEXPECTED_ERROR
    archive, history = await _load(session_factory, archive_id)
    assert archive.error_message.startswith("Unexpected error: OperationalError")
    assert [state for state, _ in history] == ["pending", "failed"]
    assert history[-1][1]["error_reason"] == "unexpected_error"
