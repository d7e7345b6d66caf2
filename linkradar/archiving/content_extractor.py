"""Readable-content extraction and sanitization for fetched HTML.

Three stages run in order, each failing with its own message prefix:

1. Metadata: title, description, preview image, canonical URL and the raw
   Open Graph / Twitter Card maps (BeautifulSoup)
2. Main content: readability heuristics pick the article body (readability-lxml)
3. Sanitization: scripts, event handlers, styles and embedded objects are
   stripped (lxml Cleaner); the result is the only HTML ever persisted

Plain text for search indexing is derived from the sanitized fragment.
"""

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from lxml.html.clean import Cleaner
from readability import Document

from linkradar.archiving.models import (
    ContentMetadata,
    ErrorReason,
    ExtractionFailure,
    ParsedContent,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_IMAGE_URL_LENGTH = 2048

_WHITESPACE = re.compile(r"\s+")

_SANITIZER = Cleaner(
    scripts=True,
    javascript=True,
    comments=True,
    style=True,
    inline_style=True,
    links=True,
    meta=True,
    page_structure=True,
    processing_instructions=True,
    embedded=True,
    frames=True,
    forms=True,
    annoying_tags=True,
    remove_unknown_tags=True,
    safe_attrs_only=True,
    kill_tags={"noscript", "template"},
)


def _collapse(text: str | None) -> str | None:
    if text is None:
        return None
    collapsed = _WHITESPACE.sub(" ", text).strip()
    return collapsed or None


class ContentExtractor:
    """Extracts sanitized content and metadata from an HTML document."""

    def extract(self, html: str, url: str) -> ParsedContent | ExtractionFailure:
        """Run the metadata, content and sanitization stages.

        Args:
            html: Full HTML document as fetched
            url: Final URL the document came from (resolves relative image URLs)

        Returns:
            ParsedContent with sanitized HTML, or ExtractionFailure naming the
            stage that failed
        """
        try:
            soup = BeautifulSoup(html, "lxml")
            metadata = self._extract_metadata(soup, url)
        except Exception as e:
            return self._failure("Metadata extraction error", e, url)

        try:
            content_html = self._extract_main_content(html, url)
        except Exception as e:
            return self._failure("Content extraction error", e, url)

        try:
            sanitized = self.sanitize(content_html)
        except Exception as e:
            return self._failure("HTML sanitization error", e, url)

        return ParsedContent(
            content_html=sanitized,
            content_text=self.html_to_text(sanitized),
            title=metadata["title"],
            description=metadata["description"],
            image_url=metadata["image_url"],
            metadata=metadata["metadata"],
        )

    @staticmethod
    def sanitize(html: str) -> str:
        """Strip executable content from an HTML fragment.

        Removes script/style elements, ``on*`` attributes, ``javascript:`` links,
        embedded objects, frames and forms while keeping structural tags.
        """
        if not html or not html.strip():
            return ""
        return _SANITIZER.clean_html(html)

    @staticmethod
    def html_to_text(html: str) -> str:
        """Plain text of an HTML fragment with whitespace collapsed."""
        if not html:
            return ""
        text = BeautifulSoup(html, "lxml").get_text(" ", strip=True)
        return _WHITESPACE.sub(" ", text).strip()

    def _failure(self, prefix: str, error: Exception, url: str) -> ExtractionFailure:
        logger.debug("%s for %s", prefix, url, exc_info=error)
        return ExtractionFailure(
            reason=ErrorReason.EXTRACTION_ERROR,
            message=f"{prefix}: {error}",
            url=url,
            details={"error_class": type(error).__name__},
        )

    def _extract_main_content(self, html: str, url: str) -> str:
        return Document(html, url=url).summary(html_partial=True)

    def _extract_metadata(self, soup: BeautifulSoup, url: str) -> dict:
        opengraph = self._meta_properties(soup, "og:")
        twitter = self._meta_properties(soup, "twitter:")

        title_tag = soup.find("title")
        title = _collapse(
            opengraph.get("title")
            or twitter.get("title")
            or (title_tag.get_text() if title_tag else None)
        )
        if title is not None:
            title = title[:MAX_TITLE_LENGTH]

        description = _collapse(
            opengraph.get("description")
            or twitter.get("description")
            or self._meta_content(soup, "description")
        )

        return {
            "title": title,
            "description": description,
            "image_url": self._best_image(soup, opengraph, twitter, url),
            "metadata": ContentMetadata(
                final_url=url,
                opengraph=opengraph or None,
                twitter=twitter or None,
                canonical_url=self._canonical_url(soup, url),
            ),
        }

    def _meta_properties(self, soup: BeautifulSoup, prefix: str) -> dict[str, str]:
        # Open Graph uses property=, Twitter Cards use name=; sites mix both
        values: dict[str, str] = {}
        for tag in soup.find_all("meta"):
            key = tag.get("property") or tag.get("name")
            content = tag.get("content")
            if not key or content is None:
                continue
            key = key.strip().lower()
            if key.startswith(prefix):
                values.setdefault(key[len(prefix):], content.strip())
        return values

    def _meta_content(self, soup: BeautifulSoup, name: str) -> str | None:
        tag = soup.find("meta", attrs={"name": re.compile(f"^{name}$", re.I)})
        if tag is None:
            return None
        return tag.get("content")

    def _canonical_url(self, soup: BeautifulSoup, url: str) -> str | None:
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "canonical" in (value.lower() for value in rel):
                return urljoin(url, link["href"].strip())
        return None

    def _best_image(
        self,
        soup: BeautifulSoup,
        opengraph: dict[str, str],
        twitter: dict[str, str],
        url: str,
    ) -> str | None:
        candidate = opengraph.get("image") or twitter.get("image")
        if not candidate:
            img = soup.find("img", src=True)
            candidate = img["src"] if img else None
        if not candidate:
            return None

        image_url = urljoin(url, candidate.strip())
        if len(image_url) > MAX_IMAGE_URL_LENGTH or image_url.startswith("data:"):
            return None
        return image_url
