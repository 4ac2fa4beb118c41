from __future__ import annotations

import logging
from typing import Optional, Sequence

import requests
from lxml import html as lxml_html
from readability import Document

from .html import FULL_TEXT_LIMIT, normalize_article_html, truncate
from .models import ExtractedContent

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
ARTICLE_TIMEOUT = 15

_IMAGE_XPATHS = (
    "//meta[@property='og:image']/@content",
    "//meta[@name='twitter:image']/@content",
    "//link[@rel='image_src']/@href",
)
_AUTHOR_XPATHS = (
    "//meta[@name='author']/@content",
    "//meta[@property='article:author']/@content",
    "//meta[@name='twitter:creator']/@content",
)
_DESCRIPTION_XPATHS = (
    "//meta[@property='og:description']/@content",
    "//meta[@name='description']/@content",
)


class ContentExtractor:
    """Fetches article pages and pulls out the readable body, lead image and author."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = ARTICLE_TIMEOUT) -> None:
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": BROWSER_USER_AGENT})
        self._timeout = timeout

    def extract(self, url: str) -> ExtractedContent:
        """Return the extracted content of ``url``; failures give empty fields."""
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            return self.extract_from_html(response.text)
        except Exception as exc:
            logger.warning("Article extraction failed for %s: %s", url, exc)
            return ExtractedContent()

    def extract_from_html(self, page_html: str) -> ExtractedContent:
        if not page_html or not page_html.strip():
            return ExtractedContent()
        try:
            tree = lxml_html.fromstring(page_html)
        except ValueError:
            # lxml refuses str input that carries an XML encoding declaration
            tree = lxml_html.fromstring(page_html.encode("utf-8"))
        description = _first_value(tree, _DESCRIPTION_XPATHS)
        content_html = Document(page_html).summary(html_partial=True)
        return ExtractedContent(
            full_text=clean_content(content_html, description),
            image=_first_value(tree, _IMAGE_XPATHS),
            author=_first_value(tree, _AUTHOR_XPATHS),
        )


def clean_content(content_html: Optional[str], description: Optional[str] = None) -> Optional[str]:
    text = truncate(normalize_article_html(content_html), FULL_TEXT_LIMIT)
    return text or description or None


def _first_value(tree, xpaths: Sequence[str]) -> Optional[str]:
    for xpath in xpaths:
        for value in tree.xpath(xpath):
            value = str(value).strip()
            if value:
                return value
    return None
