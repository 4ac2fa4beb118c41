"""Regex helpers for the loosely structured HTML found in feeds and articles."""

from __future__ import annotations

import re
from typing import Callable, Optional, Tuple
from urllib.parse import urlparse

ImageMatcher = Callable[[str], Optional[str]]

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
_OG_IMAGE_RE = re.compile(
    r"""<meta[^>]+property=["']og:image["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE
)
_TWITTER_IMAGE_RE = re.compile(
    r"""<meta[^>]+name=["']twitter:image["'][^>]+content=["']([^"']+)["']""", re.IGNORECASE
)
_WP_FEATURED_RE = re.compile(
    r"""<img[^>]+class=["'][^"']*wp-post-image[^"']*["'][^>]+src=["']([^"']+)["']""", re.IGNORECASE
)
_IMG_EXTENSION_RE = re.compile(
    r"""<img[^>]+src=["']([^"']*\.(?:jpg|jpeg|png|gif|webp))["']""", re.IGNORECASE
)

# Applied in order by normalize_article_html.
_ARTICLE_RULES: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<p[^>]*>", re.IGNORECASE), ""),
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"<div[^>]*>", re.IGNORECASE), ""),
    (_TAG_RE, " "),
    (re.compile(r"[ \t]+"), " "),
    (re.compile(r"\n[ \t]+"), "\n"),
    (re.compile(r"[ \t]+\n"), "\n"),
    (re.compile(r"\n{3,}"), "\n\n"),
)

FULL_TEXT_LIMIT = 2000
DESCRIPTION_LIMIT = 300


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def normalize_article_html(html: Optional[str]) -> str:
    """Flatten article HTML to plain text, keeping paragraph and line breaks."""
    if not html:
        return ""
    text = html
    for pattern, replacement in _ARTICLE_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def truncate(text: str, limit: int, marker: str = "...") -> str:
    if len(text) > limit:
        return text[:limit] + marker
    return text


def resolve_url(url: str, article_link: str) -> str:
    """Resolve a root-relative image URL against the article's origin."""
    if not url.startswith("/") or url.startswith("//"):
        return url
    try:
        parsed = urlparse(article_link)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    return f"{parsed.scheme}://{parsed.netloc}{url}"


def _first_group(pattern: re.Pattern, html: str) -> Optional[str]:
    match = pattern.search(html)
    if match and match.group(1):
        return match.group(1)
    return None


def match_img_src(html: str) -> Optional[str]:
    return _first_group(_IMG_SRC_RE, html)


def match_og_image(html: str) -> Optional[str]:
    return _first_group(_OG_IMAGE_RE, html)


def match_twitter_image(html: str) -> Optional[str]:
    return _first_group(_TWITTER_IMAGE_RE, html)


def match_wp_featured_image(html: str) -> Optional[str]:
    return _first_group(_WP_FEATURED_RE, html)


def match_img_extension(html: str) -> Optional[str]:
    return _first_group(_IMG_EXTENSION_RE, html)


IMAGE_MATCHERS: Tuple[ImageMatcher, ...] = (
    match_img_src,
    match_og_image,
    match_twitter_image,
    match_wp_featured_image,
    match_img_extension,
)


def find_image(description: Optional[str], content: Optional[str] = None) -> Optional[str]:
    """Return the first image URL found in an entry's HTML, or None.

    The description is searched with every matcher in ``IMAGE_MATCHERS``;
    the content field is only consulted for a plain ``<img src>`` when the
    description yields nothing.
    """
    if description:
        for matcher in IMAGE_MATCHERS:
            image = matcher(description)
            if image:
                return image
    if content:
        return match_img_src(content)
    return None
