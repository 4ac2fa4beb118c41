from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import List, Mapping, Optional

import feedparser
import requests

from ..errors import FeedError
from ..html import find_image
from ..models import RawEntry
from .base import BaseProvider

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; SOCFeedBot/1.0)"
FEED_ACCEPT = "application/rss+xml, application/xml, text/xml, */*"
FEED_TIMEOUT = 15


class RSSProvider(BaseProvider):
    """Reads RSS and Atom feeds."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = FEED_TIMEOUT) -> None:
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT, "Accept": FEED_ACCEPT})
        self._timeout = timeout

    def fetch(self, url: str, limit: int = 5) -> List[RawEntry]:
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FeedError(f"Failed to fetch feed {url}: {exc}") from exc

        feed = feedparser.parse(response.content)
        entries = feed.entries or []
        if not entries and feed.get("bozo"):
            raise FeedError(f"Failed to parse feed {url}: {feed.get('bozo_exception')}")

        now = datetime.now(timezone.utc)
        results = [_parse_entry(entry, now) for entry in entries[:limit]]
        logger.debug("Read %d of %d entries from %s", len(results), len(entries), url)
        return results


def _parse_entry(entry: Mapping[str, object], now: datetime) -> RawEntry:
    description = entry.get("summary") or entry.get("description") or ""
    if not isinstance(description, str):
        description = ""
    content = _get_content(entry)
    return RawEntry(
        title=entry.get("title") or "No title",
        link=entry.get("link") or "#",
        description=description,
        content=content,
        published_at=_parse_published(entry) or now,
        image=find_image(description, content),
    )


def _get_content(entry: Mapping[str, object]) -> Optional[str]:
    contents = entry.get("content")
    if not contents:
        return None
    parts: List[str] = []
    for part in contents:
        if isinstance(part, Mapping):
            value = part.get("value")
            if isinstance(value, str):
                parts.append(value)
    return "\n\n".join(parts) if parts else None


def _parse_published(entry: Mapping[str, object]) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return None
