from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import List, Optional

from .extractor import ContentExtractor
from .html import DESCRIPTION_LIMIT, resolve_url, strip_html, truncate
from .images import ImageCache
from .models import FeedItem, ProcessResult, RawEntry, SourceConfig
from .providers.base import BaseProvider

logger = logging.getLogger(__name__)


class FeedProcessor:
    """Turns one configured source into display-ready feed items."""

    def __init__(
        self,
        provider: BaseProvider,
        extractor: ContentExtractor,
        image_cache: ImageCache,
        max_items: int = 5,
    ) -> None:
        self.provider = provider
        self.extractor = extractor
        self.image_cache = image_cache
        self.max_items = max_items

    def process(self, source: SourceConfig) -> ProcessResult:
        try:
            entries = self.provider.fetch(source.url, self.max_items)
        except Exception as exc:
            logger.warning("Feed %s failed: %s", source.name, exc)
            return ProcessResult(source_name=source.name, success=False, error=str(exc))

        source_icon = self.image_cache.cache_favicon(source.icon, source.name) or source.icon
        items: List[FeedItem] = []
        for entry in entries[: self.max_items]:
            try:
                items.append(self._build_item(source, source_icon, entry, len(items)))
            except Exception as exc:
                logger.warning("Dropping item %r from %s: %s", entry.link, source.name, exc)
        logger.info("Processed %s: %d items", source.name, len(items))
        return ProcessResult(source_name=source.name, success=True, items=items)

    def _build_item(
        self, source: SourceConfig, source_icon: Optional[str], entry: RawEntry, position: int
    ) -> FeedItem:
        article = self.extractor.extract(entry.link)

        image = article.image or entry.image
        cached_image = None
        if image:
            image = resolve_url(image, entry.link)
            cached_image = self.image_cache.cache_image(image)

        stripped = strip_html(entry.description)
        built_at = int(datetime.now(timezone.utc).timestamp() * 1000)
        return FeedItem(
            id=f"{source.name}-{built_at}-{position}",
            title=entry.title,
            link=entry.link,
            description=truncate(stripped, DESCRIPTION_LIMIT, marker=""),
            full_text=article.full_text or stripped,
            pub_date=entry.published_at,
            source=source.name,
            source_icon=source_icon,
            image=cached_image or image,
            author=article.author,
        )
