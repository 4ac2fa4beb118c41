from .base import BaseProvider
from .rss_provider import RSSProvider

__all__ = ["BaseProvider", "RSSProvider"]
