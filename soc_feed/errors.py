from __future__ import annotations


class SocFeedError(Exception):
    """Base class for feed backend errors."""


class FeedError(SocFeedError):
    """Raised when a feed cannot be fetched or parsed."""


class CacheError(SocFeedError):
    """Raised when the on-disk cache cannot be read, written or cleared."""
