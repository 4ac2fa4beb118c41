from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..models import RawEntry


class BaseProvider(ABC):
    """Abstract base class for feed readers."""

    @abstractmethod
    def fetch(self, url: str, limit: int = 5) -> List[RawEntry]:
        """Return at most ``limit`` entries from the feed at ``url``.

        Implementations raise ``FeedError`` when the feed cannot be fetched
        or parsed.
        """
