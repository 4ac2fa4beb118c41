from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class SourceConfig:
    """A configured feed."""

    name: str
    url: str
    icon: str = ""


@dataclass(slots=True)
class RawEntry:
    """Feed entry as read from the feed, before extraction."""

    title: str
    link: str
    description: str
    content: Optional[str]
    published_at: datetime
    image: Optional[str] = None


@dataclass(slots=True)
class ExtractedContent:
    """What the extractor could recover from an article page."""

    full_text: Optional[str] = None
    image: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FeedItem:
    """Processed article as served to the dashboard."""

    id: str
    title: str
    link: str
    description: str
    full_text: str
    pub_date: datetime
    source: str
    source_icon: Optional[str]
    image: Optional[str] = None
    author: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "fullText": self.full_text,
            "pubDate": to_iso(self.pub_date),
            "source": self.source,
            "sourceIcon": self.source_icon,
            "image": self.image,
            "author": self.author,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedItem":
        pub_date = parse_iso(data.get("pubDate"))
        if pub_date is None:
            raise ValueError(f"Invalid pubDate for item {data.get('id')!r}")
        description = data.get("description") or ""
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "No title",
            link=data.get("link") or "#",
            description=description,
            full_text=data.get("fullText") or description,
            pub_date=pub_date,
            source=data.get("source") or "",
            source_icon=data.get("sourceIcon"),
            image=data.get("image"),
            author=data.get("author"),
        )


@dataclass(frozen=True, slots=True)
class SourceStatus:
    """Outcome of the latest cycle for one source."""

    success: bool
    item_count: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "itemCount": self.item_count, "error": self.error}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SourceStatus":
        return cls(
            success=bool(data.get("success")),
            item_count=int(data.get("itemCount") or 0),
            error=data.get("error"),
        )


@dataclass(slots=True)
class ProcessResult:
    """Result of processing one source during a cycle."""

    source_name: str
    success: bool
    items: List[FeedItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class FeedSnapshot:
    """Complete, immutable result of a cycle.

    A snapshot is only ever replaced as a whole, so readers holding a
    reference always see items and statuses from the same cycle.
    """

    last_updated: Optional[datetime] = None
    items: Tuple[FeedItem, ...] = ()
    feed_status: Mapping[str, SourceStatus] = field(default_factory=dict)
    feed_timestamps: Mapping[str, datetime] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "FeedSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.last_updated is None and not self.items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastUpdated": to_iso(self.last_updated),
            "items": [item.to_dict() for item in self.items],
            "feedStatus": {name: status.to_dict() for name, status in self.feed_status.items()},
            "feedTimestamps": {name: to_iso(ts) for name, ts in self.feed_timestamps.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedSnapshot":
        if not isinstance(data, Mapping):
            raise ValueError("Snapshot document must be a JSON object")
        timestamps: Dict[str, datetime] = {}
        for name, value in (data.get("feedTimestamps") or {}).items():
            parsed = parse_iso(value)
            if parsed is not None:
                timestamps[name] = parsed
        return cls(
            last_updated=parse_iso(data.get("lastUpdated")),
            items=tuple(FeedItem.from_dict(item) for item in data.get("items") or []),
            feed_status={
                name: SourceStatus.from_dict(status)
                for name, status in (data.get("feedStatus") or {}).items()
            },
            feed_timestamps=timestamps,
        )


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Aggregate numbers about the cache, for status displays."""

    source_count: int
    item_count: int
    asset_count: int
    total_bytes: int
    last_updated: Optional[datetime]
