from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .models import SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "2.3.0"
DEFAULT_PORT = 3003
DEFAULT_REFRESH_INTERVAL = 10 * 60
DEFAULT_MAX_ITEMS = 5
DEFAULT_ALLOWED_IPS = ["127.0.0.1", "::1", "localhost"]

DEFAULT_SOURCES: List[SourceConfig] = [
    SourceConfig(
        name="ACSC Advisories",
        url="https://www.cyber.gov.au/rss/advisories",
        icon="https://www.cyber.gov.au/themes/custom/cyber/favicon.ico",
    ),
    SourceConfig(
        name="ACSC Alerts",
        url="https://www.cyber.gov.au/rss/alerts",
        icon="https://www.cyber.gov.au/themes/custom/cyber/favicon.ico",
    ),
    SourceConfig(
        name="Unit 42 Threat Research",
        url="https://unit42.paloaltonetworks.com/feed/",
        icon="https://unit42.paloaltonetworks.com/wp-content/uploads/2019/11/cropped-unit42-favicon-32x32.png",
    ),
    SourceConfig(
        name="The Hacker News",
        url="https://feeds.feedburner.com/TheHackersNews",
        icon="https://thehackernews.com/images/favicon.ico",
    ),
    SourceConfig(
        name="Krebs on Security",
        url="https://krebsonsecurity.com/feed/",
        icon="https://krebsonsecurity.com/favicon.ico",
    ),
    SourceConfig(
        name="Bleeping Computer",
        url="https://www.bleepingcomputer.com/feed/",
        icon="https://www.bleepingcomputer.com/favicon.ico",
    ),
    SourceConfig(
        name="Dark Reading",
        url="https://www.darkreading.com/rss_simple.asp",
        icon="https://www.darkreading.com/favicon.ico",
    ),
]


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_int(name: str, value: Optional[str], default: int, minimum: int = 1) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer if set") from None
    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    return parsed


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read the optional JSON config file; a missing or broken file gives ``{}``."""
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Could not load %s, using defaults: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level must be an object", path)
        return {}
    return data


def _parse_sources(raw: Any) -> List[SourceConfig]:
    if not raw:
        return list(DEFAULT_SOURCES)
    sources: List[SourceConfig] = []
    for item in raw:
        if not isinstance(item, Mapping) or not item.get("name") or not item.get("url"):
            raise ValueError(f"Feed entries need a name and url: {item!r}")
        sources.append(SourceConfig(name=item["name"], url=item["url"], icon=item.get("icon") or ""))
    return sources


@dataclass(slots=True)
class FeedConfig:
    """Runtime configuration for the feed backend."""

    sources: List[SourceConfig] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    cache_dir: Path = Path("cache")
    port: int = DEFAULT_PORT
    allowed_ips: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_IPS))
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    max_items_per_feed: int = DEFAULT_MAX_ITEMS
    auto_refresh: bool = True
    image_fallbacks: Dict[str, str] = field(default_factory=dict)
    version: str = DEFAULT_VERSION
    trusted_proxies: int = 0
    config_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "FeedConfig":
        config_path = Path(os.getenv("SOC_FEED_CONFIG", "config.json"))
        file_data = load_config_file(config_path)
        max_items = file_data.get("maxItemsPerFeed", DEFAULT_MAX_ITEMS)
        if not isinstance(max_items, int) or max_items <= 0:
            raise ValueError("maxItemsPerFeed must be a positive integer")

        return cls(
            sources=_parse_sources(file_data.get("feeds")),
            cache_dir=Path(os.getenv("SOC_FEED_CACHE_DIR", "cache")),
            port=_parse_int("PORT", os.getenv("PORT"), DEFAULT_PORT),
            allowed_ips=_split_csv(os.getenv("ALLOWED_IPS")) or list(DEFAULT_ALLOWED_IPS),
            refresh_interval=_parse_int(
                "SOC_FEED_REFRESH_INTERVAL", os.getenv("SOC_FEED_REFRESH_INTERVAL"), DEFAULT_REFRESH_INTERVAL
            ),
            max_items_per_feed=_parse_int("SOC_FEED_MAX_ITEMS", os.getenv("SOC_FEED_MAX_ITEMS"), max_items),
            auto_refresh=_parse_bool(os.getenv("SOC_FEED_AUTO_REFRESH"), True),
            image_fallbacks=dict(file_data.get("imageFallbacks") or {}),
            version=str(file_data.get("version") or DEFAULT_VERSION),
            trusted_proxies=_parse_int(
                "SOC_FEED_TRUSTED_PROXIES", os.getenv("SOC_FEED_TRUSTED_PROXIES"), 0, minimum=0
            ),
            config_path=config_path,
        )

    def current_image_fallbacks(self) -> Dict[str, str]:
        """Re-read ``imageFallbacks`` so edits to the config file apply without a restart."""
        if self.config_path is None or not self.config_path.exists():
            return dict(self.image_fallbacks)
        return dict(load_config_file(self.config_path).get("imageFallbacks") or {})
