"""Shared fixtures for the feed backend tests."""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import pytest

from soc_feed.aggregator import FeedAggregator, SnapshotHolder
from soc_feed.config import FeedConfig
from soc_feed.models import FeedItem, ProcessResult, SourceConfig
from soc_feed.store import CacheStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_item(source: str, pub_date: datetime = BASE_TIME, index: int = 0, cycle: str = "1") -> FeedItem:
    return FeedItem(
        id=f"{source}-{cycle}-{index}",
        title=f"{source} article {index}",
        link=f"https://{source.lower()}.example.com/{index}",
        description="Short description",
        full_text="Full text",
        pub_date=pub_date,
        source=source,
        source_icon=f"/images/favicon-{source.lower()}.ico",
    )


class FakeProcessor:
    """Processor double returning canned results, optionally blocking."""

    def __init__(self, results: Optional[Dict[str, object]] = None, gate: Optional[threading.Event] = None):
        self.results = results or {}
        self.gate = gate
        self.started = threading.Event()
        self.calls = []

    def process(self, source: SourceConfig) -> ProcessResult:
        self.calls.append(source.name)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        outcome = self.results.get(source.name)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ProcessResult(source_name=source.name, success=True, items=[make_item(source.name)])
        return outcome


@pytest.fixture
def sources():
    return [
        SourceConfig(name="Alpha", url="https://alpha.example.com/feed", icon="https://alpha.example.com/favicon.ico"),
        SourceConfig(name="Bravo", url="https://bravo.example.com/feed", icon="https://bravo.example.com/favicon.ico"),
        SourceConfig(name="Charlie", url="https://charlie.example.com/feed", icon=""),
    ]


@pytest.fixture
def config(tmp_path: Path, sources):
    return FeedConfig(
        sources=sources,
        cache_dir=tmp_path / "cache",
        allowed_ips=["127.0.0.1", "::1", "localhost"],
        auto_refresh=False,
        image_fallbacks={"example.com": "https://example.com/fallback.png"},
    )


@pytest.fixture
def store(config):
    return CacheStore(config.cache_dir)


@pytest.fixture
def make_aggregator(config, store):
    def _make(processor=None):
        return FeedAggregator(config, processor or FakeProcessor(), store, SnapshotHolder())

    return _make
