"""SOC feed backend package initializer."""

from .aggregator import FeedAggregator, SnapshotHolder, build_aggregator
from .config import FeedConfig

__all__ = ["FeedAggregator", "FeedConfig", "SnapshotHolder", "build_aggregator"]
