from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
import logging
import threading
from typing import Dict, Iterable, List, Optional

from .config import FeedConfig
from .errors import CacheError
from .extractor import ContentExtractor
from .images import ImageCache
from .models import CacheStats, FeedItem, FeedSnapshot, ProcessResult, SourceConfig, SourceStatus
from .processor import FeedProcessor
from .providers.rss_provider import RSSProvider
from .store import CacheStore

logger = logging.getLogger(__name__)


class SnapshotHolder:
    """Holds the published snapshot.

    Readers call ``get()`` without locking; the reference swap in
    ``replace()`` is atomic, so a reader sees either the old or the new
    snapshot in full.
    """

    def __init__(self, snapshot: Optional[FeedSnapshot] = None) -> None:
        self._snapshot = snapshot or FeedSnapshot.empty()
        self._lock = threading.Lock()

    def get(self) -> FeedSnapshot:
        return self._snapshot

    def replace(self, snapshot: FeedSnapshot) -> FeedSnapshot:
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        return previous


def merge_results(
    results: Iterable[ProcessResult],
    now: datetime,
    previous: Optional[FeedSnapshot] = None,
) -> FeedSnapshot:
    """Build the next snapshot from one cycle's per-source results.

    When every source failed and ``previous`` still has items, those items
    are carried over so the dashboard keeps its last good content.
    """
    results = list(results)
    items: List[FeedItem] = []
    feed_status: Dict[str, SourceStatus] = {}
    feed_timestamps: Dict[str, datetime] = {}
    for result in results:
        feed_status[result.source_name] = SourceStatus(
            success=result.success,
            item_count=result.item_count,
            error=result.error,
        )
        feed_timestamps[result.source_name] = now
        items.extend(result.items)

    all_failed = bool(results) and not any(result.success for result in results)
    if all_failed and previous is not None and previous.items:
        logger.warning("Every feed failed; keeping %d previously cached items", len(previous.items))
        ordered = tuple(previous.items)
    else:
        # sorted() is stable with reverse=True, so equal dates keep source order.
        ordered = tuple(sorted(items, key=lambda item: item.pub_date, reverse=True))

    return FeedSnapshot(
        last_updated=now,
        items=ordered,
        feed_status=feed_status,
        feed_timestamps=feed_timestamps,
    )


class FeedAggregator:
    """Runs refresh cycles over every configured source and publishes the result."""

    def __init__(
        self,
        config: FeedConfig,
        processor: FeedProcessor,
        store: CacheStore,
        holder: Optional[SnapshotHolder] = None,
    ) -> None:
        self.config = config
        self.processor = processor
        self.store = store
        self.holder = holder or SnapshotHolder()
        self._cycle_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer_stop: Optional[threading.Event] = None
        self._timer_thread: Optional[threading.Thread] = None

    @property
    def sources(self) -> List[SourceConfig]:
        return self.config.sources

    @property
    def snapshot(self) -> FeedSnapshot:
        return self.holder.get()

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def refresh(self) -> FeedSnapshot:
        """Run one cycle and return the published snapshot.

        If a cycle is already running this returns the current snapshot
        without starting another one.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Refresh already in progress")
            return self.holder.get()
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def refresh_async(self) -> bool:
        """Start a cycle in the background; False if one is already running."""
        if not self._cycle_lock.acquire(blocking=False):
            return False
        thread = threading.Thread(target=self._run_and_release, name="soc-feed-refresh", daemon=True)
        try:
            thread.start()
        except RuntimeError:
            self._cycle_lock.release()
            raise
        return True

    def _run_and_release(self) -> None:
        try:
            self._run_cycle()
        except Exception:
            logger.exception("Background refresh failed")
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> FeedSnapshot:
        sources = list(self.sources)
        logger.info("Fetching %d feeds", len(sources))
        with ThreadPoolExecutor(max_workers=max(len(sources), 1), thread_name_prefix="soc-feed") as executor:
            futures = [executor.submit(self.processor.process, source) for source in sources]
            results = [_collect(source, future) for source, future in zip(sources, futures)]

        snapshot = merge_results(results, datetime.now(timezone.utc), previous=self.holder.get())
        self.holder.replace(snapshot)
        try:
            self.store.save(snapshot)
        except CacheError as exc:
            logger.error("%s", exc)
        failed = sum(1 for result in results if not result.success)
        logger.info(
            "Fetched %d articles from %d feeds (%d failed)", len(snapshot.items), len(sources), failed
        )
        return snapshot

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        snapshot = self.holder.get()
        if snapshot.last_updated is None or not snapshot.items:
            return True
        now = now or datetime.now(timezone.utc)
        return now - snapshot.last_updated > timedelta(seconds=self.config.refresh_interval)

    def start(self) -> None:
        """Load the persisted snapshot, refresh it if stale and start the timer."""
        self.holder.replace(self.store.load())
        if self.needs_refresh():
            logger.info("Cache is empty or stale, refreshing")
            self.refresh()
        if self.config.auto_refresh:
            self.start_auto_refresh()

    def clear_cache(self) -> None:
        self.store.clear()
        self.holder.replace(FeedSnapshot.empty())

    def stats(self) -> CacheStats:
        return self.store.stats(self.holder.get(), len(self.sources))

    @property
    def auto_refresh_enabled(self) -> bool:
        return self._timer_thread is not None and self._timer_thread.is_alive()

    def start_auto_refresh(self) -> None:
        with self._timer_lock:
            if self.auto_refresh_enabled:
                return
            stop = threading.Event()
            thread = threading.Thread(
                target=self._auto_refresh_loop, args=(stop,), name="soc-feed-timer", daemon=True
            )
            self._timer_stop = stop
            self._timer_thread = thread
            thread.start()
        logger.info("Auto-refresh every %d seconds", self.config.refresh_interval)

    def stop_auto_refresh(self) -> None:
        with self._timer_lock:
            if self._timer_stop is not None:
                self._timer_stop.set()
            thread = self._timer_thread
            self._timer_stop = None
            self._timer_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1)
        logger.info("Auto-refresh stopped")

    def toggle_auto_refresh(self) -> bool:
        if self.auto_refresh_enabled:
            self.stop_auto_refresh()
        else:
            self.start_auto_refresh()
        return self.auto_refresh_enabled

    def _auto_refresh_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.config.refresh_interval):
            try:
                self.refresh()
            except Exception:
                logger.exception("Scheduled refresh failed")


def _collect(source: SourceConfig, future: Future) -> ProcessResult:
    try:
        return future.result()
    except Exception as exc:
        logger.warning("Feed %s failed: %s", source.name, exc)
        return ProcessResult(source_name=source.name, success=False, error=str(exc))


def build_aggregator(config: FeedConfig) -> FeedAggregator:
    """Wire the default reader, extractor and image cache for ``config``."""
    store = CacheStore(config.cache_dir)
    processor = FeedProcessor(
        provider=RSSProvider(),
        extractor=ContentExtractor(),
        image_cache=ImageCache(store.images_dir),
        max_items=config.max_items_per_feed,
    )
    return FeedAggregator(config, processor, store)
