from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import tempfile

from .errors import CacheError
from .models import CacheStats, FeedSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "feeds.json"
IMAGES_DIRNAME = "images"


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def directory_size(path: Path) -> int:
    """Sum file sizes below ``path``; unreadable entries count as zero."""
    total = 0
    try:
        entries = list(os.scandir(path))
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return 0
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                total += directory_size(Path(entry.path))
            else:
                total += entry.stat(follow_symlinks=False).st_size
        except OSError:
            continue
    return total


class CacheStore:
    """Mirrors the published snapshot to disk and owns the asset directory."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)
        self.snapshot_path = self.cache_dir / SNAPSHOT_FILENAME
        self.images_dir = self.cache_dir / IMAGES_DIRNAME
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> FeedSnapshot:
        if not self.snapshot_path.exists():
            logger.info("No cache file found at %s", self.snapshot_path)
            return FeedSnapshot.empty()
        try:
            with self.snapshot_path.open("r", encoding="utf-8") as handle:
                snapshot = FeedSnapshot.from_dict(json.load(handle))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Failed to load cache %s: %s", self.snapshot_path, exc)
            return FeedSnapshot.empty()
        logger.info("Loaded %d cached articles", len(snapshot.items))
        return snapshot

    def save(self, snapshot: FeedSnapshot) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".feeds-", suffix=".json")
        except OSError as exc:
            raise CacheError(f"Failed to save cache: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot.to_dict(), handle, indent=2)
            os.replace(tmp_name, self.snapshot_path)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheError(f"Failed to save cache: {exc}") from exc

    def clear(self) -> None:
        try:
            if self.images_dir.exists():
                for path in self.images_dir.iterdir():
                    if path.is_file() or path.is_symlink():
                        path.unlink()
            if self.snapshot_path.exists():
                self.snapshot_path.unlink()
        except OSError as exc:
            raise CacheError(f"Failed to clear cache: {exc}") from exc
        logger.info("Cache cleared")

    def asset_count(self) -> int:
        try:
            return sum(
                1 for path in self.images_dir.iterdir()
                if path.is_file() and not path.name.startswith(".")
            )
        except OSError:
            return 0

    def stats(self, snapshot: FeedSnapshot, source_count: int) -> CacheStats:
        return CacheStats(
            source_count=source_count,
            item_count=len(snapshot.items),
            asset_count=self.asset_count(),
            total_bytes=directory_size(self.cache_dir),
            last_updated=snapshot.last_updated,
        )

