from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
import re
import tempfile
from typing import Optional
from urllib.parse import urlparse

import requests

from .providers.rss_provider import USER_AGENT

logger = logging.getLogger(__name__)

IMAGE_TIMEOUT = 10
IMAGES_URL_PREFIX = "/images/"

_UNSAFE_NAME_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def _url_extension(url: str, default: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        return default
    return os.path.splitext(path)[1] or default


def filename_for_image(url: str) -> str:
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()
    return digest + _url_extension(url, ".jpg")


def filename_for_favicon(url: str, source_name: str) -> str:
    safe_name = _UNSAFE_NAME_RE.sub("-", source_name).lower()
    return f"favicon-{safe_name}{_url_extension(url, '.ico')}"


class ImageCache:
    """Downloads images and favicons once and serves them from disk afterwards."""

    def __init__(
        self,
        images_dir: Path,
        session: Optional[requests.Session] = None,
        timeout: float = IMAGE_TIMEOUT,
    ) -> None:
        self.images_dir = Path(images_dir)
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})
        self._timeout = timeout

    def cache_image(self, url: str) -> Optional[str]:
        if not url:
            return None
        return self._cache(url, filename_for_image(url))

    def cache_favicon(self, url: str, source_name: str) -> Optional[str]:
        if not url:
            return None
        return self._cache(url, filename_for_favicon(url, source_name))

    def _cache(self, url: str, filename: str) -> Optional[str]:
        path = self.images_dir / filename
        if path.exists():
            return IMAGES_URL_PREFIX + filename
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            self._write(path, response.content)
        except (requests.RequestException, OSError) as exc:
            logger.debug("Could not cache %s: %s", url, exc)
            return None
        return IMAGES_URL_PREFIX + filename

    def _write(self, path: Path, data: bytes) -> None:
        self.images_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.images_dir, prefix=".", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
