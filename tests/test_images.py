"""Tests for the image and favicon cache."""

import hashlib
from unittest.mock import Mock

import requests

from soc_feed.images import ImageCache, filename_for_favicon, filename_for_image


def _session(content: bytes = b"\x89PNG image bytes", error: Exception = None) -> Mock:
    session = Mock()
    response = Mock()
    response.content = content
    if error is not None:
        response.raise_for_status.side_effect = error
    session.get.return_value = response
    return session


class TestFilenames:
    def test_image_filename_is_md5_plus_extension(self):
        url = "https://cdn.example.com/img/photo.png?size=large"

        expected = hashlib.md5(url.encode("utf-8")).hexdigest() + ".png"
        assert filename_for_image(url) == expected

    def test_image_default_extension(self):
        assert filename_for_image("https://cdn.example.com/render").endswith(".jpg")

    def test_favicon_filename(self):
        name = filename_for_favicon("https://krebsonsecurity.com/favicon.png", "Krebs on Security")

        assert name == "favicon-krebs-on-security.png"

    def test_favicon_default_extension(self):
        assert filename_for_favicon("https://e.com/icon", "Unit 42") == "favicon-unit-42.ico"


class TestCacheImage:
    def test_downloads_once(self, tmp_path):
        session = _session()
        cache = ImageCache(tmp_path, session=session)
        url = "https://cdn.example.com/a.png"

        first = cache.cache_image(url)
        second = cache.cache_image(url)

        assert first == second == f"/images/{filename_for_image(url)}"
        session.get.assert_called_once_with(url, timeout=10)
        assert (tmp_path / filename_for_image(url)).read_bytes() == b"\x89PNG image bytes"

    def test_http_error_returns_none(self, tmp_path):
        cache = ImageCache(tmp_path, session=_session(error=requests.HTTPError("404")))

        assert cache.cache_image("https://cdn.example.com/missing.png") is None
        assert list(tmp_path.iterdir()) == []

    def test_timeout_returns_none(self, tmp_path):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        cache = ImageCache(tmp_path, session=session)

        assert cache.cache_image("https://cdn.example.com/slow.png") is None

    def test_empty_url(self, tmp_path):
        session = _session()
        cache = ImageCache(tmp_path, session=session)

        assert cache.cache_image("") is None
        session.get.assert_not_called()

    def test_creates_missing_directory(self, tmp_path):
        images_dir = tmp_path / "nested" / "images"
        cache = ImageCache(images_dir, session=_session())

        assert cache.cache_image("https://cdn.example.com/a.gif") is not None
        assert len(list(images_dir.iterdir())) == 1


class TestCacheFavicon:
    def test_existing_favicon_skips_download(self, tmp_path):
        (tmp_path / "favicon-dark-reading.ico").write_bytes(b"icon")
        session = _session()
        cache = ImageCache(tmp_path, session=session)

        result = cache.cache_favicon("https://www.darkreading.com/favicon.ico", "Dark Reading")

        assert result == "/images/favicon-dark-reading.ico"
        session.get.assert_not_called()

    def test_downloads_favicon(self, tmp_path):
        cache = ImageCache(tmp_path, session=_session(content=b"icon"))

        result = cache.cache_favicon("https://www.darkreading.com/favicon.ico", "Dark Reading")

        assert result == "/images/favicon-dark-reading.ico"
        assert (tmp_path / "favicon-dark-reading.ico").read_bytes() == b"icon"
