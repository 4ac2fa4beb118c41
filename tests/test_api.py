"""Tests for the Flask HTTP API."""

import json
import time
from unittest.mock import patch

import pytest

from soc_feed.api import create_app
from soc_feed.errors import CacheError
from soc_feed.models import FeedSnapshot

from tests.conftest import BASE_TIME, FakeProcessor

REMOTE = {"REMOTE_ADDR": "203.0.113.9"}


@pytest.fixture
def aggregator(make_aggregator):
    return make_aggregator(FakeProcessor())


@pytest.fixture
def app(aggregator):
    app = create_app(aggregator)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


class TestFeeds:
    def test_empty_snapshot(self, client):
        response = client.get("/api/feeds")

        assert response.status_code == 200
        data = response.get_json()
        assert data["lastUpdated"] is None
        assert data["items"] == []
        assert data["feedStatus"] == {}
        assert data["feedTimestamps"] == {}
        assert data["imageFallbacks"] == {"example.com": "https://example.com/fallback.png"}

    def test_image_fallbacks_follow_config_file_edits(self, client, config, tmp_path):
        config.config_path = tmp_path / "config.json"
        config.config_path.write_text(json.dumps({"imageFallbacks": {"a.com": "https://a.com/1.png"}}))
        first = client.get("/api/feeds").get_json()["imageFallbacks"]

        config.config_path.write_text(json.dumps({"imageFallbacks": {"b.com": "https://b.com/2.png"}}))
        second = client.get("/api/feeds").get_json()["imageFallbacks"]

        assert first == {"a.com": "https://a.com/1.png"}
        assert second == {"b.com": "https://b.com/2.png"}

    def test_returns_published_snapshot(self, client, aggregator):
        aggregator.refresh()

        data = client.get("/api/feeds").get_json()

        assert len(data["items"]) == 3
        item = data["items"][0]
        assert set(item) == {
            "id", "title", "link", "description", "fullText", "pubDate",
            "source", "sourceIcon", "image", "author",
        }
        assert data["feedStatus"]["Alpha"] == {"success": True, "itemCount": 1, "error": None}
        assert set(data["feedTimestamps"]) == {"Alpha", "Bravo", "Charlie"}


class TestStatus:
    def test_reports_counts(self, client, aggregator, store):
        aggregator.refresh()
        (store.images_dir / "a.png").write_bytes(b"x" * 10)

        data = client.get("/api/status").get_json()

        assert data["status"] == "running"
        assert data["feeds"] == 3
        assert data["articles"] == 3
        assert data["images"] == 1
        assert data["cacheSize"].endswith("B")
        assert data["lastUpdated"].endswith("Z")
        assert data["feedStatus"]["Bravo"]["success"] is True
        assert data["autoRefresh"] is False
        assert data["version"] == "2.3.0"


class TestRefresh:
    def test_starts_background_cycle(self, client, aggregator):
        response = client.post("/api/refresh")

        assert response.status_code == 202
        assert response.get_json() == {"message": "Refresh started"}
        deadline = time.monotonic() + 5
        while aggregator.snapshot.last_updated is None and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(aggregator.snapshot.items) == 3

    def test_conflict_while_running(self, client, aggregator):
        with patch.object(aggregator, "refresh_async", return_value=False):
            response = client.post("/api/refresh")

        assert response.status_code == 409
        assert response.get_json() == {"error": "Refresh already in progress"}


class TestClearCache:
    def test_clear_then_status(self, client, aggregator, store):
        aggregator.refresh()
        (store.images_dir / "a.png").write_bytes(b"x")

        response = client.delete("/api/cache")

        assert response.status_code == 200
        assert response.get_json() == {"message": "Cache cleared successfully"}
        status = client.get("/api/status").get_json()
        assert status["images"] == 0
        assert status["articles"] == 0
        assert status["lastUpdated"] == "Never"
        assert client.get("/api/feeds").get_json()["items"] == []

    def test_filesystem_failure(self, client, store):
        with patch.object(store, "clear", side_effect=CacheError("Failed to clear cache: denied")):
            response = client.delete("/api/cache")

        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to clear cache: denied"}


class TestImages:
    def test_serves_cached_asset(self, client, store):
        (store.images_dir / "abc.png").write_bytes(b"png-bytes")

        response = client.get("/images/abc.png")

        assert response.status_code == 200
        assert response.data == b"png-bytes"
        response.close()

    def test_missing_asset(self, client):
        assert client.get("/images/missing.png").status_code == 404


class TestAccessControl:
    def test_blocks_unlisted_address(self, client):
        response = client.get("/api/feeds", environ_base=REMOTE)

        assert response.status_code == 403
        assert response.get_json() == {"error": "Access denied"}

    def test_blocks_refresh_from_unlisted_address(self, client, aggregator):
        response = client.post("/api/refresh", environ_base=REMOTE)

        assert response.status_code == 403
        assert aggregator.snapshot.last_updated is None

    def test_forwarded_header_ignored_without_trusted_proxy(self, client, store):
        store.save(FeedSnapshot(last_updated=BASE_TIME))

        response = client.delete(
            "/api/cache", headers={"X-Forwarded-For": "127.0.0.1"}, environ_base=REMOTE
        )

        assert response.status_code == 403
        assert store.snapshot_path.exists()

    def test_forwarded_header_used_behind_trusted_proxy(self, aggregator, config):
        config.trusted_proxies = 1
        client = create_app(aggregator).test_client()

        blocked = client.get("/api/feeds", headers={"X-Forwarded-For": "203.0.113.9"})
        allowed = client.get(
            "/api/feeds", headers={"X-Forwarded-For": "127.0.0.1"}, environ_base={"REMOTE_ADDR": "127.0.0.1"}
        )

        assert blocked.status_code == 403
        assert allowed.status_code == 200

    def test_images_are_not_gated(self, client, store):
        (store.images_dir / "abc.png").write_bytes(b"png-bytes")

        response = client.get("/images/abc.png", environ_base=REMOTE)

        assert response.status_code == 200
        response.close()

    def test_health_is_not_gated(self, client):
        assert client.get("/health", environ_base=REMOTE).get_json() == {"status": "ok"}


class TestRequestLog:
    def test_records_requests(self, client):
        client.get("/api/feeds", headers={"User-Agent": "dashboard/1.0"})

        entries = client.get("/api/requests").get_json()["requests"]

        assert entries[0]["path"] == "/api/requests"
        assert entries[1]["path"] == "/api/feeds"
        assert entries[1]["userAgent"] == "dashboard/1.0"
        assert entries[1]["ip"] == "127.0.0.1"
