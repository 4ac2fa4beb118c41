from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from .access import AccessGate, RequestLog
from .aggregator import FeedAggregator
from .errors import CacheError
from .models import to_iso
from .store import format_bytes

logger = logging.getLogger(__name__)

_UNGATED_PREFIXES = ("/images/", "/health")
_UNGATED_SUFFIXES = (".html", ".css", ".js")


def _is_gated(path: str) -> bool:
    return not (path.startswith(_UNGATED_PREFIXES) or path.endswith(_UNGATED_SUFFIXES))


def create_app(
    aggregator: FeedAggregator,
    gate: Optional[AccessGate] = None,
    request_log: Optional[RequestLog] = None,
) -> Flask:
    config = aggregator.config
    gate = gate or AccessGate(config.allowed_ips)
    request_log = request_log if request_log is not None else RequestLog()

    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    if config.trusted_proxies:
        # Forwarding headers are only honoured for the configured number of proxy hops.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=config.trusted_proxies)

    @app.before_request
    def check_access():
        ip = request.remote_addr or "unknown"
        if _is_gated(request.path) and not gate.is_allowed(ip):
            logger.warning("Blocked request from %s to %s", ip, request.path)
            return jsonify({"error": "Access denied"}), 403
        request_log.record(ip, request.method, request.path, request.headers.get("User-Agent"))
        logger.debug("%s %s from %s", request.method, request.path, ip)
        return None

    @app.get("/health")
    def healthcheck():
        return {"status": "ok"}

    @app.get("/api/feeds")
    def get_feeds():
        payload = aggregator.snapshot.to_dict()
        payload["imageFallbacks"] = config.current_image_fallbacks()
        return jsonify(payload)

    @app.get("/api/status")
    def get_status():
        snapshot = aggregator.snapshot
        stats = aggregator.store.stats(snapshot, len(aggregator.sources))
        return jsonify(
            {
                "status": "running",
                "version": config.version,
                "feeds": stats.source_count,
                "articles": stats.item_count,
                "images": stats.asset_count,
                "cacheSize": format_bytes(stats.total_bytes),
                "lastUpdated": to_iso(stats.last_updated) or "Never",
                "feedStatus": {name: status.to_dict() for name, status in snapshot.feed_status.items()},
                "autoRefresh": aggregator.auto_refresh_enabled,
                "refreshing": aggregator.is_running,
            }
        )

    @app.post("/api/refresh")
    def refresh_feeds():
        if not aggregator.refresh_async():
            return jsonify({"error": "Refresh already in progress"}), 409
        return jsonify({"message": "Refresh started"}), 202

    @app.delete("/api/cache")
    def clear_cache():
        try:
            aggregator.clear_cache()
        except CacheError as exc:
            app.logger.exception("Failed to clear cache")
            return jsonify({"error": str(exc)}), 500
        return jsonify({"message": "Cache cleared successfully"})

    @app.get("/api/requests")
    def get_requests():
        return jsonify({"requests": [entry.to_dict() for entry in request_log.entries()]})

    @app.get("/images/<path:filename>")
    def get_image(filename: str):
        return send_from_directory(aggregator.store.images_dir.resolve(), filename)

    return app
