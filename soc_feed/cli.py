"""Operator console for the feed backend."""

from __future__ import annotations

import argparse
import logging
import threading
from typing import Callable, Iterable, List, Optional

from dotenv import load_dotenv

from .access import RequestLog, RequestLogEntry
from .aggregator import FeedAggregator, build_aggregator
from .api import create_app
from .config import FeedConfig
from .errors import CacheError
from .models import CacheStats, FeedSnapshot
from .store import format_bytes

logger = logging.getLogger(__name__)

RULE = "=" * 48
STATUS_NAME_WIDTH = 25
LOG_DISPLAY_LIMIT = 20


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(message)s")


def render_menu(stats: CacheStats, version: str, port: int, auto_refresh: bool) -> str:
    last_updated = stats.last_updated.astimezone().strftime("%Y-%m-%d %H:%M:%S") if stats.last_updated else "Never"
    lines = [
        "SOC RSS Feed Backend - Control Center",
        f"Version: {version}",
        RULE,
        f"Status: Running on http://localhost:{port}",
        RULE,
        f"Configured Feeds:    {stats.source_count:<5} feeds",
        f"Cached Articles:     {stats.item_count:<5} articles",
        f"Cached Images:       {stats.asset_count:<5} images",
        f"Cache Size:          {format_bytes(stats.total_bytes):<12}",
        RULE,
        f"Last Updated:        {last_updated}",
        RULE,
        "Commands:",
        "  [R] Refresh Feeds Now",
        "  [S] Show Feed Status",
        "  [C] Clear Cache",
        f"  [A] Toggle Auto-refresh (currently: {'ON' if auto_refresh else 'OFF'})",
        "  [L] View Request Log",
        "  [Q] Quit",
    ]
    return "\n".join(lines)


def render_status(source_names: Iterable[str], snapshot: FeedSnapshot) -> str:
    lines = ["Feed Status", RULE]
    for name in source_names:
        label = name.ljust(STATUS_NAME_WIDTH)[:STATUS_NAME_WIDTH]
        status = snapshot.feed_status.get(name)
        if status is None:
            lines.append(f"[ ] {label} Not fetched yet")
            continue
        timestamp = snapshot.feed_timestamps.get(name)
        when = timestamp.astimezone().strftime("%H:%M:%S") if timestamp else "Never"
        mark = "[+]" if status.success else "[x]"
        lines.append(f"{mark} {label} {status.item_count:>2} items  {when}")
        if status.error:
            lines.append(f"   Error: {status.error[:45]}")
    lines.append(RULE)
    return "\n".join(lines)


def render_request_log(entries: List[RequestLogEntry]) -> str:
    lines = [f"Request Log (Last {len(entries)} entries)", RULE]
    if not entries:
        lines.append("No requests logged yet.")
    else:
        lines.append("Time      IP Address          Method  Path")
        lines.append("-" * 48)
        for entry in entries[:LOG_DISPLAY_LIMIT]:
            when = entry.timestamp.astimezone().strftime("%H:%M:%S")
            lines.append(f"{when}  {entry.ip.ljust(18)[:18]}  {entry.method.ljust(6)[:6]}  {entry.path[:30]}")
        if len(entries) > LOG_DISPLAY_LIMIT:
            lines.append(f"... and {len(entries) - LOG_DISPLAY_LIMIT} more entries")
    lines.append(RULE)
    return "\n".join(lines)


class CommandLoop:
    """Maps single-letter console commands onto aggregator operations."""

    def __init__(
        self,
        aggregator: FeedAggregator,
        request_log: Optional[RequestLog] = None,
        write: Callable[[str], None] = print,
    ) -> None:
        self.aggregator = aggregator
        self.request_log = request_log or RequestLog()
        self.write = write

    def menu(self) -> str:
        config = self.aggregator.config
        return render_menu(
            self.aggregator.stats(), config.version, config.port, self.aggregator.auto_refresh_enabled
        )

    def handle(self, command: str) -> bool:
        """Run one command; returns False when the console should exit."""
        command = command.strip().lower()
        if command == "r":
            if self.aggregator.is_running:
                self.write("Refresh already in progress")
            else:
                self.write("Fetching feeds...")
                snapshot = self.aggregator.refresh()
                self.write(f"Fetched {len(snapshot.items)} articles from {len(self.aggregator.sources)} feeds")
        elif command == "s":
            names = [source.name for source in self.aggregator.sources]
            self.write(render_status(names, self.aggregator.snapshot))
        elif command == "c":
            try:
                self.aggregator.clear_cache()
            except CacheError as exc:
                self.write(f"Error clearing cache: {exc}")
            else:
                self.write("Cache cleared successfully")
        elif command == "a":
            enabled = self.aggregator.toggle_auto_refresh()
            self.write(f"Auto-refresh {'ON' if enabled else 'OFF'}")
        elif command == "l":
            self.write(render_request_log(self.request_log.entries()))
        elif command == "q":
            self.write("Shutting down...")
            return False
        elif command:
            self.write(f"Unknown command: {command}")
        return True

    def run(self, read: Callable[[], str] = input) -> None:
        self.write(self.menu())
        while True:
            try:
                line = read()
            except (EOFError, KeyboardInterrupt):
                break
            if not self.handle(line):
                break
            if line.strip().lower() in {"r", "c", "a"}:
                self.write(self.menu())


def _serve(aggregator: FeedAggregator, interactive: bool) -> None:
    request_log = RequestLog()
    app = create_app(aggregator, request_log=request_log)
    aggregator.start()
    port = aggregator.config.port
    if not interactive:
        app.run(host="0.0.0.0", port=port)
        return
    server = threading.Thread(
        target=app.run,
        kwargs={"host": "0.0.0.0", "port": port, "use_reloader": False},
        name="soc-feed-http",
        daemon=True,
    )
    server.start()
    logger.info("Backend server started on http://localhost:%d", port)
    CommandLoop(aggregator, request_log).run()
    aggregator.stop_auto_refresh()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="soc-feed", description="SOC RSS feed backend")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command")
    serve = subparsers.add_parser("serve", help="Run the HTTP API and console (default).")
    serve.add_argument("--no-interactive", action="store_true", help="Run the API without the console.")
    subparsers.add_parser("refresh", help="Run one refresh cycle and exit.")
    subparsers.add_parser("status", help="Print cached feed status and exit.")
    subparsers.add_parser("clear", help="Delete cached images and articles.")
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    aggregator = build_aggregator(FeedConfig.from_env())
    console = CommandLoop(aggregator)

    if args.command == "refresh":
        aggregator.holder.replace(aggregator.store.load())
        console.handle("r")
    elif args.command == "status":
        aggregator.holder.replace(aggregator.store.load())
        print(console.menu())
        console.handle("s")
    elif args.command == "clear":
        console.handle("c")
    else:
        _serve(aggregator, interactive=not getattr(args, "no_interactive", False))


if __name__ == "__main__":
    main()
