from __future__ import annotations

import logging

from dotenv import load_dotenv

from soc_feed import FeedConfig, build_aggregator
from soc_feed.api import create_app

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Served by `flask run` or a WSGI server: load the cache, refresh it if stale
# and start the timer before the first request.
_aggregator = build_aggregator(FeedConfig.from_env())
_aggregator.start()
app = create_app(_aggregator)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=_aggregator.config.port)
