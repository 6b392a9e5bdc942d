"""Log the top of book for one pair until interrupted.

    PAIR=HNS/BTC python -m nb_feed.runner
"""

from __future__ import annotations

import asyncio
import logging
import os

from nb_core.errors import FeedError

from .feed import DepthFeed
from .logging_config import setup_logging
from .settings import FeedSettings

log = logging.getLogger("runner")


async def watch(feed: DepthFeed, pair: str) -> None:
    sub = await feed.subscribe(pair)
    async with sub:
        async for book in sub:
            log.info(
                "lastEventId=%s ask 1: %s, bid 1: %s",
                book.last_event_id,
                book.best_ask,
                book.best_bid,
            )
    if sub.error is not None:
        log.error("Subscription ended: %s (stats=%s)", sub.error, sub.stats())


def main() -> None:
    settings = FeedSettings.from_env()
    pair = os.getenv("PAIR", "HNS/BTC")
    setup_logging(
        level=settings.log_level,
        component="feed",
        subdir=pair.replace("/", ""),
        base_dir=os.getenv("LOG_DIR") or None,
    )
    try:
        feed = DepthFeed.from_settings(settings)
        asyncio.run(watch(feed, pair))
    except FeedError as exc:
        raise SystemExit(f"failed to subscribe order book: {exc}")
    except KeyboardInterrupt:
        log.info("Interrupted")


if __name__ == "__main__":
    main()
