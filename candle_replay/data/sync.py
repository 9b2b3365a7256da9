"""
Candle Sync
===========

Brings the local candle store up to date with upstream history.

Usage:
    python -m candle_replay.data.sync IMOEXF 5min --session-id <SESSION_ID>
    python -m candle_replay.data.sync ALL --session-id <SESSION_ID>

The session id falls back to SESSION_ID from the environment / .env.
"""

import argparse
import asyncio
import sys
from typing import Optional

from loguru import logger

from candle_replay.config import LOG_FORMAT, settings
from candle_replay.data.fetcher import IngestionPipeline
from candle_replay.data.store import CandleStore
from candle_replay.database.connection import async_session_factory, close_db, init_db
from candle_replay.errors import CandleReplayError


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync historical candles into the local store")
    parser.add_argument("ticker", help="Ticker to sync, or ALL for every ticker and interval")
    parser.add_argument("interval", nargs="?", help="Interval (required unless ticker is ALL)")
    parser.add_argument("--session-id", default=None, help="Upstream session credential")
    args = parser.parse_args(argv)
    if args.ticker != "ALL" and not args.interval:
        parser.error("interval is required for a single ticker")
    return args


async def run(args: argparse.Namespace) -> int:
    await init_db()
    pipeline = IngestionPipeline(
        CandleStore(async_session_factory),
        session_id=args.session_id or settings.session_id,
    )
    try:
        if args.ticker == "ALL":
            await pipeline.load_all_candles()
        else:
            await pipeline.load_all_candles_for(args.ticker, args.interval)
    except CandleReplayError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        await pipeline.close()
        await close_db()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=settings.log_level)
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
