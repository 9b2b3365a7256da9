"""
Candle store module.
Keyed, upsert-only persistence of candles plus the window queries used by replay.
"""

import random
from datetime import datetime, timezone
from typing import Iterable, Optional

from loguru import logger
from sqlalchemy import select, and_, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from candle_replay.data.instruments import interval_sort_key
from candle_replay.data.types import Candle, CandleWindow
from candle_replay.database.models import CandleRecord


KEY_COLUMNS = ["ticker", "interval", "time"]
VALUE_COLUMNS = ["open", "high", "low", "close", "volume", "buy_volume", "sell_volume"]


def _to_db_time(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _to_row(candle: Candle) -> dict:
    return {
        "ticker": candle.ticker,
        "interval": candle.interval,
        "time": _to_db_time(candle.time),
        "open": candle.open,
        "high": candle.high,
        "low": candle.low,
        "close": candle.close,
        "volume": candle.volume,
        "buy_volume": candle.buy_volume,
        "sell_volume": candle.sell_volume,
    }


def _to_candle(record: CandleRecord) -> Candle:
    return Candle(
        ticker=record.ticker,
        interval=record.interval,
        time=record.time.replace(tzinfo=timezone.utc),
        open=float(record.open),
        high=float(record.high),
        low=float(record.low),
        close=float(record.close),
        volume=int(record.volume or 0),
        buy_volume=int(record.buy_volume or 0),
        sell_volume=int(record.sell_volume or 0),
    )


def _upsert_statement(dialect_name: str, rows: list[dict]):
    """INSERT ... ON CONFLICT (ticker, interval, time) DO UPDATE for the active dialect."""
    insert = pg_insert if dialect_name == "postgresql" else sqlite_insert
    stmt = insert(CandleRecord).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=KEY_COLUMNS,
        set_={col: stmt.excluded[col] for col in VALUE_COLUMNS},
    )


class CandleStore:
    """Durable candle table. Writes are upserts; nothing is ever deleted."""

    # Rows per statement; keeps SQLite under its bound-parameter limit
    UPSERT_CHUNK = 500

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], rng: Optional[random.Random] = None):
        self.session_factory = session_factory
        self.rng = rng or random.Random()

    # ---- writes ----

    async def upsert(self, candle: Candle):
        """Insert or replace a single candle."""
        await self.upsert_many([candle])

    async def upsert_many(self, candles: Iterable[Candle]) -> int:
        """
        Insert or replace candles in one transaction.

        Either every row is committed or none is.
        """
        rows = [_to_row(c) for c in candles]
        if not rows:
            return 0

        async with self.session_factory() as db:
            async with db.begin():
                dialect_name = db.get_bind().dialect.name
                for start in range(0, len(rows), self.UPSERT_CHUNK):
                    chunk = rows[start:start + self.UPSERT_CHUNK]
                    await db.execute(_upsert_statement(dialect_name, chunk))

        logger.debug(f"Upserted {len(rows)} candles")
        return len(rows)

    # ---- reads ----

    @staticmethod
    def _key_filter(ticker: str, interval: str):
        return and_(CandleRecord.ticker == ticker, CandleRecord.interval == interval)

    async def latest_time(self, ticker: str, interval: str) -> Optional[datetime]:
        """Most recent stored candle time, or None when the key is empty."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CandleRecord.time)
                .where(self._key_filter(ticker, interval))
                .order_by(CandleRecord.time.desc())
                .limit(1)
            )
            latest = result.scalar_one_or_none()
        return latest.replace(tzinfo=timezone.utc) if latest else None

    async def _has_older(self, db: AsyncSession, ticker: str, interval: str, time: datetime) -> bool:
        result = await db.execute(
            select(CandleRecord.time)
            .where(and_(self._key_filter(ticker, interval), CandleRecord.time < _to_db_time(time)))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def count(self, ticker: str, interval: str) -> int:
        async with self.session_factory() as db:
            return await self._count(db, ticker, interval)

    async def _count(self, db: AsyncSession, ticker: str, interval: str) -> int:
        result = await db.execute(
            select(func.count()).select_from(CandleRecord).where(self._key_filter(ticker, interval))
        )
        return result.scalar() or 0

    async def before(self, ticker: str, interval: str, before_time: datetime, limit: int = 500) -> CandleWindow:
        """Up to `limit` candles strictly older than `before_time`, ascending."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CandleRecord)
                .where(and_(self._key_filter(ticker, interval), CandleRecord.time < _to_db_time(before_time)))
                .order_by(CandleRecord.time.desc())
                .limit(limit)
            )
            candles = [_to_candle(r) for r in reversed(result.scalars().all())]
            has_more = bool(candles) and await self._has_older(db, ticker, interval, candles[0].time)

        return CandleWindow(candles=candles, has_more_past=has_more)

    async def random_window(
        self,
        ticker: Optional[str],
        interval: str,
        lookback: int = 3000,
        min_future: int = 500,
    ) -> CandleWindow:
        """
        Random contiguous slice of `lookback + min_future` candles.

        The candle at position `lookback - 1` has `min_future` candles after it
        whenever the series is long enough; shorter series come back whole.
        A missing ticker is picked uniformly among tickers holding `interval`.
        """
        async with self.session_factory() as db:
            if ticker is None:
                tickers = await self._tickers_for_interval(db, interval)
                if not tickers:
                    return CandleWindow()
                ticker = self.rng.choice(tickers)

            total = await self._count(db, ticker, interval)
            size = lookback + min_future
            start = self.rng.randint(0, max(0, total - size))

            result = await db.execute(
                select(CandleRecord)
                .where(self._key_filter(ticker, interval))
                .order_by(CandleRecord.time)
                .offset(start)
                .limit(size)
            )
            candles = [_to_candle(r) for r in result.scalars().all()]

        logger.info(f"Random window {ticker} {interval}: {len(candles)} candles from offset {start}/{total}")
        return CandleWindow(candles=candles, has_more_past=start > 0)

    async def aligned_window(
        self,
        ticker: str,
        interval: str,
        target_time: datetime,
        lookback: int = 3000,
        min_future: int = 500,
    ) -> CandleWindow:
        """
        Window around `target_time`: up to `lookback` candles at or before it and
        up to `min_future` candles after it. `anchor_index` points at the last
        candle at or before the target (0 when the target precedes all data).
        """
        target = _to_db_time(target_time)
        async with self.session_factory() as db:
            past_result = await db.execute(
                select(CandleRecord)
                .where(and_(self._key_filter(ticker, interval), CandleRecord.time <= target))
                .order_by(CandleRecord.time.desc())
                .limit(lookback)
            )
            past = [_to_candle(r) for r in reversed(past_result.scalars().all())]

            future_result = await db.execute(
                select(CandleRecord)
                .where(and_(self._key_filter(ticker, interval), CandleRecord.time > target))
                .order_by(CandleRecord.time)
                .limit(min_future)
            )
            future = [_to_candle(r) for r in future_result.scalars().all()]

            has_more = bool(past) and await self._has_older(db, ticker, interval, past[0].time)

        candles = past + future
        anchor = len(past) - 1 if past else (0 if candles else None)
        return CandleWindow(candles=candles, has_more_past=has_more, anchor_index=anchor)

    async def _tickers_for_interval(self, db: AsyncSession, interval: str) -> list[str]:
        result = await db.execute(
            select(CandleRecord.ticker)
            .where(CandleRecord.interval == interval)
            .distinct()
            .order_by(CandleRecord.ticker)
        )
        return list(result.scalars().all())

    async def list_tickers(self) -> list[str]:
        """Tickers with any stored candles, sorted."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CandleRecord.ticker).distinct().order_by(CandleRecord.ticker)
            )
            return list(result.scalars().all())

    async def list_intervals(self, ticker: str) -> list[str]:
        """Intervals stored for a ticker, shortest first."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(CandleRecord.interval)
                .where(CandleRecord.ticker == ticker)
                .distinct()
            )
            intervals = list(result.scalars().all())
        return sorted(intervals, key=interval_sort_key)
