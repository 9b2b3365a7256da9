"""
Shared fixtures: in-memory candle store, candle builders and a scripted upstream.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from candle_replay.data.fetcher import CandlePage
from candle_replay.data.store import CandleStore
from candle_replay.data.types import Candle, iso_z
from candle_replay.database.connection import build_session_factory, init_db
from candle_replay.replay.session import ReplaySession


# Monday, well clear of any weekend
T0 = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
FIVE_MIN = timedelta(minutes=5)


def make_candles(
    n: int,
    ticker: str = "SBER",
    interval: str = "5min",
    start: datetime = T0,
    step: timedelta = FIVE_MIN,
    closes: Optional[list[float]] = None,
) -> list[Candle]:
    candles = []
    for i in range(n):
        close = closes[i] if closes else 100.0 + i
        candles.append(Candle(
            ticker=ticker,
            interval=interval,
            time=start + i * step,
            open=close - 0.5,
            high=close + 1.0,
            low=close - 1.0,
            close=close,
            volume=10 + i,
            buy_volume=6,
            sell_volume=4 + i,
        ))
    return candles


def raw_candle(dt: datetime, close: float = 100.0) -> dict:
    """Upstream payload item."""
    return {
        "time": iso_z(dt),
        "o": close - 0.5,
        "h": close + 1.0,
        "l": close - 1.0,
        "c": close,
        "v": 10,
        "vb": 6,
        "vs": 4,
    }


def raw_page(times: list[datetime], has_more: bool) -> CandlePage:
    return CandlePage(candles=[raw_candle(t) for t in times], has_more_past=has_more)


class HighestRandom(random.Random):
    """Deterministic picks: the latest possible window, the first ticker."""

    def randint(self, a, b):
        return b

    def choice(self, seq):
        return seq[0]


def make_session(store, **kwargs) -> ReplaySession:
    options = dict(initial_lookback=30, min_future=10, past_page_size=25, reset_interval="5min", rng=HighestRandom())
    options.update(kwargs)
    return ReplaySession(store, **options)


class FakeUpstreamClient:
    """Hands out scripted pages in order and records every request."""

    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.calls: list[dict] = []
        self.closed = False

    async def fetch_page(self, instrument_id, interval, session_id, to=None, series_uid=None, limit=600):
        self.calls.append({
            "instrument_id": instrument_id,
            "interval": interval,
            "session_id": session_id,
            "to": to,
            "series_uid": series_uid,
            "limit": limit,
        })
        if not self.pages:
            return CandlePage(candles=[], has_more_past=False)
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    async def close(self):
        self.closed = True


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return CandleStore(session_factory, rng=HighestRandom())
