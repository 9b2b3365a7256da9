"""
Tests for the HTTP query surface.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError

from candle_replay.api.deps import get_store
from candle_replay.api.server import app
from candle_replay.data.store import CandleStore
from tests.conftest import make_candles


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def use_store():
    def _use(store):
        app.dependency_overrides[get_store] = lambda: store
    return _use


class TestCandleRoutes:

    @pytest.mark.asyncio
    async def test_random(self, client, store, use_store):
        await store.upsert_many(make_candles(20))
        use_store(store)

        response = await client.get("/api/candles/random", params={"ticker": "SBER", "interval": "5min"})

        assert response.status_code == 200
        body = response.json()
        assert len(body["candles"]) == 20
        assert body["hasMorePast"] is False
        assert body["candles"][0] == {
            "time": "2024-03-04T10:00:00Z",
            "o": 99.5, "h": 101.0, "l": 99.0, "c": 100.0,
            "v": 10, "vb": 6, "vs": 4,
        }

    @pytest.mark.asyncio
    async def test_unknown_interval(self, client, store, use_store):
        use_store(store)

        response = await client.get("/api/candles/random", params={"interval": "week"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_before(self, client, store, use_store):
        await store.upsert_many(make_candles(20))
        use_store(store)

        response = await client.get("/api/candles/before", params={
            "ticker": "SBER", "interval": "5min", "before": "2024-03-04T10:50:00Z", "limit": 5,
        })

        body = response.json()
        assert response.status_code == 200
        assert [c["time"] for c in body["candles"]] == [
            "2024-03-04T10:25:00Z", "2024-03-04T10:30:00Z", "2024-03-04T10:35:00Z",
            "2024-03-04T10:40:00Z", "2024-03-04T10:45:00Z",
        ]
        assert body["hasMorePast"] is True

    @pytest.mark.asyncio
    async def test_before_bad_time(self, client, store, use_store):
        use_store(store)

        response = await client.get("/api/candles/before", params={
            "ticker": "SBER", "interval": "5min", "before": "yesterday",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_aligned(self, client, store, use_store):
        await store.upsert_many(make_candles(20))
        use_store(store)

        response = await client.get("/api/candles/aligned", params={
            "ticker": "SBER", "interval": "5min", "targetTime": "2024-03-04T10:12:00Z",
        })

        body = response.json()
        assert response.status_code == 200
        assert body["candles"][0]["time"] == "2024-03-04T10:00:00Z"
        assert len(body["candles"]) == 20

    @pytest.mark.asyncio
    async def test_store_failure_is_500(self, client, use_store):
        broken = MagicMock(spec=CandleStore)
        broken.random_window = AsyncMock(side_effect=SQLAlchemyError("down"))
        use_store(broken)

        response = await client.get("/api/candles/random", params={"ticker": "SBER", "interval": "5min"})

        assert response.status_code == 500


class TestMetaRoutes:

    @pytest.mark.asyncio
    async def test_tickers_and_intervals(self, client, store, use_store):
        await store.upsert_many(make_candles(3, ticker="SBER"))
        await store.upsert_many(make_candles(3, ticker="GAZP", interval="hour"))
        use_store(store)

        tickers = await client.get("/api/meta/tickers")
        intervals = await client.get("/api/meta/intervals", params={"ticker": "GAZP"})

        assert tickers.json() == ["GAZP", "SBER"]
        assert intervals.json() == ["hour"]

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.json() == {"status": "healthy"}
