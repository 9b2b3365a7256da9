"""
Data fetcher module.
Pages candle history from upstream and reconciles it into the candle store.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import aiohttp
from loguru import logger

from candle_replay.config import settings
from candle_replay.data.instruments import INTERVALS, SERIES_UID_MAP, TICKER_MAP
from candle_replay.data.store import CandleStore
from candle_replay.data.types import Candle, iso_z, parse_time
from candle_replay.errors import MissingCredentialError, UnknownTickerError, UpstreamError


@dataclass
class CandlePage:
    """One upstream response: raw candles (oldest first) and the more-history flag."""
    candles: list[dict[str, Any]]
    has_more_past: bool


@dataclass
class IngestionResult:
    """Outcome of one (ticker, interval) run."""
    ticker: str
    interval: str
    mode: str  # "backfill" or "update"
    pages: int = 0
    fetched: int = 0
    persisted: int = 0


class UpstreamClient:
    """Fetches single candle pages from the upstream history API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        app_name: Optional[str] = None,
        app_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.upstream_url
        self.app_name = app_name or settings.upstream_app_name
        self.app_version = app_version or settings.upstream_app_version
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.request_timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch_page(
        self,
        instrument_id: str,
        interval: str,
        session_id: str,
        to: Optional[str] = None,
        series_uid: Optional[str] = None,
        limit: int = 600,
    ) -> CandlePage:
        """
        Fetch one page of candles, newest page first.

        Args:
            instrument_id: Upstream instrument id
            interval: Upstream interval name (e.g. '5min')
            session_id: Session credential
            to: Cursor; only candles older than this time are returned
            series_uid: Optional series id for instruments that need it
            limit: Max candles per page

        Raises:
            UpstreamError: on non-2xx status, transport error or malformed payload
        """
        params = {
            "instrument_id": instrument_id,
            "interval": interval,
            "limit": str(limit),
            "appName": self.app_name,
            "appVersion": self.app_version,
            "sessionId": session_id,
        }
        if series_uid:
            params["seriesUid"] = series_uid
        if to:
            params["to"] = to

        session = await self._get_session()
        try:
            async with session.get(self.base_url, params=params) as response:
                if response.status != 200:
                    raise UpstreamError(
                        f"HTTP {response.status}: {response.url}",
                        status=response.status,
                        url=str(response.url),
                    )
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamError(
                        f"Malformed upstream response: {e}",
                        status=response.status,
                        url=str(response.url),
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Request failed for {instrument_id} {interval}: {e}") from e

        return self.parse_page(data)

    @staticmethod
    def parse_page(data: Any) -> CandlePage:
        """Read {payload: {candles, has_prev_candles}} into a CandlePage."""
        if not isinstance(data, dict):
            raise UpstreamError("Malformed upstream response")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict) or not isinstance(payload.get("candles") or [], list):
            raise UpstreamError("Malformed upstream payload")
        candles = payload.get("candles") or []
        if not all(isinstance(raw, dict) for raw in candles):
            raise UpstreamError("Malformed upstream payload")
        if "has_prev_candles" in payload:
            has_more = bool(payload["has_prev_candles"])
        else:
            has_more = bool(data.get("hasMorePastCandles", False))
        return CandlePage(candles=list(candles), has_more_past=has_more)


class IngestionPipeline:
    """
    Keeps the candle store in sync with upstream.

    Mode is chosen per (ticker, interval):
    - no stored data: full backfill of everything upstream has
    - stored data up to T: incremental update of candles newer than T

    Nothing is written until the whole paging loop succeeded, so a failed
    run leaves the store untouched and a retry resumes from `latest_time`.
    """

    def __init__(
        self,
        store: CandleStore,
        session_id: Optional[str],
        client: Optional[UpstreamClient] = None,
        ticker_map: Optional[dict[str, str]] = None,
        series_uid_map: Optional[dict[str, str]] = None,
        page_limit: Optional[int] = None,
        page_delay: Optional[float] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.client = client or UpstreamClient()
        self.ticker_map = TICKER_MAP if ticker_map is None else ticker_map
        self.series_uid_map = SERIES_UID_MAP if series_uid_map is None else series_uid_map
        self.page_limit = page_limit or settings.page_limit
        self.page_delay = settings.page_delay_ms / 1000 if page_delay is None else page_delay

    async def close(self):
        """Cleanup resources."""
        await self.client.close()

    async def _fetch(self, instrument_id: str, interval: str, to: Optional[str], series_uid: Optional[str]) -> CandlePage:
        return await self.client.fetch_page(
            instrument_id,
            interval,
            self.session_id,
            to=to,
            series_uid=series_uid,
            limit=self.page_limit,
        )

    @staticmethod
    def _parse_candles(ticker: str, interval: str, page: CandlePage) -> list[Candle]:
        try:
            return [Candle.from_upstream(ticker, interval, raw) for raw in page.candles]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed candle for {ticker} {interval}: {e!r}") from e

    @staticmethod
    def _oldest_cursor(page: CandlePage) -> str:
        """Raw time of the oldest candle in a page, used as the next `to` cursor."""
        return min(page.candles, key=lambda raw: parse_time(raw["time"]))["time"]

    @staticmethod
    def _drop_latest(candles: list[Candle]) -> list[Candle]:
        """Dedupe by time, sort ascending and drop the newest candle."""
        ordered = sorted({c.time: c for c in candles}.values(), key=lambda c: c.time)
        # The newest bar upstream returns may still be forming; it is never stored.
        if ordered:
            ordered.pop()
        return ordered

    async def backfill(
        self,
        ticker: str,
        instrument_id: str,
        interval: str,
        series_uid: Optional[str] = None,
    ) -> IngestionResult:
        """Full history load for a key with no stored candles."""
        result = IngestionResult(ticker=ticker, interval=interval, mode="backfill")
        all_candles: list[Candle] = []
        next_to: Optional[str] = None

        while True:
            page = await self._fetch(instrument_id, interval, next_to, series_uid)
            result.pages += 1
            logger.info(f"Backfill page #{result.pages}: {len(page.candles)} candles")

            all_candles.extend(self._parse_candles(ticker, interval, page))

            if not (page.has_more_past and page.candles):
                break

            next_to = self._oldest_cursor(page)
            await asyncio.sleep(self.page_delay)

        result.fetched = len(all_candles)
        to_save = self._drop_latest(all_candles)
        result.persisted = await self.store.upsert_many(to_save)

        logger.info(f"Saved {result.persisted} candles for {ticker} {interval}")
        return result

    async def update_missing(
        self,
        ticker: str,
        instrument_id: str,
        interval: str,
        last_time: datetime,
        series_uid: Optional[str] = None,
    ) -> IngestionResult:
        """Fetch only candles newer than `last_time`."""
        result = IngestionResult(ticker=ticker, interval=interval, mode="update")
        new_candles: list[Candle] = []
        next_to: Optional[str] = None

        logger.info(f"Updating {ticker} {interval} since: {iso_z(last_time)}")

        while True:
            page = await self._fetch(instrument_id, interval, next_to, series_uid)
            result.pages += 1
            logger.info(f"Update page #{result.pages}: {len(page.candles)} candles")

            parsed = self._parse_candles(ticker, interval, page)
            result.fetched += len(parsed)
            new_candles.extend(c for c in parsed if c.time > last_time)

            oldest = min((c.time for c in parsed), default=None)
            if not page.has_more_past or oldest is None or oldest <= last_time:
                break

            next_to = self._oldest_cursor(page)
            await asyncio.sleep(self.page_delay)

        if not new_candles:
            logger.info("No new candles.")
            return result

        to_save = self._drop_latest(new_candles)
        result.persisted = await self.store.upsert_many(to_save)

        logger.info(f"Inserted {result.persisted} new candles for {ticker} {interval}")
        return result

    async def load_all_candles_for(self, ticker: str, interval: str) -> IngestionResult:
        """
        Sync one (ticker, interval) key.

        Raises:
            MissingCredentialError: no session id configured
            UnknownTickerError: ticker has no instrument mapping
            UpstreamError: any page request failed; nothing persisted
        """
        if not self.session_id:
            raise MissingCredentialError()
        instrument_id = self.ticker_map.get(ticker)
        if not instrument_id:
            raise UnknownTickerError(ticker)

        series_uid = self.series_uid_map.get(ticker)
        logger.info(f"Loading {ticker}, interval {interval}")

        last_time = await self.store.latest_time(ticker, interval)
        if last_time is None:
            logger.info("No data yet, performing full backfill...")
            return await self.backfill(ticker, instrument_id, interval, series_uid)

        logger.info("Performing incremental update...")
        return await self.update_missing(ticker, instrument_id, interval, last_time, series_uid)

    async def load_all_candles(
        self,
        tickers: Optional[list[str]] = None,
        intervals: Optional[list[str]] = None,
    ) -> list[IngestionResult]:
        """Sync every ticker x interval key, one run at a time."""
        results = []
        for ticker in tickers or list(self.ticker_map):
            for interval in intervals or INTERVALS:
                logger.info(f"=== Loading {ticker} @ {interval} ===")
                results.append(await self.load_all_candles_for(ticker, interval))

        logger.info("All tickers and intervals updated.")
        return results
