"""
Candle API routes.
Window queries used by the replay chart.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from candle_replay.api.deps import get_store
from candle_replay.api.schemas import CandleWindowResponse
from candle_replay.config import settings
from candle_replay.data.instruments import is_known_interval
from candle_replay.data.store import CandleStore
from candle_replay.data.types import parse_time

router = APIRouter(prefix="/candles", tags=["Candles"])


def _check_interval(interval: str):
    if not is_known_interval(interval):
        raise HTTPException(400, f"Unknown interval: {interval}")


def _parse_time_param(value: str, name: str) -> datetime:
    try:
        return parse_time(value)
    except ValueError:
        raise HTTPException(400, f"Invalid {name}. Use ISO-8601, e.g. 2024-03-01T10:00:00Z")


@router.get("/random", response_model=CandleWindowResponse)
async def random_candles(
    interval: str,
    ticker: Optional[str] = None,
    store: CandleStore = Depends(get_store),
):
    """
    Random period with at least `min_future_candles` bars after the
    initial anchor (when the series is long enough).
    """
    _check_interval(interval)
    try:
        window = await store.random_window(
            ticker, interval, settings.initial_lookback, settings.min_future_candles
        )
    except SQLAlchemyError as e:
        logger.error(f"Random window failed for {ticker} {interval}: {e}")
        raise HTTPException(500, "Failed to load candles")
    return CandleWindowResponse.from_window(window)


@router.get("/before", response_model=CandleWindowResponse)
async def candles_before(
    ticker: str,
    interval: str,
    before: str,
    limit: int = Query(500, ge=1, le=5000),
    store: CandleStore = Depends(get_store),
):
    """Older candles ending just before `before`, for scrolling left."""
    _check_interval(interval)
    before_dt = _parse_time_param(before, "before")
    try:
        window = await store.before(ticker, interval, before_dt, limit)
    except SQLAlchemyError as e:
        logger.error(f"Window before {before} failed for {ticker} {interval}: {e}")
        raise HTTPException(500, "Failed to load more candles")
    return CandleWindowResponse.from_window(window)


@router.get("/aligned", response_model=CandleWindowResponse)
async def aligned_candles(
    ticker: str,
    interval: str,
    target_time: str = Query(..., alias="targetTime"),
    store: CandleStore = Depends(get_store),
):
    """Window around a (boundary-aligned) target time, for timeframe switches."""
    _check_interval(interval)
    target = _parse_time_param(target_time, "targetTime")
    try:
        window = await store.aligned_window(
            ticker, interval, target, settings.initial_lookback, settings.min_future_candles
        )
    except SQLAlchemyError as e:
        logger.error(f"Aligned window failed for {ticker} {interval}: {e}")
        raise HTTPException(500, "Failed to fetch aligned candles")
    return CandleWindowResponse.from_window(window)
