"""
Meta API routes.
Tickers and intervals available in the candle store.
"""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from candle_replay.api.deps import get_store
from candle_replay.data.store import CandleStore

router = APIRouter(prefix="/meta", tags=["Meta"])


@router.get("/tickers", response_model=list[str])
async def list_tickers(store: CandleStore = Depends(get_store)):
    """Tickers with stored candles."""
    try:
        return await store.list_tickers()
    except SQLAlchemyError as e:
        logger.error(f"Listing tickers failed: {e}")
        raise HTTPException(500, "Failed to load tickers")


@router.get("/intervals", response_model=list[str])
async def list_intervals(ticker: str, store: CandleStore = Depends(get_store)):
    """Intervals stored for a ticker, shortest first."""
    try:
        return await store.list_intervals(ticker)
    except SQLAlchemyError as e:
        logger.error(f"Listing intervals for {ticker} failed: {e}")
        raise HTTPException(500, "Failed to load intervals")
