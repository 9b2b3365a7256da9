"""
Exception hierarchy shared by the ingestion pipeline and the replay session.
"""

from typing import Optional


class CandleReplayError(Exception):
    """Base class for all package errors."""


class IngestionError(CandleReplayError):
    """An ingestion run could not complete. Nothing was persisted for it."""


class UnknownTickerError(IngestionError):
    """Ticker has no upstream instrument mapping."""

    def __init__(self, ticker: str):
        super().__init__(f"Unknown ticker: {ticker}")
        self.ticker = ticker


class MissingCredentialError(IngestionError):
    """No upstream session credential was configured."""

    def __init__(self):
        super().__init__("Provide Session ID")


class UpstreamError(IngestionError):
    """Upstream request failed (bad status, transport error or malformed payload)."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class SessionLoadError(CandleReplayError):
    """Replay session could not load candles from the store."""
