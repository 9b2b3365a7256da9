"""
Data package.
Candle store, upstream ingestion and the instrument registry.
"""

from candle_replay.data.types import Candle, CandleWindow
from candle_replay.data.store import CandleStore
from candle_replay.data.fetcher import IngestionPipeline, IngestionResult, UpstreamClient, CandlePage

__all__ = [
    "Candle",
    "CandleWindow",
    "CandleStore",
    "IngestionPipeline",
    "IngestionResult",
    "UpstreamClient",
    "CandlePage",
]
