"""
FastAPI dependencies.
"""

from candle_replay.data.store import CandleStore
from candle_replay.database.connection import async_session_factory


def get_store() -> CandleStore:
    """Dependency for getting the candle store."""
    return CandleStore(async_session_factory)
