from candle_replay.database.connection import Base, build_engine, build_session_factory, init_db, close_db
from candle_replay.database.models import CandleRecord

__all__ = [
    "Base",
    "CandleRecord",
    "build_engine",
    "build_session_factory",
    "init_db",
    "close_db",
]
