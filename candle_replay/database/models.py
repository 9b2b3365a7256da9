"""
Database models module.
Defines the SQLAlchemy ORM model for stored candles.
"""

from datetime import datetime

from sqlalchemy import String, Float, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from candle_replay.database.connection import Base


class CandleRecord(Base):
    """OHLCV candle keyed by (ticker, interval, time). Times are naive UTC."""
    
    __tablename__ = "candles"
    
    ticker: Mapped[str] = mapped_column(String(20), primary_key=True)
    interval: Mapped[str] = mapped_column(String(10), primary_key=True)
    time: Mapped[datetime] = mapped_column(DateTime, primary_key=True)
    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[int] = mapped_column(BigInteger, default=0)
    buy_volume: Mapped[int] = mapped_column(BigInteger, default=0)
    sell_volume: Mapped[int] = mapped_column(BigInteger, default=0)
